"""FastAPI application exposing the Chirpy record store."""
from __future__ import annotations

import logging
import secrets
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .errors import ConflictError, NotFoundError, StoreError, UnauthorizedError
from .models import Message, User
from .repositories import ASCENDING, DESCENDING
from .security import MAX_PASSWORD_BYTES, configure_password_hashing
from .tokens import ACCESS_ISSUER, REFRESH_ISSUER, TokenError, TokenSigner

logger = logging.getLogger("chirpy.api")

MAX_CHIRP_LENGTH = 140
PROFANE_WORDS = frozenset({"kerfuffle", "sharbert", "fornax"})
CENSORED = "****"
UPGRADE_EVENT = "user.upgraded"
FILESERVER_PREFIX = "/app"
CORS_METHODS = ["GET", "POST", "OPTIONS", "PUT", "DELETE"]

METRICS_TEMPLATE = """<html>

<body>
    <h1>Welcome, Chirpy Admin</h1>
    <p>Chirpy has been visited {hits} times!</p>
</body>

</html>
"""


class Credentials(BaseModel):
    email: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1, max_length=MAX_PASSWORD_BYTES)


class UserResponse(BaseModel):
    id: int
    email: str
    is_chirpy_red: bool


class LoginResponse(UserResponse):
    token: str
    refresh_token: str


class TokenResponse(BaseModel):
    token: str


class ChirpCreateRequest(BaseModel):
    body: str


class ChirpResponse(BaseModel):
    id: int
    author_id: int
    body: str


class PolkaWebhookRequest(BaseModel):
    event: str
    data: Dict[str, int] = Field(default_factory=dict)


def censor(body: str) -> str:
    """Mask profane words, matching whole words case-insensitively."""

    words = body.split(" ")
    return " ".join(CENSORED if word.lower() in PROFANE_WORDS else word for word in words)


def user_to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, email=user.email, is_chirpy_red=user.is_privileged)


def message_to_response(message: Message) -> ChirpResponse:
    return ChirpResponse(id=message.id, author_id=message.author_id, body=message.body)


def _store_error_status(exc: StoreError) -> int:
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, UnauthorizedError):
        return status.HTTP_401_UNAUTHORIZED
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_error_handlers(app: FastAPI) -> None:
    """Render every failure as ``{"error": "<message>"}``."""

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        code = _store_error_status(exc)
        if code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error("Store failure on %s: %s", request.url.path, exc, exc_info=exc)
            message = "Database operation failed"
        else:
            message = str(exc)
        return JSONResponse(status_code=code, content={"error": message})

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("Rejected value on %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(exc)},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        logger.warning("Rejected request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request"},
        )


def create_app(
    *,
    database: Database | None = None,
    signer: TokenSigner | None = None,
    polka_key: Optional[str] = None,
    settings: Settings | None = None,
    static_dir: Optional[Path] = None,
) -> FastAPI:
    """Build the HTTP adapter around ``database``.

    Missing collaborators are created from :func:`~chirpy.config.load_settings`.
    """

    if database is None or signer is None or polka_key is None or static_dir is None:
        settings = settings or load_settings()
    if database is None:
        configure_password_hashing(settings.bcrypt_rounds)
        database = Database(settings.database_path)
        database.initialize()
    if signer is None:
        signer = TokenSigner(
            settings.jwt_secret,
            access_ttl=settings.access_token_ttl,
            refresh_ttl=settings.refresh_token_ttl,
        )
    if polka_key is None:
        polka_key = settings.polka_key
    if static_dir is None:
        static_dir = settings.static_dir

    app = FastAPI(title="Chirpy", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.database = database
    app.state.signer = signer
    app.state.fileserver_hits = 0
    register_error_handlers(app)

    @app.middleware("http")
    async def count_fileserver_hits(request: Request, call_next):
        path = request.url.path
        if path == FILESERVER_PREFIX or path.startswith(FILESERVER_PREFIX + "/"):
            app.state.fileserver_hits += 1
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=CORS_METHODS,
        allow_headers=["*"],
    )

    static_dir = Path(static_dir)
    if static_dir.is_dir():
        app.mount(FILESERVER_PREFIX, StaticFiles(directory=str(static_dir), html=True), name="app")
    else:
        logger.warning("Static directory %s does not exist; /app is not served", static_dir)

    bearer = HTTPBearer(auto_error=False)

    def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
        return credentials.credentials.strip()

    def current_user_id(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ) -> int:
        token = _bearer_token(credentials)
        try:
            return signer.verify(token, ACCESS_ISSUER)
        except TokenError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc

    def refresh_credentials(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    ) -> Tuple[str, int]:
        token = _bearer_token(credentials)
        try:
            user_id = signer.verify(token, REFRESH_ISSUER)
        except TokenError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        if database.revocations.is_revoked(token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Refresh token has been revoked",
            )
        return token, user_id

    @app.get("/api/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "OK"

    @app.get("/admin/metrics", response_class=HTMLResponse)
    async def metrics() -> str:
        return METRICS_TEMPLATE.format(hits=app.state.fileserver_hits)

    @app.post("/api/reset", response_class=PlainTextResponse)
    async def reset_metrics() -> str:
        app.state.fileserver_hits = 0
        logger.info("File server hit counter reset")
        return "OK"

    # ------------------------------------------------------------------
    # Users and sessions
    # ------------------------------------------------------------------
    @app.post("/api/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
    def create_user(payload: Credentials) -> UserResponse:
        user = database.users.create(payload.email, payload.password)
        logger.info("Registered user %s", user.id)
        return user_to_response(user)

    @app.put("/api/users", response_model=UserResponse)
    def update_user(payload: Credentials, user_id: int = Depends(current_user_id)) -> UserResponse:
        user = database.users.update(user_id, email=payload.email, password=payload.password)
        return user_to_response(user)

    @app.post("/api/login", response_model=LoginResponse)
    def login(payload: Credentials) -> LoginResponse:
        try:
            user = database.users.authenticate(payload.email, payload.password)
        except UnauthorizedError as exc:
            logger.warning("Failed login attempt for %s", payload.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            ) from exc
        return LoginResponse(
            id=user.id,
            email=user.email,
            is_chirpy_red=user.is_privileged,
            token=signer.issue_access(user.id),
            refresh_token=signer.issue_refresh(user.id),
        )

    @app.post("/api/refresh", response_model=TokenResponse)
    def refresh(credentials: Tuple[str, int] = Depends(refresh_credentials)) -> TokenResponse:
        _, user_id = credentials
        return TokenResponse(token=signer.issue_access(user_id))

    @app.post("/api/revoke", status_code=status.HTTP_204_NO_CONTENT)
    def revoke(credentials: Tuple[str, int] = Depends(refresh_credentials)) -> Response:
        token, user_id = credentials
        database.revocations.revoke(token)
        logger.info("Revoked refresh token for user %s", user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Chirps
    # ------------------------------------------------------------------
    @app.post("/api/chirps", response_model=ChirpResponse, status_code=status.HTTP_201_CREATED)
    def create_chirp(payload: ChirpCreateRequest, user_id: int = Depends(current_user_id)) -> ChirpResponse:
        if len(payload.body) > MAX_CHIRP_LENGTH:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Chirp is too long")
        message = database.messages.create(censor(payload.body), user_id)
        return message_to_response(message)

    @app.get("/api/chirps", response_model=List[ChirpResponse])
    def list_chirps(
        author_id: Optional[int] = Query(default=None),
        sort: str = Query(default=ASCENDING),
    ) -> List[ChirpResponse]:
        if sort not in (ASCENDING, DESCENDING):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"sort must be '{ASCENDING}' or '{DESCENDING}'",
            )
        messages = database.messages.list(author_id=author_id, order=sort)
        return [message_to_response(message) for message in messages]

    @app.get("/api/chirps/{chirp_id}", response_model=ChirpResponse)
    def get_chirp(chirp_id: int) -> ChirpResponse:
        return message_to_response(database.messages.get(chirp_id))

    @app.delete("/api/chirps/{chirp_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_chirp(chirp_id: int, user_id: int = Depends(current_user_id)) -> Response:
        message = database.messages.get(chirp_id)
        if message.author_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized chirp author")
        database.messages.delete(chirp_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Payment provider webhook
    # ------------------------------------------------------------------
    @app.post("/api/polka/webhooks", status_code=status.HTTP_204_NO_CONTENT)
    def polka_webhook(payload: PolkaWebhookRequest, request: Request) -> Response:
        header = request.headers.get("authorization", "")
        scheme, _, provided = header.strip().partition(" ")
        if (
            not polka_key
            or scheme.lower() != "apikey"
            or not secrets.compare_digest(provided.strip().encode("utf-8"), polka_key.encode("utf-8"))
        ):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

        if payload.event != UPGRADE_EVENT:
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        user_id = payload.data.get("user_id")
        if user_id is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User ID not found")
        database.users.update(user_id, is_privileged=True)
        logger.info("User %s upgraded to Chirpy Red", user_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return app


__all__ = ["censor", "create_app", "register_error_handlers"]

"""Signed bearer tokens for the HTTP layer.

Tokens are produced with itsdangerous' timed serializer. The issuer doubles as
the signing salt, so an access token never validates as a refresh token and
vice versa.
"""
from __future__ import annotations

import secrets
from datetime import timedelta

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

ACCESS_ISSUER = "chirpy-access"
REFRESH_ISSUER = "chirpy-refresh"

DEFAULT_ACCESS_TTL = timedelta(hours=1)
DEFAULT_REFRESH_TTL = timedelta(days=60)


class TokenError(Exception):
    """Raised when a bearer token is malformed, expired or of the wrong kind."""


class TokenSigner:
    def __init__(
        self,
        secret: str,
        *,
        access_ttl: timedelta = DEFAULT_ACCESS_TTL,
        refresh_ttl: timedelta = DEFAULT_REFRESH_TTL,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required to issue tokens")
        self._ttls = {ACCESS_ISSUER: access_ttl, REFRESH_ISSUER: refresh_ttl}
        self._serializers = {
            issuer: URLSafeTimedSerializer(secret, salt=issuer) for issuer in self._ttls
        }

    def issue_access(self, user_id: int) -> str:
        return self._issue(ACCESS_ISSUER, user_id)

    def issue_refresh(self, user_id: int) -> str:
        return self._issue(REFRESH_ISSUER, user_id)

    def verify(self, token: str, issuer: str) -> int:
        """Return the user id carried by ``token`` if it is valid for ``issuer``."""

        serializer = self._serializers.get(issuer)
        if serializer is None:
            raise TokenError(f"Unknown token issuer {issuer!r}")
        max_age = int(self._ttls[issuer].total_seconds())
        try:
            payload = serializer.loads(token, max_age=max_age)
        except SignatureExpired as exc:
            raise TokenError("Authorization token is expired") from exc
        except BadSignature as exc:
            raise TokenError("Invalid authorization token") from exc

        if not isinstance(payload, dict) or payload.get("iss") != issuer:
            raise TokenError("Invalid authorization issuer")
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError) as exc:
            raise TokenError("Authorization token has no subject") from exc

    def _issue(self, issuer: str, user_id: int) -> str:
        payload = {"iss": issuer, "sub": str(user_id), "jti": secrets.token_urlsafe(8)}
        return self._serializers[issuer].dumps(payload)


__all__ = [
    "ACCESS_ISSUER",
    "REFRESH_ISSUER",
    "TokenError",
    "TokenSigner",
]

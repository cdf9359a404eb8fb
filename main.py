"""Command-line interface for the Chirpy service."""

from __future__ import annotations
import argparse
import logging
import sys
from typing import Sequence

from chirpy.config import Settings, load_settings
from chirpy.database import Database
from chirpy.security import configure_password_hashing

logger = logging.getLogger("chirpy.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chirpy service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the database file if it does not exist")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default="localhost", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="Port for the HTTP API (default: 8080)",
    )
    serve_parser.add_argument(
        "--debug",
        action="store_true",
        help="Delete the database file before starting",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: Settings, *, reset: bool = False) -> Database:
    if reset:
        try:
            settings.database_path.unlink()
        except FileNotFoundError:
            pass
        else:
            logger.info("Removed database file %s", settings.database_path)

    configure_password_hashing(settings.bcrypt_rounds)
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from chirpy.api import create_app
    import uvicorn

    if not settings.jwt_secret:
        raise SystemExit("JWT_SECRET must be set before starting the service.")

    logger.info("Starting Chirpy API on http://%s:%s", host, port)
    app = create_app(database=database, settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    settings = load_settings()
    database = _initialise_database(settings, reset=getattr(args, "debug", False))

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()

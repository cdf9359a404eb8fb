import argparse
import getpass
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chirpy.config import load_settings
from chirpy.database import Database, resolve_database_path
from chirpy.errors import ConflictError
from chirpy.security import configure_password_hashing


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a Chirpy user")
    parser.add_argument("email", help="Unique email address for login")
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the JSON database (defaults to CHIRPY_DB_PATH or data/database.json)",
    )
    parser.add_argument(
        "--privileged",
        action="store_true",
        help="Mark the account as a Chirpy Red member",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if len(password) < 8:
            print("Password must be at least 8 characters long.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    settings = load_settings()
    db_path = resolve_database_path(args.db_path) if args.db_path else settings.database_path
    configure_password_hashing(settings.bcrypt_rounds)

    database = Database(db_path)
    database.initialize()

    try:
        user = database.users.create(args.email, password)
    except (ConflictError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if args.privileged:
        user = database.users.update(user.id, is_privileged=True)

    print(f"Created user #{user.id}: <{user.email}>{' (Chirpy Red)' if user.is_privileged else ''}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

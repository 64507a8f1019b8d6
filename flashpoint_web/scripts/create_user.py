"""
Create a user (e.g. first admin). Run from project root:
  python -m flashpoint_web.scripts.create_user USERNAME EMAIL PASSWORD [role]
Example:
  python -m flashpoint_web.scripts.create_user admin admin@example.com your-secure-password admin
"""
import argparse
import sys

from sqlalchemy import func, select

from flashpoint_web.core.config import get_settings
from flashpoint_web.core.database import SessionLocal
from flashpoint_web.core.exceptions import AuthServiceError
from flashpoint_web.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    USERNAME_MIN_LEN,
)
from flashpoint_web.models import Role
from flashpoint_web.services.credentials import CredentialStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a Flashpoint Web user account.")
    parser.add_argument("username", help=f"Username ({USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("role", nargs="?", default="user", help="Role name (default: user)")
    args = parser.parse_args()

    username = args.username.strip()
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        print("Invalid username length.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        role_id = db.execute(
            select(Role.id).where(func.lower(Role.name) == args.role.strip().lower())
        ).scalar_one_or_none()
        if role_id is None:
            print(f"Role '{args.role}' does not exist. Run the seed script first.", file=sys.stderr)
            return 1
        store = CredentialStore(db, get_settings().BCRYPT_ROUNDS)
        try:
            store.create_user(username, args.email.strip(), args.password, role_id)
        except AuthServiceError as e:
            print(e.message, file=sys.stderr)
            return 1
        print(f"Created user '{username}' with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

"""Provision (or promote) an administrator account.

Usage: python scripts/create_admin.py admin@example.com "Strong-Password" --name "Ops"
Run from the backend directory with DATABASE_URL pointing at the target database.
"""
import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sqlmodel import Session  # noqa: E402

from labo.db.session import engine, init_db  # noqa: E402
from labo.services.auth import AuthService  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a Labo administrator")
    parser.add_argument("email")
    parser.add_argument("password")
    parser.add_argument("--name", default="Administrator")
    args = parser.parse_args()

    if len(args.password) < 8:
        raise SystemExit("Password must have at least 8 characters")

    init_db()
    with Session(engine) as session:
        user = AuthService(session).create_admin(args.email, args.name, args.password)
    print(f"Admin ready: {user.email} ({user.id})")


if __name__ == "__main__":
    main()

"""
Create a club account (e.g. first admin). Run from project root:
  python -m app.scripts.create_user DISPLAY_NAME [--email EMAIL] [--password PASSWORD] [--role ROLE]
Example:
  python -m app.scripts.create_user "Head Coach" --email coach@example.com --role coach

Without --password the account has no password; the first successful login sets it.
"""
import argparse
import sys

from sqlalchemy import func, or_, select

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.security import PasswordHasher
from app.models.user import User
from app.schemas.auth import USER_ROLES


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a club account (no registration UI).")
    parser.add_argument("display_name", help="Display name (1-255 chars); usable as a login identifier")
    parser.add_argument("--email", default=None, help="Email address; usable as a login identifier")
    parser.add_argument("--password", default=None, help="Initial password (8-128 chars)")
    parser.add_argument("--role", default="athlete", choices=sorted(USER_ROLES))
    args = parser.parse_args()

    display_name = args.display_name.strip()
    email = args.email.strip().lower() if args.email else None
    if not display_name or len(display_name) > 255:
        print("Invalid display name length.", file=sys.stderr)
        return 1
    if args.password is not None and not 8 <= len(args.password) <= 128:
        print("Password must be 8-128 characters.", file=sys.stderr)
        return 1

    db = SessionLocal()
    try:
        identifiers = [display_name.lower()] + ([email] if email else [])
        existing = db.execute(
            select(User.id).where(
                or_(
                    func.lower(User.display_name).in_(identifiers),
                    func.lower(User.email).in_(identifiers),
                )
            )
        ).first()
        if existing:
            print(f"An account matching '{display_name}' already exists.", file=sys.stderr)
            return 1
        password_hash = None
        if args.password is not None:
            password_hash = PasswordHasher(settings.PASSWORD_HASH_ITERATIONS).hash(args.password)
        user = User(
            display_name=display_name,
            email=email,
            password_hash=password_hash,
            role=args.role,
        )
        db.add(user)
        db.commit()
        print(f"Created user '{display_name}' (id={user.id}) with role '{args.role}'.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())

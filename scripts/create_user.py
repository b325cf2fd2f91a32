"""
One-time script to create a user, typically the first SELLER account.
Run from the project root:

    python scripts/create_user.py

You will be prompted for name, email, password and role.
"""

import os
import sys

# Make sure the project root is on the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core.exceptions import EmailAlreadyInUseError
from app.database import SessionLocal, init_db
from app.models.users import ROLES, SELLER
from app.services.auth import create_user


def main():
    init_db()

    db = SessionLocal()
    try:
        print("\n── Bookstore · Create User ──\n")

        name = input("Name: ").strip()
        if not name:
            print("Name cannot be empty.")
            return

        email = input("Email: ").strip()
        if not email:
            print("Email cannot be empty.")
            return

        password = input("Password (min 8 chars): ").strip()
        if len(password) < 8:
            print("Password too short.")
            return

        role = input(f"Role [{' / '.join(ROLES)}] (default: {SELLER}): ").strip().upper()
        if role not in ROLES:
            role = SELLER

        try:
            user = create_user(db, name, email, password, role)
        except EmailAlreadyInUseError:
            print(f"User {email} already exists.")
            return
        print(f"\n✓ User created: {user.email} (role: {user.role}, id: {user.id})\n")

    finally:
        db.close()


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Initialize the Bookstore database.
Creates all tables, including the (title, author) uniqueness constraint on books.
"""

import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.database import init_db
from app.config import settings


def main():
    print("Initializing database...")
    print(f"  DATABASE_URL: {settings.DATABASE_URL[:40]}...")
    print(f"  Environment: {settings.ENVIRONMENT}")

    init_db()

    print("Database initialized successfully.")
    print("Tables created: users, books.")


if __name__ == "__main__":
    main()

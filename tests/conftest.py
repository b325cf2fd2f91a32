"""
Bookstore · Shared pytest fixtures.
"""

from __future__ import annotations

import os
import secrets
import tempfile
from decimal import Decimal
from typing import Dict, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# ─── Environment setup (before any app imports) ───────────────────────────────

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", secrets.token_hex(32))
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="bookstore_uploads_"))

# ─── App imports (after env is set) ───────────────────────────────────────────

from app.core.security import create_access_token, hash_password  # noqa: E402
from app.database import Base  # noqa: E402
from app.models.books import Book  # noqa: E402
from app.models.users import BUYER, SELLER, User  # noqa: E402

# ─────────────────────────────────────────────────────────────────────────────
# DATABASE FIXTURES
# ─────────────────────────────────────────────────────────────────────────────


def _make_engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_pragmas(dbapi_conn, _):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """In-memory SQLite session, fresh for every test function."""
    engine = _make_engine()
    TestingSession = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


# ─────────────────────────────────────────────────────────────────────────────
# FASTAPI CLIENT FIXTURE
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient with overridden DB dependency."""
    from app.database import get_db
    from app.main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def upload_dir(tmp_path, monkeypatch):
    """Point uploads at a per-test directory so leftovers can be asserted on."""
    from app.config import settings

    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(target))
    return target


# ─────────────────────────────────────────────────────────────────────────────
# USER FIXTURES
# ─────────────────────────────────────────────────────────────────────────────


def _make_user(db: Session, name: str, email: str, role: str) -> User:
    user = User(
        name=name,
        email=email,
        hashed_password=hash_password("correct-horse-battery"),
        role=role,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def seller(db_session: Session) -> User:
    return _make_user(db_session, "Sally Seller", "sally@example.com", SELLER)


@pytest.fixture(scope="function")
def other_seller(db_session: Session) -> User:
    return _make_user(db_session, "Oscar Other", "oscar@example.com", SELLER)


@pytest.fixture(scope="function")
def buyer(db_session: Session) -> User:
    return _make_user(db_session, "Bob Buyer", "bob@example.com", BUYER)


@pytest.fixture(scope="function")
def seller_book(db_session: Session, seller: User) -> Book:
    book = Book(
        title="Dune",
        author="Frank Herbert",
        price=Decimal("10.50"),
        published_date="1965",
        seller_id=seller.id,
    )
    db_session.add(book)
    db_session.commit()
    return book


# ─────────────────────────────────────────────────────────────────────────────
# AUTH HEADER HELPERS
# ─────────────────────────────────────────────────────────────────────────────


def auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user.id, user.role)
    return {"Authorization": f"Bearer {token}"}

"""
Authentication service: signup and credential checks.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import EmailAlreadyInUseError, InvalidCredentialsError
from app.core.security import hash_password, verify_password
from app.models.users import BUYER, User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.lower().strip()


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def authenticate(db: Session, email: str, password: str) -> User:
    """Return the user for valid credentials, else raise InvalidCredentialsError."""
    user = get_user_by_email(db, email)
    if not user or not verify_password(password, user.hashed_password):
        logger.info("Failed login attempt")
        raise InvalidCredentialsError()
    user.last_login = datetime.now(timezone.utc)
    db.commit()
    logger.info("User %s logged in", user.id)
    return user


def create_user(
    db: Session,
    name: str,
    email: str,
    password: str,
    role: str = BUYER,
) -> User:
    if get_user_by_email(db, email):
        raise EmailAlreadyInUseError(normalize_email(email))

    user = User(
        name=name,
        email=normalize_email(email),
        hashed_password=hash_password(password),
        role=role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same address
        db.rollback()
        raise EmailAlreadyInUseError(normalize_email(email))
    db.refresh(user)
    logger.info("Created user %s with role %s", user.id, user.role)
    return user

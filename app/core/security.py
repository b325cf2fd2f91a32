"""
Bookstore · Security Layer
JWT creation/verification, password hashing, role gate dependencies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import get_settings
from app.core.exceptions import ForbiddenError, InvalidTokenError, MissingTokenError

logger = logging.getLogger(__name__)

settings = get_settings()

# ─── Password hashing ─────────────────────────────────────────────────────────
# pbkdf2_sha256 avoids the bcrypt 72-byte password limit
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# auto_error=False so a missing header maps to MissingTokenError (401)
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Return hash of the given plain-text password."""
    return _pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Return True if the plain password matches the hash."""
    return _pwd_context.verify(plain_password, hashed_password)


# ─── Identity ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IdentityClaim:
    """Who is calling: decoded from a verified token, lives for one request."""

    subject_id: int
    role: str


# ─── JWT ──────────────────────────────────────────────────────────────────────


def create_access_token(
    subject_id: int,
    role: str,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create a signed JWT access token.

    :param subject_id: The user's id; stored as a string ``sub`` claim.
    :param role: Role string, e.g. 'SELLER'.
    :param extra: Additional claims to embed; sub, role, iat and exp are reserved.
    :param expires_minutes: Override default expiry from settings.
    """
    expiry = expires_minutes if expires_minutes is not None else settings.JWT_EXPIRY_MINUTES
    now = datetime.now(tz=timezone.utc)
    expire = now + timedelta(minutes=expiry)

    # extra never overrides sub, role, iat or exp
    payload: Dict[str, Any] = dict(extra or {})
    payload.update(
        {
            "sub": str(subject_id),
            "role": role,
            "iat": now,
            "exp": expire,
        }
    )

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a JWT access token.
    Raises InvalidTokenError on bad signature, expiry or malformed input.
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError as exc:
        raise InvalidTokenError(str(exc)) from exc


def verify_token(token: Optional[str]) -> IdentityClaim:
    """
    Turn a raw bearer token into an IdentityClaim.

    No token -> MissingTokenError. Anything wrong with a present token,
    including a missing or non-integer ``sub`` or a missing ``role``,
    -> InvalidTokenError.
    """
    if not token:
        raise MissingTokenError()

    payload = decode_access_token(token)
    raw_sub = payload.get("sub")
    role = payload.get("role")

    if raw_sub is None or not role or not isinstance(role, str):
        raise InvalidTokenError("Token missing 'sub' or 'role' claim")
    try:
        subject_id = int(raw_sub)
    except (TypeError, ValueError):
        raise InvalidTokenError("Token 'sub' claim is not a user id")

    return IdentityClaim(subject_id=subject_id, role=role)


# ─── Role gate ────────────────────────────────────────────────────────────────


def authorize(claim: IdentityClaim, allowed_roles: Iterable[str]) -> None:
    """Raise ForbiddenError unless claim.role is one of allowed_roles."""
    allowed = set(allowed_roles)
    if claim.role not in allowed:
        raise ForbiddenError(claim.role, sorted(allowed))


# ─── FastAPI dependencies ─────────────────────────────────────────────────────


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> IdentityClaim:
    """
    FastAPI dependency: extracts and validates the Bearer JWT,
    returning the caller's IdentityClaim.
    """
    token = credentials.credentials if credentials else None
    try:
        return verify_token(token)
    except (MissingTokenError, InvalidTokenError) as exc:
        logger.debug("Rejected request token: %s", exc.error_code)
        raise


def require_roles(*roles: str) -> Callable[..., IdentityClaim]:
    """
    Build a dependency that authenticates the caller and then checks the
    role gate.

    Usage:
        @router.post("/", dependencies=[Depends(require_roles("SELLER"))])
    """
    allowed = frozenset(roles)

    def _dependency(
        current_user: IdentityClaim = Depends(get_current_user),
    ) -> IdentityClaim:
        authorize(current_user, allowed)
        return current_user

    return _dependency

"""
Auth router: signup, login and current-user endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidTokenError
from app.core.security import IdentityClaim, create_access_token, get_current_user
from app.database import get_db
from app.models.users import BUYER, ROLES, User
from app.services.auth import authenticate, create_user

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Request / Response schemas ────────────────────────────────────────────────


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: str = BUYER

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        v = v.upper()
        if v not in ROLES:
            raise ValueError(f"role must be one of {list(ROLES)}")
        return v


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str

    class Config:
        from_attributes = True


class SignupResponse(BaseModel):
    message: str
    user: UserResponse


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    role: str


class MeResponse(UserResponse):
    last_login: Optional[datetime]


# ── Endpoints ─────────────────────────────────────────────────────────────────


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def signup(body: SignupRequest, db: Session = Depends(get_db)):
    user = create_user(db, body.name, body.email, body.password, body.role)
    return SignupResponse(message="User created", user=UserResponse.model_validate(user))


@router.post("/login", response_model=LoginResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate with email + password.
    Returns a JWT access token valid for JWT_EXPIRY_MINUTES.
    """
    user = authenticate(db, body.email, body.password)
    token = create_access_token(user.id, user.role)
    return LoginResponse(access_token=token, user_id=user.id, role=user.role)


@router.get("/me", response_model=MeResponse)
def me(
    db: Session = Depends(get_db),
    current_user: IdentityClaim = Depends(get_current_user),
):
    """Return the currently authenticated user's profile."""
    user = db.get(User, current_user.subject_id)
    if not user:
        raise InvalidTokenError("User no longer exists")
    return MeResponse.model_validate(user)

import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.dependencies import get_current_user
from marketplace.models import Role, User, get_db
from marketplace.services.auth_tokens import (
    ONE_TIME_PURPOSE_EMAIL_VERIFY,
    consume_one_time_token,
    issue_one_time_token,
    utcnow,
)
from marketplace.services.email_service import send_verify_email

router = APIRouter()
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger(__name__)


class RegisterRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    password: str
    role: str
    phone: str | None = Field(default=None, max_length=32)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long")
        return v


class RegisterResponse(BaseModel):
    message: str
    id: int
    email: str
    role: Role
    requires_email_verification: bool = True


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    model_config = {
        "json_schema_extra": {"examples": [{"email": "user@example.com", "password": "securepassword"}]}
    }


class EmailVerifyConfirmRequest(BaseModel):
    token: str


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    phone: str | None = None
    is_active: bool
    created_at: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: MeResponse


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user: User) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    to_encode = {"sub": str(user.id), "role": user.role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _me_response(user: User) -> MeResponse:
    return MeResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=Role(user.role),
        phone=user.phone,
        is_active=user.is_active,
        created_at=user.created_at.isoformat() if user.created_at else "",
    )


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user or creator",
)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Register a user or creator account and send the email verification link."""
    if body.role == Role.ADMIN.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot register as admin")
    if body.role not in {Role.USER.value, Role.CREATOR.value}:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
    if db.query(User).filter(User.email == body.email).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = User(
        name=body.name,
        email=body.email,
        hashed_password=get_password_hash(body.password),
        role=body.role,
        phone=body.phone,
        is_active=False,
    )
    db.add(user)
    db.flush()

    verify_token, _ = issue_one_time_token(
        db=db,
        user_id=user.id,
        purpose=ONE_TIME_PURPOSE_EMAIL_VERIFY,
        expires_in_minutes=settings.EMAIL_VERIFY_TOKEN_EXPIRE_MINUTES,
    )
    db.commit()
    db.refresh(user)

    try:
        send_verify_email(user.email, user.name, verify_token)
    except Exception:
        logger.exception("Failed to send verification email to user id=%s", user.id)

    return RegisterResponse(
        message="User registered. Please verify your email.",
        id=user.id,
        email=user.email,
        role=Role(user.role),
    )


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    summary="Confirm email verification token",
)
def verify_email(
    body: EmailVerifyConfirmRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Activate the account owning the one-time verification token."""
    token = consume_one_time_token(db, body.token, ONE_TIME_PURPOSE_EMAIL_VERIFY)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification token",
        )

    user = db.query(User).filter(User.id == token.user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User not found")

    if not user.is_active:
        user.is_active = True
        user.email_verified_at = utcnow()
    db.commit()
    return MessageResponse(message="Email has been verified")


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get an access token",
)
def login(
    body: LoginRequest,
    db: Annotated[Session, Depends(get_db)],
):
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account not activated. Please verify your email.",
        )

    return TokenResponse(
        access_token=create_access_token(user),
        expires_in=settings.JWT_EXPIRE_MINUTES * 60,
        user=_me_response(user),
    )


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current authenticated user",
)
def me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    return _me_response(current_user)

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator
from sqlalchemy import select

from .. import mailer
from ..config import settings
from ..database import db_session
from ..models import User
from ..rate_limit import rate_limited
from ..schemas import MessageResponse, UserRead
from ..telemetry.logger import log_signin
from . import credentials
from .core import create_access_token, hash_password, hash_token, verify_password
from .dependencies import SESSION_COOKIE, get_current_user

logger = logging.getLogger("exhibit.auth")

router = APIRouter(prefix="/auth", tags=["auth"])

# bcrypt only looks at the first 72 bytes; longer input is refused outright
PASSWORD_MIN = 8
PASSWORD_MAX = 72

_GENERIC_CODE_SENT = "If an account exists for that email, a code has been sent."
_GENERIC_LINK_SENT = "If an account exists for that email, a reset link has been sent."


def _fits_bcrypt(v: str) -> str:
    if len(v.encode()) > PASSWORD_MAX:
        raise ValueError(f"Password must be at most {PASSWORD_MAX} bytes.")
    return v


NewPassword = Annotated[str, Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX), AfterValidator(_fits_bcrypt)]


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class _EmailNormalised(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def _normalise_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class SignupRequest(_EmailNormalised):
    first_name: str = Field(..., min_length=1, max_length=128)
    last_name: str = Field(..., min_length=1, max_length=128)
    password: NewPassword


class SigninRequest(_EmailNormalised):
    password: str = Field(..., min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


class TokenResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserRead


class EmailRequest(_EmailNormalised):
    pass


class VerifyEmailRequest(_EmailNormalised):
    code: str = Field(..., min_length=6, max_length=16)


class ResetPasswordRequest(_EmailNormalised):
    verification_code: str = Field(..., min_length=6, max_length=16)
    new_password: NewPassword


class ResetPasswordTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)
    new_password: NewPassword


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX)
    new_password: NewPassword


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("timing-equaliser-not-a-password")


def _find_by_email(session, email: str, lock: bool = False) -> Optional[User]:
    stmt = select(User).where(User.email == email)
    if lock:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.environment == "production",
        samesite="strict",
        path="/",
    )


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

@router.post(
    "/signup",
    response_model=UserRead,
    status_code=201,
    dependencies=[Depends(rate_limited("signup"))],
)
def signup(body: SignupRequest) -> UserRead:
    if not settings.registration_enabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Public registration is disabled. Contact an administrator.",
        )
    with db_session() as session:
        if _find_by_email(session, body.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists.",
            )
        user = User(
            first_name=body.first_name.strip(),
            last_name=body.last_name.strip(),
            email=body.email,
            role="user",
            is_verified=False,
            is_active=True,
            profile_picture=settings.default_profile_picture,
        )
        user.set_password(body.password)
        code = credentials.issue_verification_code(user)
        session.add(user)
        session.flush()
        session.refresh(user)
        created = UserRead.model_validate(user)

    if not mailer.send_verification_code(created.email, code):
        logger.warning("Verification code for user %s could not be delivered", created.id)
    logger.info("Registered user %s", created.id)
    return created


@router.post(
    "/verify-email",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("verification"))],
)
def verify_email(body: VerifyEmailRequest) -> MessageResponse:
    with db_session() as session:
        user = _find_by_email(session, body.email, lock=True)
        if not user or not credentials.claim_verification_code(session, user, body.code.strip()):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Invalid or expired verification code")
        user.is_verified = True
    return MessageResponse(message="Email verified")


@router.post(
    "/resend-verification",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("verification"))],
)
def resend_verification(body: EmailRequest) -> MessageResponse:
    code = None
    with db_session() as session:
        user = _find_by_email(session, body.email)
        if user and user.is_active and not user.is_verified:
            code = credentials.issue_verification_code(user)
    if code:
        mailer.send_verification_code(body.email, code)
    return MessageResponse(message=_GENERIC_CODE_SENT)


# ---------------------------------------------------------------------------
# Sign in / out
# ---------------------------------------------------------------------------

@router.post(
    "/signin",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limited("signin"))],
)
def signin(request: Request, response: Response, body: SigninRequest) -> TokenResponse:
    with db_session() as session:
        user = _find_by_email(session, body.email)

    # Same answer, and the same bcrypt cost, for unknown email, wrong password
    # and disabled account
    stored = user.password_hash if user else _dummy_hash()
    if not verify_password(body.password, stored) or not user or not user.is_active:
        logger.info("Failed sign-in attempt")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Invalid credentials")

    log_signin(user.id, request)
    token = create_access_token(
        user_id=user.id,
        email=user.email,
        role=user.role,
        first_name=user.first_name,
        last_name=user.last_name,
        password_hash=user.password_hash,
    )
    _set_session_cookie(response, token)
    with db_session() as session:
        fresh = session.get(User, user.id)
        return TokenResponse(token=token, user=UserRead.model_validate(fresh))


@router.post("/logout", response_model=MessageResponse)
def logout(response: Response) -> MessageResponse:
    response.delete_cookie(SESSION_COOKIE, path="/")
    return MessageResponse(message="Signed out")


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)) -> UserRead:
    return UserRead.model_validate(current_user)


# ---------------------------------------------------------------------------
# Password reset by emailed code
# ---------------------------------------------------------------------------

@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("password_reset"))],
)
def forgot_password(body: EmailRequest) -> MessageResponse:
    code = None
    with db_session() as session:
        user = _find_by_email(session, body.email)
        if user and user.is_active:
            code = credentials.issue_verification_code(user)
    if code:
        mailer.send_verification_code(body.email, code, purpose="reset")
    else:
        logger.info("Password reset requested for unknown or inactive account")
    return MessageResponse(message=_GENERIC_CODE_SENT)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("password_reset"))],
)
def reset_password(body: ResetPasswordRequest) -> MessageResponse:
    with db_session() as session:
        user = _find_by_email(session, body.email, lock=True)
        if not user or not credentials.claim_verification_code(session, user, body.verification_code.strip()):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Invalid or expired verification code")
        credentials.reset_password(user, body.new_password)
        user_id = user.id
    logger.info("Password reset for user %s", user_id)
    return MessageResponse(message="Password reset successfully")


# ---------------------------------------------------------------------------
# Password reset by emailed link
# ---------------------------------------------------------------------------

@router.post(
    "/forgot-password/token",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("password_reset"))],
)
def forgot_password_token(body: EmailRequest) -> MessageResponse:
    raw = None
    with db_session() as session:
        user = _find_by_email(session, body.email)
        if user and user.is_active:
            raw = credentials.issue_reset_token(user)
    if raw:
        mailer.send_password_reset_link(body.email, raw)
    return MessageResponse(message=_GENERIC_LINK_SENT)


@router.post(
    "/reset-password/token",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limited("password_reset"))],
)
def reset_password_token(body: ResetPasswordTokenRequest) -> MessageResponse:
    with db_session() as session:
        user = session.execute(
            select(User)
            .where(User.reset_password_token == hash_token(body.token.strip()))
            .with_for_update()
        ).scalar_one_or_none()
        if not user or not credentials.claim_reset_token(session, user, body.token.strip()):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Invalid or expired reset token")
        credentials.reset_password(user, body.new_password)
        user_id = user.id
    logger.info("Password reset via link for user %s", user_id)
    return MessageResponse(message="Password reset successfully")


# ---------------------------------------------------------------------------
# Authenticated password change
# ---------------------------------------------------------------------------

@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    with db_session() as session:
        user = session.get(User, current_user.id)
        if not user or not user.check_password(body.current_password):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail="Invalid credentials")
        credentials.reset_password(user, body.new_password)
    return MessageResponse(message="Password changed")

import asyncio
import logging
import math
import random
import re
import uuid
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, EmailStr, Field, field_validator, ValidationInfo
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from bank_admin.api.forms import FormValidationError, parse_form
from bank_admin.core.config import settings
from bank_admin.core.cookies import SESSION_COOKIE_NAME, clear_session_cookie, set_session_cookie
from bank_admin.core.database import get_db
from bank_admin.core.logging_config import RequestLogger, mask_email
from bank_admin.core.security import is_strong_password, verify_password
from bank_admin.services.audit_service import log_auth_event
from bank_admin.services.email_service import email_service
from bank_admin.services.login_throttle import login_throttle
from bank_admin.services.session_service import session_service
from bank_admin.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

DEFAULT_RETURN_URL = "/dashboard"
GENERIC_LOGIN_ERROR = "Invalid email or password"
INACTIVE_ACCOUNT_ERROR = "Your account is inactive. Please contact support."
FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, we've sent a password reset link."
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")


def normalize_email(value):
    if isinstance(value, str):
        value = value.strip().lower()
        if not value:
            raise ValueError("Email is required")
    return value


def check_strong_password(value: str) -> str:
    if len(value) > 100:
        raise ValueError("Password cannot exceed 100 characters")
    valid, message = is_strong_password(value)
    if not valid:
        raise ValueError(message)
    return value


def check_username(value: str) -> str:
    value = value.strip()
    if len(value) < 3:
        raise ValueError("Username must be at least 3 characters")
    if len(value) > 20:
        raise ValueError("Username cannot exceed 20 characters")
    if not USERNAME_PATTERN.match(value):
        raise ValueError("Username can only contain letters, numbers, and underscores")
    return value


def check_optional_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if len(value) < 2:
        raise ValueError("Name must be at least 2 characters")
    if len(value) > 50:
        raise ValueError("Name cannot exceed 50 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name can only contain letters, spaces, hyphens, and apostrophes")
    return value


def passwords_match(value: str, info: ValidationInfo, field: str = "password") -> str:
    if field in info.data and value != info.data[field]:
        raise ValueError("Passwords don't match")
    return value


def safe_return_url(url: Optional[str]) -> str:
    """Only same-site paths may be used as post-login destinations"""
    if url and url.startswith("/") and not url.startswith("//") and "\\" not in url:
        return url
    return DEFAULT_RETURN_URL


class LoginForm(BaseModel):
    email: EmailStr
    password: str
    fingerprint: Optional[str] = None
    return_url: Optional[str] = Field(default=None, alias="returnUrl")

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, value):
        return normalize_email(value)

    @field_validator("password")
    @classmethod
    def password_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Password is required")
        return value

    @field_validator("fingerprint", "return_url", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return value or None


class RegisterForm(BaseModel):
    username: str
    email: EmailStr
    password: str
    confirm_password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    terms: bool = Field(default=False, validate_default=True)

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, value):
        return normalize_email(value)

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: str) -> str:
        return check_username(value)

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_strong_password(value)

    @field_validator("confirm_password")
    @classmethod
    def validate_confirm_password(cls, value: str, info: ValidationInfo) -> str:
        return passwords_match(value, info)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, value: Optional[str]) -> Optional[str]:
        return check_optional_name(value)

    @field_validator("terms", mode="before")
    @classmethod
    def unchecked_box(cls, value):
        return value or False

    @field_validator("terms")
    @classmethod
    def terms_accepted(cls, value: bool) -> bool:
        if not value:
            raise ValueError("You must accept the terms and conditions")
        return value


class ForgotPasswordForm(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, value):
        return normalize_email(value)


class ResetPasswordForm(BaseModel):
    token: str
    password: str
    confirm_password: str

    @field_validator("token")
    @classmethod
    def token_required(cls, value: str) -> str:
        if not value:
            raise ValueError("Reset token is required")
        return value

    @field_validator("password")
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_strong_password(value)

    @field_validator("confirm_password")
    @classmethod
    def validate_confirm_password(cls, value: str, info: ValidationInfo) -> str:
        return passwords_match(value, info)


@router.get("/login")
async def login_page(request: Request, return_url: Optional[str] = Query(None, alias="returnUrl")):
    """Login page data; visitors that already hold a session are sent on"""
    target = safe_return_url(return_url)
    if request.state.user is not None:
        return RedirectResponse(target, status_code=status.HTTP_302_FOUND)
    return {"returnUrl": target}


@router.post("/login")
async def login(request: Request, db: Session = Depends(get_db)):
    """
    Authenticate with email and password and issue a session cookie.

    Unknown email and wrong password share one message, and the unknown-email
    path sleeps a random interval first. An inactive account gets its own
    message and no session.
    """
    client_ip = request.client.host if request.client else "unknown"
    log = RequestLogger(logger, {"request_id": str(uuid.uuid4()), "ip": client_ip})
    log.info("Processing login request")

    try:
        if request.state.user is not None:
            log.info(f"User {request.state.user.id} already logged in, redirecting")
            return RedirectResponse(
                safe_return_url(request.query_params.get("returnUrl")),
                status_code=status.HTTP_303_SEE_OTHER,
            )

        form = await parse_form(request, LoginForm)
        email_for_log = mask_email(form.email)
        return_url = safe_return_url(form.return_url)
        log.info(f"Login attempt for {email_for_log}")

        # Throttle before touching the user table
        decision = login_throttle.check_attempts(form.email)
        if not decision.allowed:
            minutes = math.ceil((decision.remaining_seconds or 0) / 60)
            log.warning(f"Login locked for {email_for_log} ({decision.remaining_seconds}s remaining)")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Too many failed attempts. Please try again in {minutes} minutes.",
            )

        user = user_service.get_by_email(db, form.email)
        if user is None:
            log.warning(f"Login failed: user not found ({email_for_log})")
            login_throttle.record_attempt(form.email, False)
            await asyncio.sleep(random.uniform(
                settings.LOGIN_FAILURE_DELAY_MIN, settings.LOGIN_FAILURE_DELAY_MAX))
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=GENERIC_LOGIN_ERROR)

        if not verify_password(form.password, user.hashed_password):
            log.warning(f"Login failed: invalid password for user {user.id}")
            login_throttle.record_attempt(form.email, False)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=GENERIC_LOGIN_ERROR)

        if not user.is_active:
            log.warning(f"Login failed: account inactive for user {user.id}")
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=INACTIVE_ACCOUNT_ERROR)

        login_throttle.record_attempt(form.email, True)

        token = session_service.create_session(db, user.id, form.fingerprint)
        if not token:
            log.error(f"Failed to create session for user {user.id}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication service error",
            )

        response = RedirectResponse(return_url, status_code=status.HTTP_303_SEE_OTHER)
        set_session_cookie(response, token)

        log_auth_event(db, user.id, "login", {
            "ip": client_ip,
            "user_agent": request.headers.get("user-agent", "Unknown"),
        })
        log.info(f"Login successful for user {user.id} (role {user.role.value})")
        return response
    except (HTTPException, FormValidationError):
        raise
    except Exception:
        # Store outages and anything unexpected: no internal detail to the client
        db.rollback()
        log.exception("Login error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during login. Please try again later.",
        )


@router.post("/register")
async def register(request: Request, db: Session = Depends(get_db)):
    """Create an account, send the verification link and sign the user in"""
    form = await parse_form(request, RegisterForm)

    try:
        conflict = user_service.find_conflict(db, form.email, form.username)
        if conflict:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=conflict)

        user = user_service.create_user(
            db,
            username=form.username,
            email=form.email,
            password=form.password,
            first_name=form.first_name,
            last_name=form.last_name,
        )
        verification_token = user_service.generate_email_verification_token(db, user.id)
    except IntegrityError:
        # Two registrations for the same email/username raced past the check above
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An account with this email or username already exists",
        )
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Registration failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during registration",
        )

    email_service.send_verification_email(user.email, verification_token)
    log_auth_event(db, user.id, "register", {"username": user.username})

    token = session_service.create_session(db, user.id)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Authentication service error",
        )

    response = RedirectResponse(DEFAULT_RETURN_URL, status_code=status.HTTP_303_SEE_OTHER)
    set_session_cookie(response, token)
    return response


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(request: Request, db: Session = Depends(get_db)):
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if token:
        if session_service.delete_session(db, token):
            logger.info("Session deleted successfully")
        if request.state.user is not None:
            log_auth_event(db, request.state.user.id, "logout")

    response = RedirectResponse(
        "/auth/login?message=You+have+been+successfully+logged+out&type=success",
        status_code=status.HTTP_303_SEE_OTHER,
    )
    clear_session_cookie(response)
    return response


@router.post("/forgot-password")
async def forgot_password(request: Request, db: Session = Depends(get_db)):
    """Issue a reset link; the response is identical whether or not the email exists"""
    form = await parse_form(request, ForgotPasswordForm)

    try:
        user = user_service.get_by_email(db, form.email)
        if user is not None:
            reset_token = user_service.start_password_reset(db, user)
            email_service.send_password_reset_email(user.email, reset_token)
            log_auth_event(db, user.id, "forgot_password", {"email": mask_email(user.email)})
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Forgot password error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while processing your request",
        )

    return {"message": FORGOT_PASSWORD_MESSAGE}


@router.get("/reset-password")
async def reset_password_page(token: Optional[str] = None, db: Session = Depends(get_db)):
    if not token:
        return RedirectResponse("/auth/login", status_code=status.HTTP_302_FOUND)
    if user_service.get_by_reset_token(db, token) is None:
        return RedirectResponse(
            "/auth/login?error=Invalid+or+expired+token", status_code=status.HTTP_302_FOUND)
    return {"token": token}


@router.post("/reset-password")
async def reset_password(request: Request, db: Session = Depends(get_db)):
    """Set a new password from a reset token; every existing session is revoked"""
    form = await parse_form(request, ResetPasswordForm)

    try:
        user = user_service.complete_password_reset(db, form.token, form.password)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Password reset error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while resetting your password",
        )

    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired token")

    log_auth_event(db, user.id, "password_reset")
    return {"message": "Password reset successful. You can now log in with your new password."}


@router.get("/verify-email")
async def verify_email(token: str, db: Session = Depends(get_db)):
    user = user_service.verify_email_token(db, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired verification link",
        )
    log_auth_event(db, user.id, "email_verified")
    return {"message": "Email verified"}

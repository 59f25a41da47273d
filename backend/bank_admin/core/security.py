import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from bank_admin.core.config import settings

logger = logging.getLogger(__name__)

# CryptContext handles password hashing using bcrypt
# bcrypt is slow by design to prevent brute-force attacks
pwd_context = CryptContext(
    schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)

MIN_PASSWORD_LENGTH = 6
STRONG_PASSWORD_MIN_LENGTH = 8
SPECIAL_CHARACTERS = r'[!@#$%^&*(),.?":{}|<>]'
COMMON_PASSWORDS = {"password123", "Password123", "admin123", "12345678"}


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    if not plain_password or not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # Malformed or unknown hash format stored for the user
        logger.error("Error verifying password: unrecognized hash")
        return False


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    # bcrypt automatically generates a salt and includes it in the hash
    return pwd_context.hash(password)


def is_strong_password(password: str) -> tuple[bool, Optional[str]]:
    """Check password complexity, returning (valid, message_if_not)"""
    if not password or len(password) < STRONG_PASSWORD_MIN_LENGTH:
        return False, "Password must be at least 8 characters long"

    has_upper = re.search(r"[A-Z]", password) is not None
    has_lower = re.search(r"[a-z]", password) is not None
    has_digit = re.search(r"\d", password) is not None
    has_special = re.search(SPECIAL_CHARACTERS, password) is not None
    if not (has_upper and has_lower and has_digit and has_special):
        return False, "Password must contain uppercase, lowercase, numbers, and special characters"

    if password in COMMON_PASSWORDS:
        return False, "This password is too common and easily guessed"

    return True, None


def create_session_token(
    user_id: int,
    email: str,
    role: str,
    fingerprint: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a session token carrying identity claims"""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(days=settings.SESSION_EXPIRE_DAYS))

    to_encode = {
        "userId": user_id,
        "email": email,
        "role": role,
        # jti makes every token unique, even two issued in the same second
        "jti": str(uuid.uuid4()),
        "iat": now,
        "exp": expire,
    }
    if fingerprint:
        to_encode["fingerprint"] = fingerprint

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> Optional[dict]:
    """Decode and verify a session token"""
    if not token:
        return None
    try:
        # Verify signature and expiration automatically
        return jwt.decode(token, settings.SECRET_KEY,
                          algorithms=[settings.ALGORITHM])
    except JWTError as e:
        # Token is invalid - could be expired, tampered, or wrong secret key
        logger.info(f"Token verification failed: {e}")
        return None


def generate_secure_token() -> str:
    """Random hex token for password resets and email verification"""
    return secrets.token_hex(32)

"""
Session lifecycle: issue, validate, extend and revoke persisted sessions.

Every store interaction is wrapped so that a database failure degrades to
None/False plus a logged error; callers only ever see "unauthenticated" or
"operation failed". check_session() exposes the internal cause as a
SessionCheck for callers (and tests) that need to tell them apart.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from bank_admin.core.config import settings
from bank_admin.core.security import create_session_token, decode_session_token
from bank_admin.models.session import UserSession
from bank_admin.models.user import User

logger = logging.getLogger(__name__)


class SessionStatus(str, enum.Enum):
    VALID = "valid"
    INVALID_TOKEN = "invalid_token"
    FINGERPRINT_MISMATCH = "fingerprint_mismatch"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    USER_INACTIVE = "user_inactive"
    STORE_ERROR = "store_error"


@dataclass
class SessionCheck:
    status: SessionStatus
    user: Optional[User] = None

    @property
    def is_valid(self) -> bool:
        return self.status == SessionStatus.VALID


def as_utc(value: datetime) -> datetime:
    """Some backends (SQLite) hand timestamps back without tzinfo; they are stored as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def session_lifetime() -> timedelta:
    return timedelta(days=settings.SESSION_EXPIRE_DAYS)


class SessionService:
    """Service for issuing and validating login sessions"""

    @staticmethod
    def create_session(db: Session, user_id: int, fingerprint: Optional[str] = None) -> Optional[str]:
        """
        Issue a signed token for an active user and persist its session row.

        Returns None if the user is missing or inactive, or if the store fails.
        A user may hold any number of concurrent sessions.
        """
        try:
            user = db.query(User).filter(User.id == user_id).first()
            if user is None:
                logger.warning(f"Cannot create session: user {user_id} not found")
                return None
            if not user.is_active:
                logger.warning(f"Cannot create session: user {user_id} is inactive")
                return None

            lifetime = session_lifetime()
            token = create_session_token(
                user_id=user.id,
                email=user.email,
                role=user.role.value,
                fingerprint=fingerprint,
                expires_delta=lifetime,
            )
            db.add(UserSession(
                user_id=user.id,
                token=token,
                expires_at=datetime.now(timezone.utc) + lifetime,
            ))
            db.commit()
            return token
        except (SQLAlchemyError, JWTError) as e:
            db.rollback()
            logger.error(f"Error creating session for user {user_id}: {str(e)}")
            return None

    @staticmethod
    def check_session(db: Session, token: Optional[str], fingerprint: Optional[str] = None) -> SessionCheck:
        """
        Validate a session token and report why it failed, if it did.

        The signature and token expiry are checked first, without touching the
        store. Expiry is enforced both by the token and by the persisted row;
        the stricter of the two wins. Any failure after the token check
        removes the session row.
        """
        payload = decode_session_token(token) if token else None
        if payload is None:
            return SessionCheck(SessionStatus.INVALID_TOKEN)

        issued_fingerprint = payload.get("fingerprint")
        if fingerprint and issued_fingerprint and fingerprint != issued_fingerprint:
            logger.warning(
                f"Session fingerprint mismatch for user {payload.get('userId')}, possible session hijacking attempt")
            SessionService.delete_session(db, token)
            return SessionCheck(SessionStatus.FINGERPRINT_MISMATCH)

        try:
            session = db.query(UserSession).filter(UserSession.token == token).first()
            if session is None:
                return SessionCheck(SessionStatus.NOT_FOUND)

            if as_utc(session.expires_at) < datetime.now(timezone.utc):
                db.delete(session)
                db.commit()
                return SessionCheck(SessionStatus.EXPIRED)

            user = db.query(User).filter(User.id == session.user_id).first()
            if user is None or not user.is_active:
                db.delete(session)
                db.commit()
                return SessionCheck(SessionStatus.USER_INACTIVE)

            return SessionCheck(SessionStatus.VALID, user)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error validating session: {str(e)}")
            return SessionCheck(SessionStatus.STORE_ERROR)

    @staticmethod
    def validate_session(db: Session, token: Optional[str], fingerprint: Optional[str] = None) -> Optional[User]:
        """Return the session's user, or None for any kind of failure"""
        return SessionService.check_session(db, token, fingerprint).user

    @staticmethod
    def extend_session(db: Session, token: str) -> bool:
        """Slide the row expiry to a fresh window (browsing sessions only)"""
        try:
            db.query(UserSession).filter(UserSession.token == token).update(
                {UserSession.expires_at: datetime.now(timezone.utc) + session_lifetime()},
                synchronize_session=False,
            )
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error extending session: {str(e)}")
            return False

    @staticmethod
    def delete_session(db: Session, token: str) -> bool:
        """
        Delete every row carrying this token.

        The result reports whether the delete itself succeeded, not whether a
        row existed.
        """
        try:
            db.query(UserSession).filter(UserSession.token == token).delete(
                synchronize_session=False)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error deleting session: {str(e)}")
            return False

    @staticmethod
    def delete_all_user_sessions(db: Session, user_id: int) -> bool:
        """Revoke every session for a user (password reset, deactivation)"""
        try:
            db.query(UserSession).filter(UserSession.user_id == user_id).delete(
                synchronize_session=False)
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error deleting sessions for user {user_id}: {str(e)}")
            return False

    @staticmethod
    def delete_expired_sessions(db: Session) -> int:
        """Remove rows past their expiry; returns how many were deleted"""
        try:
            deleted = db.query(UserSession).filter(
                UserSession.expires_at < datetime.now(timezone.utc)
            ).delete(synchronize_session=False)
            db.commit()
            return deleted
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error deleting expired sessions: {str(e)}")
            return 0


session_service = SessionService()

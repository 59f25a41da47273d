import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import or_
from sqlalchemy.orm import Session
from bank_admin.core.security import generate_secure_token, get_password_hash
from bank_admin.models.audit import EmailVerification
from bank_admin.models.user import User, UserRole
from bank_admin.services.session_service import as_utc, session_service

logger = logging.getLogger(__name__)

RESET_TOKEN_LIFETIME = timedelta(hours=1)
EMAIL_VERIFICATION_LIFETIME = timedelta(hours=24)


class UserService:
    """Account lifecycle: registration, password reset, verification, activation"""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def find_conflict(db: Session, email: str, username: str) -> Optional[str]:
        """Return an error message if email or username is already taken"""
        existing = db.query(User).filter(
            or_(User.email == email, User.username == username)
        ).first()
        if existing is None:
            return None
        if existing.email == email:
            return "An account with this email already exists"
        return "This username is already taken"

    @staticmethod
    def create_user(
        db: Session,
        username: str,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        user = User(
            username=username,
            email=email.strip().lower(),
            hashed_password=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def start_password_reset(db: Session, user: User) -> str:
        """Store a fresh one-hour reset token on the user and return it"""
        token = generate_secure_token()
        user.reset_token = token
        user.reset_token_expiry = datetime.now(timezone.utc) + RESET_TOKEN_LIFETIME
        db.commit()
        return token

    @staticmethod
    def get_by_reset_token(db: Session, token: str) -> Optional[User]:
        if not token:
            return None
        user = db.query(User).filter(User.reset_token == token).first()
        if user is None or user.reset_token_expiry is None:
            return None
        if as_utc(user.reset_token_expiry) <= datetime.now(timezone.utc):
            return None
        return user

    @staticmethod
    def complete_password_reset(db: Session, token: str, new_password: str) -> Optional[User]:
        """Set the new password, clear the token and revoke every session"""
        user = UserService.get_by_reset_token(db, token)
        if user is None:
            return None
        user.hashed_password = get_password_hash(new_password)
        user.reset_token = None
        user.reset_token_expiry = None
        db.commit()
        session_service.delete_all_user_sessions(db, user.id)
        return user

    @staticmethod
    def change_password(db: Session, user: User, new_password: str) -> None:
        user.hashed_password = get_password_hash(new_password)
        db.commit()
        session_service.delete_all_user_sessions(db, user.id)

    @staticmethod
    def generate_email_verification_token(db: Session, user_id: int) -> str:
        """Create or replace the user's pending verification token (24h)"""
        token = generate_secure_token()
        expires_at = datetime.now(timezone.utc) + EMAIL_VERIFICATION_LIFETIME
        record = db.query(EmailVerification).filter(
            EmailVerification.user_id == user_id).first()
        if record is None:
            db.add(EmailVerification(user_id=user_id, token=token, expires_at=expires_at))
        else:
            record.token = token
            record.expires_at = expires_at
        db.commit()
        return token

    @staticmethod
    def verify_email_token(db: Session, token: str) -> Optional[User]:
        record = db.query(EmailVerification).filter(
            EmailVerification.token == token).first()
        if record is None:
            return None
        if as_utc(record.expires_at) < datetime.now(timezone.utc):
            return None

        user = db.query(User).filter(User.id == record.user_id).first()
        if user is None:
            return None
        user.is_email_verified = True
        db.delete(record)
        db.commit()
        return user

    @staticmethod
    def set_active(db: Session, user: User, active: bool) -> User:
        user.is_active = active
        db.commit()
        if not active:
            session_service.delete_all_user_sessions(db, user.id)
        db.refresh(user)
        logger.info(f"User {user.id} {'activated' if active else 'deactivated'}")
        return user


user_service = UserService()

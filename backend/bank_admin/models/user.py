import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum
from sqlalchemy.sql import func
from bank_admin.core.database import Base


class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class User(Base):
    """
    User model representing administrators of the bank catalog.

    Stores authentication credentials and profile information.
    Users are never hard-deleted: is_active=False is the soft state.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    # Email is unique, stored lowercase, and indexed for fast lookups during login
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String, unique=True, index=True, nullable=False)
    # Password is hashed using bcrypt - never store plaintext passwords
    hashed_password = Column(String, nullable=False)
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    # Password reset token issued by forgot-password, valid until reset_token_expiry
    reset_token = Column(String, nullable=True, index=True)
    reset_token_expiry = Column(DateTime(timezone=True), nullable=True)
    is_email_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

import enum
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Boolean, Float, JSON, Enum,
)
from sqlalchemy.orm import relationship
from bank_admin.core.database import Base


def _utcnow() -> datetime:
    # Python-side default keeps microseconds, so history ordering is stable
    return datetime.now(timezone.utc)


class ChangeType(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"


class BankEligibility(Base):
    """
    A bank and the loan products it is eligible for.

    eligibility_data holds the Yes/No product flags and ROI-by-CIBIL values,
    keyed by their sheet column names. Rows are soft-deleted via is_deleted.
    """
    __tablename__ = "bank_eligibility"

    id = Column(Integer, primary_key=True, index=True)
    bank_name = Column(String, nullable=False, index=True)
    classification = Column(String, nullable=False)
    logo_url = Column(String, nullable=True)
    eligibility_data = Column(JSON, nullable=False)
    maximum_pl_amount = Column(Float, nullable=True)
    maximum_bl_amount = Column(Float, nullable=True)
    processing_fees = Column(JSON, nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    updated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    history = relationship(
        "BankEligibilityHistory",
        back_populates="bank",
        cascade="all, delete-orphan",
    )


class BankEligibilityHistory(Base):
    """Snapshot of a bank written on every create, update, delete and restore"""
    __tablename__ = "bank_eligibility_history"

    id = Column(Integer, primary_key=True, index=True)
    bank_eligibility_id = Column(
        Integer, ForeignKey("bank_eligibility.id"), nullable=False, index=True)
    bank_name = Column(String, nullable=False)
    eligibility_data = Column(JSON, nullable=False)
    maximum_pl_amount = Column(Float, nullable=True)
    maximum_bl_amount = Column(Float, nullable=True)
    processing_fees = Column(JSON, nullable=True)
    change_type = Column(Enum(ChangeType, name="change_type"), nullable=False)
    # Field names that changed; ["ALL"] for CREATE
    changed_fields = Column(JSON, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    bank = relationship("BankEligibility", back_populates="history")

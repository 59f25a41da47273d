import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from bank_admin.models.bank import BankEligibility, BankEligibilityHistory, ChangeType
from bank_admin.services.eligibility_fields import with_defaults

logger = logging.getLogger(__name__)

# Fields a client may set; history snapshots copy the subset that describes the offer
EDITABLE_FIELDS = (
    "bank_name",
    "classification",
    "logo_url",
    "eligibility_data",
    "maximum_pl_amount",
    "maximum_bl_amount",
    "processing_fees",
)
RECENT_HISTORY_LIMIT = 5


def _canonical(value: Any) -> str:
    """Stable JSON form, so dict key order never counts as a change"""
    return json.dumps(value, sort_keys=True, default=str)


def _snapshot(bank: BankEligibility, change_type: ChangeType, changed_fields: List[str],
              user_id: Optional[int]) -> BankEligibilityHistory:
    return BankEligibilityHistory(
        bank_eligibility_id=bank.id,
        bank_name=bank.bank_name,
        eligibility_data=bank.eligibility_data,
        maximum_pl_amount=bank.maximum_pl_amount,
        maximum_bl_amount=bank.maximum_bl_amount,
        processing_fees=bank.processing_fees,
        change_type=change_type,
        changed_fields=changed_fields,
        created_by=user_id,
    )


class BankService:
    """CRUD over the bank catalog; every mutation appends a history row"""

    @staticmethod
    def get_all_banks(db: Session, include_deleted: bool = False) -> List[BankEligibility]:
        query = db.query(BankEligibility)
        if not include_deleted:
            query = query.filter(BankEligibility.is_deleted.is_(False))
        return query.order_by(BankEligibility.bank_name.asc()).all()

    @staticmethod
    def get_bank_by_id(db: Session, bank_id: int) -> Optional[BankEligibility]:
        return db.query(BankEligibility).filter(BankEligibility.id == bank_id).first()

    @staticmethod
    def create_bank(db: Session, data: Dict[str, Any], user_id: Optional[int] = None,
                    commit: bool = True) -> BankEligibility:
        """
        Create a bank and its CREATE history row in one commit.

        With commit=False both rows are only flushed and the caller owns the
        transaction.
        """
        bank = BankEligibility(
            bank_name=data["bank_name"],
            classification=data.get("classification") or "UNKNOWN",
            logo_url=data.get("logo_url"),
            eligibility_data=with_defaults(data.get("eligibility_data")),
            maximum_pl_amount=data.get("maximum_pl_amount"),
            maximum_bl_amount=data.get("maximum_bl_amount"),
            processing_fees=data.get("processing_fees"),
            created_by=user_id,
        )
        db.add(bank)
        # Flush to get the bank id for the history row
        db.flush()
        db.add(_snapshot(bank, ChangeType.CREATE, ["ALL"], user_id))
        if not commit:
            db.flush()
            return bank
        db.commit()
        db.refresh(bank)
        logger.info(f"Bank created with ID: {bank.id} ({bank.bank_name})")
        return bank

    @staticmethod
    def update_bank(db: Session, bank_id: int, data: Dict[str, Any],
                    user_id: Optional[int] = None) -> Optional[BankEligibility]:
        """
        Apply a partial update.

        Only submitted fields whose canonical JSON differs from the stored
        value count as changed. With no changes the bank is returned as-is and
        no history is written.
        """
        bank = BankService.get_bank_by_id(db, bank_id)
        if bank is None:
            return None

        changed_fields = [
            field for field, value in data.items()
            if field in EDITABLE_FIELDS and _canonical(value) != _canonical(getattr(bank, field))
        ]
        if not changed_fields:
            return bank

        for field in changed_fields:
            setattr(bank, field, data[field])
        bank.updated_by = user_id
        bank.updated_at = datetime.now(timezone.utc)
        db.add(_snapshot(bank, ChangeType.UPDATE, changed_fields, user_id))
        db.commit()
        db.refresh(bank)
        logger.info(f"Bank {bank.id} updated: {', '.join(changed_fields)}")
        return bank

    @staticmethod
    def soft_delete_bank(db: Session, bank_id: int, user_id: Optional[int] = None) -> Optional[BankEligibility]:
        """Mark a bank deleted; None if it does not exist or is already deleted"""
        bank = BankService.get_bank_by_id(db, bank_id)
        if bank is None or bank.is_deleted:
            return None

        bank.is_deleted = True
        bank.deleted_at = datetime.now(timezone.utc)
        bank.deleted_by = user_id
        db.add(_snapshot(bank, ChangeType.DELETE, ["is_deleted"], user_id))
        db.commit()
        db.refresh(bank)
        logger.info(f"Bank {bank.id} soft-deleted")
        return bank

    @staticmethod
    def restore_bank(db: Session, bank_id: int, user_id: Optional[int] = None) -> Optional[BankEligibility]:
        bank = BankService.get_bank_by_id(db, bank_id)
        if bank is None:
            return None
        if not bank.is_deleted:
            # Already active
            return bank

        bank.is_deleted = False
        bank.deleted_at = None
        bank.deleted_by = None
        db.add(_snapshot(bank, ChangeType.RESTORE, ["is_deleted"], user_id))
        db.commit()
        db.refresh(bank)
        logger.info(f"Bank {bank.id} restored")
        return bank

    @staticmethod
    def get_bank_history(db: Session, bank_id: int, limit: Optional[int] = None) -> List[BankEligibilityHistory]:
        """History for a bank, newest first"""
        query = db.query(BankEligibilityHistory).filter(
            BankEligibilityHistory.bank_eligibility_id == bank_id
        ).order_by(
            BankEligibilityHistory.created_at.desc(),
            BankEligibilityHistory.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()


bank_service = BankService()

import logging
from typing import Any, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from bank_admin.models.audit import AuthAuditLog

logger = logging.getLogger(__name__)


def log_auth_event(
    db: Session,
    user_id: Optional[int],
    event: str,
    data: Optional[Dict[str, Any]] = None,
) -> bool:
    """Append an auth event; a store failure is logged, never raised"""
    try:
        db.add(AuthAuditLog(user_id=user_id, event=event, data=data or {}))
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error writing audit event {event} for user {user_id}: {str(e)}")
        return False

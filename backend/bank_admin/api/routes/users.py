from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, field_serializer
from datetime import datetime
from bank_admin.api.dependencies import require_admin
from bank_admin.core.database import get_db
from bank_admin.core.middleware import AuthenticatedUser
from bank_admin.models.user import User, UserRole
from bank_admin.services.audit_service import log_auth_event
from bank_admin.services.user_service import user_service

router = APIRouter(prefix="/users", tags=["users"])

USER_NOT_FOUND_MESSAGE = "User not found"


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    role: UserRole
    is_active: bool
    is_email_verified: bool
    first_name: Optional[str]
    last_name: Optional[str]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at")
    def serialize_created_at(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail=USER_NOT_FOUND_MESSAGE)
    return user


@router.get("/", response_model=List[UserResponse])
async def list_users(
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    return db.query(User).order_by(User.id).all()


@router.post("/{user_id}/deactivate", response_model=UserResponse)
async def deactivate_user(
    user_id: int,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Deactivate an account and sign it out everywhere"""
    if user_id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user = user_service.set_active(db, _get_user_or_404(db, user_id), False)
    log_auth_event(db, user.id, "deactivated", {"by": current_user.id})
    return user


@router.post("/{user_id}/activate", response_model=UserResponse)
async def activate_user(
    user_id: int,
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = user_service.set_active(db, _get_user_or_404(db, user_id), True)
    log_auth_event(db, user.id, "activated", {"by": current_user.id})
    return user

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, field_serializer
from datetime import datetime
from bank_admin.api.dependencies import get_current_user
from bank_admin.api.routes.banks import BANK_NOT_FOUND_MESSAGE, BankHistoryResponse, BankResponse
from bank_admin.core.database import get_db
from bank_admin.core.middleware import AuthenticatedUser
from bank_admin.services.bank_service import RECENT_HISTORY_LIMIT, bank_service

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class CurrentUserResponse(BaseModel):
    id: int
    email: str
    username: str
    role: str
    first_name: Optional[str]
    last_name: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class BankSummary(BaseModel):
    id: int
    bank_name: str
    classification: str
    logo_url: Optional[str]
    maximum_pl_amount: Optional[float]
    maximum_bl_amount: Optional[float]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("updated_at")
    def serialize_updated_at(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class BankDetail(BaseModel):
    bank: BankResponse
    history: List[BankHistoryResponse]


@router.get("", response_model=CurrentUserResponse)
async def dashboard(current_user: AuthenticatedUser = Depends(get_current_user)):
    """Landing page data: who is signed in"""
    return current_user


@router.get("/banks", response_model=List[BankSummary])
async def list_banks(
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return bank_service.get_all_banks(db)


@router.get("/banks/{bank_id}", response_model=BankDetail)
async def bank_detail(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """A bank with its most recent changes"""
    bank = bank_service.get_bank_by_id(db, bank_id)
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    history = bank_service.get_bank_history(db, bank_id, limit=RECENT_HISTORY_LIMIT)
    return {"bank": bank, "history": history}


@router.get("/banks/{bank_id}/history", response_model=BankDetail)
async def bank_history(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    bank = bank_service.get_bank_by_id(db, bank_id)
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return {"bank": bank, "history": bank_service.get_bank_history(db, bank_id)}

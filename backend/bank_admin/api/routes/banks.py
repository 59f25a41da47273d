from fastapi import APIRouter, Depends, File as FastAPIFile, HTTPException, Query, Response, UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_serializer, field_validator
from datetime import datetime
from bank_admin.api.dependencies import get_current_user, require_admin
from bank_admin.core.database import get_db
from bank_admin.core.middleware import AuthenticatedUser
from bank_admin.services.bank_import_service import bank_import_service
from bank_admin.services.bank_service import bank_service
from bank_admin.services.eligibility_fields import (
    CIBIL_SCORE_RANGES, ELIGIBILITY_FIELDS, PROCESSING_FEE_FIELDS, create_default_eligibility_data,
)

router = APIRouter(prefix="/banks", tags=["banks"])

BANK_NOT_FOUND_MESSAGE = "Bank not found"


class BankCreate(BaseModel):
    bank_name: str
    classification: Optional[str] = None
    logo_url: Optional[str] = None
    eligibility_data: Optional[Dict[str, Any]] = None
    maximum_pl_amount: Optional[float] = Field(default=None, ge=0)
    maximum_bl_amount: Optional[float] = Field(default=None, ge=0)
    processing_fees: Optional[Dict[str, Any]] = None

    @field_validator("bank_name")
    @classmethod
    def bank_name_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Bank name is required")
        return value


class BankUpdate(BaseModel):
    bank_name: Optional[str] = None
    classification: Optional[str] = None
    logo_url: Optional[str] = None
    eligibility_data: Optional[Dict[str, Any]] = None
    maximum_pl_amount: Optional[float] = Field(default=None, ge=0)
    maximum_bl_amount: Optional[float] = Field(default=None, ge=0)
    processing_fees: Optional[Dict[str, Any]] = None

    # Columns that are NOT NULL on the bank row; omitting them is fine, null is not
    @field_validator("bank_name", "classification", "eligibility_data")
    @classmethod
    def required_fields_not_empty(cls, value, info: ValidationInfo):
        label = info.field_name.replace("_", " ").capitalize()
        if value is None:
            raise ValueError(f"{label} cannot be empty")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError(f"{label} cannot be empty")
        return value


class BankResponse(BaseModel):
    id: int
    bank_name: str
    classification: str
    logo_url: Optional[str]
    eligibility_data: Dict[str, Any]
    maximum_pl_amount: Optional[float]
    maximum_bl_amount: Optional[float]
    processing_fees: Optional[Dict[str, Any]]
    is_deleted: bool
    deleted_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("deleted_at", "created_at", "updated_at")
    def serialize_datetime(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class BankHistoryResponse(BaseModel):
    id: int
    bank_eligibility_id: int
    bank_name: str
    eligibility_data: Dict[str, Any]
    maximum_pl_amount: Optional[float]
    maximum_bl_amount: Optional[float]
    processing_fees: Optional[Dict[str, Any]]
    change_type: str
    changed_fields: List[str]
    created_by: Optional[int]
    created_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("change_type", mode="before")
    @classmethod
    def change_type_value(cls, value):
        return getattr(value, "value", value)

    @field_serializer("created_at")
    def serialize_created_at(self, value: Optional[datetime], _info):
        return value.isoformat() if value else None


class ImportResult(BaseModel):
    created: int
    skipped: int
    bank_ids: List[int]
    skipped_rows: List[int]


@router.get("/", response_model=List[BankResponse])
async def list_banks(
    include_deleted: bool = False,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List banks ordered by name; deleted banks only when asked for"""
    return bank_service.get_all_banks(db, include_deleted=include_deleted)


@router.post("/", response_model=BankResponse, status_code=201)
async def create_bank(
    bank: BankCreate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Create a bank; eligibility fields not provided get their defaults"""
    try:
        return bank_service.create_bank(db, bank.model_dump(), current_user.id)
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to create bank")


@router.get("/template")
async def get_template(current_user: AuthenticatedUser = Depends(get_current_user)):
    """Empty eligibility structure and field names for building bank forms"""
    return {
        "eligibility_data": create_default_eligibility_data(),
        "eligibility_fields": ELIGIBILITY_FIELDS,
        "cibil_score_ranges": CIBIL_SCORE_RANGES,
        "processing_fee_fields": list(PROCESSING_FEE_FIELDS.keys()),
    }


@router.get("/export")
async def export_banks(
    format: Literal["csv", "xlsx"] = Query("xlsx"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the active catalog in the same layout the importer reads"""
    df = bank_import_service.banks_to_dataframe(bank_service.get_all_banks(db))
    content, media_type, ext = bank_import_service.export_bytes(df, format)
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="banks.{ext}"'}
    )


@router.post("/import", response_model=ImportResult)
async def import_banks(
    file: UploadFile = FastAPIFile(...),
    current_user: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Create banks from an uploaded Excel or CSV sheet (admin only)"""
    content = await file.read()
    df = bank_import_service.parse_file(content, file.filename)
    try:
        return bank_import_service.import_banks(db, df, current_user.id)
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to import banks")


@router.get("/{bank_id}", response_model=BankResponse)
async def get_bank(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    bank = bank_service.get_bank_by_id(db, bank_id)
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return bank


@router.put("/{bank_id}", response_model=BankResponse)
async def update_bank(
    bank_id: int,
    bank_update: BankUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Partial update; only fields sent in the body are compared and saved"""
    try:
        bank = bank_service.update_bank(
            db, bank_id, bank_update.model_dump(exclude_unset=True), current_user.id)
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update bank")
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return bank


@router.delete("/{bank_id}")
async def delete_bank(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Soft-delete a bank"""
    try:
        bank = bank_service.soft_delete_bank(db, bank_id, current_user.id)
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to delete bank")
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return {"message": "Bank deleted successfully", "id": bank.id}


@router.post("/{bank_id}/restore", response_model=BankResponse)
async def restore_bank(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        bank = bank_service.restore_bank(db, bank_id, current_user.id)
    except SQLAlchemyError:
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to restore bank")
    if not bank:
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return bank


@router.get("/{bank_id}/history", response_model=List[BankHistoryResponse])
async def get_bank_history(
    bank_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Every recorded change to a bank, newest first"""
    if not bank_service.get_bank_by_id(db, bank_id):
        raise HTTPException(status_code=404, detail=BANK_NOT_FOUND_MESSAGE)
    return bank_service.get_bank_history(db, bank_id)

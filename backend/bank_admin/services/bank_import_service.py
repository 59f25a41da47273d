import io
import logging
from datetime import date, datetime, time as dt_time
from pathlib import Path
from typing import Any, Dict, List, Optional
import numpy as np
import pandas as pd
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from bank_admin.models.bank import BankEligibility
from bank_admin.services.bank_service import bank_service
from bank_admin.services.eligibility_fields import PROCESSING_FEE_FIELDS

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".xlsx", ".xls", ".csv"}
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Sheet columns that map onto dedicated bank fields; everything else is eligibility data
NAME_COLUMN = "BankName"
CLASSIFICATION_COLUMN = "Classification"
LOGO_COLUMN = "URL"
MAX_PL_COLUMN = "MaximumPlAmount"
MAX_BL_COLUMN = "MaximumBlAmount"
RESERVED_COLUMNS = {
    NAME_COLUMN, CLASSIFICATION_COLUMN, LOGO_COLUMN, MAX_PL_COLUMN, MAX_BL_COLUMN,
    *PROCESSING_FEE_FIELDS.values(),
}


def _native(value: Any) -> Any:
    """Convert pandas/numpy cell values to JSON-friendly Python values"""
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, float) and np.isnan(value):
        return None
    # Excel date cells arrive as Timestamp/datetime; JSON columns need text
    if isinstance(value, (datetime, date, dt_time)):
        return value.isoformat()
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return None if np.isnan(value) or np.isinf(value) else float(value)
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _amount(value: Any) -> Optional[float]:
    value = _native(value)
    if value in (None, 0):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class BankImportService:
    """Reads and writes the bank catalog as spreadsheets"""

    @staticmethod
    def parse_file(content: bytes, filename: str) -> pd.DataFrame:
        """Parse an uploaded Excel or CSV file into a DataFrame"""
        file_ext = Path(filename or "").suffix.lower()
        if file_ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(
                status_code=400,
                detail=f"File type not supported. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
        try:
            if file_ext == ".csv":
                return pd.read_csv(io.BytesIO(content))
            return pd.read_excel(io.BytesIO(content), engine="openpyxl" if file_ext == ".xlsx" else None)
        except Exception as e:
            raise HTTPException(status_code=400, detail=f"Error parsing file: {str(e)}")

    @staticmethod
    def row_to_bank_data(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Map one sheet row onto bank fields; None when the row has no bank name"""
        bank_name = _native(row.get(NAME_COLUMN))
        if not bank_name:
            return None

        processing_fees = {
            key: _native(row.get(column)) or ""
            for key, column in PROCESSING_FEE_FIELDS.items()
        }
        eligibility_data = {}
        for column, value in row.items():
            if column in RESERVED_COLUMNS:
                continue
            value = _native(value)
            if value is not None:
                eligibility_data[str(column)] = value

        return {
            "bank_name": str(bank_name),
            "classification": _native(row.get(CLASSIFICATION_COLUMN)) or "UNKNOWN",
            "logo_url": _native(row.get(LOGO_COLUMN)),
            "maximum_pl_amount": _amount(row.get(MAX_PL_COLUMN)),
            "maximum_bl_amount": _amount(row.get(MAX_BL_COLUMN)),
            "eligibility_data": eligibility_data,
            "processing_fees": processing_fees,
        }

    @staticmethod
    def import_banks(db: Session, df: pd.DataFrame, user_id: Optional[int] = None) -> Dict[str, Any]:
        """
        Create a bank per usable row; returns created ids and skipped row numbers.

        The whole sheet goes in as one transaction: if any row fails to insert,
        nothing is created.
        """
        created: List[int] = []
        skipped: List[int] = []
        try:
            for index, row in enumerate(df.to_dict(orient="records"), start=1):
                data = BankImportService.row_to_bank_data(row)
                if data is None:
                    skipped.append(index)
                    continue
                bank = bank_service.create_bank(db, data, user_id, commit=False)
                created.append(bank.id)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(f"Import rolled back after {len(created)} rows", exc_info=True)
            raise
        logger.info(f"Imported {len(created)} banks ({len(skipped)} rows skipped)")
        return {"created": len(created), "skipped": len(skipped),
                "bank_ids": created, "skipped_rows": skipped}

    @staticmethod
    def banks_to_dataframe(banks: List[BankEligibility]) -> pd.DataFrame:
        """Flatten banks back into the sheet layout used for import"""
        rows = []
        for bank in banks:
            row = {
                NAME_COLUMN: bank.bank_name,
                CLASSIFICATION_COLUMN: bank.classification,
                LOGO_COLUMN: bank.logo_url,
                MAX_PL_COLUMN: bank.maximum_pl_amount,
                MAX_BL_COLUMN: bank.maximum_bl_amount,
            }
            fees = bank.processing_fees or {}
            for key, column in PROCESSING_FEE_FIELDS.items():
                row[column] = fees.get(key, "")
            row.update(bank.eligibility_data or {})
            rows.append(row)
        return pd.DataFrame(rows)

    @staticmethod
    def export_bytes(df: pd.DataFrame, file_format: str) -> tuple[bytes, str, str]:
        """Serialize a DataFrame; returns (payload, media_type, file extension)"""
        if file_format == "csv":
            return df.to_csv(index=False).encode("utf-8"), "text/csv", "csv"
        output = io.BytesIO()
        df.to_excel(output, index=False, engine="openpyxl")
        output.seek(0)
        return output.read(), XLSX_MIME_TYPE, "xlsx"


bank_import_service = BankImportService()

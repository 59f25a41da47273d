"""
Seed the bank catalog from a spreadsheet and optionally create an admin user.

    python seed_data.py banks.xlsx --admin-email admin@example.com --admin-password 'Password123!'
"""

import argparse
import logging
from pathlib import Path
from bank_admin.core.database import Base, SessionLocal, engine
from bank_admin.core.logging_config import configure_logging
from bank_admin.models import audit, bank, session, user  # noqa: F401
from bank_admin.models.user import UserRole
from bank_admin.services.bank_import_service import bank_import_service
from bank_admin.services.user_service import user_service

logger = logging.getLogger("seed_data")


def create_admin(db, email: str, password: str, username: str) -> None:
    if user_service.get_by_email(db, email):
        logger.info(f"User {email} already exists")
        return
    admin = user_service.create_user(
        db,
        username=username,
        email=email,
        password=password,
        first_name="Admin",
        last_name="User",
        role=UserRole.ADMIN,
    )
    logger.info(f"Created admin user {admin.email} (ID: {admin.id})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed bank eligibility data")
    parser.add_argument("file", nargs="?", help="Excel or CSV file with one bank per row")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    parser.add_argument("--admin-username", default="admin")
    args = parser.parse_args()

    configure_logging()
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if args.admin_email and args.admin_password:
            create_admin(db, args.admin_email, args.admin_password, args.admin_username)

        if args.file:
            path = Path(args.file)
            df = bank_import_service.parse_file(path.read_bytes(), path.name)
            result = bank_import_service.import_banks(db, df)
            logger.info(f"Seeded {result['created']} banks, skipped rows: {result['skipped_rows']}")
    finally:
        db.close()


if __name__ == "__main__":
    main()

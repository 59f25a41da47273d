from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from bank_admin.core.config import settings


def _engine_options(url: str) -> dict:
    """SQLite needs extra options once sessions are used from the threadpool"""
    if not url.startswith("sqlite"):
        return {}
    options = {"connect_args": {"check_same_thread": False}}
    # In-memory database: every connection must share the one underlying DB
    if url in ("sqlite://", "sqlite:///:memory:"):
        options["poolclass"] = StaticPool
    return options


# Create database engine - manages connection pool
engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))

# Create session factory - each request gets a new session
# autocommit=False: Changes require explicit commit (prevents accidental commits)
# autoflush=False: Don't auto-flush before queries
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all database models
Base = declarative_base()


def get_db():
    """
    Dependency for getting database session.

    The session is automatically closed after the request completes (via finally block).
    Using yield makes this a generator dependency - FastAPI handles the cleanup.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        # Always close session, even if request raises an exception
        db.close()

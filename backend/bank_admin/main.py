import logging
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from bank_admin.core.config import settings
from bank_admin.core.database import engine, Base
from bank_admin.core.logging_config import configure_logging
from bank_admin.core.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, SessionGateMiddleware
from bank_admin.core.scheduler import start_scheduler, stop_scheduler
from bank_admin.api.forms import FormValidationError, field_errors
from bank_admin.api.routes import auth, banks, dashboard, profile, users
# Imported so every table is registered on Base before create_all
from bank_admin.models import audit, bank, session, user  # noqa: F401

configure_logging()
logger = logging.getLogger(__name__)

# Create database tables from all models that inherit from Base
# In production, use migrations (Alembic) instead of create_all
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage app lifecycle events.

    Startup: Start background scheduler for session cleanup
    Shutdown: Stop background scheduler
    """
    if settings.SCHEDULER_ENABLED:
        start_scheduler()
    yield
    if settings.SCHEDULER_ENABLED:
        stop_scheduler()


app = FastAPI(
    title="Bank Admin API",
    description="Bank loan eligibility administration",
    version="1.0.0",
    lifespan=lifespan
)

# Middleware added last runs first: CORS -> security headers -> rate gate -> session gate
app.add_middleware(SessionGateMiddleware)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),  # List of allowed frontend URLs
    allow_credentials=True,  # Allow cookies
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FormValidationError)
async def form_validation_error_handler(request: Request, exc: FormValidationError):
    return JSONResponse(status_code=400, content={"errors": exc.errors, **exc.values})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"errors": field_errors(exc)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"message": "An unexpected error occurred", "code": "UNKNOWN"},
    )


# Auth pages live at the site root; data endpoints are prefixed with /api
app.include_router(auth.router)
app.include_router(banks.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(dashboard.router)
app.include_router(profile.router)


@app.get("/")
async def root():
    """Root endpoint - API information"""
    return {"message": "Bank Admin API", "version": "1.0.0"}


@app.get("/health")
async def health():
    """Health check endpoint - used by monitoring/deployment tools"""
    return {"status": "healthy"}

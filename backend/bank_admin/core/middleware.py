"""
HTTP middleware: security headers, request rate gate and session gate.

Added to the app in main.py so that, from the outside in, a request passes
security headers -> rate gate -> session gate -> route.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse
from bank_admin.core.config import settings
from bank_admin.core.cookies import (
    FINGERPRINT_HEADER, SESSION_COOKIE_NAME, clear_session_cookie, sets_session_cookie,
)
from bank_admin.core.database import SessionLocal
from bank_admin.models.user import User
from bank_admin.services.rate_limiter import rate_limiter
from bank_admin.services.session_service import session_service

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
PROTECTED_PREFIXES = ("/dashboard", "/api/", "/profile")
API_PREFIX = "/api/"
RATE_LIMITED_PREFIXES = ("/auth/login", "/auth/register", "/auth/forgot-password", "/api/auth")

SECURITY_HEADERS = {
    "X-Frame-Options": "SAMEORIGIN",
    "X-Content-Type-Options": "nosniff",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}
CONTENT_SECURITY_POLICY = (
    "default-src 'self'; script-src 'self'; style-src 'self'; "
    "img-src 'self' data:; font-src 'self'; connect-src 'self'"
)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Request-scoped identity, detached from the database session that loaded it"""
    id: int
    email: str
    username: str
    role: str
    is_active: bool
    first_name: Optional[str]
    last_name: Optional[str]
    session_token: str

    @classmethod
    def from_user(cls, user: User, session_token: str) -> "AuthenticatedUser":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            role=user.role.value,
            is_active=user.is_active,
            first_name=user.first_name,
            last_name=user.last_name,
            session_token=session_token,
        )


def is_protected(path: str) -> bool:
    return path.startswith(PROTECTED_PREFIXES)


def is_rate_limited(path: str) -> bool:
    return path.startswith(RATE_LIMITED_PREFIXES) or "reset-password" in path


def login_redirect_url(request: Request) -> str:
    """Login URL that remembers the page the visitor was trying to reach"""
    return_url = request.url.path
    if request.url.query:
        return_url = f"{return_url}?{request.url.query}"
    return f"{LOGIN_PATH}?{urlencode({'returnUrl': return_url})}"


def resolve_session(token: str, fingerprint: Optional[str], slide_expiry: bool) -> Optional[AuthenticatedUser]:
    """Validate a session cookie with its own database session (runs in the threadpool)"""
    db = SessionLocal()
    try:
        user = session_service.validate_session(db, token, fingerprint)
        if user is None:
            return None
        # Snapshot before extend_session commits and expires the instance
        identity = AuthenticatedUser.from_user(user, token)
        if slide_expiry:
            session_service.extend_session(db, token)
        return identity
    finally:
        db.close()


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.append(header, value)
        # Disabled in development so dev tooling can inject scripts
        if settings.APP_ENV.lower() != "development":
            response.headers.append("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window limit on non-GET requests to auth-sensitive paths"""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method != "GET" and is_rate_limited(path):
            client = request.client.host if request.client else "unknown"
            allowed, retry_after = rate_limiter.hit(client, path)
            if not allowed:
                logger.warning(f"Rate limit exceeded for {client} on {path}")
                return JSONResponse(
                    {"error": "Too many requests, please try again later."},
                    status_code=429,
                    headers={"Retry-After": str(retry_after)},
                )
        return await call_next(request)


class SessionGateMiddleware(BaseHTTPMiddleware):
    """
    Populates request.state.user from the session cookie.

    Browsing (non-API) requests slide the session expiry forward; API requests
    keep their fixed expiry. Protected paths without a valid session are
    redirected to the login page with a returnUrl.
    """

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        path = request.url.path
        token = request.cookies.get(SESSION_COOKIE_NAME)
        stale_cookie = False

        if token:
            fingerprint = request.headers.get(FINGERPRINT_HEADER) or None
            lookup = functools.partial(
                resolve_session, token, fingerprint, not path.startswith(API_PREFIX))
            try:
                # Executor futures can be abandoned on timeout; the worker finishes on its own
                identity = await asyncio.wait_for(
                    asyncio.get_running_loop().run_in_executor(None, lookup),
                    timeout=settings.SESSION_STORE_TIMEOUT_SECONDS,
                )
            except asyncio.TimeoutError:
                # Store did not answer in time: treat as unauthenticated, keep the cookie
                logger.error(f"Session lookup timed out for {path}")
                identity = None
            except Exception:
                # Any other gate failure: same as a timeout
                logger.exception(f"Session lookup failed for {path}")
                identity = None
            else:
                stale_cookie = identity is None
            request.state.user = identity

        if is_protected(path) and request.state.user is None:
            response = RedirectResponse(login_redirect_url(request), status_code=302)
        else:
            response = await call_next(request)

        if stale_cookie and not sets_session_cookie(response):
            clear_session_cookie(response)
        return response

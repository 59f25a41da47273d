from starlette.responses import Response
from bank_admin.core.config import settings

SESSION_COOKIE_NAME = "session"
FINGERPRINT_HEADER = "X-Session-Fingerprint"


def set_session_cookie(response: Response, token: str) -> None:
    """Attach the session token as an httpOnly, same-site cookie"""
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.SESSION_EXPIRE_DAYS * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def sets_session_cookie(response: Response) -> bool:
    """True if the handler already issued a new session cookie on this response"""
    prefix = f"{SESSION_COOKIE_NAME}="
    return any(
        header.startswith(prefix) and not header.startswith(f'{prefix}""')
        for header in response.headers.getlist("set-cookie")
    )

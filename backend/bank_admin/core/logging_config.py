import logging
from bank_admin.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging() -> None:
    """Configure root logging once, at app startup"""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)


def mask_email(email: str | None) -> str:
    """Hide most of an email address for logs: 'abc...example.com'"""
    if not email:
        return "not-provided"
    email = str(email)
    local, _, domain = email.partition("@")
    return f"{local[:3]}...{domain}"


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every message with the request id and client IP"""

    def process(self, msg, kwargs):
        return f"[{self.extra['request_id']}][{self.extra['ip']}] {msg}", kwargs

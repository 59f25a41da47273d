import logging
from urllib.parse import urlencode
from bank_admin.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """
    Builds password-reset and verification links.

    Mail delivery is not wired up: links are written to the log so that an
    operator (or a developer) can hand them over.
    """

    @staticmethod
    def _link(path: str, token: str) -> str:
        return f"{settings.APP_URL.rstrip('/')}{path}?{urlencode({'token': token})}"

    def send_password_reset_email(self, email: str, reset_token: str) -> str:
        reset_url = self._link("/auth/reset-password", reset_token)
        self._deliver(email, "Password Reset Request", reset_url)
        return reset_url

    def send_verification_email(self, email: str, verification_token: str) -> str:
        verify_url = self._link("/auth/verify-email", verification_token)
        self._deliver(email, "Verify your email address", verify_url)
        return verify_url

    @staticmethod
    def _deliver(email: str, subject: str, url: str) -> None:
        if settings.is_production:
            logger.warning(f"No mail transport configured; '{subject}' for {email} not sent")
        else:
            logger.info(f"{subject} link for {email}: {url}")


email_service = EmailService()

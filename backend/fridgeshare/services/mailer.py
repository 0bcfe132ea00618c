"""Outbound email through the SendGrid v3 HTTP API."""
import requests
from typing import Optional
from urllib.parse import urlencode

from ..core.config import settings
from ..core.logging import get_logger

logger = get_logger(__name__)

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class Mailer:
    def __init__(self, api_key: Optional[str] = None, sender: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.SENDGRID_API_KEY
        self.sender = sender or settings.EMAIL_FROM

    def available(self) -> bool:
        return bool(self.api_key)

    def send(self, to_email: str, subject: str, body: str) -> bool:
        """Send a plain-text email. Returns False instead of raising on failure."""
        if not self.available():
            logger.info("Mail not configured; skipping '%s' to %s", subject, to_email)
            return False
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        try:
            r = requests.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=8,
            )
        except requests.RequestException as e:
            logger.error("Mail send failed: %s: %s", type(e).__name__, e)
            return False
        if r.status_code not in (200, 202):
            logger.error("Mail send rejected: %s %s", r.status_code, r.text[:200])
            return False
        return True

    def send_verification(self, to_email: str, username: str, token: str) -> bool:
        link = f"{settings.FRONTEND_URL}/verify?{urlencode({'token': token, 'email': to_email})}"
        body = (
            f"Hi {username},\n\n"
            f"Confirm your FridgeShare email address by opening this link:\n{link}\n\n"
            f"The link expires in {settings.EMAIL_TOKEN_EXPIRE_HOURS} hours."
        )
        return self.send(to_email, "Verify your FridgeShare email", body)

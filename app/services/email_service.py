import logging
from typing import Dict, Optional, Tuple

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

PROVIDER = "zeptomail"

# Substrings in a provider response that mean the mailbox will never accept mail
BOUNCE_MARKERS = (
    "550",
    "user unknown",
    "does not exist",
    "no such user",
    "invalid address",
    "address not found",
    "recipient rejected",
    "mailbox unavailable",
)

# EM_104: request accepted and queued
ACCEPTED_CODES = {"EM_104"}


def is_bounce(error: Optional[str]) -> bool:
    """True when a send error points at a dead address rather than a provider outage."""
    if not error:
        return False
    if error.startswith("RECIPIENT_NOT_FOUND"):
        return True
    lowered = error.lower()
    return any(marker in lowered for marker in BOUNCE_MARKERS)


class EmailService:
    """
    Transactional mail through the ZeptoMail HTTP API.

    ``send_email`` never raises: it returns ``(True, None)`` once the provider
    accepted the message, otherwise ``(False, reason)``.
    """

    def __init__(self, api_key: Optional[str] = None, from_address: Optional[str] = None):
        self.api_url = settings.ZEPTO_API_URL
        self.api_key = api_key if api_key is not None else settings.ZEPTO_API_KEY
        self.from_address = from_address or settings.ZEPTO_FROM_ADDRESS
        self.from_name = settings.SITE_NAME
        self.reply_to = settings.SUPPORT_EMAIL

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def build_payload(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> Dict:
        payload = {
            "from": {"address": self.from_address, "name": self.from_name},
            "to": [{"email_address": {"address": to_email}}],
            "subject": subject,
            "htmlbody": html_body,
        }
        if text_body:
            payload["textbody"] = text_body
        if self.reply_to:
            payload["reply_to"] = [{"address": self.reply_to}]
        return payload

    def send_email(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> Tuple[bool, Optional[str]]:
        if not self.configured:
            logger.warning(f"📭 ZEPTO_API_KEY missing, skipped email to {to_email}")
            return False, "EMAIL_NOT_CONFIGURED"
        if not to_email:
            return False, "No email address provided"

        try:
            response = requests.post(
                self.api_url,
                json=self.build_payload(to_email, subject, html_body, text_body),
                headers={"accept": "application/json", "authorization": self.api_key},
                timeout=30,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"⏱️ ZeptoMail timeout for {to_email}: {e}")
            return False, f"TIMEOUT_ERROR: {e}"
        except requests.exceptions.RequestException as e:
            logger.error(f"🔌 ZeptoMail unreachable for {to_email}: {e}")
            return False, f"CONNECTION_ERROR: {e}"

        return self._interpret(to_email, response)

    def _interpret(self, to_email: str, response) -> Tuple[bool, Optional[str]]:
        try:
            data = response.json()
        except ValueError:
            data = {"raw": response.text}
        if not isinstance(data, dict):
            data = {"raw": data}

        code = None
        entries = data.get("data")
        if isinstance(entries, list) and entries and isinstance(entries[0], dict):
            code = entries[0].get("code")

        if response.ok or code in ACCEPTED_CODES:
            logger.info(f"✅ Email accepted for {to_email} [code={code}]")
            return True, None

        detail = str(data)
        if response.status_code in (400, 422) or is_bounce(detail):
            logger.warning(f"📭 Recipient rejected: {to_email}: {detail}")
            return False, f"RECIPIENT_NOT_FOUND: {detail}"

        logger.error(f"❌ ZeptoMail error {response.status_code} for {to_email}: {detail}")
        return False, detail

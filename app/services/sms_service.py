import logging
from typing import Optional

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)


class SMSService:
    """Twilio Messages API over plain HTTPS. Handles both SMS and WhatsApp."""

    def __init__(self):
        self.api_url = settings.TWILIO_API_URL
        self.account_sid = settings.TWILIO_ACCOUNT_SID
        self.auth_token = settings.TWILIO_AUTH_TOKEN
        self.from_number = settings.TWILIO_FROM_NUMBER
        self.whatsapp_from = settings.TWILIO_WHATSAPP_FROM

    def send_sms(self, to_phone: str, body: str):
        return self._send(to_phone, body, self.from_number)

    def send_whatsapp(self, to_phone: str, body: str):
        if not self.whatsapp_from:
            return False, "WHATSAPP_NOT_CONFIGURED"
        return self._send(f"whatsapp:{to_phone}", body, f"whatsapp:{self.whatsapp_from}")

    def send(self, channel: str, to_phone: str, body: str):
        if channel == "whatsapp":
            return self.send_whatsapp(to_phone, body)
        return self.send_sms(to_phone, body)

    def _send(self, to: str, body: str, from_: Optional[str]):
        if not to:
            return False, "No phone number provided"

        number = to.replace("whatsapp:", "")
        if not number.startswith("+"):
            logger.warning(f"📵 Phone number not in E.164 format: {number}")
            return False, "Phone number must be in E.164 format (e.g., +1234567890)"

        if not (self.account_sid and self.auth_token and from_):
            logger.warning(f"📵 Twilio not configured, message to {number} not sent")
            return False, "SMS_NOT_CONFIGURED"

        try:
            response = requests.post(
                f"{self.api_url}/Accounts/{self.account_sid}/Messages.json",
                data={"To": to, "From": from_, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=30,
            )

            if response.ok:
                sid = response.json().get("sid")
                logger.info(f"📱 Message queued for {number} [sid={sid}]")
                return True, None

            logger.error(f"❌ Twilio error for {number}: {response.status_code} {response.text}")
            return False, f"TWILIO_ERROR {response.status_code}: {response.text}"

        except requests.exceptions.Timeout as e:
            logger.error(f"⏱️ Timeout while texting {number}: {e}")
            return False, f"TIMEOUT_ERROR: {e}"

        except requests.exceptions.RequestException as e:
            logger.error(f"🔌 Request error while texting {number}: {e}")
            return False, str(e)

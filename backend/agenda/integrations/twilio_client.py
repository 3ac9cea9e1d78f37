from __future__ import annotations

import logging
from typing import Mapping, Optional

from twilio.request_validator import RequestValidator
from twilio.rest import Client

from agenda.core.config import Settings

logger = logging.getLogger(__name__)


def to_e164(phone: str) -> str:
    digits = "".join(ch for ch in str(phone or "") if ch.isdigit())
    return f"+{digits}" if digits else ""


class TwilioClient:
    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        phone_number: Optional[str],
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.phone_number = phone_number
        self._client: Optional[Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwilioClient":
        return cls(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
        )

    @property
    def client(self) -> Client:
        if self._client is None:
            if not self.account_sid or not self.auth_token:
                raise RuntimeError("Missing TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN.")
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def send_sms(self, to: str, message: str, from_: str | None = None):
        """Send an SMS to the specified phone number (blocking HTTP call)"""
        from_number = from_ or self.phone_number
        if not from_number:
            raise ValueError("Missing Twilio from number for SMS.")
        to_number = to_e164(to)
        if not to_number:
            raise ValueError("Missing destination number for SMS.")
        return self.client.messages.create(
            to=to_number,
            from_=from_number,
            body=message,
        )

    def validate_request(self, url: str, params: Mapping[str, str], signature: str) -> bool:
        """Check the X-Twilio-Signature header of an inbound webhook"""
        if not self.auth_token:
            logger.warning("Cannot validate Twilio signature: TWILIO_AUTH_TOKEN missing")
            return False
        return RequestValidator(self.auth_token).validate(url, dict(params), signature or "")

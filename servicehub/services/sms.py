"""
SMS gateway client.
Posts JSON to a generic HTTP SMS gateway; logs the message when no gateway is configured.
"""
from datetime import date
from typing import Optional

import httpx

from ..config import settings
from ..logging import structlog


class SMSClient:
    """Client for an HTTP SMS gateway"""

    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None, sender_id: Optional[str] = None):
        self.api_url = api_url or settings.sms_api_url
        self.api_key = api_key or settings.sms_api_key
        self.sender_id = sender_id or settings.sms_sender_id

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def send(self, to: Optional[str], message: str) -> bool:
        log = structlog.get_logger()
        if not to:
            log.warning("sms_no_recipient", message=message)
            return False
        if not self.configured:
            log.info("sms_not_configured", to=to, message=message)
            return True
        with httpx.Client(timeout=15.0) as client:
            response = client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"to": to, "from": self.sender_id, "message": message},
            )
            response.raise_for_status()
        log.info("sms_sent", to=to)
        return True

    def send_verification(self, to: Optional[str], code: str) -> bool:
        return self.send(to, f"Your {settings.app_name} verification code is {code}. It expires in {settings.verification_code_ttl_minutes} minutes.")

    def send_technician_assignment(
        self,
        to: Optional[str],
        service_name: str,
        scheduled_date: date,
        scheduled_time: str,
        technician_name: str,
        technician_mobile: Optional[str],
    ) -> bool:
        message = (
            f"ServiceHub: Your {service_name} booking has been accepted! "
            f"Technician: {technician_name} ({technician_mobile or 'n/a'}). "
            f"Date: {scheduled_date.isoformat()} at {scheduled_time}. "
            "Contact technician directly for any questions."
        )
        return self.send(to, message)


sms_client = SMSClient()

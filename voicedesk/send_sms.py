# send_sms.py
import logging

import requests
from fastapi.concurrency import run_in_threadpool
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .errors import DispatchError

logger = logging.getLogger(__name__)


class TwilioSms:
    def __init__(self, account_sid: str, auth_token: str, from_number: str, client: Client | None = None,
                 timeout: float = 10.0):
        self.from_number = from_number
        if client is None and account_sid and auth_token:
            client = Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None and bool(self.from_number)

    async def send(self, to_phone_no: str, body: str) -> str:
        """Send one SMS; returns the message SID."""
        if not self.configured:
            raise DispatchError("Twilio not configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_PHONE_NUMBER")
        logger.info(f"SMS to {to_phone_no}: {len(body)} chars")
        try:
            message = await run_in_threadpool(
                self._client.messages.create, from_=self.from_number, to=to_phone_no, body=body,
            )
        except (TwilioException, requests.RequestException) as e:
            logger.error(f"Twilio send to {to_phone_no} failed: {e!r}")
            raise DispatchError(f"SMS send failed: {e}") from e
        return message.sid


def discount_sms_body(customer_name: str, brand: str, discount_text: str, code: str,
                      url: str, ttl_days: int) -> str:
    expiry = "tomorrow" if ttl_days == 1 else f"in {ttl_days} days"
    return (
        f"Hi {customer_name or 'there'}! Thanks for being a valued {brand} customer. "
        f"Here's your {discount_text} off code: {code}\n\n"
        f"Shop now: {url}\n\n"
        f"Code expires {expiry}.\n"
        "Reply STOP to opt out."
    )

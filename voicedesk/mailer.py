# mailer.py
"""Postmark transactional email transport."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from .errors import DispatchError

logger = logging.getLogger(__name__)

POSTMARK_URL = "https://api.postmarkapp.com/email"


@dataclass
class MailMessage:
    to: str
    subject: str
    html: str
    text: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)
    from_addr: Optional[str] = None


class PostmarkMailer:
    def __init__(self, http: httpx.AsyncClient, server_token: str, from_addr: str):
        self.http = http
        self.server_token = server_token
        self.from_addr = from_addr

    @property
    def configured(self) -> bool:
        return bool(self.server_token and self.from_addr)

    async def send(self, msg: MailMessage) -> str:
        """Send and return the Postmark MessageID. Raises DispatchError on any failure."""
        if not self.configured:
            raise DispatchError("Postmark not configured. Set POSTMARK_SERVER_TOKEN and MAIL_FROM")

        payload = {
            "From": msg.from_addr or self.from_addr,
            "To": msg.to,
            "Subject": msg.subject,
            "HtmlBody": msg.html,
        }
        if msg.text:
            payload["TextBody"] = msg.text
        if msg.cc:
            payload["Cc"] = ", ".join(msg.cc)
        if msg.headers:
            payload["Headers"] = [{"Name": k, "Value": str(v)} for k, v in msg.headers.items()]

        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Postmark-Server-Token": self.server_token,
        }
        try:
            resp = await self.http.post(POSTMARK_URL, json=payload, headers=headers)
            data = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Postmark send error to {msg.to}: {e!r}")
            raise DispatchError(f"email send failed: {e!r}") from e

        error_code = data.get("ErrorCode", 0 if resp.is_success else resp.status_code)
        if error_code != 0:
            error_msg = data.get("Message", "Unknown error")
            logger.error(f"Postmark error {error_code}: {error_msg}")
            raise DispatchError(f"email rejected: {error_msg}")

        message_id = data.get("MessageID")
        logger.info(f"Postmark sent to {msg.to}, MessageID={message_id}")
        return message_id

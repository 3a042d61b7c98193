# marketing.py
"""Klaviyo event client.

Events are the least-coupled integration: this service publishes a metric and
Klaviyo flows decide whether to email or text, so final delivery is not visible
from here.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from .errors import BackendUnavailable, DispatchError

logger = logging.getLogger(__name__)

KLAVIYO_BASE = "https://a.klaviyo.com/api"


def profile_attributes(email: Optional[str] = None, phone: Optional[str] = None,
                       first_name: Optional[str] = None,
                       properties: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {}
    if email:
        attrs["email"] = email
    if phone:
        attrs["phone_number"] = phone
    if first_name:
        attrs["first_name"] = first_name
    if properties:
        attrs["properties"] = properties
    return attrs


class KlaviyoClient:
    def __init__(self, http: httpx.AsyncClient, api_key: str, revision: str = "2024-10-15"):
        self.http = http
        self.api_key = api_key
        self.headers = {
            "Authorization": f"Klaviyo-API-Key {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "revision": revision,
        }

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.api_key:
            raise BackendUnavailable("Klaviyo API key not configured")
        try:
            resp = await self.http.post(f"{KLAVIYO_BASE}/{path}", json=payload, headers=self.headers)
            resp.raise_for_status()
            # 202 Accepted carries no body
            body = resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(f"Klaviyo {path} -> {e.response.status_code}: {e.response.text[:200]}")
            raise BackendUnavailable(f"Klaviyo returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Klaviyo {path} failed: {e!r}")
            raise BackendUnavailable(f"Klaviyo unreachable: {e!r}") from e
        except ValueError as e:
            logger.error(f"Klaviyo {path} returned non-JSON: {resp.text[:200]!r}")
            raise BackendUnavailable("Klaviyo returned an unreadable response") from e
        return body if isinstance(body, dict) else {}

    async def track_event(self, metric: str, profile: Dict[str, Any], properties: Dict[str, Any],
                          unique_id: Optional[str] = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {"data": {
            "type": "event",
            "attributes": {
                "properties": properties,
                "metric": {"data": {"type": "metric", "attributes": {"name": metric}}},
                "profile": {"data": {"type": "profile", "attributes": profile}},
                "time": now.isoformat(),
                "unique_id": unique_id or f"{metric}-{int(now.timestamp() * 1000)}",
            },
        }}
        body = await self._post("events/", payload)
        event_id = (body.get("data") or {}).get("id")
        return event_id or payload["data"]["attributes"]["unique_id"]

    async def send_discount_event(self, metric: str, *, email: Optional[str], phone: Optional[str],
                                  first_name: Optional[str], code: str, value: float, kind: str,
                                  text: str, checkout_url: str, channel: str) -> str:
        properties = {
            "discount_code": code,
            "discount_value": value,
            "discount_type": kind,
            "discount_text": text,
            "checkout_url": checkout_url,
            "channel": channel,
        }
        profile = profile_attributes(
            email=email if channel == "email" else None,
            phone=phone if channel == "sms" else None,
            first_name=first_name,
            properties={"last_discount_code": code, "last_discount_value": value},
        )
        try:
            return await self.track_event(metric, profile, properties, unique_id=f"{code}-{channel}")
        except BackendUnavailable as e:
            raise DispatchError(f"discount event not accepted: {e.message}") from e

    async def send_voicemail_event(self, metric: str, *, phone: Optional[str], email: Optional[str],
                                   first_name: Optional[str], call_id: str,
                                   transcript: Optional[str] = None,
                                   extra: Optional[Dict[str, Any]] = None) -> str:
        today = datetime.now(timezone.utc).date().isoformat()
        properties = {"call_id": call_id, "voicemail_transcript": transcript, **(extra or {})}
        profile = profile_attributes(
            email=email, phone=phone, first_name=first_name,
            properties={"last_voicemail_call_id": call_id, "last_voicemail_date": today},
        )
        return await self.track_event(metric, profile, properties, unique_id=f"voicemail-{call_id}")

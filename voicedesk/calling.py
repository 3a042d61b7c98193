# calling.py
"""Outbound call placement, gated by the calling window and the do-not-call list."""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from fastapi.concurrency import run_in_threadpool

from .contacts import last_ten, normalize_phone
from .errors import BackendUnavailable, ContactOptedOut, InvalidContact, OutsideCallWindow
from .models import Order
from .speech import items_for_display, items_for_speech

logger = logging.getLogger(__name__)

OPT_OUT_TAGS = ("no call", "do not call")
CALL_SOURCE = "post-delivery"


def _hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


class CallWindow:
    def __init__(self, start: str = "09:00", end: str = "19:30", tz: str = "America/Los_Angeles"):
        self.start = _hhmm(start)
        self.end = _hhmm(end)
        self.tz = ZoneInfo(tz)

    def is_open(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        local = now.astimezone(self.tz).time().replace(second=0, microsecond=0)
        return self.start <= local <= self.end

    def check(self, now: Optional[datetime] = None) -> None:
        if not self.is_open(now):
            raise OutsideCallWindow(
                f"Outside calling window ({self.start:%H:%M}-{self.end:%H:%M} {self.tz.key})"
            )


def has_opt_out_tag(tags: List[str]) -> bool:
    joined = ", ".join(tags).lower()
    return any(t in joined for t in OPT_OUT_TAGS)


@dataclass
class Candidate:
    order_id: str
    order_number: str
    phone: str
    name: str
    total: Optional[str] = None
    created_at: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    primary_item: Optional[str] = None
    items_summary: str = ""
    items_display: str = ""
    delivered_at: Optional[str] = None
    opted_out: bool = False

    @classmethod
    def from_order(cls, order: Order) -> "Candidate":
        return cls(
            order_id=order.id,
            order_number=order.display_number,
            phone=order.phone,
            name=order.customer_name or "there",
            total=order.total,
            created_at=order.created_at.isoformat() if order.created_at else None,
            tags=order.tags,
            primary_item=order.line_items[0].title if order.line_items else None,
            items_summary=items_for_speech(order.line_items),
            items_display=items_for_display(order.line_items),
            delivered_at=order.delivered_at,
        )

    def as_dict(self) -> dict:
        return asdict(self)


class OutboundDialer:
    def __init__(self, telephony, commerce, dnc, window: CallWindow, agent_id: str = "", from_number: str = ""):
        self.telephony = telephony
        self.commerce = commerce
        self.dnc = dnc
        self.window = window
        self.agent_id = agent_id
        self.from_number = from_number

    async def place_call(self, phone: str, customer_name: str = "there", order_number: Optional[str] = None,
                         agent_id: Optional[str] = None, from_number: Optional[str] = None,
                         metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.window.check()
        to_number = normalize_phone(phone)
        if await run_in_threadpool(self.dnc.contains, to_number):
            raise ContactOptedOut(f"{to_number} is on the do-not-call list")

        metadata = metadata or {}
        variables = {
            "customer_name": customer_name,
            "order_number": order_number,
            "customer_phone": to_number,
            "primary_item": metadata.get("primary_item"),
            "items_summary": metadata.get("items_summary"),
            "delivered_at": metadata.get("delivered_at"),
            "max_followup_questions": metadata.get("max_followup_questions"),
            "resolution_preference": metadata.get("resolution_preference"),
        }
        return await self.telephony.create_phone_call(
            to_number=to_number,
            from_number=from_number or self.from_number,
            agent_id=agent_id or self.agent_id,
            dynamic_variables=variables,
            metadata={"source": CALL_SOURCE, **{k: v for k, v in variables.items() if v is not None}, **metadata},
        )

    async def candidates(self, hours: int = 48) -> List[Candidate]:
        """Delivered, paid orders updated in the last ``hours`` that have a phone."""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        listed = {t for t in map(last_ten, await run_in_threadpool(self.dnc.phones)) if len(t) == 10}
        out = []
        for order in await self.commerce.orders_since(since):
            if not order.phone or not order.is_delivered:
                continue
            c = Candidate.from_order(order)
            c.opted_out = last_ten(c.phone) in listed or has_opt_out_tag(c.tags)
            out.append(c)
        return out

    async def call_batch(self, hours: int = 48, agent_id: Optional[str] = None,
                         from_number: Optional[str] = None,
                         extra: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        self.window.check()
        results = []
        for c in await self.candidates(hours):
            if c.opted_out:
                results.append({"ok": False, "to": c.phone, "order_number": c.order_number,
                                "skipped": True, "reason": "opted_out"})
                continue
            metadata = {
                "primary_item": c.primary_item,
                "items_summary": c.items_summary,
                "delivered_at": c.delivered_at,
                **(extra or {}),
            }
            try:
                call = await self.place_call(c.phone, c.name, c.order_number, agent_id, from_number, metadata)
            except (BackendUnavailable, InvalidContact, ContactOptedOut, OutsideCallWindow) as e:
                logger.warning(f"Batch call to {c.phone} for order {c.order_number} failed: {e.message}")
                results.append({"ok": False, "to": c.phone, "order_number": c.order_number, "error": e.code})
                continue
            results.append({"ok": True, "call_id": call.get("call_id"), "to": c.phone,
                            "order_number": c.order_number})
        logger.info(f"Batch over last {hours}h: {sum(r['ok'] for r in results)}/{len(results)} calls placed")
        return results

# webhooks.py
"""Decode telephony payloads at the boundary.

Two webhook envelopes are in the wild, ``{"type", "data"}`` and
``{"event", "call"}``; tool calls arrive either as ``{"args", "call"}`` or flat.
Both are normalized here so nothing downstream looks at payload shape.
"""
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .contacts import extract_phone_from_text
from .discounts import DiscountRequest

logger = logging.getLogger(__name__)

OUTCOME_EVENT = "call_analyzed"


def _pick(*sources: Dict[str, Any], keys=()) -> Any:
    for src in sources:
        for key in keys:
            value = (src or {}).get(key)
            if value not in (None, ""):
                return value
    return None


@dataclass
class CallEvent:
    type: str
    call_id: Optional[str]
    data: Dict[str, Any]
    envelope: str  # "legacy" | "current"

    @property
    def metadata(self) -> Dict[str, Any]:
        return self.data.get("metadata") or {}

    @property
    def analysis(self) -> Dict[str, Any]:
        return self.data.get("analysis") or self.data.get("call_analysis") or {}

    @property
    def structured(self) -> Dict[str, Any]:
        a = self.analysis
        return a.get("structured") or a.get("custom_analysis_data") or {}

    @property
    def direction(self) -> Optional[str]:
        return self.data.get("direction")

    @property
    def transcript(self) -> str:
        return self.data.get("transcript") or ""

    def lookup(self, *keys: str) -> Any:
        """Look in metadata, then structured analysis, then the call body."""
        return _pick(self.metadata, self.structured, self.data, keys=keys)

    @property
    def order_number(self) -> Optional[str]:
        value = self.lookup("order_number")
        return str(value) if value is not None else None

    @property
    def customer_phone(self) -> Optional[str]:
        phone = self.lookup("customer_phone", "callback_number")
        if phone:
            return str(phone)
        counterpart = self.data.get("from_number") if self.direction == "inbound" else self.data.get("to_number")
        return counterpart or extract_phone_from_text(self.transcript)

    @property
    def customer_email(self) -> Optional[str]:
        return self.lookup("customer_email")

    @property
    def customer_name(self) -> Optional[str]:
        return self.lookup("customer_name")

    @property
    def requested_opt_out(self) -> bool:
        return self.lookup("requested_opt_out") is True

    @property
    def wants_discount(self) -> bool:
        s = self.structured
        return s.get("send_discount") is True or s.get("send_discount_sms") is True

    @property
    def reached_voicemail(self) -> bool:
        return bool(
            self.structured.get("voicemail") is True
            or self.analysis.get("in_voicemail") is True
            or self.data.get("disconnection_reason") == "voicemail_reached"
        )


def decode_call_event(body: bytes) -> Optional[CallEvent]:
    """Returns None for anything that is not a classifiable call event."""
    if not body or not body.strip():
        logger.info("Retell webhook: empty body (health check)")
        return None
    try:
        event = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        logger.info(f"Retell webhook: non-JSON body {body[:100]!r}")
        return None
    if not isinstance(event, dict):
        logger.info(f"Retell webhook: unexpected payload type {type(event).__name__}")
        return None

    if event.get("type") and isinstance(event.get("data"), dict):
        event_type, data, envelope = event["type"], event["data"], "legacy"
    elif event.get("event") and isinstance(event.get("call"), dict):
        event_type, data, envelope = event["event"], event["call"], "current"
    else:
        logger.info(f"Retell webhook: unknown format {json.dumps(event)[:200]}")
        return None

    call_event = CallEvent(event_type, data.get("call_id"), data, envelope)
    logger.info(f"Retell webhook ({envelope}): {event_type} {call_event.call_id or 'no-call-id'}")
    return call_event


@dataclass
class ToolCall:
    name: Optional[str] = None
    args: Dict[str, Any] = field(default_factory=dict)
    call: Dict[str, Any] = field(default_factory=dict)

    def get(self, *keys: str, default: Any = None) -> Any:
        value = _pick(self.args, keys=keys)
        return default if value is None else value

    @property
    def caller_phone(self) -> Optional[str]:
        phone = self.get("customer_phone", "phone")
        if phone:
            return str(phone)
        if self.call.get("direction") == "inbound":
            return self.call.get("from_number")
        return self.call.get("to_number")


def decode_tool_call(body: Any, query: Optional[Dict[str, Any]] = None, name: Optional[str] = None) -> ToolCall:
    body = body if isinstance(body, dict) else {}
    if isinstance(body.get("args"), dict):
        args = dict(body["args"])
        call = body.get("call") if isinstance(body.get("call"), dict) else {}
    else:
        args = {k: v for k, v in body.items() if k not in ("call", "name")}
        call = body.get("call") if isinstance(body.get("call"), dict) else {}
    for k, v in (query or {}).items():
        args.setdefault(k, v)
    if "orderNumber" in args:
        args.setdefault("order_number", args["orderNumber"])
    return ToolCall(name or body.get("name"), args, call)


class WebhookProcessor:
    """Logs every event; runs call outcomes once per call id."""

    def __init__(self, event_log, resolver, annotator, discounts, marketing=None,
                 voicemail_metric: str = "Voicemail Left", seen_limit: int = 1000):
        self.event_log = event_log
        self.resolver = resolver
        self.annotator = annotator
        self.discounts = discounts
        self.marketing = marketing
        self.voicemail_metric = voicemail_metric
        self.seen_limit = seen_limit
        self._seen: "OrderedDict[str, None]" = OrderedDict()

    def claim(self, event: CallEvent) -> bool:
        """True the first time an outcome event for this call is seen."""
        if event.type != OUTCOME_EVENT or not event.call_id:
            return False
        if event.call_id in self._seen:
            logger.info(f"Skipping repeat {event.type} for {event.call_id}")
            return False
        self._seen[event.call_id] = None
        while len(self._seen) > self.seen_limit:
            self._seen.popitem(last=False)
        return True

    async def handle(self, event: CallEvent) -> None:
        try:
            self.event_log.append(event.type, event.data)
        except OSError:
            logger.exception("Could not append to call event log")
        if self.claim(event):
            await self.process(event)

    async def process(self, event: CallEvent) -> None:
        for step in (self._feedback, self._discount, self._voicemail):
            try:
                await step(event)
            except Exception:
                logger.exception(f"Webhook side effect {step.__name__} failed for call {event.call_id}")

    async def _feedback(self, event: CallEvent) -> None:
        order = None
        if event.order_number:
            order = await self.resolver.find_by_order_number(event.order_number)
            if order is None:
                logger.info(f"Webhook order {event.order_number} not found")
        if order is not None:
            await self.annotator.record_feedback(
                order,
                satisfied_score=event.lookup("satisfied_score"),
                had_issue=bool(event.lookup("had_issue")),
                issue_notes=event.lookup("issue_notes"),
                preferred_contact=event.lookup("preferred_contact"),
                requested_opt_out=event.requested_opt_out,
                phone=event.customer_phone,
            )
        elif event.requested_opt_out:
            await self.annotator.record_opt_out(event.customer_phone)

    async def _discount(self, event: CallEvent) -> None:
        if not event.wants_discount:
            return
        s = event.structured
        outcome = await self.discounts.offer(DiscountRequest(
            customer_phone=event.customer_phone,
            customer_email=event.customer_email,
            customer_name=event.customer_name,
            order_number=event.order_number,
            discount_value=s.get("discount_value"),
            reason=s.get("discount_reason") or "customer_service",
            channel=s.get("discount_channel"),
            checkout_id=event.lookup("checkout_id"),
        ))
        if outcome.issued:
            logger.info(f"Webhook discount sent: {outcome.discount.code} via {outcome.channel}")
        else:
            logger.info(f"Webhook discount not sent: {outcome.eligibility.reason}")

    async def _voicemail(self, event: CallEvent) -> None:
        if not event.reached_voicemail or self.marketing is None:
            return
        await self.marketing.send_voicemail_event(
            self.voicemail_metric,
            phone=event.customer_phone,
            email=event.customer_email,
            first_name=(event.customer_name or "").split(" ")[0] or None,
            call_id=event.call_id,
            transcript=event.transcript or None,
            extra={"order_number": event.order_number},
        )

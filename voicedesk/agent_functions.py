# agent_functions.py
"""Voice-agent tools. Each takes the wired services and a decoded ToolCall and
returns a JSON-able dict carrying a ``speak`` line for text-to-speech."""
import logging
from typing import Any, Awaitable, Callable, Dict

from .contacts import extract_phone_from_text, try_normalize_phone
from .discounts import DiscountRequest
from .errors import DispatchError, InvalidContact, NotFound
from .speech import items_for_display, items_for_speech, spell_code
from .tickets import Ticket
from .webhooks import ToolCall

logger = logging.getLogger(__name__)

Tool = Callable[[Any, ToolCall], Awaitable[Dict[str, Any]]]


# ---------- Helpers ----------
def _as_bool(x) -> bool:
    if isinstance(x, str):
        return x.strip().lower() in ("true", "yes", "y", "1")
    return x is True


def _as_number(x):
    if isinstance(x, bool) or x is None:
        return None
    if isinstance(x, (int, float)):
        return x
    try:
        n = float(str(x).strip())
    except ValueError:
        return None
    return int(n) if n.is_integer() else n


async def _order_for(svc, tool: ToolCall):
    order_number = tool.get("order_number")
    if not order_number:
        raise NotFound("order_number required")
    order = await svc.resolver.find_by_order_number(str(order_number))
    if not order:
        raise NotFound(f"order {order_number} not found")
    return order


# ---------- Order tools ----------
async def order_context(svc, tool: ToolCall) -> Dict[str, Any]:
    res = await svc.resolver.resolve_order(
        order_number=tool.get("order_number"),
        phone=tool.caller_phone,
        email=tool.get("customer_email", "email"),
    )
    order = res.order
    spoken = items_for_speech(order.line_items)
    lead = "Your order contains" if res.method == "order_number" else "I found your most recent order. It contains"
    logger.info(f"Order context: {order.name} via {res.method} - {items_for_display(order.line_items)}")
    return {
        "ok": True,
        "method": res.method,
        "order_id": order.id,
        "order_number": order.display_number,
        "customer_name": order.customer_name or "there",
        "customer_phone": order.phone,
        "customer_email": order.email,
        "items_summary": spoken,
        "items_display": items_for_display(order.line_items),
        "primary_item": order.line_items[0].title if order.line_items else None,
        "delivered_at": order.delivered_at,
        "speak": f"{lead} {spoken}",
    }


async def capture_feedback(svc, tool: ToolCall) -> Dict[str, Any]:
    order = await _order_for(svc, tool)
    opt_out = _as_bool(tool.get("requested_opt_out"))
    await svc.annotator.record_feedback(
        order,
        satisfied_score=_as_number(tool.get("satisfied_score")),
        had_issue=_as_bool(tool.get("had_issue")),
        issue_notes=tool.get("issue_notes"),
        preferred_contact=tool.get("preferred_contact"),
        requested_opt_out=opt_out,
        phone=tool.caller_phone,
    )
    speak = "Thank you, I've noted your feedback on the order."
    if opt_out:
        speak += " We won't call you again."
    return {"ok": True, "order_number": order.display_number, "opted_out": opt_out, "speak": speak}


async def _file_ticket(svc, ticket: Ticket) -> bool:
    if not svc.tickets.configured:
        logger.warning(f"Ticket desk not configured; {ticket.kind} for #{ticket.order_number} only noted on order")
        return False
    try:
        await svc.tickets.file(ticket)
    except DispatchError as e:
        logger.error(f"{ticket.kind} ticket for #{ticket.order_number} not sent: {e.message}")
        return False
    return True


async def request_replacement(svc, tool: ToolCall) -> Dict[str, Any]:
    order = await _order_for(svc, tool)
    quantity = int(_as_number(tool.get("quantity")) or 1)
    item_title = tool.get("item_title")
    reason = tool.get("reason")
    await svc.annotator.record_replacement(order, item_title, quantity, reason)
    sent = await _file_ticket(svc, Ticket(
        kind="Replacement",
        order_number=order.display_number,
        customer_name=order.customer_name or "Customer",
        customer_email=tool.get("customer_email") or order.email,
        customer_phone=tool.caller_phone or order.phone,
        items=f"{quantity}x {item_title}" if item_title else None,
        reason=reason,
    ))
    return {
        "ok": True,
        "order_number": order.display_number,
        "ticket_sent": sent,
        "speak": "I've put in a replacement request for you. Our team will follow up by email within 24 hours.",
    }


async def request_refund(svc, tool: ToolCall) -> Dict[str, Any]:
    order = await _order_for(svc, tool)
    item_title = tool.get("item_title", "items")
    reason = tool.get("reason")
    await svc.annotator.record_refund(order, _as_number(tool.get("amount")), item_title, reason)
    sent = await _file_ticket(svc, Ticket(
        kind="Refund",
        order_number=order.display_number,
        customer_name=order.customer_name or "Customer",
        customer_email=tool.get("customer_email") or order.email,
        customer_phone=tool.caller_phone or order.phone,
        items=item_title,
        reason=reason,
        preferred_resolution=tool.get("preferred_resolution", default="refund"),
    ))
    return {
        "ok": True,
        "order_number": order.display_number,
        "ticket_sent": sent,
        "speak": "I've submitted a refund request for you. Our team will review it and get back to you within 24 hours.",
    }


# ---------- Discount tools ----------
def _discount_speech(outcome, ttl_days: int) -> str:
    d = outcome.discount
    lifetime = "until tomorrow" if ttl_days == 1 else f"for {ttl_days} days"
    read_back = f"The code is {spell_code(d.code)} and it's good {lifetime}."
    if outcome.channel == "sms":
        return (f"Perfect! I've just texted you a {d.text} off discount code to use on your next order. "
                f"You should receive it within a few seconds. {read_back}")
    if outcome.channel == "email":
        return f"Perfect! I've just emailed you a {d.text} off discount code. {read_back}"
    return f"Perfect! You'll get a {d.text} off discount code from us in just a moment. {read_back}"


async def send_discount(svc, tool: ToolCall) -> Dict[str, Any]:
    req = DiscountRequest(
        customer_phone=tool.caller_phone,
        customer_email=tool.get("customer_email", "email"),
        customer_name=tool.get("customer_name"),
        order_number=tool.get("order_number"),
        discount_type=tool.get("discount_type", default="percentage"),
        discount_value=_as_number(tool.get("discount_value")),
        reason=tool.get("reason", default="customer_service"),
        channel=tool.get("channel"),
        checkout_id=tool.get("checkout_id"),
    )
    outcome = await svc.discounts.offer(req)
    body = outcome.as_dict()
    if not outcome.issued:
        body["speak"] = ("I checked and you've already used a discount recently. I'll note your request "
                         "and have our team look into other options for you.")
        return body
    ttl = svc.settings.policy_for(outcome.channel).ttl_days
    body["speak"] = _discount_speech(outcome, ttl)
    return body


async def check_discount_eligibility(svc, tool: ToolCall) -> Dict[str, Any]:
    policy = svc.settings.policy_for(tool.get("channel") or svc.settings.default_channel)
    result = await svc.evaluator.evaluate(
        email=tool.get("customer_email", "email"), phone=tool.caller_phone, policy=policy,
    )
    body = {"ok": True, **result.as_dict()}
    if result.eligible:
        body["speak"] = f"Good news, you qualify for {result.suggested_value}% off your next order."
    else:
        body["speak"] = "It looks like you've already used a discount recently, so I can't add another one today."
    return body


async def extract_phone(svc, tool: ToolCall) -> Dict[str, Any]:
    phone = try_normalize_phone(extract_phone_from_text(tool.get("text")))
    if not phone:
        raise InvalidContact("no phone number in text")
    national = phone[2:] if phone.startswith("+1") else phone[1:]
    return {"ok": True, "phone": phone, "speak": f"I have {spell_code(national)}."}


# --- Map tool names to functions ---
FUNCTION_MAP: Dict[str, Tool] = {
    "order_context": order_context,
    "get_order_details": order_context,
    "capture_feedback": capture_feedback,
    "request_replacement": request_replacement,
    "request_refund": request_refund,
    "send_discount": send_discount,
    "check_discount_eligibility": check_discount_eligibility,
    "extract_phone": extract_phone,
}

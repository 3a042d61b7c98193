# annotator.py
"""Leave an audit trail on the source order: merged tags and appended notes."""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Iterable, List, Optional

from fastapi.concurrency import run_in_threadpool

from .contacts import try_normalize_phone
from .models import DiscountCode, Order

logger = logging.getLogger(__name__)

ISSUE_TAG = "post-delivery-issue"
REPLACEMENT_TAG = "replacement-requested"
REFUND_TAG = "refund-requested"
DISCOUNT_TAG = "discount-issued"
OPT_OUT_TAG = "do not call"


def merge_tags(existing: Iterable[str], new: Iterable[str]) -> List[str]:
    """Set union that keeps first-seen order."""
    merged = dict.fromkeys(t.strip() for t in existing if t and t.strip())
    merged.update(dict.fromkeys(t.strip() for t in new if t and t.strip()))
    return list(merged)


def merge_note(existing: Optional[str], append: Optional[str]) -> str:
    existing = existing or ""
    if not append:
        return existing
    return f"{existing}\n{append}" if existing else append


def feedback_note(satisfied_score=None, had_issue=False, issue_notes=None, preferred_contact=None) -> str:
    notes = []
    if isinstance(satisfied_score, (int, float)) and not isinstance(satisfied_score, bool):
        notes.append(f"Post-delivery satisfaction: {satisfied_score:g}/10")
    if had_issue:
        notes.append(f"Issue: {issue_notes or '(details pending)'}")
    if preferred_contact:
        notes.append(f"Preferred contact: {preferred_contact}")
    return " | ".join(notes)


class OrderAnnotator:
    """Fetch-merge-write annotation of orders.

    The backend has no compare-and-set for orders, so two processes can still
    lose an update; within one process writes to the same order are serialized.
    """

    def __init__(self, commerce, dnc=None):
        self.commerce = commerce
        self.dnc = dnc
        # order id -> [lock, holders + waiters]; dropped when the count reaches zero
        self._locks: Dict[str, list] = {}

    @asynccontextmanager
    async def _order_lock(self, order_id: str):
        entry = self._locks.setdefault(order_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                yield
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[order_id]

    async def annotate(self, order_id: str, note_append: Optional[str] = None,
                       add_tags: Iterable[str] = ()) -> Order:
        add_tags = [t for t in add_tags if t]
        async with self._order_lock(str(order_id)):
            current = await self.commerce.get_order(order_id)
            if not note_append and not add_tags:
                return current
            tags = merge_tags(current.tags, add_tags)
            note = merge_note(current.note, note_append)
            updated = await self.commerce.update_order(order_id, note=note, tags=tags)
        logger.info(f"Annotated order {order_id}: tags+={add_tags} note+={note_append!r}")
        return updated

    async def record_feedback(self, order: Order, satisfied_score=None, had_issue=False,
                              issue_notes=None, preferred_contact=None,
                              requested_opt_out=False, phone: Optional[str] = None) -> Optional[Order]:
        note = feedback_note(satisfied_score, had_issue, issue_notes, preferred_contact)
        tags = [ISSUE_TAG] if had_issue else []
        updated = None
        if note or tags:
            updated = await self.annotate(order.id, note_append=note, add_tags=tags)
        if requested_opt_out:
            await self.record_opt_out(phone or order.phone, order)
        return updated

    async def record_replacement(self, order: Order, item_title: Optional[str] = None,
                                 quantity: int = 1, reason: Optional[str] = None) -> Order:
        note = f"Replacement requested: {quantity}x {item_title or '(unspecified)'}"
        if reason:
            note += f" | Reason: {reason}"
        return await self.annotate(order.id, note_append=note, add_tags=[REPLACEMENT_TAG])

    async def record_refund(self, order: Order, amount: Optional[float] = None,
                            item_title: Optional[str] = None, reason: Optional[str] = None) -> Order:
        note = "Refund requested"
        if item_title:
            note += f": {item_title}"
        if amount:
            note += f" (${float(amount):.2f})"
        if reason:
            note += f" | Reason: {reason}"
        return await self.annotate(order.id, note_append=note, add_tags=[REFUND_TAG])

    async def record_discount(self, order_id: str, discount: DiscountCode, channel: str,
                              reason: Optional[str] = None) -> Order:
        note = f"Discount {discount.code} ({discount.text}) sent via {channel}"
        if reason:
            note += f" | Reason: {reason}"
        return await self.annotate(order_id, note_append=note, add_tags=[DISCOUNT_TAG])

    async def record_opt_out(self, phone: Optional[str], order: Optional[Order] = None) -> bool:
        """Add the number to the do-not-call list; tags the order when one is known."""
        added = False
        normalized = try_normalize_phone(phone)
        if normalized and self.dnc is not None:
            added = await run_in_threadpool(self.dnc.add, normalized)
        elif not normalized:
            logger.warning(f"Opt-out requested but no usable phone ({phone!r})")
        if order is not None:
            await self.annotate(order.id, note_append="Customer requested no further calls",
                                add_tags=[OPT_OUT_TAG])
        return added

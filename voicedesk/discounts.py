# discounts.py
"""One discount offer, end to end: eligibility, issue, recovery link, dispatch, annotate."""
import logging
from dataclasses import dataclass
from typing import Optional

from .contacts import normalize_phone
from .dispatcher import Receipt, build_recovery_url, select_channel
from .eligibility import Eligibility
from .errors import BackendUnavailable, DispatchError, VoicedeskError
from .issuer import IssueRequest
from .models import Contact, DiscountCode

logger = logging.getLogger(__name__)


@dataclass
class DiscountRequest:
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    order_number: Optional[str] = None
    discount_type: str = "percentage"
    discount_value: Optional[float] = None  # None: use the eligibility suggestion
    reason: str = "customer_service"
    channel: Optional[str] = None
    checkout_id: Optional[str] = None


@dataclass
class DiscountOutcome:
    eligibility: Eligibility
    discount: Optional[DiscountCode] = None
    receipt: Optional[Receipt] = None
    recovery_url: Optional[str] = None
    channel: Optional[str] = None

    @property
    def issued(self) -> bool:
        return self.discount is not None

    def as_dict(self) -> dict:
        out = {"ok": True, "issued": self.issued, "eligibility": self.eligibility.as_dict()}
        if self.discount:
            out["discount"] = self.discount.as_dict()
            out["recovery_url"] = self.recovery_url
            out["channel"] = self.channel
            out["receipt"] = self.receipt.as_dict() if self.receipt else None
        return out


class DiscountService:
    def __init__(self, settings, commerce, resolver, evaluator, issuer, dispatcher, annotator):
        self.settings = settings
        self.commerce = commerce
        self.resolver = resolver
        self.evaluator = evaluator
        self.issuer = issuer
        self.dispatcher = dispatcher
        self.annotator = annotator

    async def offer(self, req: DiscountRequest) -> DiscountOutcome:
        contact = Contact(
            name=req.customer_name,
            phone=normalize_phone(req.customer_phone) if req.customer_phone else None,
            email=(req.customer_email or "").strip() or None,
        )
        channel = select_channel(contact, req.channel or self.settings.default_channel)
        policy = self.settings.policy_for(channel)

        eligibility = await self.evaluator.evaluate(email=contact.email, phone=contact.phone, policy=policy)
        if not eligibility.eligible:
            logger.info(f"Discount declined for {contact.phone or contact.email}: {eligibility.reason}")
            return DiscountOutcome(eligibility, channel=channel)

        value = req.discount_value or eligibility.suggested_value
        discount = await self.issuer.issue(IssueRequest(
            discount_type=req.discount_type,
            discount_value=value,
            policy=policy,
            customer_email=contact.email,
            customer_phone=contact.phone,
            customer_name=contact.name,
            order_number=req.order_number,
            reason=req.reason,
        ))

        base_url, abandoned = await self._checkout_url(contact, req.checkout_id)
        url = build_recovery_url(base_url, discount.code, channel, self.settings.utm_source, abandoned)
        discount.redemption_url = url

        try:
            receipt = await self.dispatcher.dispatch(contact, discount, url, channel, ttl_days=policy.ttl_days)
        except DispatchError as e:
            logger.error(
                f"Discount {discount.code} was issued for {contact.phone or contact.email} "
                f"but {channel} delivery failed: {e.message}"
            )
            e.details["discount_code"] = discount.code
            raise

        if req.order_number:
            await self._annotate(req.order_number, discount, channel, req.reason)

        return DiscountOutcome(eligibility, discount, receipt, url, channel)

    async def _checkout_url(self, contact: Contact, checkout_id: Optional[str]):
        try:
            if checkout_id:
                url = await self.commerce.abandoned_checkout_url(checkout_id)
            else:
                url = await self.commerce.find_abandoned_checkout_url(contact.email, contact.phone)
        except BackendUnavailable as e:
            logger.warning(f"Abandoned checkout lookup failed, using storefront: {e.message}")
            url = None
        if url:
            return url, True
        return self.settings.storefront_url, False

    async def _annotate(self, order_number: str, discount: DiscountCode, channel: str, reason: str) -> None:
        try:
            order = await self.resolver.find_by_order_number(order_number)
            if order:
                await self.annotator.record_discount(order.id, discount, channel, reason)
        except VoicedeskError:
            logger.exception(f"Could not annotate order {order_number} with discount {discount.code}")

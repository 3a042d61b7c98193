# eligibility.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import BackendUnavailable, NotFound
from .settings import DiscountPolicy

logger = logging.getLogger(__name__)

RECENT_DISCOUNT_DAYS = 30
DEFAULT_VALUE = 10


@dataclass
class Eligibility:
    eligible: bool
    reason: str
    suggested_value: Optional[int] = None
    last_discount_date: Optional[str] = None
    customer_id: Optional[str] = None

    def as_dict(self) -> dict:
        out = {"eligible": self.eligible, "reason": self.reason}
        if self.suggested_value is not None:
            out["discount_value"] = self.suggested_value
        if self.last_discount_date:
            out["last_discount_date"] = self.last_discount_date
        return out


def tier_for_spend(total_spent: float, policy: DiscountPolicy) -> Eligibility:
    if total_spent > 1000:
        return Eligibility(True, "vip_customer", policy.max_percentage)
    if total_spent > 500:
        return Eligibility(True, "valued_customer", min(12, policy.max_percentage))
    return Eligibility(True, "standard", min(DEFAULT_VALUE, policy.max_percentage))


class EligibilityEvaluator:
    """Decides whether a contact may get a promotional code right now.

    Backend failures fail open: the caller still gets a standard discount
    rather than a broken call.
    """

    def __init__(self, commerce, resolver):
        self.commerce = commerce
        self.resolver = resolver

    async def evaluate(self, email: Optional[str] = None, phone: Optional[str] = None,
                       policy: DiscountPolicy = DiscountPolicy(15, 30)) -> Eligibility:
        try:
            return await self._evaluate(email, phone, policy)
        except BackendUnavailable as e:
            logger.error(f"Eligibility check failed, defaulting to eligible: {e}")
            return Eligibility(True, "default", min(DEFAULT_VALUE, policy.max_percentage))

    async def _evaluate(self, email, phone, policy) -> Eligibility:
        try:
            match = await self.resolver.resolve_customer(phone=phone, email=email)
        except NotFound:
            return Eligibility(True, "new_customer", min(DEFAULT_VALUE, policy.max_percentage))
        customer = match.customer

        cutoff = datetime.now(timezone.utc) - timedelta(days=RECENT_DISCOUNT_DAYS)
        orders = await self.commerce.customer_orders(customer, limit=10)
        recent = [
            o for o in orders
            if o.discount_codes and o.created_at and o.created_at > cutoff
        ]
        if recent:
            latest = max(recent, key=lambda o: o.created_at)
            logger.info(f"Customer {customer.id} used discount {latest.discount_codes} on {latest.created_at}")
            return Eligibility(
                False, "recent_discount_used",
                last_discount_date=latest.created_at.isoformat(),
                customer_id=customer.id,
            )

        result = tier_for_spend(customer.amount_spent, policy)
        result.customer_id = customer.id
        return result

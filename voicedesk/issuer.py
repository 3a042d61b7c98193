# issuer.py
import logging
import random
import re
import string
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import CodeCollision, IssuerError
from .models import DiscountCode
from .settings import DiscountPolicy

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class IssueRequest:
    discount_type: str = "percentage"  # or "fixed_amount"
    discount_value: float = 10
    policy: DiscountPolicy = DiscountPolicy(15, 30)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_name: Optional[str] = None
    order_number: Optional[str] = None
    reason: str = "customer_service"
    usage_limit: int = 1


def code_from_name(name: Optional[str], value: float) -> str:
    """``James Smith`` + 12 -> ``James12``."""
    first = (str(name or "").strip().split() or ["Guest"])[0]
    clean = re.sub(r"[^A-Za-z]", "", first)[:20] or "Guest"
    pct = max(1, min(99, int(value or 10)))
    return f"{clean}{pct}"


def random_suffix(n: int = 4) -> str:
    return "".join(random.choices(SUFFIX_ALPHABET, k=n))


def clamp_value(kind: str, value: float, policy: DiscountPolicy) -> float:
    if kind == "percentage" and value > policy.max_percentage:
        logger.warning(f"Capping discount at {policy.max_percentage}% (requested {value}%)")
        return policy.max_percentage
    return value


class DiscountIssuer:
    """Registers single-use, customer-scoped codes in the commerce backend.

    Not idempotent: each call creates a new discount. Callers invoke it at
    most once per issuance event.
    """

    def __init__(self, commerce, resolver, code_prefix: str = "THANKS", max_attempts: int = MAX_ATTEMPTS):
        self.commerce = commerce
        self.resolver = resolver
        self.code_prefix = code_prefix
        self.max_attempts = max_attempts

    def base_code(self, req: IssueRequest, value: float) -> str:
        if req.customer_name:
            return code_from_name(req.customer_name, value)
        return f"{self.code_prefix}{int(value)}OFF"

    async def issue(self, req: IssueRequest) -> DiscountCode:
        if req.discount_type not in ("percentage", "fixed_amount"):
            raise IssuerError(f"unknown discount type {req.discount_type!r}")
        if not req.discount_value or req.discount_value <= 0:
            raise IssuerError(f"discount value must be positive, got {req.discount_value!r}")

        value = clamp_value(req.discount_type, float(req.discount_value), req.policy)

        customer = None
        if req.customer_email:
            customer = await self.resolver.find_customer_by_email(req.customer_email)
        if not customer:
            logger.info("No customer record for discount; issuing store-wide with usage limit 1")

        starts_at = datetime.now(timezone.utc)
        ends_at = starts_at + timedelta(days=req.policy.ttl_days)
        base = self.base_code(req, value)
        # named codes try the bare name first, generic ones always carry a suffix
        code = base if req.customer_name else f"{base}{random_suffix()}"

        for attempt in range(1, self.max_attempts + 1):
            try:
                backend_id = await self.commerce.create_discount_code(
                    code=code,
                    title=f"Customer Service Discount - {code}",
                    kind=req.discount_type,
                    value=value,
                    starts_at=starts_at,
                    ends_at=ends_at,
                    customer_gid=customer.id if customer else None,
                    usage_limit=req.usage_limit,
                )
            except CodeCollision:
                logger.info(f"Discount code {code} taken (attempt {attempt}/{self.max_attempts})")
                code = f"{base}{random_suffix()}"
                continue

            discount = DiscountCode(
                code=code,
                kind=req.discount_type,
                value=value,
                starts_at=starts_at,
                ends_at=ends_at,
                usage_limit=req.usage_limit,
                customer_id=customer.id if customer else None,
                backend_id=backend_id,
                requested_value=float(req.discount_value),
            )
            logger.info(
                f"Discount created: code={code} value={discount.text} customer={req.customer_email or req.customer_phone} "
                f"order={req.order_number} reason={req.reason}"
            )
            return discount

        raise IssuerError(f"could not find a free code after {self.max_attempts} attempts", discount_code=base)

# resolver.py
"""Find the order or customer a caller is talking about.

Lookup strategies run in a fixed priority order and stop at the first hit:
order number (in its ``#`` / no-``#`` spellings, then a bounded scan), phone
(last-10-digit match over recent orders), then email.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .contacts import normalize_phone, phone_search_forms, same_line
from .errors import InvalidContact, NotFound
from .models import Customer, Order

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Resolution:
    order: Order
    method: str  # "order_number" | "phone" | "email"


@dataclass
class CustomerMatch:
    customer: Customer
    method: str  # "phone" | "email"
    candidates: List[Customer] = field(default_factory=list)


def name_forms(order_number: str) -> List[str]:
    num = str(order_number).strip()
    forms = [num, num if num.startswith("#") else f"#{num}", num.replace("#", "")]
    return list(dict.fromkeys(forms))


def rank_customers(candidates: List[Customer]) -> List[Customer]:
    """Most orders, then highest lifetime spend, then most recent order."""
    return sorted(
        candidates,
        key=lambda c: (c.orders_count, c.amount_spent, c.last_order_at or _EPOCH),
        reverse=True,
    )


class OrderResolver:
    def __init__(self, commerce, lookback_days: int = 30, scan_limit: int = 250):
        self.commerce = commerce
        self.lookback_days = lookback_days
        self.scan_limit = scan_limit

    async def resolve_order(self, order_number: Optional[str] = None, phone: Optional[str] = None,
                            email: Optional[str] = None) -> Resolution:
        if order_number and str(order_number).strip():
            order = await self.find_by_order_number(order_number)
            if order:
                return Resolution(order, "order_number")

        if phone:
            order = await self.find_latest_for_phone(phone)
            if order:
                return Resolution(order, "phone")

        if email:
            order = await self.find_latest_for_email(email)
            if order:
                return Resolution(order, "email")

        logger.info(f"No order for order_number={order_number} phone={phone} email={email}")
        raise NotFound("order_not_found")

    async def find_by_order_number(self, order_number: str) -> Optional[Order]:
        for form in name_forms(order_number):
            orders = await self.commerce.search_orders_by_name(form)
            if orders:
                logger.info(f"Found order with format: {form}")
                return orders[0]

        wanted = str(order_number).strip().replace("#", "")
        for order in await self.commerce.list_orders(limit=self.scan_limit):
            if order.order_number == wanted or order.name.replace("#", "") == wanted:
                logger.info(f"Found order by scanning: {order.name}")
                return order
        return None

    async def find_latest_for_phone(self, phone: str) -> Optional[Order]:
        query_phone = normalize_phone(phone)
        since = datetime.now(timezone.utc) - timedelta(days=self.lookback_days)
        orders = await self.commerce.orders_since(since)
        matches = [o for o in orders if o.phone and same_line(o.phone, query_phone)]
        if not matches:
            return None
        return max(matches, key=lambda o: o.created_at or _EPOCH)

    async def find_latest_for_email(self, email: str) -> Optional[Order]:
        match = await self.find_customer_by_email(email)
        if not match:
            return None
        orders = await self.commerce.customer_orders(match, limit=1)
        return orders[0] if orders else None

    # ---- customers ----
    async def resolve_customer(self, phone: Optional[str] = None,
                               email: Optional[str] = None) -> CustomerMatch:
        if phone:
            try:
                candidates = await self.find_customers_by_phone(phone)
            except InvalidContact:
                if not email:
                    raise
                logger.info(f"Unusable phone {phone!r}, falling back to email")
                candidates = []
            if candidates:
                ranked = rank_customers(candidates)
                if len(ranked) > 1:
                    logger.info(
                        f"{len(ranked)} customers share phone {phone}; picked {ranked[0].id} "
                        f"({ranked[0].orders_count} orders, ${ranked[0].amount_spent:.2f})"
                    )
                return CustomerMatch(ranked[0], "phone", ranked)

        if email:
            customer = await self.find_customer_by_email(email)
            if customer:
                return CustomerMatch(customer, "email", [customer])

        raise NotFound("customer_not_found")

    async def find_customers_by_phone(self, phone: str) -> List[Customer]:
        seen = {}
        for form in phone_search_forms(phone):
            for customer in await self.commerce.search_customers(f"phone:{form}"):
                seen.setdefault(customer.id, customer)
        return list(seen.values())

    async def find_customer_by_email(self, email: str) -> Optional[Customer]:
        wanted = email.strip().lower()
        for customer in await self.commerce.search_customers(f"email:{wanted}", first=5):
            if (customer.email or "").lower() == wanted:
                return customer
        return None

# models.py
"""Records passed between the commerce client and the call pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_ts(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 backend timestamp into an aware datetime."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def split_tags(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(t).strip() for t in raw if str(t).strip()]
    return [t.strip() for t in str(raw).split(",") if t.strip()]


def _first(*values: Any) -> Optional[str]:
    for v in values:
        if v and str(v).strip():
            return str(v).strip()
    return None


@dataclass
class LineItem:
    title: str
    quantity: int = 1
    unit_price: Optional[str] = None
    variant: Optional[str] = None


@dataclass
class Order:
    id: str
    name: str
    order_number: Optional[str] = None
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    line_items: List[LineItem] = field(default_factory=list)
    fulfillment_status: Optional[str] = None
    delivered_at: Optional[str] = None
    note: str = ""
    tags: List[str] = field(default_factory=list)
    discount_codes: List[str] = field(default_factory=list)
    total: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_rest(cls, o: Dict[str, Any]) -> "Order":
        customer = o.get("customer") or {}
        shipping = o.get("shipping_address") or {}
        fulfillments = o.get("fulfillments") or []
        delivered = next(
            (f for f in fulfillments if (f or {}).get("shipment_status") == "delivered"), None
        )
        name = " ".join(p for p in (customer.get("first_name"), customer.get("last_name")) if p)
        return cls(
            id=str(o.get("id")),
            name=str(o.get("name") or ""),
            order_number=str(o["order_number"]) if o.get("order_number") is not None else None,
            customer_id=str(customer["id"]) if customer.get("id") else None,
            customer_name=name or None,
            phone=_first(o.get("phone"), shipping.get("phone"), customer.get("phone")),
            email=_first(o.get("email"), o.get("contact_email"), customer.get("email")),
            line_items=[
                LineItem(
                    title=li.get("title") or "",
                    quantity=int(li.get("quantity") or 1),
                    unit_price=li.get("price"),
                    variant=li.get("variant_title"),
                )
                for li in (o.get("line_items") or [])
            ],
            fulfillment_status=o.get("fulfillment_status"),
            delivered_at=(delivered or {}).get("updated_at"),
            note=o.get("note") or "",
            tags=split_tags(o.get("tags")),
            discount_codes=[
                d.get("code") for d in (o.get("discount_codes") or []) if d and d.get("code")
            ],
            total=o.get("current_total_price") or o.get("total_price"),
            created_at=parse_ts(o.get("created_at")),
        )

    @property
    def is_delivered(self) -> bool:
        return self.fulfillment_status == "fulfilled" or self.delivered_at is not None

    @property
    def display_number(self) -> str:
        return self.order_number or self.name.lstrip("#")


@dataclass
class Customer:
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    orders_count: int = 0
    amount_spent: float = 0.0
    last_order_at: Optional[datetime] = None

    @classmethod
    def from_graphql(cls, node: Dict[str, Any]) -> "Customer":
        default_phone = (node.get("defaultPhoneNumber") or {}).get("phoneNumber")
        return cls(
            id=node["id"],
            first_name=node.get("firstName"),
            last_name=node.get("lastName"),
            email=node.get("email"),
            phone=node.get("phone") or default_phone,
            orders_count=int(node.get("numberOfOrders") or 0),
            amount_spent=float((node.get("amountSpent") or {}).get("amount") or 0),
            last_order_at=parse_ts((node.get("lastOrder") or {}).get("createdAt")),
        )

    @property
    def legacy_id(self) -> str:
        """Numeric id used by the REST endpoints."""
        return self.id.rsplit("/", 1)[-1]


@dataclass
class DiscountCode:
    code: str
    kind: str  # "percentage" | "fixed_amount"
    value: float
    starts_at: datetime
    ends_at: datetime
    usage_limit: int = 1
    customer_id: Optional[str] = None
    backend_id: Optional[str] = None
    redemption_url: Optional[str] = None
    requested_value: Optional[float] = None

    @property
    def capped(self) -> bool:
        return self.requested_value is not None and self.requested_value > self.value

    @property
    def text(self) -> str:
        """Human form of the magnitude: ``15%`` or ``$10``."""
        amount = int(self.value) if float(self.value).is_integer() else self.value
        return f"{amount}%" if self.kind == "percentage" else f"${amount}"

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "type": self.kind,
            "value": self.value,
            "usage_limit": self.usage_limit,
            "starts_at": self.starts_at.isoformat(),
            "expires_at": self.ends_at.isoformat(),
            "customer_specific": self.customer_id is not None,
            "redemption_url": self.redemption_url,
        }


@dataclass
class Contact:
    """Whoever a notification goes to; at least one of phone or email."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    @property
    def first_name(self) -> Optional[str]:
        parts = (self.name or "").split()
        return parts[0] if parts else None

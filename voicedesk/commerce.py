# commerce.py
"""Shopify Admin API client (REST for orders, GraphQL for customers and discounts)."""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from .errors import BackendUnavailable, CodeCollision, IssuerError
from .models import Customer, Order

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "id,name,order_number,customer,email,contact_email,phone,shipping_address,"
    "current_total_price,created_at,closed_at,fulfillments,fulfillment_status,"
    "tags,note,line_items,discount_codes"
)

CUSTOMER_FIELDS = """
  id
  firstName
  lastName
  email
  phone
  defaultPhoneNumber { phoneNumber }
  numberOfOrders
  amountSpent { amount currencyCode }
  lastOrder { createdAt }
"""

CUSTOMER_SEARCH = f"""
query searchCustomers($query: String!, $first: Int!) {{
  customers(first: $first, query: $query) {{
    nodes {{ {CUSTOMER_FIELDS} }}
  }}
}}
"""

DISCOUNT_CREATE = """
mutation createDiscountCode($input: DiscountCodeBasicInput!) {
  discountCodeBasicCreate(basicCodeDiscount: $input) {
    codeDiscountNode { id }
    userErrors { field message }
  }
}
"""

ABANDONED_CHECKOUTS = """
query abandonedCheckouts($query: String) {
  abandonedCheckouts(first: 5, sortKey: CREATED_AT, reverse: true, query: $query) {
    nodes { id abandonedCheckoutUrl createdAt }
  }
}
"""

ABANDONED_CHECKOUT_BY_ID = """
query abandonedCheckout($id: ID!) {
  node(id: $id) {
    ... on AbandonedCheckout { id abandonedCheckoutUrl createdAt }
  }
}
"""


class ShopifyClient:
    def __init__(self, http: httpx.AsyncClient, store_domain: str, admin_token: str,
                 api_version: str = "2024-10"):
        self.http = http
        self.base = f"https://{store_domain}/admin/api/{api_version}"
        self.headers = {
            "X-Shopify-Access-Token": admin_token,
            "Content-Type": "application/json",
        }

    # ---- transport ----
    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base}/{path}"
        try:
            resp = await self.http.request(method, url, headers=self.headers, **kwargs)
            resp.raise_for_status()
            body = resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            logger.error(f"Shopify {method} {path} -> {e.response.status_code}: {e.response.text[:200]}")
            raise BackendUnavailable(f"Shopify returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Shopify {method} {path} failed: {e!r}")
            raise BackendUnavailable(f"Shopify unreachable: {e!r}") from e
        except ValueError as e:
            logger.error(f"Shopify {method} {path} returned non-JSON: {resp.text[:200]!r}")
            raise BackendUnavailable("Shopify returned an unreadable response") from e
        if not isinstance(body, dict):
            raise BackendUnavailable(f"Shopify returned unexpected {type(body).__name__}")
        return body

    async def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        body = await self._request("POST", "graphql.json", json={"query": query, "variables": variables})
        if body.get("errors"):
            logger.error(f"Shopify GraphQL errors: {body['errors']}")
            raise BackendUnavailable(f"Shopify GraphQL errors: {body['errors']}")
        return body.get("data") or {}

    # ---- orders ----
    async def search_orders_by_name(self, name: str) -> List[Order]:
        body = await self._request("GET", "orders.json", params={"name": name, "status": "any"})
        return [Order.from_rest(o) for o in body.get("orders", [])]

    async def list_orders(self, limit: int = 250) -> List[Order]:
        body = await self._request("GET", "orders.json", params={"status": "any", "limit": min(limit, 250)})
        return [Order.from_rest(o) for o in body.get("orders", [])]

    async def orders_since(self, since: datetime, financial_status: str = "paid") -> List[Order]:
        params = {
            "status": "any",
            "financial_status": financial_status,
            "updated_at_min": since.isoformat(),
            "limit": 250,
            "fields": ORDER_FIELDS,
        }
        body = await self._request("GET", "orders.json", params=params)
        return [Order.from_rest(o) for o in body.get("orders", [])]

    async def get_order(self, order_id: str) -> Order:
        body = await self._request("GET", f"orders/{order_id}.json")
        return Order.from_rest(body.get("order") or {})

    async def update_order(self, order_id: str, note: str, tags: List[str]) -> Order:
        payload = {"order": {"id": order_id, "note": note, "tags": ", ".join(tags)}}
        body = await self._request("PUT", f"orders/{order_id}.json", json=payload)
        return Order.from_rest(body.get("order") or {})

    async def customer_orders(self, customer: Customer, limit: int = 10) -> List[Order]:
        body = await self._request(
            "GET", f"customers/{customer.legacy_id}/orders.json",
            params={"status": "any", "limit": limit},
        )
        return [Order.from_rest(o) for o in body.get("orders", [])]

    # ---- customers ----
    async def search_customers(self, query: str, first: int = 20) -> List[Customer]:
        data = await self._graphql(CUSTOMER_SEARCH, {"query": query, "first": first})
        nodes = (data.get("customers") or {}).get("nodes") or []
        return [Customer.from_graphql(n) for n in nodes]

    # ---- discounts ----
    async def create_discount_code(self, *, code: str, title: str, kind: str, value: float,
                                   starts_at: datetime, ends_at: datetime,
                                   customer_gid: Optional[str] = None, usage_limit: int = 1) -> str:
        """Create a basic code discount; returns the discount node id."""
        if kind == "percentage":
            gets_value = {"percentage": round(value / 100, 4)}
        else:
            gets_value = {"discountAmount": {"amount": value, "appliesOnEachItem": False}}
        selection = {"customers": {"add": [customer_gid]}} if customer_gid else {"all": True}
        variables = {"input": {
            "title": title,
            "code": code,
            "startsAt": starts_at.isoformat(),
            "endsAt": ends_at.isoformat(),
            "customerSelection": selection,
            "customerGets": {"value": gets_value, "items": {"all": True}},
            "usageLimit": usage_limit,
            "appliesOncePerCustomer": True,
        }}
        data = await self._graphql(DISCOUNT_CREATE, variables)
        result = data.get("discountCodeBasicCreate") or {}
        errors = result.get("userErrors") or []
        if errors:
            messages = "; ".join(str(e.get("message")) for e in errors)
            if "taken" in messages.lower():
                raise CodeCollision(f"code {code} already taken", discount_code=code)
            raise IssuerError(f"discount rejected: {messages}", discount_code=code)
        return (result.get("codeDiscountNode") or {}).get("id")

    # ---- abandoned checkouts ----
    async def find_abandoned_checkout_url(self, email: Optional[str] = None,
                                          phone: Optional[str] = None) -> Optional[str]:
        terms = []
        if email:
            terms.append(f"email:{email}")
        if phone:
            terms.append(f"phone:{phone}")
        if not terms:
            return None
        data = await self._graphql(ABANDONED_CHECKOUTS, {"query": " OR ".join(terms)})
        nodes = (data.get("abandonedCheckouts") or {}).get("nodes") or []
        return nodes[0].get("abandonedCheckoutUrl") if nodes else None

    async def abandoned_checkout_url(self, checkout_id: str) -> Optional[str]:
        gid = checkout_id if checkout_id.startswith("gid://") else f"gid://shopify/AbandonedCheckout/{checkout_id}"
        data = await self._graphql(ABANDONED_CHECKOUT_BY_ID, {"id": gid})
        return (data.get("node") or {}).get("abandonedCheckoutUrl")

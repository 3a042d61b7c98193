import dataclasses
from datetime import datetime, timedelta, timezone

import pytest

from voicedesk.errors import BackendUnavailable, CodeCollision, DispatchError
from voicedesk.models import Customer, LineItem, Order
from voicedesk.services import build_services
from voicedesk.settings import Settings

NOW = datetime.now(timezone.utc)


def make_order(id="1001", order_number="42507", **kw) -> Order:
    kw.setdefault("name", f"#{order_number}")
    kw.setdefault("created_at", NOW - timedelta(days=2))
    kw.setdefault("line_items", [LineItem("Ribeye Steak", 2), LineItem("Kurobuta Bacon", 1)])
    return Order(id=id, order_number=order_number, **kw)


def make_customer(id="gid://shopify/Customer/1", **kw) -> Customer:
    return Customer(id=id, **kw)


class FakeCommerce:
    def __init__(self):
        self.orders = []
        self.customers = []
        self.orders_by_customer = {}
        self.taken_codes = set()
        self.discounts = []
        self.updates = []
        self.abandoned_url = None
        self.fail = False
        self.fail_updates = False

    def _check(self):
        if self.fail:
            raise BackendUnavailable("commerce down")

    async def search_orders_by_name(self, name):
        self._check()
        return [o for o in self.orders if o.name == name]

    async def list_orders(self, limit=250):
        self._check()
        return self.orders[:limit]

    async def orders_since(self, since, financial_status="paid"):
        self._check()
        return [o for o in self.orders if o.created_at and o.created_at >= since]

    async def get_order(self, order_id):
        self._check()
        for o in self.orders:
            if o.id == order_id:
                return dataclasses.replace(o, tags=list(o.tags))
        raise BackendUnavailable(f"no order {order_id}")

    async def update_order(self, order_id, note, tags):
        self._check()
        if self.fail_updates:
            raise BackendUnavailable("update rejected")
        for i, o in enumerate(self.orders):
            if o.id == order_id:
                self.orders[i] = dataclasses.replace(o, note=note, tags=list(tags))
                self.updates.append((order_id, note, list(tags)))
                return self.orders[i]
        raise BackendUnavailable(f"no order {order_id}")

    async def customer_orders(self, customer, limit=10):
        self._check()
        return self.orders_by_customer.get(customer.id, [])[:limit]

    async def search_customers(self, query, first=20):
        self._check()
        field, _, value = query.partition(":")
        if field == "phone":
            return [c for c in self.customers if c.phone == value][:first]
        if field == "email":
            return [c for c in self.customers if (c.email or "").lower() == value.lower()][:first]
        return []

    async def create_discount_code(self, *, code, title, kind, value, starts_at, ends_at,
                                   customer_gid=None, usage_limit=1):
        self._check()
        if code in self.taken_codes:
            raise CodeCollision(f"code {code} already taken", discount_code=code)
        self.taken_codes.add(code)
        self.discounts.append({
            "code": code, "kind": kind, "value": value, "customer_gid": customer_gid,
            "usage_limit": usage_limit, "starts_at": starts_at, "ends_at": ends_at,
        })
        return f"gid://shopify/DiscountCodeNode/{len(self.discounts)}"

    async def find_abandoned_checkout_url(self, email=None, phone=None):
        self._check()
        return self.abandoned_url

    async def abandoned_checkout_url(self, checkout_id):
        self._check()
        return self.abandoned_url


class FakeSms:
    configured = True

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, to, body):
        if self.fail:
            raise DispatchError("SMS send failed: carrier rejected")
        self.sent.append((to, body))
        return f"SM{len(self.sent):04d}"


class FakeMailer:
    configured = True

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, msg):
        if self.fail:
            raise DispatchError("email send failed: timeout")
        self.sent.append(msg)
        return f"msg-{len(self.sent)}"


class FakeMarketing:
    def __init__(self):
        self.discount_events = []
        self.voicemail_events = []

    async def send_discount_event(self, metric, **kw):
        self.discount_events.append((metric, kw))
        return f"{kw['code']}-{kw['channel']}"

    async def send_voicemail_event(self, metric, **kw):
        self.voicemail_events.append((metric, kw))
        return f"voicemail-{kw['call_id']}"


class FakeTelephony:
    def __init__(self):
        self.calls = []

    async def create_phone_call(self, **kw):
        self.calls.append(kw)
        return {"call_id": f"call_{len(self.calls)}", "to_number": kw["to_number"]}

    async def list_agents(self):
        return [{"agent_id": "agent_1"}]

    async def get_agent(self, agent_id):
        return {"agent_id": agent_id}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        data_dir=tmp_path,
        storefront_url="https://shop.example.com/",
        brand_name="Test Store",
        support_inbox="support@example.com",
        support_cc=["lead@example.com"],
        call_window_start="00:00",
        call_window_end="23:59",
        call_window_tz="UTC",
        retell_agent_id="agent_1",
        retell_from_number="+15550001111",
    )


@pytest.fixture
def commerce():
    return FakeCommerce()


@pytest.fixture
def sms():
    return FakeSms()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def marketing():
    return FakeMarketing()


@pytest.fixture
def telephony():
    return FakeTelephony()


@pytest.fixture
def services(settings, commerce, sms, mailer, marketing, telephony):
    return build_services(settings, http=None, commerce=commerce, marketing=marketing,
                          telephony=telephony, sms=sms, mailer=mailer)

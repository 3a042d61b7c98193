from datetime import timedelta

import pytest

from voicedesk.errors import InvalidContact, NotFound
from voicedesk.resolver import OrderResolver, name_forms, rank_customers

from .conftest import NOW, make_customer, make_order


@pytest.fixture
def resolver(commerce):
    return OrderResolver(commerce)


def test_name_forms():
    assert name_forms("42507") == ["42507", "#42507"]
    assert name_forms("#42507") == ["#42507", "42507"]


@pytest.mark.parametrize("spoken", ["42507", "#42507", " 42507 "])
async def test_order_number_format_invariance(commerce, resolver, spoken):
    commerce.orders = [make_order(id="1", order_number="42507")]
    res = await resolver.resolve_order(order_number=spoken)
    assert res.order.id == "1"
    assert res.method == "order_number"


async def test_falls_back_to_scan_by_order_number(commerce, resolver):
    commerce.orders = [make_order(id="7", order_number="42507", name="MEAT-42507")]
    res = await resolver.resolve_order(order_number="42507")
    assert res.order.id == "7"


async def test_phone_picks_most_recent_matching_order(commerce, resolver):
    commerce.orders = [
        make_order(id="old", order_number="1", phone="+1 619-458-7071", created_at=NOW - timedelta(days=9)),
        make_order(id="new", order_number="2", phone="(619) 458-7071", created_at=NOW - timedelta(days=1)),
        make_order(id="other", order_number="3", phone="+15550009999", created_at=NOW),
        make_order(id="stale", order_number="4", phone="6194587071", created_at=NOW - timedelta(days=45)),
    ]
    res = await resolver.resolve_order(phone="6194587071")
    assert res.order.id == "new"
    assert res.method == "phone"


async def test_unknown_order_number_falls_through_to_phone(commerce, resolver):
    commerce.orders = [make_order(id="1", order_number="1", phone="6194587071")]
    res = await resolver.resolve_order(order_number="99999", phone="619-458-7071")
    assert res.method == "phone"


async def test_email_resolves_latest_customer_order(commerce, resolver):
    customer = make_customer(email="jane@example.com")
    commerce.customers = [customer]
    commerce.orders_by_customer[customer.id] = [make_order(id="55", order_number="55")]
    res = await resolver.resolve_order(email="JANE@example.com")
    assert res.order.id == "55"
    assert res.method == "email"


async def test_nothing_found_raises_not_found(resolver):
    with pytest.raises(NotFound) as exc:
        await resolver.resolve_order(order_number="1", phone="6194587071")
    assert "order number" in exc.value.speak


def test_rank_customers_orders_then_spend_then_recency():
    a = make_customer(id="a", orders_count=3, amount_spent=100)
    b = make_customer(id="b", orders_count=3, amount_spent=900)
    c = make_customer(id="c", orders_count=1, amount_spent=5000)
    d = make_customer(id="d", orders_count=3, amount_spent=900, last_order_at=NOW)
    assert [x.id for x in rank_customers([a, b, c, d])] == ["d", "b", "a", "c"]


async def test_resolve_customer_dedupes_phone_forms_and_ranks(commerce, resolver):
    light = make_customer(id="light", phone="6194587071", orders_count=1)
    heavy = make_customer(id="heavy", phone="+16194587071", orders_count=4)
    commerce.customers = [light, heavy]
    match = await resolver.resolve_customer(phone="619-458-7071")
    assert match.customer.id == "heavy"
    assert match.method == "phone"
    assert [c.id for c in match.candidates] == ["heavy", "light"]


async def test_resolve_customer_bad_phone_falls_back_to_email(commerce, resolver):
    commerce.customers = [make_customer(email="jane@example.com")]
    match = await resolver.resolve_customer(phone="12", email="jane@example.com")
    assert match.method == "email"


async def test_resolve_customer_bad_phone_without_email_raises(resolver):
    with pytest.raises(InvalidContact):
        await resolver.resolve_customer(phone="12")


async def test_resolve_customer_not_found(resolver):
    with pytest.raises(NotFound):
        await resolver.resolve_customer(phone="6194587071", email="nobody@example.com")

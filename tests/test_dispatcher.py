from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest

from voicedesk.dispatcher import NotificationDispatcher, build_recovery_url, discount_email, select_channel
from voicedesk.errors import DispatchError, InvalidContact
from voicedesk.models import Contact, DiscountCode

START = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _code(value=15, kind="percentage"):
    return DiscountCode("James15", kind, value, START, START + timedelta(days=30))


@pytest.fixture
def dispatcher(sms, mailer, marketing):
    return NotificationDispatcher(sms, mailer, marketing, brand_name="Test Store")


@pytest.mark.parametrize("contact,preference,expected", [
    (Contact(phone="+16194587071"), None, "sms"),
    (Contact(phone="+16194587071", email="a@example.com"), None, "sms"),
    (Contact(email="a@example.com"), None, "email"),
    (Contact(email="a@example.com"), "sms", "email"),
    (Contact(phone="+16194587071", email="a@example.com"), "email", "email"),
    (Contact(phone="+16194587071"), "email", "sms"),
    (Contact(phone="+16194587071"), "event", "event"),
])
def test_select_channel(contact, preference, expected):
    assert select_channel(contact, preference) == expected


def test_select_channel_needs_a_contact():
    with pytest.raises(InvalidContact):
        select_channel(Contact(name="Jane"))


def test_recovery_url_from_storefront():
    url = build_recovery_url("https://shop.example.com/", "James15", "sms")
    q = parse_qs(urlsplit(url).query)
    assert q == {
        "discount": ["James15"],
        "utm_source": ["voice_agent"],
        "utm_medium": ["sms"],
        "utm_campaign": ["discount_recovery"],
    }


def test_recovery_url_keeps_checkout_query():
    url = build_recovery_url("https://shop.example.com/checkouts/abc/recover?key=xyz", "James15",
                             "email", abandoned=True)
    parts = urlsplit(url)
    q = parse_qs(parts.query)
    assert parts.path == "/checkouts/abc/recover"
    assert q["key"] == ["xyz"]
    assert q["utm_campaign"] == ["abandoned_cart_recovery"]
    assert q["utm_medium"] == ["email"]


async def test_sms_dispatch(dispatcher, sms):
    receipt = await dispatcher.dispatch(Contact("James Smith", phone="+16194587071"), _code(),
                                        "https://shop.example.com/?discount=James15", "sms")
    assert receipt.delivered and receipt.channel == "sms" and receipt.reference == "SM0001"
    to, body = sms.sent[0]
    assert to == "+16194587071"
    assert "James15" in body and "Hi James!" in body and "15%" in body


async def test_email_dispatch(dispatcher, mailer):
    receipt = await dispatcher.dispatch(Contact("Jane", email="jane@example.com"), _code(10, "fixed_amount"),
                                        "https://shop.example.com/", "email")
    assert receipt.channel == "email"
    msg = mailer.sent[0]
    assert msg.to == "jane@example.com"
    assert "$10" in msg.subject
    assert "James15" in msg.html


def test_discount_email_escapes_markup():
    msg = discount_email(Contact("<script>", email="x@example.com"), _code(),
                         'https://shop.example.com/?a=1&b="2"', "Test Store")
    assert "&lt;script&gt;" in msg.html
    assert "<script>" not in msg.html
    assert 'href="https://shop.example.com/?a=1&amp;b=&quot;2&quot;"' in msg.html
    assert "Hi <script>," in msg.text


async def test_event_dispatch_is_not_confirmed_delivery(dispatcher, marketing):
    receipt = await dispatcher.dispatch(Contact("Jane", phone="+16194587071"), _code(),
                                        "https://shop.example.com/", "event")
    assert receipt.channel == "event"
    assert receipt.delivered is False
    metric, props = marketing.discount_events[0]
    assert metric == "Discount Offered"
    assert props["channel"] == "sms"
    assert props["code"] == "James15"


async def test_transport_failure_propagates(dispatcher, mailer):
    mailer.fail = True
    with pytest.raises(DispatchError):
        await dispatcher.dispatch(Contact(email="jane@example.com"), _code(), "https://x/", "email")

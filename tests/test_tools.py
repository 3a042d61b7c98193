from datetime import timedelta
from types import SimpleNamespace

import pytest
import requests
from twilio.base.exceptions import TwilioException

from voicedesk.agent_functions import FUNCTION_MAP
from voicedesk.errors import DispatchError, NotFound
from voicedesk.models import LineItem
from voicedesk.send_sms import TwilioSms, discount_sms_body
from voicedesk.speech import clean_title, items_for_display, items_for_speech, product_for_speech
from voicedesk.tickets import Ticket, render_ticket
from voicedesk.webhooks import decode_tool_call

from .conftest import NOW, make_customer, make_order


def _tool(name, **args):
    return decode_tool_call({"args": args, "call": {}}, name=name)


# ---- speech ----
def test_titles_read_naturally():
    assert clean_title("NY Strip | 12-14oz") == "NY Strip 12 to 14 ounces"
    assert clean_title("A5 Wagyu BMS 10+") == "A-five Wagyu marbling score 10"


def test_only_the_cut_name_is_pluralized():
    assert product_for_speech(2, "Ribeye Steak") == "two Ribeye Steaks"
    assert product_for_speech(1, "Ribeye Steak") == "one Ribeye Steak"
    assert product_for_speech(12, "Bacon") == "12 Bacon"


def test_item_lists():
    items = [LineItem("Ribeye Steak", 2), LineItem("Kurobuta Bacon", 1)]
    assert items_for_speech(items) == "two Ribeye Steaks, one Kurobuta Bacon"
    assert items_for_display(items) == "2x Ribeye Steak, 1x Kurobuta Bacon"


# ---- tickets ----
def test_ticket_without_customer_email_is_flagged():
    msg = render_ticket(Ticket("Refund", "42507", "Jane Doe", customer_phone="+16194587071"),
                        "support@example.com", ["lead@example.com"])
    assert msg.subject == "[Refund Request] Order #42507 - Jane Doe - NO CUSTOMER EMAIL"
    assert msg.cc == ["lead@example.com"]
    assert msg.headers["X-Priority"] == "1"
    assert msg.headers["X-Missing-Customer-Email"] == "true"
    assert "MISSING - MUST OBTAIN" in msg.text


def test_ticket_ccs_customer_and_escapes_html():
    msg = render_ticket(Ticket("Replacement", "42507", "Jane", customer_email="jane@example.com",
                               reason="<b>thawed</b>"), "support@example.com", [])
    assert msg.cc == ["jane@example.com"]
    assert msg.headers["X-Priority"] == "2"
    assert "&lt;b&gt;thawed&lt;/b&gt;" in msg.html


async def test_replacement_notes_order_and_files_ticket(services, commerce, mailer):
    commerce.orders = [make_order(id="3", order_number="42507", email="jane@example.com", customer_name="Jane")]
    body = await FUNCTION_MAP["request_replacement"](
        services, _tool("request_replacement", order_number="42507", item_title="Ribeye Steak",
                        quantity="2", reason="arrived thawed"),
    )
    assert body["ticket_sent"] is True
    saved = commerce.orders[0]
    assert "replacement-requested" in saved.tags
    assert saved.note == "Replacement requested: 2x Ribeye Steak | Reason: arrived thawed"
    sent = mailer.sent[0]
    assert sent.to == "support@example.com"
    assert "jane@example.com" in sent.cc


async def test_refund_survives_mail_failure(services, commerce, mailer):
    commerce.orders = [make_order(id="3", order_number="42507")]
    mailer.fail = True
    body = await FUNCTION_MAP["request_refund"](
        services, _tool("request_refund", order_number="42507", amount="49.5", reason="late"),
    )
    assert body["ok"] is True
    assert body["ticket_sent"] is False
    assert commerce.orders[0].note == "Refund requested ($49.50) | Reason: late"


async def test_feedback_with_opt_out(services, commerce):
    commerce.orders = [make_order(id="3", order_number="42507", phone="+16194587071")]
    body = await FUNCTION_MAP["capture_feedback"](
        services, _tool("capture_feedback", order_number="42507", satisfied_score="8",
                        requested_opt_out="yes"),
    )
    assert body["opted_out"] is True
    assert services.dnc.contains("6194587071")
    saved = commerce.orders[0]
    assert "do not call" in saved.tags
    assert saved.note == "Post-delivery satisfaction: 8/10\nCustomer requested no further calls"


async def test_tool_needs_order_number(services):
    with pytest.raises(NotFound):
        await FUNCTION_MAP["capture_feedback"](services, _tool("capture_feedback", satisfied_score=5))


async def test_declined_discount_speaks(services, commerce):
    customer = make_customer(phone="+16194587071")
    commerce.customers = [customer]
    commerce.orders_by_customer[customer.id] = [make_order(discount_codes=["X1"], created_at=NOW - timedelta(days=1))]
    body = await FUNCTION_MAP["send_discount"](services, _tool("send_discount", customer_phone="6194587071"))
    assert body["issued"] is False
    assert body["speak"].startswith("I checked and you've already used a discount recently")


# ---- sms transport ----
class _Messages:
    def __init__(self, fail=False, error=None):
        self.fail = fail
        self.error = error
        self.created = []

    def create(self, **kw):
        if self.error is not None:
            raise self.error
        if self.fail:
            raise TwilioException("invalid 'To' number")
        self.created.append(kw)
        return SimpleNamespace(sid="SM123")


async def test_twilio_send_uses_from_number():
    client = SimpleNamespace(messages=_Messages())
    sid = await TwilioSms("", "", "+15550001111", client=client).send("+16194587071", "hello")
    assert sid == "SM123"
    assert client.messages.created == [{"from_": "+15550001111", "to": "+16194587071", "body": "hello"}]


async def test_twilio_failure_is_dispatch_error():
    client = SimpleNamespace(messages=_Messages(fail=True))
    with pytest.raises(DispatchError):
        await TwilioSms("", "", "+15550001111", client=client).send("+1", "hello")


async def test_twilio_connection_error_is_dispatch_error():
    error = requests.exceptions.ConnectionError("api.twilio.com unreachable")
    client = SimpleNamespace(messages=_Messages(error=error))
    with pytest.raises(DispatchError):
        await TwilioSms("", "", "+15550001111", client=client).send("+16194587071", "hello")


def test_twilio_client_gets_request_timeout():
    sms = TwilioSms("AC123", "secret", "+15550001111", timeout=4.0)
    assert sms._client.http_client.timeout == 4.0


async def test_unconfigured_twilio():
    with pytest.raises(DispatchError):
        await TwilioSms("", "", "").send("+16194587071", "hello")


def test_sms_body():
    body = discount_sms_body("James", "Test Store", "15%", "James15", "https://shop.example.com/?discount=James15", 1)
    assert "Here's your 15% off code: James15" in body
    assert "Code expires tomorrow." in body
    assert body.endswith("Reply STOP to opt out.")

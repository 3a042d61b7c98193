# dispatcher.py
"""Deliver an issued code over exactly one channel.

``sms`` and ``email`` are sent by this service; ``event`` hands the code to the
marketing platform and lets its flows pick the transport.
"""
import html
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .errors import InvalidContact
from .mailer import MailMessage
from .models import Contact, DiscountCode
from .send_sms import discount_sms_body

logger = logging.getLogger(__name__)

CHANNELS = ("sms", "email", "event")


@dataclass
class Receipt:
    delivered: bool  # False for "event": accepted by the sink, delivery unknown
    channel: str
    reference: Optional[str] = None

    def as_dict(self) -> dict:
        return {"delivered": self.delivered, "channel": self.channel, "reference": self.reference}


def select_channel(contact: Contact, preference: Optional[str] = None) -> str:
    if preference == "event":
        if not (contact.phone or contact.email):
            raise InvalidContact("no phone or email to notify")
        return "event"
    if preference == "email" and contact.email:
        return "email"
    if contact.phone:
        return "sms"
    if contact.email:
        return "email"
    raise InvalidContact("no phone or email to notify")


def build_recovery_url(base_url: str, code: str, channel: str, utm_source: str = "voice_agent",
                       abandoned: bool = False) -> str:
    """Attach the code and UTM attribution, keeping any query the URL already has."""
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update({
        "discount": code,
        "utm_source": utm_source,
        "utm_medium": channel,
        "utm_campaign": "abandoned_cart_recovery" if abandoned else "discount_recovery",
    })
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), parts.fragment))


def discount_email(contact: Contact, discount: DiscountCode, url: str, brand: str) -> MailMessage:
    name = contact.first_name or "there"
    expiry = discount.ends_at.strftime("%B %d, %Y")
    body = f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2>Hi {html.escape(name)},</h2>
      <p>Thank you for speaking with us today. As promised, here's your {discount.text} discount code:</p>
      <div style="background: #f5f5f5; padding: 20px; text-align: center; font-size: 24px; font-weight: bold;">
        {html.escape(discount.code)}
      </div>
      <p style="text-align: center;"><a href="{html.escape(url, quote=True)}">Shop now</a></p>
      <p style="color: #666; font-size: 12px;">Single use. Expires {expiry}.</p>
    </div>
    """
    text = (
        f"Hi {name},\n\nHere's your {discount.text} discount code: {discount.code}\n\n"
        f"Shop now: {url}\n\nSingle use. Expires {expiry}."
    )
    return MailMessage(
        to=contact.email,
        subject=f"Your {discount.text} off code from {brand}",
        html=body,
        text=text,
        headers={"X-Discount-Code": discount.code},
    )


class NotificationDispatcher:
    def __init__(self, sms, mailer, marketing, brand_name: str = "our store",
                 discount_metric: str = "Discount Offered"):
        self.sms = sms
        self.mailer = mailer
        self.marketing = marketing
        self.brand_name = brand_name
        self.discount_metric = discount_metric

    async def dispatch(self, contact: Contact, discount: DiscountCode, recovery_url: str,
                       channel: str, ttl_days: int = 30) -> Receipt:
        """Send ``discount`` over ``channel``. Transport failures raise DispatchError."""
        if channel not in CHANNELS:
            raise ValueError(f"unknown channel {channel!r}")

        if channel == "sms":
            if not contact.phone:
                raise InvalidContact("sms channel needs a phone number")
            body = discount_sms_body(contact.first_name, self.brand_name, discount.text,
                                     discount.code, recovery_url, ttl_days)
            sid = await self.sms.send(contact.phone, body)
            logger.info(f"Discount {discount.code} texted to {contact.phone} (sid={sid})")
            return Receipt(True, "sms", sid)

        if channel == "email":
            if not contact.email:
                raise InvalidContact("email channel needs an email address")
            message_id = await self.mailer.send(discount_email(contact, discount, recovery_url, self.brand_name))
            logger.info(f"Discount {discount.code} emailed to {contact.email} (id={message_id})")
            return Receipt(True, "email", message_id)

        # the marketing flow decides email vs text; tell it which one we can reach
        medium = "sms" if contact.phone else "email"
        event_id = await self.marketing.send_discount_event(
            self.discount_metric,
            email=contact.email,
            phone=contact.phone,
            first_name=contact.first_name,
            code=discount.code,
            value=discount.value,
            kind=discount.kind,
            text=discount.text,
            checkout_url=recovery_url,
            channel=medium,
        )
        logger.info(f"Discount {discount.code} event published for {contact.phone or contact.email} via {medium}")
        return Receipt(False, "event", event_id)

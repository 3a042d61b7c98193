# services.py
from dataclasses import dataclass

import httpx

from .annotator import OrderAnnotator
from .calling import CallWindow, OutboundDialer
from .commerce import ShopifyClient
from .discounts import DiscountService
from .dispatcher import NotificationDispatcher
from .dnc import DoNotCallList
from .eligibility import EligibilityEvaluator
from .events import CallEventLog
from .issuer import DiscountIssuer
from .mailer import PostmarkMailer
from .marketing import KlaviyoClient
from .resolver import OrderResolver
from .send_sms import TwilioSms
from .settings import Settings
from .telephony import RetellClient
from .tickets import TicketDesk
from .webhooks import WebhookProcessor


@dataclass
class Services:
    settings: Settings
    commerce: ShopifyClient
    marketing: KlaviyoClient
    telephony: RetellClient
    resolver: OrderResolver
    evaluator: EligibilityEvaluator
    issuer: DiscountIssuer
    dispatcher: NotificationDispatcher
    annotator: OrderAnnotator
    discounts: DiscountService
    dnc: DoNotCallList
    event_log: CallEventLog
    dialer: OutboundDialer
    tickets: TicketDesk
    webhooks: WebhookProcessor


def build_services(settings: Settings, http: httpx.AsyncClient, *, commerce=None, marketing=None,
                   telephony=None, sms=None, mailer=None) -> Services:
    """Wire every component from ``settings``; any client can be passed in instead."""
    commerce = commerce or ShopifyClient(
        http, settings.shopify_store_domain, settings.shopify_admin_token, settings.shopify_api_version,
    )
    marketing = marketing or KlaviyoClient(http, settings.klaviyo_api_key, settings.klaviyo_revision)
    telephony = telephony or RetellClient(http, settings.retell_api_key, settings.retell_base_url)
    sms = sms or TwilioSms(settings.twilio_account_sid, settings.twilio_auth_token, settings.twilio_from_number,
                           timeout=settings.http_timeout)
    mailer = mailer or PostmarkMailer(http, settings.postmark_server_token, settings.mail_from)

    dnc = DoNotCallList(settings.data_dir / "dnc.json")
    event_log = CallEventLog(settings.data_dir / "calls.jsonl")
    resolver = OrderResolver(commerce)
    evaluator = EligibilityEvaluator(commerce, resolver)
    issuer = DiscountIssuer(commerce, resolver, code_prefix=settings.code_prefix)
    dispatcher = NotificationDispatcher(sms, mailer, marketing, settings.brand_name, settings.klaviyo_discount_metric)
    annotator = OrderAnnotator(commerce, dnc)
    discounts = DiscountService(settings, commerce, resolver, evaluator, issuer, dispatcher, annotator)
    window = CallWindow(settings.call_window_start, settings.call_window_end, settings.call_window_tz)
    dialer = OutboundDialer(telephony, commerce, dnc, window, settings.retell_agent_id, settings.retell_from_number)
    tickets = TicketDesk(mailer, settings.support_inbox, settings.support_cc)
    webhooks = WebhookProcessor(event_log, resolver, annotator, discounts, marketing,
                                voicemail_metric=settings.klaviyo_voicemail_metric)

    return Services(
        settings=settings,
        commerce=commerce,
        marketing=marketing,
        telephony=telephony,
        resolver=resolver,
        evaluator=evaluator,
        issuer=issuer,
        dispatcher=dispatcher,
        annotator=annotator,
        discounts=discounts,
        dnc=dnc,
        event_log=event_log,
        dialer=dialer,
        tickets=tickets,
        webhooks=webhooks,
    )

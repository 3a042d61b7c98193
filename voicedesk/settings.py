# settings.py
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class DiscountPolicy:
    """Ceiling and lifetime for codes issued by one delivery flow."""
    max_percentage: int
    ttl_days: int


def _csv(value: str) -> List[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


@dataclass
class Settings:
    # Shopify
    shopify_store_domain: str = ""
    shopify_admin_token: str = ""
    shopify_api_version: str = "2024-10"
    storefront_url: str = "https://example.com/"

    # Klaviyo
    klaviyo_api_key: str = ""
    klaviyo_revision: str = "2024-10-15"
    klaviyo_discount_metric: str = "Discount Offered"
    klaviyo_voicemail_metric: str = "Voicemail Left"

    # Retell
    retell_api_key: str = ""
    retell_base_url: str = "https://api.retellai.com"
    retell_agent_id: str = ""
    retell_from_number: str = ""

    # Twilio SMS
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_from_number: str = ""

    # Postmark
    postmark_server_token: str = ""
    mail_from: str = ""
    support_inbox: str = ""
    support_cc: List[str] = field(default_factory=list)

    # Outbound calling window (local time)
    call_window_start: str = "09:00"
    call_window_end: str = "19:30"
    call_window_tz: str = "America/Los_Angeles"

    # Discounts
    direct_policy: DiscountPolicy = DiscountPolicy(max_percentage=15, ttl_days=30)
    event_policy: DiscountPolicy = DiscountPolicy(max_percentage=20, ttl_days=1)
    default_channel: str = "sms"
    code_prefix: str = "THANKS"
    utm_source: str = "voice_agent"
    brand_name: str = "our store"

    data_dir: Path = Path(__file__).resolve().parent.parent / "data"
    http_timeout: float = 10.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv
        return cls(
            shopify_store_domain=env("SHOPIFY_STORE_DOMAIN", ""),
            shopify_admin_token=env("SHOPIFY_ADMIN_TOKEN", "") or env("SHOPIFY_ACCESS_TOKEN", ""),
            shopify_api_version=env("SHOPIFY_API_VERSION", "2024-10"),
            storefront_url=env("STOREFRONT_URL", "https://example.com/"),
            klaviyo_api_key=env("KLAVIYO_API_KEY", "") or env("KLAVIYO_PRIVATE_KEY", ""),
            klaviyo_revision=env("KLAVIYO_REVISION", "2024-10-15"),
            klaviyo_discount_metric=env("KLAVIYO_DISCOUNT_METRIC", "Discount Offered"),
            klaviyo_voicemail_metric=env("KLAVIYO_VOICEMAIL_METRIC", "Voicemail Left"),
            retell_api_key=env("RETELL_API_KEY", ""),
            retell_base_url=env("RETELL_BASE_URL", "https://api.retellai.com"),
            retell_agent_id=env("RETELL_AGENT_ID", ""),
            retell_from_number=env("RETELL_FROM_NUMBER", ""),
            twilio_account_sid=env("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=env("TWILIO_AUTH_TOKEN", ""),
            twilio_from_number=env("TWILIO_PHONE_NUMBER", ""),
            postmark_server_token=env("POSTMARK_SERVER_TOKEN", ""),
            mail_from=env("MAIL_FROM", ""),
            support_inbox=env("SUPPORT_INBOX", ""),
            support_cc=_csv(env("SUPPORT_CC", "")),
            call_window_start=env("CALL_WINDOW_START", "09:00"),
            call_window_end=env("CALL_WINDOW_END", "19:30"),
            call_window_tz=env("CALL_WINDOW_LOCAL_TZ", "America/Los_Angeles"),
            direct_policy=DiscountPolicy(
                max_percentage=int(env("DISCOUNT_MAX_PERCENT", "15")),
                ttl_days=int(env("DISCOUNT_TTL_DAYS", "30")),
            ),
            event_policy=DiscountPolicy(
                max_percentage=int(env("EVENT_DISCOUNT_MAX_PERCENT", "20")),
                ttl_days=int(env("EVENT_DISCOUNT_TTL_DAYS", "1")),
            ),
            default_channel=env("DISCOUNT_DEFAULT_CHANNEL", "sms"),
            code_prefix=env("DISCOUNT_CODE_PREFIX", "THANKS"),
            utm_source=env("UTM_SOURCE", "voice_agent"),
            brand_name=env("BRAND_NAME", "our store"),
            data_dir=Path(env("DATA_DIR", "")) if env("DATA_DIR") else cls.data_dir,
            http_timeout=float(env("HTTP_TIMEOUT_SECONDS", "10")),
            log_level=env("LOG_LEVEL", "INFO"),
            host=env("HOST", "0.0.0.0"),
            port=int(env("PORT", "8080")),
        )

    def policy_for(self, channel: str) -> DiscountPolicy:
        return self.event_policy if channel == "event" else self.direct_policy

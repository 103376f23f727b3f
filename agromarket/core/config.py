"""Environment-driven configuration objects for the marketplace client."""
from __future__ import annotations

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

SMS_SENDER_IDS = {
    "umesikia": "UMS_SMS",
    "blessed_texts": "FERRITE",
}


def _str_to_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"true", "1", "yes", "y"}


def _parse_unit_scales(raw: str | None) -> tuple[int, ...]:
    if not raw:
        return (1, 100)
    scales: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        value = int(part)
        if value < 1:
            raise ValueError(f"PAYSTACK_UNIT_SCALES entries must be positive, got {value}")
        scales.append(value)
    return tuple(scales) or (1, 100)


@dataclass(slots=True)
class ApiConfig:
    base_url: str = "http://localhost:3000/api"
    prefix: str = "/agro"
    timeout: float = 15.0


@dataclass(slots=True)
class PaymentConfig:
    unit_scales: tuple[int, ...] = (1, 100)
    verify_retry_attempts: int = 2
    currency: str = "KES"


@dataclass(slots=True)
class SmsConfig:
    api_url: str | None = None
    api_key: str | None = None
    provider: str = "umesikia"
    max_length: int = 160

    @property
    def sender_id(self) -> str:
        return SMS_SENDER_IDS.get(self.provider, SMS_SENDER_IDS["umesikia"])

    @property
    def enabled(self) -> bool:
        return bool(self.api_url)


@dataclass(slots=True)
class Settings:
    api: ApiConfig = field(default_factory=ApiConfig)
    payment: PaymentConfig = field(default_factory=PaymentConfig)
    sms: SmsConfig = field(default_factory=SmsConfig)
    enforce_status_transitions: bool = True
    receipt_brand: str = "SmartLivestock"
    redis_url: str | None = None
    sentry_dsn: str | None = None
    environment: str = "development"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Load environment variables once and expose typed settings."""
    load_dotenv()

    api = ApiConfig(
        base_url=os.getenv("API_URL", "http://localhost:3000/api").rstrip("/"),
        prefix=os.getenv("MARKETPLACE_PREFIX", "/agro"),
        timeout=float(os.getenv("HTTP_TIMEOUT", "15")),
    )

    payment = PaymentConfig(
        unit_scales=_parse_unit_scales(os.getenv("PAYSTACK_UNIT_SCALES")),
        verify_retry_attempts=max(1, int(os.getenv("VERIFY_RETRY_ATTEMPTS", "2"))),
        currency=os.getenv("CURRENCY", "KES"),
    )

    sms_provider = os.getenv("SMS_PROVIDER", "umesikia").strip().lower()
    if sms_provider not in SMS_SENDER_IDS:
        raise ValueError(
            f"SMS_PROVIDER must be one of {sorted(SMS_SENDER_IDS)}, got {sms_provider!r}"
        )
    sms = SmsConfig(
        api_url=os.getenv("SMS_API_URL") or None,
        api_key=os.getenv("SMS_API_KEY") or None,
        provider=sms_provider,
        max_length=int(os.getenv("SMS_MAX_LENGTH", "160")),
    )

    return Settings(
        api=api,
        payment=payment,
        sms=sms,
        enforce_status_transitions=_str_to_bool(
            os.getenv("ENFORCE_STATUS_TRANSITIONS"), default=True
        ),
        receipt_brand=os.getenv("RECEIPT_BRAND", "SmartLivestock"),
        redis_url=os.getenv("REDIS_URL") or None,
        sentry_dsn=os.getenv("SENTRY_DSN") or None,
        environment=os.getenv("ENVIRONMENT", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )

"""
Application configuration.

All settings are read from the environment exactly once, into an immutable
Settings object that is passed explicitly to services.
"""
import os
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import FrozenSet


def _csv(value: str) -> FrozenSet[str]:
    return frozenset(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    # ✅ Database
    database_url: str = "sqlite:///./leadmarket.db"

    # ✅ Security
    secret_key: str = "dev-secret-change-me"
    algorithm: str = "HS256"
    cron_secret: str = ""

    # ✅ Frontend (deep links)
    frontend_url: str = "https://bueeze.ch"

    # ✅ Email (SMTP2GO JSON API)
    smtp2go_api_key: str = ""
    smtp2go_api_url: str = "https://api.smtp2go.com/v3/email/send"
    email_sender: str = "noreply@bueeze.ch"
    email_max_retries: int = 3
    email_timeout_seconds: float = 10.0
    outbox_max_attempts: int = 5
    outbox_batch_size: int = 50
    outbox_claim_timeout_minutes: int = 15

    # ✅ Payrexx
    payrexx_webhook_secret: str = ""
    payrexx_signature_header: str = "X-Webhook-Signature"

    # ✅ Marketplace rules
    proposal_window_days: int = 14
    lead_token_ttl_days: int = 7
    reminder_lookahead_hours: int = 48
    subscription_warning_days: int = 7
    conversation_token_ttl_days: int = 30
    rating_token_ttl_days: int = 30
    rating_reminder_after_days: int = 7
    rating_reminder_window_days: int = 7
    payment_reminder_first_hours: int = 48
    payment_reminder_final_hours: int = 168
    single_use_token_types: FrozenSet[str] = field(
        default_factory=lambda: frozenset({"proposal", "dashboard"})
    )

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        defaults = cls()
        single_use = os.getenv("SINGLE_USE_TOKEN_TYPES")
        return cls(
            database_url=os.getenv("DATABASE_URL", defaults.database_url),
            secret_key=os.getenv("SECRET_KEY", defaults.secret_key),
            algorithm=os.getenv("ALGORITHM", defaults.algorithm),
            cron_secret=os.getenv("CRON_SECRET", defaults.cron_secret),
            frontend_url=os.getenv("FRONTEND_URL", defaults.frontend_url).rstrip("/"),
            smtp2go_api_key=os.getenv("SMTP2GO_API_KEY", defaults.smtp2go_api_key),
            smtp2go_api_url=os.getenv("SMTP2GO_API_URL", defaults.smtp2go_api_url),
            email_sender=os.getenv("EMAIL_SENDER", defaults.email_sender),
            outbox_max_attempts=int(os.getenv("OUTBOX_MAX_ATTEMPTS", defaults.outbox_max_attempts)),
            payrexx_webhook_secret=os.getenv("PAYREXX_WEBHOOK_SECRET", defaults.payrexx_webhook_secret),
            proposal_window_days=int(os.getenv("PROPOSAL_WINDOW_DAYS", defaults.proposal_window_days)),
            conversation_token_ttl_days=int(os.getenv("CONVERSATION_TOKEN_TTL_DAYS", defaults.conversation_token_ttl_days)),
            rating_token_ttl_days=int(os.getenv("RATING_TOKEN_TTL_DAYS", defaults.rating_token_ttl_days)),
            single_use_token_types=_csv(single_use) if single_use is not None else defaults.single_use_token_types,
            log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with some fields replaced (settings stay immutable)."""
        return replace(self, **changes)


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    return Settings.from_env()

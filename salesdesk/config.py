# FILE: salesdesk/config.py
# DESCRIPTION: Runtime settings loaded from the environment with fail-fast validation.

from __future__ import annotations

import os
import secrets
from dataclasses import dataclass, replace
from datetime import timedelta

from dotenv import load_dotenv

from salesdesk.core.errors import ConfigurationError
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.config", "salesdesk.log")


@dataclass(frozen=True)
class Settings:
    """All tunables for the web app, the dispatcher and the reminder scheduler."""

    database_url: str = "sqlite:///salesdesk.db"
    secret_key: str = "dev-secret"
    csrf_secret: str = ""
    public_base_url: str = "http://localhost:5000"

    proposal_validity_days: int = 30
    contract_link_validity_days: int = 30

    dispatch_workers: int = 4
    activity_log_attempts: int = 3

    reminder_24h_interval_minutes: int = 24 * 60
    reminder_24h_grace_minutes: int = 12 * 60
    reminder_1h_interval_minutes: int = 15
    reminder_1h_grace_minutes: float = 7.5
    expiry_sweep_interval_minutes: int = 60

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_sender: str = "no-reply@localhost"
    smtp_use_tls: bool = True

    realtime_webhook_url: str = ""
    disable_webhooks: bool = False

    @classmethod
    def from_env(cls, env_file: str | None = None) -> "Settings":
        load_dotenv(env_file or os.getenv("SALESDESK_ENV_FILE", ".env"))

        csrf_secret = os.getenv("CSRF_SECRET", "")
        if not csrf_secret:
            logger.warning("CSRF_SECRET not set. CSRF tokens will be invalidated on restart.")
            csrf_secret = secrets.token_hex(32)

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///salesdesk.db"),
            secret_key=os.getenv("SECRET_KEY", "dev-secret"),
            csrf_secret=csrf_secret,
            public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:5000"),
            proposal_validity_days=_get_env_int("PROPOSAL_VALIDITY_DAYS", default=30, minimum=1),
            contract_link_validity_days=_get_env_int("CONTRACT_LINK_VALIDITY_DAYS", default=30, minimum=1),
            dispatch_workers=_get_env_int("DISPATCH_WORKERS", default=4, minimum=1),
            activity_log_attempts=_get_env_int("ACTIVITY_LOG_ATTEMPTS", default=3, minimum=1),
            reminder_24h_interval_minutes=_get_env_int("REMINDER_24H_INTERVAL_MINUTES", default=24 * 60, minimum=1),
            reminder_24h_grace_minutes=_get_env_float("REMINDER_24H_GRACE_MINUTES", default=12 * 60),
            reminder_1h_interval_minutes=_get_env_int("REMINDER_1H_INTERVAL_MINUTES", default=15, minimum=1),
            reminder_1h_grace_minutes=_get_env_float("REMINDER_1H_GRACE_MINUTES", default=7.5),
            expiry_sweep_interval_minutes=_get_env_int("EXPIRY_SWEEP_INTERVAL_MINUTES", default=60, minimum=1),
            smtp_host=os.getenv("SMTP_HOST", ""),
            smtp_port=_get_env_int("SMTP_PORT", default=587, minimum=1),
            smtp_username=os.getenv("SMTP_USERNAME", ""),
            smtp_password=os.getenv("SMTP_PASSWORD", ""),
            smtp_sender=os.getenv("SMTP_SENDER", "no-reply@localhost"),
            smtp_use_tls=os.getenv("SMTP_USE_TLS", "true").lower() != "false",
            realtime_webhook_url=os.getenv("REALTIME_WEBHOOK_URL", ""),
            disable_webhooks=os.getenv("DISABLE_WEBHOOKS", "").lower() == "true",
        ).validated()

    def validated(self) -> "Settings":
        """Check cross-field constraints. Raises ConfigurationError on invalid configuration."""
        if not self.database_url.strip():
            raise ConfigurationError("DATABASE_URL must be non-empty")
        if not self.csrf_secret:
            return replace(self, csrf_secret=secrets.token_hex(32)).validated()

        for label, interval, grace in (
            ("REMINDER_24H", self.reminder_24h_interval_minutes, self.reminder_24h_grace_minutes),
            ("REMINDER_1H", self.reminder_1h_interval_minutes, self.reminder_1h_grace_minutes),
        ):
            if grace <= 0:
                raise ConfigurationError(f"{label}_GRACE_MINUTES must be positive")
            # A window narrower than the polling interval lets events fall between two ticks.
            if 2 * grace < interval:
                raise ConfigurationError(
                    f"{label} window ({2 * grace} min) is narrower than its polling interval ({interval} min)"
                )
        return self

    @property
    def proposal_validity(self) -> timedelta:
        return timedelta(days=self.proposal_validity_days)

    @property
    def contract_link_validity(self) -> timedelta:
        return timedelta(days=self.contract_link_validity_days)


def _get_env_int(name: str, *, default: int, minimum: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _get_env_float(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc

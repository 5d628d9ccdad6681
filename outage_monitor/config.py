"""Configuration management for the outage monitor."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from outage_monitor.classifier import DEFAULT_KEYWORDS, ClassifierKeywords
from outage_monitor.controller import DEFAULT_RECOVERY_MAX_SECONDS, DEFAULT_RECOVERY_MIN_SECONDS
from outage_monitor.fetcher import Address
from outage_monitor.telegram import TelegramConfig

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")


class AddressConfig(BaseModel):
    """The single monitored address, as the provider's form expects it."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    city: str = Field(min_length=1, description="City value for the provider form")
    street: str = Field(min_length=1, description="Street value for the provider form")
    house: str = Field(min_length=1, description="House number key in the provider response")

    @field_validator("city", "street", "house", mode="before")
    @classmethod
    def _as_text(cls, value: Any) -> Any:
        # YAML turns `house: 12` into an int.
        return str(value) if isinstance(value, (int, float)) else value


class RecoveryConfirmationConfig(BaseModel):
    """Randomized wait before the single recovery re-check."""
    min_seconds: float = Field(default=DEFAULT_RECOVERY_MIN_SECONDS, ge=0, description="Lower bound of the wait")
    max_seconds: float = Field(default=DEFAULT_RECOVERY_MAX_SECONDS, ge=0, description="Upper bound of the wait")

    @model_validator(mode="after")
    def _ordered(self) -> "RecoveryConfirmationConfig":
        if self.max_seconds < self.min_seconds:
            raise ValueError("recovery_confirmation requires min_seconds <= max_seconds")
        return self


class NotificationsConfig(BaseModel):
    new_message_each_day: bool = Field(
        default=False, description="Send a fresh message when the site-local day rolls over"
    )


class ClassifierConfig(BaseModel):
    """Keyword lists (lowercase substrings) driving outage categories."""
    model_config = ConfigDict(extra="forbid")

    absent: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS.absent))
    emergency: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS.emergency))
    urgent: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS.urgent))
    stabilization: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS.stabilization))
    scheduled: list[str] = Field(default_factory=lambda: list(DEFAULT_KEYWORDS.scheduled))

    @field_validator("absent", "emergency", "urgent", "stabilization", "scheduled")
    @classmethod
    def _normalize(cls, items: list[str]) -> list[str]:
        return [s.strip().lower() for s in items if s and s.strip()]

    def to_keywords(self) -> ClassifierKeywords:
        return ClassifierKeywords(
            absent=self.absent,
            emergency=self.emergency,
            urgent=self.urgent,
            stabilization=self.stabilization,
            scheduled=self.scheduled,
        )


class MonitorConfig(BaseModel):
    """Main configuration for the outage monitor."""
    model_config = ConfigDict(extra="forbid")

    shutdowns_page: str = Field(description="Provider page that hosts the shutdowns form")
    address: AddressConfig
    timezone: str = Field(default="Europe/Kyiv", description="Site timezone for dates and 'today'")
    state_path: str = Field(default="data/last_message.json", description="Notification state JSON file")
    log_level: str = Field(default="INFO", description="Logging level")
    browser_timeout_seconds: float = Field(default=60.0, ge=1.0, description="Page navigation timeout")
    recovery_confirmation: RecoveryConfirmationConfig = Field(default_factory=RecoveryConfirmationConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)

    @field_validator("shutdowns_page")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("shutdowns_page must be an http(s) URL")
        return value


@dataclass(frozen=True)
class Settings:
    """Runtime view of the config: resolved paths, timezone and secrets."""
    address: Address
    shutdowns_page: str
    telegram: TelegramConfig
    state_path: Path
    tz: tzinfo = timezone.utc
    browser_timeout_seconds: float = 60.0
    recovery_min_seconds: float = DEFAULT_RECOVERY_MIN_SECONDS
    recovery_max_seconds: float = DEFAULT_RECOVERY_MAX_SECONDS
    new_message_each_day: bool = False
    keywords: ClassifierKeywords = DEFAULT_KEYWORDS


def load_config(config_path: Path | str | None = None) -> MonitorConfig:
    """Load configuration from a YAML file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("OUTAGE_MONITOR_CONFIG", str(DEFAULT_CONFIG_PATH))

    config_data: dict[str, Any] = {}
    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
        if not isinstance(config_data, dict):
            raise ValueError("Config YAML must be a mapping")

    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "state_path": os.getenv("OUTAGE_MONITOR_STATE_PATH"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            config_data[key] = value

    return MonitorConfig(**config_data)


def load_timezone(name: str) -> tzinfo:
    cleaned = (name or "").strip()
    if not cleaned or cleaned.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(cleaned)
    except ZoneInfoNotFoundError:
        logger.warning("Timezone not found; falling back to UTC", tz=cleaned)
        return timezone.utc


def build_settings(
    config: MonitorConfig,
    *,
    env: Mapping[str, str] | None = None,
    base_dir: Path | None = None,
) -> Settings:
    env = os.environ if env is None else env

    bot_token = env.get("TELEGRAM_BOT_TOKEN")
    chat_id = env.get("TELEGRAM_CHAT_ID")
    if not bot_token or not chat_id:
        raise RuntimeError("Missing TELEGRAM_BOT_TOKEN and/or TELEGRAM_CHAT_ID env vars")

    state_path = Path(config.state_path)
    if not state_path.is_absolute() and base_dir is not None:
        state_path = base_dir / state_path

    return Settings(
        address=Address(city=config.address.city, street=config.address.street, house=config.address.house),
        shutdowns_page=config.shutdowns_page,
        telegram=TelegramConfig(bot_token=bot_token, chat_id=chat_id),
        state_path=state_path,
        tz=load_timezone(config.timezone),
        browser_timeout_seconds=config.browser_timeout_seconds,
        recovery_min_seconds=config.recovery_confirmation.min_seconds,
        recovery_max_seconds=config.recovery_confirmation.max_seconds,
        new_message_each_day=config.notifications.new_message_each_day,
        keywords=config.classifier.to_keywords(),
    )

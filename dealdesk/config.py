"""Application settings.

Settings are resolved once (``get_settings()``) from field defaults, an
optional ``dealdesk.yaml`` and ``DEALDESK_*`` environment variables, then
handed to the components that need them. Instances are frozen; derive a
changed copy with ``model_copy(update=...)``.
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

log = logging.getLogger(__name__)


def _resolve_home() -> Path:
    override = os.getenv("DEALDESK_HOME", "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).parent


class WidgetSettings(BaseModel):
    """Investor chat widget configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    widget_position: Literal["bottom-right", "bottom-left"] = "bottom-right"
    primary_color: str = "#F28C38"
    widget_size: Literal["small", "medium", "large"] = "medium"
    bubble_style: Literal["circle", "rounded-square"] = "circle"
    auto_open_enabled: bool = False
    auto_open_delay: int = Field(default=5, ge=0)
    show_online_status: bool = True
    enable_typing_indicators: bool = True
    enable_file_attachments: bool = True
    enable_emojis: bool = True
    initial_greeting: str = "Hi! How can we help you with this opportunity?"
    away_message: str = "We're away right now. Leave a message and we'll get back to you."
    ask_button_label: str = "Ask a Question"
    info_button_label: str = "Request Info"
    interest_button_label: str = "Express Interest"
    call_button_label: str = "Schedule a Call"
    info_request_options: tuple[str, ...] = (
        "Financial statements",
        "Customer list",
        "Employee details",
        "Lease agreements",
    )
    calendly_link: str | None = None
    enable_manual_scheduling: bool = True
    broker_email_notifications: bool = True
    investor_email_notifications: bool = True
    widget_title: str = "Chat with the Deal Team"
    placeholder_text: str = "Type your message..."
    minimized_tooltip: str = "Questions? Chat with us"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    home: Path = Field(default_factory=_resolve_home)
    data_dir: Path = Field(default_factory=lambda: _resolve_home() / "data")
    database_path: Path = Field(default_factory=lambda: _resolve_home() / "data" / "dealdesk.db")
    log_level: str = "INFO"
    auto_file_uploads: bool = True
    activity_feed_limit: int = Field(default=20, ge=1)
    deal_activity_limit: int = Field(default=50, ge=1)
    widget: WidgetSettings = Field(default_factory=WidgetSettings)

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"

    def ensure_directories(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)


def load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        log.warning("Ignoring %s: top-level YAML value is not a mapping", path)
        return {}
    return data


def _env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    db = os.getenv("DEALDESK_DB", "").strip()
    if db:
        db_path = Path(db).expanduser()
        out["database_path"] = db_path
        out["data_dir"] = db_path.parent
    level = os.getenv("DEALDESK_LOG_LEVEL", "").strip()
    if level:
        out["log_level"] = level.upper()
    auto_file = os.getenv("DEALDESK_AUTO_FILE", "").strip().lower()
    if auto_file:
        out["auto_file_uploads"] = auto_file in ("1", "true", "yes")
    return out


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Build settings from defaults, YAML file and environment, in that order."""
    if config_path is None:
        config_path = os.getenv("DEALDESK_CONFIG", "").strip() or _resolve_home() / "dealdesk.yaml"
    values = load_yaml(Path(config_path))
    values.update(_env_overrides())
    return Settings.model_validate(values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    settings.ensure_directories()
    return settings

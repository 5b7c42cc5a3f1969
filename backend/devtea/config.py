"""DevTea application configuration.

Loads settings from a single YAML file:
  * devtea.settings.yaml: server, chat, client and logging configuration

Every section has working defaults, so a missing file yields a runnable
in-memory demo server.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("devtea.settings.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str  = "0.0.0.0"
    port:            int  = 8000
    debug:           bool = False
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class ChatSettings(BaseModel):
    """In-memory chat store behaviour."""
    seed_default_rooms:    bool = True
    online_window_seconds: int  = Field(default=300, ge=1)
    bot_name:              str  = "DevTea Bot"


class ClientSettings(BaseModel):
    """Defaults for the polling sync client."""
    base_url:             str   = "http://127.0.0.1:8000"
    endpoint:             str   = "/api/websocket"
    request_timeout:      float = Field(default=10.0, gt=0)
    max_retries:          int   = Field(default=3, ge=1)
    retry_base_delay:     float = Field(default=1.0, ge=0)
    retry_max_delay:      float = Field(default=5.0, ge=0)
    poll_interval:        float = Field(default=3.0, gt=0)
    presence_probability: float = Field(default=0.3, ge=0, le=1)
    reconnect_delay:      float = Field(default=1.0, ge=0)
    default_room:         str   = "general"


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(getattr(logging, value.upper(), None), int):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    client:  ClientSettings  = Field(default_factory=ClientSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(settings_path: Optional[Path] = None) -> AppSettings:
    """Load *AppSettings* from YAML, falling back to defaults."""
    path = Path(settings_path) if settings_path else SETTINGS_FILE
    app_settings = AppSettings(**_load_yaml(path))
    logger.info(
        "Settings loaded (server=%s:%s, seed_default_rooms=%s, log_level=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.chat.seed_default_rooms,
        app_settings.logging.level,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Get the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget cached settings (used by tests)."""
    global _config
    _config = None

"""Teamchat application configuration.

Loads settings from two YAML files:
  * teamchat.settings.yaml  : non-secret configuration
  * teamchat.secrets.yaml   : secrets (never committed)

Both files are looked up in the directory named by ``TEAMCHAT_CONFIG_DIR``
(current working directory when unset). Missing files fall back to defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from teamchat.store.schemas import MAX_MESSAGE_LENGTH

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = "teamchat.settings.yaml"
SECRETS_FILE  = "teamchat.secrets.yaml"


def _config_dir() -> Path:
    return Path(os.environ.get("TEAMCHAT_CONFIG_DIR", "."))


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:             str   = "0.0.0.0"
    port:             int   = 5000
    allowed_origins:  List[str] = Field(default_factory=lambda: ["*"])
    # Protocol-level heartbeat handled by uvicorn
    ws_ping_interval: float = 25.0
    ws_ping_timeout:  float = 60.0


class DatabaseSettings(BaseModel):
    path: str = "teamchat.duckdb"


class AuthSettings(BaseModel):
    token_expire_minutes: int = 60 * 24 * 7
    jwt_algorithm:        str = "HS256"


class ChatSettings(BaseModel):
    max_message_length:        int   = MAX_MESSAGE_LENGTH
    history_limit:             int   = 50
    max_history_limit:         int   = 100
    handshake_timeout_seconds: float = 10.0

    @field_validator("history_limit", "max_history_limit", "max_message_length")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("max_message_length")
    @classmethod
    def _within_store_limit(cls, value: int) -> int:
        if value > MAX_MESSAGE_LENGTH:
            raise ValueError(f"must be <= {MAX_MESSAGE_LENGTH}")
        return value


class LoggingSettings(BaseModel):
    level: str = "info"


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    chat:     ChatSettings     = Field(default_factory=ChatSettings)
    logging:  LoggingSettings  = Field(default_factory=LoggingSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(config_dir: Optional[Path] = None) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    base = config_dir or _config_dir()
    settings_data = _load_yaml(base / SETTINGS_FILE)
    secrets_data  = _load_yaml(base / SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, history_limit=%d)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.chat.history_limit,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(settings: AppSettings) -> None:
    """Replace the cached settings (used by tests and app factories)."""
    global _config
    _config = settings


def reset_config() -> None:
    global _config
    _config = None

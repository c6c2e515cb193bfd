"""Terminal Chatroom application configuration.

Loads settings from two YAML files:
  * termchat.settings.yaml  — non-secret configuration
  * termchat.secrets.yaml   — secrets (never committed)

Environment overrides (applied after the files):
  * TERMCHAT_PORT   — listen port
  * TERMCHAT_SECRET — signing key for long-lived credential tokens
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("termchat.settings.yaml")
SECRETS_FILE  = Path("termchat.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:      str = "0.0.0.0"
    port:      int = 3000
    log_level: str = "info"


class ChatSettings(BaseModel):
    """Limits of the single global chat room."""
    history_size:       int = 200
    max_message_length: int = 500
    max_name_length:    int = 20
    outbox_size:        int = 256

    @field_validator("history_size", "max_message_length", "max_name_length", "outbox_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


class GateSettings(BaseModel):
    """Join-token issuance and the optional account store."""
    require_account:    bool = True
    token_expire_days:  int  = 30
    max_pc_name_length: int  = 64


class AppSettings(BaseModel):
    server:  ServerSettings = Field(default_factory=ServerSettings)
    chat:    ChatSettings   = Field(default_factory=ChatSettings)
    gate:    GateSettings   = Field(default_factory=GateSettings)
    secrets: Secrets        = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _apply_env_overrides(settings: AppSettings) -> None:
    port = os.environ.get("TERMCHAT_PORT")
    if port:
        try:
            settings.server.port = int(port)
        except ValueError:
            logger.warning("Ignoring non-numeric TERMCHAT_PORT=%r", port)

    secret = os.environ.get("TERMCHAT_SECRET")
    if secret:
        settings.secrets.jwt.secret_key = secret


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _apply_env_overrides(app_settings)

    if app_settings.secrets.jwt.secret_key == JWTSecrets().secret_key:
        logger.warning("Using the default JWT secret; set TERMCHAT_SECRET in production.")

    logger.info(
        "Settings loaded (server=%s:%s, history_size=%d, require_account=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.chat.history_size,
        app_settings.gate.require_account,
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
    global _config
    _config = settings


def reset_config() -> None:
    """Forget the cached settings (tests)."""
    global _config
    _config = None

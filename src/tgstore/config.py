"""Store configuration helpers."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .constants import (
    CATALOG_NAME,
    CONFIG_DIR,
    CONFIG_FILE,
    DEFAULT_API_BASE,
    DEFAULT_LOOKBACK_WINDOW,
    DEFAULT_MAX_CONFLICT_RETRIES,
    DEFAULT_MAX_TRANSPORT_RETRIES,
    ENV_BOT_TOKEN,
    ENV_CHAT_ID,
    ENV_CONFIG_PATH,
    ENV_LOOKBACK_WINDOW,
    LEGACY_ENV_BOT_TOKEN,
    LEGACY_ENV_CHAT_ID,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    """Configuration for a channel-backed object store.

    The bot token and chat id are opaque: they are only checked for presence.
    """

    provider: str = "telegram"               # "telegram" | "memory"
    bot_token: str = ""
    chat_id: str = ""
    api_base: str = DEFAULT_API_BASE

    catalog_name: str = CATALOG_NAME
    lookback_window: int = Field(default=DEFAULT_LOOKBACK_WINDOW, ge=1)
    on_window_exhausted: str = "error"       # "error" | "warn"
    max_conflict_retries: int = Field(default=DEFAULT_MAX_CONFLICT_RETRIES, ge=1)

    max_transport_retries: int = Field(default=DEFAULT_MAX_TRANSPORT_RETRIES, ge=1)
    backoff_base: float = Field(default=0.5, ge=0)
    backoff_max: float = Field(default=30.0, ge=0)
    request_timeout: float = Field(default=30.0, gt=0)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        if v not in ("telegram", "memory"):
            raise ValueError(f"Unknown provider '{v}' (expected 'telegram' or 'memory')")
        return v

    @field_validator("on_window_exhausted")
    @classmethod
    def validate_window_policy(cls, v: str) -> str:
        if v not in ("error", "warn"):
            raise ValueError(f"on_window_exhausted must be 'error' or 'warn', got '{v}'")
        return v

    @field_validator("chat_id", mode="before")
    @classmethod
    def coerce_chat_id(cls, v: Any) -> str:
        # YAML reads numeric chat ids as int
        return str(v) if v is not None else ""

    def require_credentials(self) -> None:
        """Ensure token and chat id are present for the telegram provider.

        Raises:
            ConfigError: If either value is missing
        """
        if self.provider != "telegram":
            return
        missing = []
        if not self.bot_token:
            missing.append(f"bot_token ({ENV_BOT_TOKEN})")
        if not self.chat_id:
            missing.append(f"chat_id ({ENV_CHAT_ID})")
        if missing:
            raise ConfigError(
                f"Missing Telegram configuration: {', '.join(missing)}. "
                f"Set them in the environment or in ~/{CONFIG_DIR}/{CONFIG_FILE}"
            )


def default_config_path() -> Path:
    """Config file location: $TGSTORE_CONFIG or ~/.tgstore/config.yaml."""
    override = os.environ.get(ENV_CONFIG_PATH)
    if override:
        return Path(override)
    return Path.home() / CONFIG_DIR / CONFIG_FILE


def _read_yaml(path: Path) -> Dict[str, Any]:
    """Read a YAML mapping, raising ConfigError on malformed content."""
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}, got {type(data).__name__}")
    # Allow the settings to live under a top-level "telegram" key
    return data.get("telegram", data)


def _env_overrides() -> Dict[str, Any]:
    """Collect settings from environment variables."""
    overrides: Dict[str, Any] = {}
    token = os.environ.get(ENV_BOT_TOKEN) or os.environ.get(LEGACY_ENV_BOT_TOKEN)
    chat_id = os.environ.get(ENV_CHAT_ID) or os.environ.get(LEGACY_ENV_CHAT_ID)
    if token:
        overrides["bot_token"] = token
    if chat_id:
        overrides["chat_id"] = chat_id
    window = os.environ.get(ENV_LOOKBACK_WINDOW)
    if window:
        overrides["lookback_window"] = window
    return overrides


def load_store_config(path: Optional[Path] = None, require_credentials: bool = True) -> StoreConfig:
    """Load store configuration.

    Resolution order: environment variables > config file > defaults.

    Args:
        path: Explicit config file (defaults to default_config_path())
        require_credentials: Fail if token or chat id is missing

    Returns:
        StoreConfig

    Raises:
        ConfigError: If the file is malformed, a value is invalid,
            or credentials are required but missing
    """
    cfg_path = path or default_config_path()
    data: Dict[str, Any] = {}
    if cfg_path.exists():
        logger.debug("Loading configuration from %s", cfg_path)
        data = _read_yaml(cfg_path)
    elif path is not None:
        raise ConfigError(f"Config file not found: {cfg_path}")

    data.update(_env_overrides())

    try:
        config = StoreConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e

    if require_credentials:
        config.require_credentials()
    return config

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal, Optional
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from banksync.sync.config import RetryConfig, SyncConfig

DEFAULT_CONFIG_PATH = Path("/config.json")
DEFAULT_DATA_DIR = Path("/data")
STATE_FILE_NAME = "sync_state.json"


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


def _alias(*names: str) -> Any:
    return Field(validation_alias=AliasChoices(*names))


class Settings(BaseSettings):
    """Service settings loaded from the JSON config file and environment.

    Keys in the config file use the camelCase names of the original
    deployment format (``mercuryAPIKey``, ``syncIntervalHours``...); every
    field can also come from an upper-case environment variable.
    """

    # Credentials
    MERCURY_API_KEY: SecretStr = _alias("mercuryAPIKey", "MERCURY_API_KEY")
    """Bearer token for the Mercury API."""

    INVOICE_NINJA_TOKEN: SecretStr = _alias("invoiceNinjaToken", "INVOICE_NINJA_TOKEN")
    """API token for Invoice Ninja (sent as X-API-Token)."""

    # Endpoints
    INVOICE_NINJA_URL: str = _alias("invoiceNinjaURL", "INVOICE_NINJA_URL")
    """Base URL of the Invoice Ninja instance, without /api/v1."""

    MERCURY_BASE_URL: str = Field(
        default="https://api.mercury.com/api/v1",
        validation_alias=AliasChoices("mercuryBaseURL", "MERCURY_BASE_URL"),
    )

    INVOICE_NINJA_BANK_PROVIDER: str = Field(
        default="Mercury",
        validation_alias=AliasChoices(
            "invoiceNinjaBankProvider", "INVOICE_NINJA_BANK_PROVIDER"
        ),
    )
    """Provider name of the Invoice Ninja bank integration to post into."""

    # Sync windows
    SYNC_INTERVAL_HOURS: int = Field(
        default=1,
        ge=1,
        validation_alias=AliasChoices("syncIntervalHours", "SYNC_INTERVAL_HOURS"),
    )
    SYNC_START_DAYS_AGO: int = Field(
        default=7,  # bank transactions usually settle within 3-5 days
        ge=1,
        validation_alias=AliasChoices("syncStartDaysAgo", "SYNC_START_DAYS_AGO"),
    )
    RETENTION_DAYS: int = Field(
        default=7,
        ge=1,
        validation_alias=AliasChoices("retentionDays", "RETENTION_DAYS"),
    )

    REQUEST_TIMEOUT: float = Field(
        default=30.0,
        gt=0,
        validation_alias=AliasChoices("requestTimeout", "REQUEST_TIMEOUT"),
    )

    LOG_LEVEL: Literal["debug", "info", "warn", "warning", "error"] = Field(
        default="info", validation_alias=AliasChoices("logLevel", "LOG_LEVEL")
    )

    DATA_DIR: Path = Field(
        default=DEFAULT_DATA_DIR, validation_alias=AliasChoices("dataDir", "DATA_DIR")
    )
    """Directory holding the ledger snapshot."""

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True)

    @field_validator("MERCURY_API_KEY", "INVOICE_NINJA_TOKEN")
    @classmethod
    def _require_secret(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("INVOICE_NINJA_URL", "MERCURY_BASE_URL")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"invalid URL: {value!r}")
        return value.rstrip("/")

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _lower_log_level(cls, value: Any) -> Any:
        return value.lower() if isinstance(value, str) else value

    @property
    def state_file_path(self) -> Path:
        """Location of the persisted ledger snapshot."""
        return self.DATA_DIR / STATE_FILE_NAME

    def to_sync_config(self) -> SyncConfig:
        return SyncConfig(
            sync_interval_hours=self.SYNC_INTERVAL_HOURS,
            lookback_days=self.SYNC_START_DAYS_AGO,
            retention_days=self.RETENTION_DAYS,
        )

    def to_retry_config(self) -> RetryConfig:
        return RetryConfig()


def load_settings(
    config_path: Path = DEFAULT_CONFIG_PATH,
    data_dir: Optional[Path] = None,
    invoice_ninja_url: Optional[str] = None,
) -> Settings:
    """Load and validate settings.

    Values in the config file take precedence over the ``invoice_ninja_url``
    command-line fallback, which takes precedence over the environment.

    Raises:
        ConfigError: If the file is unreadable, not a JSON object, or any
            value fails validation.
    """
    try:
        raw = Path(config_path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"error reading config file {config_path}: {e}") from e

    try:
        values = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"error parsing config file {config_path}: {e}") from e
    if not isinstance(values, dict):
        raise ConfigError(f"config file {config_path} must contain a JSON object")

    if invoice_ninja_url and not values.get("invoiceNinjaURL"):
        values["invoiceNinjaURL"] = invoice_ninja_url
    if data_dir is not None:
        values["dataDir"] = str(data_dir)

    try:
        settings = Settings(**values)
        # Cross-field rules live on SyncConfig
        settings.to_sync_config()
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}") from e

    return settings

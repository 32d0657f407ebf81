"""Configuration and environment settings for exchange-sweeper."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from exchange_sweeper.errors import ConfigurationError
from exchange_sweeper.models.types import ExchangeVersionName


def _parse_list(value: object) -> object:
    """Parse a list from JSON or comma-separated env values."""
    if value is None:
        return []
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return []
        if stripped.startswith("["):
            return json.loads(stripped)
        return [part.strip() for part in stripped.split(",") if part.strip()]
    return value


class EwsSettings(BaseSettings):
    """Exchange Web Services endpoint and service identity settings."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_EWS__", extra="forbid")

    url: str | None = None
    autodiscover_email: str | None = None
    username: str | None = None
    password: Annotated[str | None, Field(repr=False)] = None
    domain: str | None = None
    service_address: str | None = None
    version: ExchangeVersionName = ExchangeVersionName.exchange2016
    ignore_ssl: bool = False

    @field_validator("version", mode="before")
    @classmethod
    def _lowercase_version(cls, value: object) -> object:
        """Accept version names in any case (e.g. ``Exchange2016``)."""
        return value.strip().lower() if isinstance(value, str) else value

    def require_credentials(self) -> None:
        """Ensure credentials and an endpoint are configured.

        Raises:
            ConfigurationError: If credentials or an endpoint are missing.
        """
        missing: list[str] = []
        if not self.username:
            missing.append("SWEEP_EWS__USERNAME")
        if not self.password:
            missing.append("SWEEP_EWS__PASSWORD")
        if missing:
            raise ConfigurationError(
                "EWS credentials are not configured",
                details={"missing": missing},
            )
        if not self.url and not self.autodiscover_email:
            raise ConfigurationError(
                "Either SWEEP_EWS__URL or SWEEP_EWS__AUTODISCOVER_EMAIL must be set.",
                details={"operation": "configuration"},
            )
        if not self.effective_service_address:
            raise ConfigurationError(
                "SWEEP_EWS__SERVICE_ADDRESS must be set when no autodiscover address is given.",
                details={"operation": "configuration"},
            )

    @property
    def effective_service_address(self) -> str | None:
        """Return the SMTP address the service identity acts as."""
        if self.service_address:
            return self.service_address
        if self.autodiscover_email:
            return self.autodiscover_email
        if self.username and "@" in self.username:
            return self.username
        return None

    def sanitized(self) -> dict[str, object]:
        """Return a loggable view of the settings without secrets."""
        return {
            "url": self.url,
            "autodiscover_email": self.autodiscover_email,
            "username": self.username,
            "domain": self.domain,
            "version": self.version.value,
            "ignore_ssl": self.ignore_ssl,
        }


class SearchSettings(BaseSettings):
    """Defaults and limits for cross-mailbox search and delete."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_SEARCH__", extra="forbid")

    default_folders: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["Inbox", "JunkEmail"])
    max_per_mailbox: Annotated[int, Field(ge=1)] = 200
    page_size: Annotated[int, Field(ge=1, le=200)] = 50
    max_concurrency: Annotated[int, Field(ge=1, le=50)] = 4

    @field_validator("default_folders", mode="before")
    @classmethod
    def _parse_default_folders(cls, value: object) -> object:
        """Parse folder names from JSON or comma-separated values."""
        return _parse_list(value)


class PurgeSettings(BaseSettings):
    """Settings for the external remediation script."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_PURGE__", extra="forbid")

    script_path: Path = Path("./PS.ps1")
    executable: Annotated[str, Field(min_length=1)] = "powershell.exe"
    executable_args: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["-NoProfile", "-ExecutionPolicy", "Bypass", "-File"],
    )
    log_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    audit_log_file: Path = Path("./data/purge-actions.jsonl")
    read_chunk_size: Annotated[int, Field(ge=1, le=1024 * 1024)] = 4096
    channel_maxsize: Annotated[int, Field(ge=1, le=10_000)] = 256

    @field_validator("executable_args", mode="before")
    @classmethod
    def _parse_executable_args(cls, value: object) -> object:
        """Parse interpreter arguments from JSON or comma-separated values."""
        return _parse_list(value)

    @field_validator("script_path", "log_dir", "audit_log_file")
    @classmethod
    def _paths_to_absolute(cls, value: Path) -> Path:
        """Resolve configured paths to absolute paths."""
        return value.expanduser().resolve()


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SWEEP_LOGGING__", extra="forbid")

    level: Annotated[str, Field(min_length=1)] = "INFO"
    json_logs: bool = True


class AppSettings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SWEEP_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    ews: EwsSettings = Field(default_factory=EwsSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    purge: PurgeSettings = Field(default_factory=PurgeSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(*, env_file: Path | None) -> AppSettings:
    """Load validated settings from environment and optional file.

    Args:
        env_file: Optional .env file path.

    Returns:
        Validated AppSettings instance.
    """
    if env_file is None:
        return AppSettings()
    return AppSettings(_env_file=env_file)  # type: ignore[call-arg]

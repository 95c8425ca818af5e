"""
Watcher settings.

Defaults are the fixed constants of the watcher: a 10 second poll interval,
five reconciliation retries and the ".invalid" marker suffix. Every value can
be overridden through TORRENTWATCH_* environment variables.
"""

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MAX_PARTIAL_RETRIES = 5
DEFAULT_INVALID_SUFFIX = ".invalid"

ENV_PREFIX = "TORRENTWATCH_"

_ENV_FIELDS = {
    "POLL_INTERVAL": "poll_interval",
    "MAX_RETRIES": "max_partial_retries",
    "INVALID_SUFFIX": "invalid_suffix",
    "LOG_LEVEL": "log_level",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class WatcherSettings(BaseModel):
    """Runtime configuration for WatchRegistry and its components."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    poll_interval: float = Field(
        default=DEFAULT_POLL_INTERVAL,
        gt=0,
        description="Seconds between network polls and between reconciliation ticks",
    )
    max_partial_retries: int = Field(
        default=DEFAULT_MAX_PARTIAL_RETRIES,
        ge=1,
        description="Failed reconciliation ticks before a partial file is marked invalid",
    )
    invalid_suffix: str = Field(
        default=DEFAULT_INVALID_SUFFIX,
        description="Suffix appended to files given up on",
    )
    torrent_suffix: str = ".torrent"
    magnet_suffix: str = ".magnet"
    log_level: str = "INFO"

    @field_validator("invalid_suffix", "torrent_suffix", "magnet_suffix")
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        """Suffixes are file extensions: a dot followed by at least one character."""
        if len(v) < 2 or not v.startswith(".") or "/" in v or os.sep in v:
            raise ValueError(f"Suffix must look like '.ext', got '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(sorted(_LOG_LEVELS))}"
            )
        return level

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "WatcherSettings":
        """
        Build settings from TORRENTWATCH_* environment variables.

        Explicit keyword overrides win over the environment.

        Raises:
            ConfigurationError: If any value fails validation
        """
        if environ is None:
            environ = os.environ

        values = {}
        for env_name, field_name in _ENV_FIELDS.items():
            raw = environ.get(ENV_PREFIX + env_name)
            if raw is not None and raw != "":
                values[field_name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            # Environment values are strings; lax mode parses numbers from them.
            return cls.model_validate(values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid watcher configuration: {e}") from e

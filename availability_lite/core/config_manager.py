"""Configuration management for availability_lite."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from availability_lite.core.timezone_utils import get_default_timezone, normalize_timezone_name

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Skips empty lines and comments, strips single and double quotes from
    values. Returns an empty dict if the file doesn't exist or can't be read.
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}

    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key:
            result[key] = val

    return result


class AvailabilityConfig(BaseModel):
    """Validated application configuration."""

    name: str = Field(default="me", description="Whose schedule is shown")
    calendar_url: Optional[str] = Field(default=None, description="Primary ICS feed URL")
    plan_urls: list[str] = Field(default_factory=list, description="Plan ICS feed URLs")
    horizon_weeks: int = Field(default=3, ge=1, description="Display horizon in weeks")
    timezone: str = Field(default_factory=get_default_timezone, description="Viewer timezone")

    # Server
    server_bind: str = "0.0.0.0"  # nosec B104 - default bind for a LAN kiosk
    server_port: int = 8080
    refresh_interval_seconds: int = Field(default=300, ge=10)

    # HTTP fetcher
    request_timeout: int = 30
    max_retries: int = 3
    retry_backoff_factor: float = 1.5

    # Logging
    debug_logging: bool = False
    log_level: Optional[str] = None

    @field_validator("plan_urls", mode="before")
    @classmethod
    def _split_plan_urls(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [u.strip() for u in value.split(",") if u.strip()]
        return value

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        resolved = normalize_timezone_name(value)
        if resolved is None:
            raise ValueError(f"Unknown timezone {value!r}")
        return resolved


# Environment variable -> (config key, converter)
_ENV_FIELDS: dict[str, tuple[str, Any]] = {
    "AVAILABILITY_NAME": ("name", str),
    "AVAILABILITY_CAL_URL": ("calendar_url", str),
    "AVAILABILITY_PLAN_URLS": ("plan_urls", str),
    "AVAILABILITY_HORIZON_WEEKS": ("horizon_weeks", int),
    "AVAILABILITY_TIMEZONE": ("timezone", str),
    "AVAILABILITY_WEB_HOST": ("server_bind", str),
    "AVAILABILITY_WEB_PORT": ("server_port", int),
    "AVAILABILITY_REFRESH_INTERVAL": ("refresh_interval_seconds", int),
    "AVAILABILITY_REQUEST_TIMEOUT": ("request_timeout", int),
    "AVAILABILITY_MAX_RETRIES": ("max_retries", int),
    "AVAILABILITY_RETRY_BACKOFF": ("retry_backoff_factor", float),
    "AVAILABILITY_LOG_LEVEL": ("log_level", str),
}


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build a configuration dictionary from AVAILABILITY_* environment variables.

        Invalid numeric values are logged and ignored so defaults apply.
        """
        cfg: dict[str, Any] = {}

        for env_name, (key, convert) in _ENV_FIELDS.items():
            raw = os.environ.get(env_name)
            if not raw:
                continue
            try:
                cfg[key] = convert(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_name, raw)

        debug = os.environ.get("AVAILABILITY_DEBUG", "")
        if debug:
            cfg["debug_logging"] = debug.strip().lower() in ("1", "true", "yes", "on")

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment."""
        self.load_env_file()
        return self.build_config_from_env()

    def build_config(self) -> AvailabilityConfig:
        """Load and validate the full configuration."""
        return AvailabilityConfig(**self.load_full_config())

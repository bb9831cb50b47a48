"""Application configuration using pydantic-settings."""

import logging
import sys

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables
    prefixed with PLUGWISE_ (e.g., PLUGWISE_SERIAL_PORT). ``aliases`` is read
    as JSON, e.g. ``PLUGWISE_ALIASES='{"lamp": "000D6F0000123456"}'``.
    """

    serial_port: str = "/dev/ttyUSB0"
    serial_baud: int = 115200
    request_timeout: float = 1.0
    max_retries: int = 3
    simulate: bool = False
    aliases: dict[str, str] = {}
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="PLUGWISE_")

    @field_validator("aliases")
    @classmethod
    def validate_aliases(cls, v: dict[str, str]) -> dict[str, str]:
        """Ensure every alias maps to a 16 hex digit hardware address."""
        normalized = {}
        for alias, address in v.items():
            if len(address) != 16 or not all(c in "0123456789abcdefABCDEF" for c in address):
                raise ValueError(f"Alias {alias!r}: hardware address must be 16 hex digits, got {address!r}")
            normalized[alias] = address.upper()
        return normalized

    @field_validator("max_retries")
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must not be negative")
        return v


def setup_logging(level: str = "INFO") -> None:
    """Configure application logging.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

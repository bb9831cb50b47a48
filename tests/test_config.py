"""Unit tests for configuration module."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from plugwise_gateway.core.config import Settings, setup_logging


class TestSettings:
    """Tests for Settings class."""

    def test_default_values(self):
        """Test settings have sensible defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings()

        assert settings.serial_port == "/dev/ttyUSB0"
        assert settings.serial_baud == 115200
        assert settings.request_timeout == 1.0
        assert settings.max_retries == 3
        assert settings.simulate is False
        assert settings.aliases == {}
        assert settings.api_host == "0.0.0.0"
        assert settings.api_port == 8000
        assert settings.log_level == "INFO"

    def test_env_override_serial_port(self):
        """Test serial port override from environment."""
        with patch.dict(os.environ, {"PLUGWISE_SERIAL_PORT": "/dev/ttyACM0"}):
            settings = Settings()

        assert settings.serial_port == "/dev/ttyACM0"

    def test_env_override_timing(self):
        """Test request timeout and retries override from environment."""
        with patch.dict(os.environ, {"PLUGWISE_REQUEST_TIMEOUT": "2.5", "PLUGWISE_MAX_RETRIES": "0"}):
            settings = Settings()

        assert settings.request_timeout == 2.5
        assert settings.max_retries == 0

    def test_env_override_simulate(self):
        with patch.dict(os.environ, {"PLUGWISE_SIMULATE": "true"}):
            settings = Settings()

        assert settings.simulate is True

    def test_env_override_aliases(self):
        """Test aliases are read as JSON."""
        with patch.dict(os.environ, {"PLUGWISE_ALIASES": '{"lamp": "000d6f0000123456"}'}):
            settings = Settings()

        assert settings.aliases == {"lamp": "000D6F0000123456"}

    def test_env_prefix(self):
        """Test that non-prefixed env vars are ignored."""
        with patch.dict(os.environ, {"SERIAL_PORT": "/dev/other"}, clear=True):
            settings = Settings()

        assert settings.serial_port == "/dev/ttyUSB0"

    def test_invalid_alias_address(self):
        with pytest.raises(ValidationError):
            Settings(aliases={"lamp": "000D6F00"})
        with pytest.raises(ValidationError):
            Settings(aliases={"lamp": "000D6F000012345G"})

    def test_negative_retries(self):
        with pytest.raises(ValidationError):
            Settings(max_retries=-1)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_setup_logging_default(self):
        """Test logging setup with default level."""
        setup_logging()

    def test_setup_logging_debug(self):
        setup_logging("DEBUG")

    def test_setup_logging_invalid_level(self):
        """Test logging setup with invalid level falls back to INFO."""
        setup_logging("INVALID")

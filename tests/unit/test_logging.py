"""
Unit Tests for Logging Configuration
====================================
"""

import structlog

from domcapture.config.logging import THIRD_PARTY_LOGGERS, capture_context, get_logging_config
from domcapture.core.pipeline import CaptureSession

from tests.utils.mocks import MockImageDecoder, MockStyleEngine


class TestLoggingConfig:
    """Test the dictConfig payload."""

    def test_package_logger_follows_settings(self, test_settings):
        config = get_logging_config(test_settings)
        assert config["loggers"]["domcapture"]["level"] == test_settings.log_level
        assert config["handlers"]["console"]["level"] == test_settings.log_level

    def test_third_party_loggers_capped(self, test_settings):
        loggers = get_logging_config(test_settings)["loggers"]
        for name in THIRD_PARTY_LOGGERS:
            assert loggers[name]["level"] == "WARNING"
            assert loggers[name]["propagate"] is False


class TestCaptureContext:
    """Test capture scoped log context."""

    def test_binds_and_restores(self):
        assert "capture_id" not in structlog.contextvars.get_contextvars()

        with capture_context("abc123", tag="div"):
            assert structlog.contextvars.get_contextvars() == {"capture_id": "abc123", "tag": "div"}

        assert "capture_id" not in structlog.contextvars.get_contextvars()

    def test_sessions_get_distinct_ids(self, test_settings):
        engine, decoder = MockStyleEngine(), MockImageDecoder()
        first = CaptureSession(engine, decoder, settings=test_settings)
        second = CaptureSession(engine, decoder, settings=test_settings)
        assert first.capture_id != second.capture_id

"""
Test Configuration
==================

Pytest configuration with shared fixtures: test settings, an in-memory
style engine, a counting fetcher and a browserless image decoder.
"""

import pytest
from unittest.mock import patch

from domcapture.config.settings import Settings
from pydantic_settings import SettingsConfigDict

from tests.utils.mocks import MockFetcher, MockImageDecoder, MockStyleEngine


class TestSettings(Settings):
    """Test-specific settings."""

    environment: str = "testing"
    debug: bool = True
    settle_delay_ms: int = 0
    fetch_timeout: float = 1.0
    log_level: str = "DEBUG"

    model_config = SettingsConfigDict(env_file=".env.test", env_prefix="DOMCAPTURE_TEST_")


@pytest.fixture(scope="session")
def test_settings() -> TestSettings:
    """Test settings fixture."""
    return TestSettings()


@pytest.fixture(scope="session", autouse=True)
def override_settings(test_settings: TestSettings):
    """Override application settings for testing."""
    with patch("domcapture.config.settings.settings", test_settings):
        yield test_settings


@pytest.fixture
def engine() -> MockStyleEngine:
    return MockStyleEngine()


@pytest.fixture
def fetcher() -> MockFetcher:
    return MockFetcher()


@pytest.fixture
def decoder() -> MockImageDecoder:
    return MockImageDecoder()

"""Root test configuration."""

import logging

import pytest
import structlog
from infragraph.config.settings import Settings
from infragraph.engine.context import RunContext
from infragraph.providers.memory import InMemoryProvider
from infragraph.providers.registry import ProviderRegistry


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def settings():
    """Engine settings with instant retries."""
    return Settings(
        retry_max_attempts=3,
        retry_backoff_multiplier=0,
        retry_backoff_min_seconds=0,
        retry_backoff_max_seconds=0,
        provider_timeout_seconds=None,
        max_parallelism=None,
        fail_fast=False,
    )


@pytest.fixture
def provider():
    """In-memory provider echoing inputs back as outputs."""
    return InMemoryProvider()


@pytest.fixture
def registry(provider):
    """Registry routing every kind to the in-memory provider."""
    return ProviderRegistry(default=provider)


@pytest.fixture
def ctx(settings):
    """Fresh run context using the fast settings."""
    return RunContext(stack="test", settings=settings)

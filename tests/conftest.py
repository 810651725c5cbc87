"""Shared pytest fixtures."""

from collections.abc import Generator

import pytest
import structlog


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None]:
    """Restore default structlog configuration and context after each test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()

from typing import Any
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from callguard.infrastructure.cli.display import ConsoleDisplay
from callguard.infrastructure.config.settings import clear_test_config
from callguard.infrastructure.resilience.api_retry import ApiRetryService
from callguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from callguard.infrastructure.resilience.error_classifier import classify_outcome
from callguard.infrastructure.resilience.rate_limiter import RateLimiter
from callguard.infrastructure.resilience.request_queue import RequestQueue
from tests.fakes import FakeClock, ScriptedTransport


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture
def make_gateway(fake_clock, transport):
    """Factory building an ApiRetryService on the fake clock and scripted transport."""

    def _make(
        max_retries: int = 3,
        rate_limit: int = 1000,
        failure_threshold: int = 3,
        breaker_cooldown: float = 60.0,
        queue_capacity: int = 100,
        classifier=classify_outcome,
        upstream: str = "test",
        **kwargs: Any,
    ) -> ApiRetryService:
        kwargs.setdefault("sleep", fake_clock.sleep)
        return ApiRetryService(
            transport=transport,
            rate_limiter=RateLimiter(max_requests=rate_limit, time_window=60, clock=fake_clock, sleep=fake_clock.sleep),
            circuit_breaker=CircuitBreaker(failure_threshold=failure_threshold, cooldown_s=breaker_cooldown, clock=fake_clock),
            request_queue=RequestQueue(capacity=queue_capacity, default_cooldown=0),
            upstream=upstream,
            classifier=classifier,
            max_retries=max_retries,
            **kwargs,
        )

    return _make


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def mock_console_display(mocker):
    """Mocks the ConsoleDisplay to capture output easily."""
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mock.display_output = MagicMock()
    mock.display_info = MagicMock()
    mock.display_error = MagicMock()
    mock.display_stats = MagicMock()
    return mock


@pytest.fixture(autouse=True)
def reset_test_config():
    """Ensure config overrides never leak between tests."""
    yield
    clear_test_config()

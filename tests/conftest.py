from typing import Any, Dict

import pytest
from typer.testing import CliRunner

from sourcer.domain.models.api import Credentials
from sourcer.infrastructure.auth.signer import AuthSigner
from sourcer.infrastructure.cache.caching_service import ResponseCache
from sourcer.infrastructure.config.client_config import ClientConfig, RetryConfig, RateLimitConfig
from sourcer.infrastructure.config.settings import clear_test_config
from sourcer.infrastructure.resilience.rate_limiter import RateLimiter
from sourcer.infrastructure.resilience.request_executor import RequestExecutor

from tests.fakes import TEST_BASE_URL, FakeTransport


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keeps tests independent of the developer's environment and test overrides."""
    for name in ("COUPANG_ACCESS_KEY", "COUPANG_SECRET_KEY", "COUPANG_API_BASE_URL",
                 "SOURCER_CREDENTIALS_ACCESS_KEY", "SOURCER_CREDENTIALS_SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)
    clear_test_config()
    yield
    clear_test_config()


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def credentials():
    return Credentials(access_key="test-access", secret_key="test-secret")


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fast_retry():
    """Three attempts with 10ms/20ms backoff so retry tests stay quick."""
    return RetryConfig(max_attempts=3, delay_ms=10, multiplier=2)


@pytest.fixture
def client_config(credentials, fast_retry):
    return ClientConfig(
        credentials=credentials,
        base_url=TEST_BASE_URL,
        retry=fast_retry,
        rate_limit=RateLimitConfig(max_requests=100, window_seconds=60),
    )


@pytest.fixture
def make_executor(credentials, fake_transport, fast_retry):
    """Factory for executors wired to the fake transport; override any collaborator by keyword."""

    def _make(**overrides) -> RequestExecutor:
        kwargs: Dict[str, Any] = {
            "transport": fake_transport,
            "signer": AuthSigner(overrides.pop("credentials", credentials)),
            "base_url": TEST_BASE_URL,
            "rate_limiter": RateLimiter(max_requests=100, time_window=60),
            "cache": ResponseCache(),
            "retry": fast_retry,
        }
        kwargs.update(overrides)
        return RequestExecutor(**kwargs)

    return _make

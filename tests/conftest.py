"""Summary: Shared fixtures for AccountPulse tests.

Importance: Provides injected fakes for the clock, scorer, providers, and configuration.
Alternatives: Patch module globals in each test.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable

import pytest

from accountpulse.config import AppConfig
from accountpulse.dal import DataAccessLayer
from accountpulse.models import ProviderFunction
from accountpulse.sentiment import SentimentScorer
from accountpulse.storage.document_store import MemoryDocumentStore


START_MS = 1_700_000_000_000


class FakeClock:
    """Summary: Settable millisecond clock.

    Importance: Makes freshness and interval boundaries exact.
    Alternatives: Sleep in tests.
    """

    def __init__(self, now: int = START_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class CountingScorer(SentimentScorer):
    """Summary: Scorer returning canned values and recording every call.

    Importance: Verifies sentiment is computed at most once per item.
    Alternatives: Use the lexicon scorer and infer calls from results.
    """

    def __init__(self, scores: dict[str, Any] | None = None, default: Any = 0.0) -> None:
        self.scores = scores or {}
        self.default = default
        self.calls: list[str] = []

    async def analyze(self, text: str) -> Any:
        self.calls.append(text)
        return self.scores.get(text, self.default)


class FakeProvider:
    """Summary: Provider function returning a queued or fixed response.

    Importance: Counts calls and records the params each call received.
    Alternatives: Use the fixture provider for every test.
    """

    def __init__(self, response: Any = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[list[Any]] = []

    async def __call__(self, params: list[Any]) -> Any:
        self.calls.append(list(params))
        if self.error is not None:
            raise self.error
        return self.response


def build_config(**overrides: Any) -> AppConfig:
    """Summary: Build an AppConfig for tests.

    Importance: Ensures tests use isolated in-memory storage and offline providers.
    Alternatives: Load AppConfig from environment variables.
    """

    config = AppConfig(
        db_path="unused.db",
        store_backend="memory",
        environment="prod",
        sentiment_provider="lexicon",
        google_language_api_key=None,
        google_language_url="https://language.example/v1/documents:analyzeSentiment",
        yelp_api_key=None,
        yelp_base_url="https://yelp.example/v3",
        fixtures_dir="does-not-exist",
        cache_ttl_seconds=3600,
        load_interval_seconds=3600,
        snapshot_interval_seconds=86400,
        schedule_buffer_seconds=60,
        max_concurrency=4,
        provider_timeout_seconds=5,
        api_host="127.0.0.1",
        api_port=8000,
        api_key="",
    )
    return replace(config, **overrides)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def scorer() -> CountingScorer:
    return CountingScorer()


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def dal(store: MemoryDocumentStore, scorer: CountingScorer, clock: FakeClock) -> DataAccessLayer:
    return DataAccessLayer(store, scorer, clock=clock, provider_timeout=2)


@pytest.fixture
def make_provider() -> Callable[..., tuple[ProviderFunction, FakeProvider]]:
    """Return a factory building a descriptor around a FakeProvider."""

    def factory(
        response: Any = None,
        error: Exception | None = None,
        provider: str = "demo",
        name: str = "getPosts",
        **fields: Any,
    ) -> tuple[ProviderFunction, FakeProvider]:
        fake = FakeProvider(response, error)
        return ProviderFunction(provider=provider, name=name, func=fake, **fields), fake

    return factory


@pytest.fixture
def config_factory() -> Callable[..., AppConfig]:
    return build_config

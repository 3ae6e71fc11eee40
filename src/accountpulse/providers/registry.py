"""Summary: Registry of data provider functions.

Importance: Resolves provider and function names into descriptors for the cache and load pipeline.
Alternatives: Keep a module-level dictionary of providers.
"""

from __future__ import annotations

import logging
from pathlib import Path

from accountpulse.config import AppConfig
from accountpulse.errors import ResolutionError
from accountpulse.models import ProviderFunction
from accountpulse.providers.fixture import FixtureProvider
from accountpulse.providers.yelp import YelpProvider


logger = logging.getLogger(__name__)


class ProviderRegistry:
    """Summary: Maps provider name plus function name to a provider descriptor.

    Importance: Built once at startup and injected, so tests can register fakes.
    Alternatives: Discover providers through entry points.
    """

    def __init__(self) -> None:
        self._functions: dict[str, dict[str, ProviderFunction]] = {}

    def register(self, function: ProviderFunction) -> None:
        functions = self._functions.setdefault(function.provider, {})
        if function.name in functions:
            logger.info("Replacing provider function %s:%s", function.provider, function.name)
        functions[function.name] = function

    def register_all(self, functions: list[ProviderFunction]) -> None:
        for function in functions:
            self.register(function)

    def get(self, provider: str | None, name: str | None) -> ProviderFunction | None:
        """Summary: Look up a descriptor, returning None when it is unknown.

        Importance: Lets the load pipeline skip entities whose provider was removed.
        Alternatives: Raise on every miss.
        """

        if not provider or not name:
            return None
        return self._functions.get(provider, {}).get(name)

    def require(self, provider: str | None, name: str | None) -> ProviderFunction:
        function = self.get(provider, name)
        if function is None:
            raise ResolutionError(f"Unknown provider function {provider}:{name}")
        return function

    def providers(self) -> list[str]:
        return sorted(self._functions)

    def functions(self, provider: str) -> list[ProviderFunction]:
        return list(self._functions.get(provider, {}).values())


def build_registry(config: AppConfig) -> ProviderRegistry:
    """Summary: Construct the registry of configured providers.

    Importance: Ensures consistent provider wiring across the API, CLI, and pipeline.
    Alternatives: Use dependency injection frameworks.
    """

    registry = ProviderRegistry()
    fixtures_dir = Path(config.fixtures_dir)
    if fixtures_dir.is_dir():
        registry.register_all(FixtureProvider(fixtures_dir).functions())
    if config.yelp_api_key:
        yelp = YelpProvider(
            config.yelp_api_key, config.yelp_base_url, timeout=config.provider_timeout_seconds
        )
        registry.register_all(yelp.functions())
    else:
        logger.info("YELP_API_KEY not set; yelp provider disabled")
    return registry

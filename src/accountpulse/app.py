"""Summary: Application factory wiring core services.

Importance: Centralizes dependency creation for the CLI and API layers.
Alternatives: Instantiate services manually in each entrypoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from accountpulse.config import AppConfig
from accountpulse.dal import DataAccessLayer
from accountpulse.models import now_ms
from accountpulse.pipeline import DataPipeline
from accountpulse.providers.registry import ProviderRegistry, build_registry
from accountpulse.sentiment import SentimentScorer, SentimentScorerFactory
from accountpulse.services import ProfileService
from accountpulse.storage.document_store import DocumentStore, MemoryDocumentStore
from accountpulse.storage.sqlite_store import SqliteDocumentStore
from accountpulse.transport import InProcessTransport, IntervalScheduler


@dataclass(frozen=True)
class AppContext:
    """Summary: Shared application context for the cache and pipeline.

    Importance: Reuses storage, providers, and the scorer across requests and jobs.
    Alternatives: Rebuild dependencies for every request.
    """

    config: AppConfig
    store: DocumentStore
    registry: ProviderRegistry
    dal: DataAccessLayer
    pipeline: DataPipeline
    transport: InProcessTransport
    scheduler: IntervalScheduler
    profiles: ProfileService


def build_store(config: AppConfig) -> DocumentStore:
    """Summary: Construct the configured document store.

    Importance: The environment selects the root collection.
    Alternatives: Hardcode a single backend.
    """

    if config.store_backend == "memory":
        return MemoryDocumentStore()
    if config.store_backend != "sqlite":
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
    store = SqliteDocumentStore(config.db_path, root=config.store_root)
    store.initialize()
    return store


def build_context(
    config: AppConfig,
    store: DocumentStore | None = None,
    registry: ProviderRegistry | None = None,
    scorer: SentimentScorer | None = None,
    clock: Callable[[], int] = now_ms,
) -> AppContext:
    """Summary: Build shared context from configuration.

    Importance: Tests pass fakes for the store, registry, scorer, and clock.
    Alternatives: Construct dependencies separately per entrypoint.
    """

    store = store if store is not None else build_store(config)
    registry = registry if registry is not None else build_registry(config)
    scorer = scorer if scorer is not None else SentimentScorerFactory(config).build()
    dal = DataAccessLayer(
        store,
        scorer,
        clock=clock,
        cache_ttl_ms=config.cache_ttl_seconds * 1000,
        max_concurrency=config.max_concurrency,
        provider_timeout=config.provider_timeout_seconds,
    )
    pipeline = DataPipeline(
        dal,
        registry,
        load_interval_ms=config.load_interval_seconds * 1000,
        snapshot_interval_ms=config.snapshot_interval_seconds * 1000,
        buffer_ms=config.schedule_buffer_seconds * 1000,
        clock=clock,
    )
    transport = InProcessTransport()
    return AppContext(
        config=config,
        store=store,
        registry=registry,
        dal=dal,
        pipeline=pipeline,
        transport=transport,
        scheduler=IntervalScheduler(transport, clock=clock),
        profiles=ProfileService(store=store),
    )

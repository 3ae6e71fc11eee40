"""Summary: Data access layer deciding between cached and freshly fetched provider data.

Importance: Owns freshness, provider invocation, sentiment enrichment, and metadata merging.
Alternatives: Let each HTTP handler call providers and the store directly.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Mapping

from accountpulse.constants import (
    INVOKE_INFO,
    METADATA,
    METADATA_ID_FIELD,
    METADATA_PROVIDER_FIELD,
    METADATA_TEXT_FIELD,
    METADATA_USER_ID_FIELD,
    SENTIMENT_FIELD,
    SENTIMENT_SCORE_FIELD,
    metadata_collection,
)
from accountpulse.errors import PulseError, ResolutionError, Result, StoreError, UpstreamError
from accountpulse.models import InvokeInfo, ProviderFunction, SentimentResult, now_ms, score_for_label
from accountpulse.sentiment import SentimentScorer
from accountpulse.storage.document_store import DocumentStore


logger = logging.getLogger(__name__)

ONE_HOUR_MS = 60 * 60 * 1000


class DataAccessLayer:
    """Summary: Cache-or-fetch access to provider entities with sentiment metadata.

    Importance: Serves the HTTP layer and the load pipeline through the same primitives.
    Alternatives: Split caching and enrichment into separate services.
    """

    def __init__(
        self,
        store: DocumentStore,
        scorer: SentimentScorer,
        clock: Callable[[], int] = now_ms,
        cache_ttl_ms: int = ONE_HOUR_MS,
        max_concurrency: int = 8,
        provider_timeout: float = 30,
    ) -> None:
        self._store = store
        self._scorer = scorer
        self._clock = clock
        self._cache_ttl_ms = cache_ttl_ms
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._provider_timeout = provider_timeout
        self._pending: set[asyncio.Task] = set()
        self._metadata_locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def store(self) -> DocumentStore:
        return self._store

    def now(self) -> int:
        return self._clock()

    def is_stale(self, info: InvokeInfo, now: int) -> bool:
        """An entity never fetched is infinitely stale."""

        return info.last_retrieved is None or now - info.last_retrieved > self._cache_ttl_ms

    async def get_data(
        self,
        user_id: str,
        provider: ProviderFunction | None,
        entity: str | None = None,
        params: list[Any] | None = None,
        force_refresh: bool = False,
    ) -> list[dict[str, Any]] | None:
        """Summary: Return the items of an entity enriched with their metadata.

        Importance: Serves from the store while fresh and refetches from the provider otherwise.
        Alternatives: Always call the provider and cache only for offline use.
        """

        result = await self._get_data(user_id, provider, entity, list(params or []), force_refresh)
        if not result.ok:
            logger.warning("get_data %s:%s failed: %s", user_id, _label(provider, entity), result.error)
            return None
        return result.value

    async def get_metadata(self, user_id: str) -> list[dict[str, Any]] | None:
        """Summary: Return every metadata record of a user across all entities.

        Importance: Feeds the snapshot aggregation and the metadata listing surfaces.
        Alternatives: Iterate entities and read each metadata collection.
        """

        try:
            return await self._store.query_group(user_id, METADATA)
        except StoreError as exc:
            logger.warning("get_metadata %s failed: %s", user_id, exc)
            return None

    async def store_metadata(
        self,
        user_id: str,
        provider: ProviderFunction | None,
        entity: str | None,
        new_records: Iterable[Mapping[str, Any]] | Mapping[str, Mapping[str, Any]],
    ) -> list[dict[str, Any]] | None:
        """Summary: Merge caller-supplied annotations into an entity's metadata.

        Importance: Field-level merge keyed by id; only the touched records are written.
        Alternatives: Replace the metadata collection on every call.
        """

        try:
            entity_name = resolve_entity(provider, entity)
            incoming = normalize_records(new_records)
            merged = await self._merge_metadata(user_id, provider.provider, entity_name, incoming)
        except (PulseError, ValueError) as exc:
            logger.warning("store_metadata %s:%s failed: %s", user_id, _label(provider, entity), exc)
            return None
        return list(merged.values())

    async def remove_metadata(
        self, user_id: str, provider: ProviderFunction | None, entity: str | None, item_id: str
    ) -> bool | None:
        try:
            entity_name = resolve_entity(provider, entity)
            return await self._store.remove_document(
                user_id, metadata_collection(entity_name), str(item_id)
            )
        except PulseError as exc:
            logger.warning("remove_metadata %s:%s failed: %s", user_id, _label(provider, entity), exc)
            return None

    async def list_items(
        self, user_id: str, provider: ProviderFunction | None, entity: str | None = None
    ) -> list[dict[str, Any]] | None:
        """Summary: Return the stored items of an entity without calling the provider.

        Importance: Serves collections a user curates locally, such as tracked businesses.
        Alternatives: Route every read through get_data.
        """

        try:
            entity_name = resolve_entity(provider, entity)
            items = await self._store.query(user_id, entity_name)
            metadata = await self._read_metadata(user_id, entity_name)
        except PulseError as exc:
            logger.warning("list_items %s:%s failed: %s", user_id, _label(provider, entity), exc)
            return None
        return merge_items(items, metadata, provider.item_key)

    async def remove_item(
        self, user_id: str, provider: ProviderFunction | None, entity: str | None, item_id: str
    ) -> list[dict[str, Any]] | None:
        """Summary: Delete one item document and return the re-read collection.

        Importance: Lets users drop an item, such as a business, from a tracked entity.
        Alternatives: Mark items hidden in metadata.
        """

        try:
            entity_name = resolve_entity(provider, entity)
            if str(item_id) == INVOKE_INFO:
                raise ResolutionError(f"{INVOKE_INFO} is not an item")
            removed = await self._store.remove_document(user_id, entity_name, str(item_id))
        except PulseError as exc:
            logger.warning("remove_item %s:%s failed: %s", user_id, _label(provider, entity), exc)
            return None
        if not removed:
            logger.info("remove_item: %s not found in %s:%s", item_id, user_id, entity_name)
        return await self.list_items(user_id, provider, entity_name)

    async def drain(self) -> None:
        """Summary: Wait for all detached persistence tasks to finish.

        Importance: Used by shutdown paths and tests that read what get_data wrote.
        Alternatives: Await persistence inline on every fetch.
        """

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _get_data(
        self,
        user_id: str,
        provider: ProviderFunction | None,
        entity: str | None,
        params: list[Any],
        force_refresh: bool,
    ) -> Result:
        try:
            entity_name = resolve_entity(provider, entity)
            metadata = await self._read_metadata(user_id, entity_name)
            info = await self._read_invoke_info(user_id, entity_name)
            if not force_refresh and not self.is_stale(info, self._clock()):
                cached = await self._read_items(user_id, entity_name)
                if cached is not None:
                    logger.info("get_data: serving %s:%s from cache", user_id, entity_name)
                    return Result.success(merge_items(cached, metadata, provider.item_key))

            logger.info("get_data: retrieving %s:%s from %s", user_id, entity_name, provider.provider)
            items = await self._fetch(provider, params)
            now = self._clock()
            self._spawn(
                self._persist(user_id, provider, entity_name, params, items, info, now),
                f"persist {user_id}:{entity_name}",
            )
            metadata = await self._enrich(user_id, provider, entity_name, items, metadata)
            return Result.success(merge_items(items, metadata, provider.item_key))
        except PulseError as exc:
            return Result.failure(exc)

    async def _fetch(self, provider: ProviderFunction, params: list[Any]) -> list[dict[str, Any]]:
        label = f"{provider.provider}:{provider.name}"
        async with self._semaphore:
            try:
                raw = await asyncio.wait_for(provider.func(params), timeout=self._provider_timeout)
            except asyncio.TimeoutError as exc:
                raise UpstreamError(f"{label} timed out after {self._provider_timeout}s") from exc
            except PulseError:
                raise
            except Exception as exc:
                raise UpstreamError(f"{label} failed: {exc}") from exc
        return extract_items(raw, provider)

    async def _persist(
        self,
        user_id: str,
        provider: ProviderFunction,
        entity_name: str,
        params: list[Any],
        items: list[dict[str, Any]],
        previous: InvokeInfo,
        now: int,
    ) -> None:
        await self._store.store_batch(user_id, entity_name, items, provider.item_key)
        # lastRetrieved never moves backwards, even under a skewed clock
        last_retrieved = max(now, previous.last_retrieved or 0)
        info = InvokeInfo(
            provider=provider.provider,
            name=provider.name,
            params=params,
            last_retrieved=last_retrieved,
        )
        await self._store.store_document(user_id, entity_name, INVOKE_INFO, info.to_document())

    async def _enrich(
        self,
        user_id: str,
        provider: ProviderFunction,
        entity_name: str,
        items: list[dict[str, Any]],
        metadata: dict[str, dict[str, Any]],
    ) -> dict[str, dict[str, Any]]:
        if not provider.sentiment_field and not provider.sentiment_text_field:
            return metadata
        pending = [
            item
            for item in items
            if item.get(provider.item_key) is not None
            and not has_sentiment(metadata.get(str(item[provider.item_key])))
        ]
        scored = await asyncio.gather(*(self._score_item(provider, item) for item in pending))
        incoming = {
            str(item[provider.item_key]): fields
            for item, fields in zip(pending, scored)
            if fields is not None
        }
        if not incoming:
            return metadata
        try:
            return await self._merge_metadata(user_id, provider.provider, entity_name, incoming)
        except StoreError as exc:
            logger.warning("Sentiment for %s:%s not persisted: %s", user_id, entity_name, exc)
            return merge_metadata(metadata, incoming, user_id, provider.provider)

    async def _score_item(
        self, provider: ProviderFunction, item: dict[str, Any]
    ) -> dict[str, Any] | None:
        text = item.get(provider.text_field or provider.sentiment_text_field or "")
        result = None
        if provider.sentiment_field:
            result = score_for_label(item.get(provider.sentiment_field))
        if result is None and provider.sentiment_text_field:
            source = item.get(provider.sentiment_text_field)
            if isinstance(source, str) and source.strip():
                result = await self._analyze(source, item.get(provider.item_key))
        if result is None:
            return None
        return {
            METADATA_TEXT_FIELD: text,
            SENTIMENT_FIELD: result.rating,
            SENTIMENT_SCORE_FIELD: result.score,
        }

    async def _analyze(self, text: str, item_id: Any) -> SentimentResult | None:
        async with self._semaphore:
            try:
                raw = await asyncio.wait_for(self._scorer.analyze(text), timeout=self._provider_timeout)
                result = SentimentResult.coerce(raw)
            except Exception as exc:
                logger.warning("Sentiment scoring failed for item %s: %s", item_id, exc)
                return None
        logger.debug("Scored item %s: %s", item_id, result.score)
        return result

    async def _read_metadata(
        self, user_id: str, entity_name: str, strict: bool = False
    ) -> dict[str, dict[str, Any]]:
        try:
            records = await self._store.query(user_id, metadata_collection(entity_name))
        except StoreError as exc:
            if strict:
                raise
            logger.warning("Metadata read for %s:%s failed: %s", user_id, entity_name, exc)
            return {}
        return {
            str(record[METADATA_ID_FIELD]): record
            for record in records
            if record.get(METADATA_ID_FIELD) is not None
        }

    async def _read_invoke_info(self, user_id: str, entity_name: str) -> InvokeInfo:
        try:
            document = await self._store.get_document(user_id, entity_name, INVOKE_INFO)
        except StoreError as exc:
            logger.warning("Invoke info read for %s:%s failed: %s", user_id, entity_name, exc)
            return InvokeInfo()
        return InvokeInfo.from_document(document)

    async def _read_items(self, user_id: str, entity_name: str) -> list[dict[str, Any]] | None:
        try:
            return await self._store.query(user_id, entity_name)
        except StoreError as exc:
            logger.warning("Cache read for %s:%s failed, refetching: %s", user_id, entity_name, exc)
            return None

    async def _merge_metadata(
        self,
        user_id: str,
        provider_name: str,
        entity_name: str,
        incoming: Mapping[str, Mapping[str, Any]],
    ) -> dict[str, dict[str, Any]]:
        """Summary: Read, merge, and write metadata under a per-entity lock.

        Importance: The read happens inside the lock, so an annotation stored while a
        fetch was in flight is merged into instead of overwritten.
        Alternatives: Merge against the metadata read before the provider call.
        """

        lock = self._metadata_locks.setdefault((user_id, entity_name), asyncio.Lock())
        async with lock:
            existing = await self._read_metadata(user_id, entity_name, strict=True)
            merged = merge_metadata(existing, incoming, user_id, provider_name)
            await self._store.store_batch(
                user_id,
                metadata_collection(entity_name),
                [merged[key] for key in incoming],
                METADATA_ID_FIELD,
            )
        return merged

    def _spawn(self, coroutine: Awaitable[None], name: str) -> None:
        task = asyncio.ensure_future(coroutine)
        task.set_name(name)
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("%s cancelled", task.get_name())
            return
        error = task.exception()
        if error is not None:
            logger.error("%s failed: %s", task.get_name(), error)


def resolve_entity(provider: ProviderFunction | None, entity: str | None) -> str:
    """Summary: Pick the entity collection name for a call.

    Importance: An explicit entity wins over the provider's default one.
    Alternatives: Always derive the entity from the provider.
    """

    if provider is None or not provider.provider:
        raise ResolutionError("No provider supplied")
    entity_name = entity or provider.entity
    if not entity_name:
        raise ResolutionError(f"No entity for {provider.provider}:{provider.name}")
    if "/" in entity_name or entity_name.startswith("__"):
        raise ResolutionError(f"Invalid entity name {entity_name!r}")
    return entity_name


def extract_items(raw: Any, provider: ProviderFunction) -> list[dict[str, Any]]:
    """Summary: Map a raw provider response onto a list of item records.

    Importance: Empty or missing responses abort the fetch instead of caching nothing.
    Alternatives: Cache empty results as a valid state.
    """

    label = f"{provider.provider}:{provider.name}"
    if raw is None:
        raise UpstreamError(f"{label} returned no data")
    if provider.array_key:
        if not isinstance(raw, Mapping):
            raise UpstreamError(f"{label} response has no {provider.array_key!r} field")
        raw = raw.get(provider.array_key)
    if isinstance(raw, Mapping):
        raw = [raw]
    if not raw:
        raise UpstreamError(f"{label} returned an empty result")
    if not isinstance(raw, list):
        raise UpstreamError(f"{label} returned {type(raw).__name__}, expected a list")
    items = [item for item in raw if isinstance(item, Mapping)]
    if len(items) != len(raw):
        logger.warning("%s: dropped %s non-object items", label, len(raw) - len(items))
    return [dict(item) for item in items]


def has_sentiment(record: Mapping[str, Any] | None) -> bool:
    """A score of 0 counts as present."""

    if not record:
        return False
    return record.get(SENTIMENT_FIELD) is not None or record.get(SENTIMENT_SCORE_FIELD) is not None


def normalize_records(
    records: Iterable[Mapping[str, Any]] | Mapping[str, Mapping[str, Any]],
) -> dict[str, dict[str, Any]]:
    """Summary: Accept metadata as a list of `{id, ...}` records or an id-keyed mapping.

    Importance: Both shapes are used by callers and the HTTP surface.
    Alternatives: Require a single shape.
    """

    if isinstance(records, Mapping):
        return {str(key): dict(value) for key, value in records.items()}
    normalized: dict[str, dict[str, Any]] = {}
    for record in records:
        item_id = record.get(METADATA_ID_FIELD)
        if item_id is None:
            raise ValueError(f"Metadata record without {METADATA_ID_FIELD}: {dict(record)!r}")
        normalized.setdefault(str(item_id), {}).update(record)
    return normalized


def merge_metadata(
    existing: Mapping[str, Mapping[str, Any]],
    incoming: Mapping[str, Mapping[str, Any]],
    user_id: str,
    provider: str,
) -> dict[str, dict[str, Any]]:
    """Summary: Field-level merge of metadata keyed by item id.

    Importance: Union of ids; incoming fields win; id, userId, and provider come from context.
    Alternatives: Deep-merge nested values.
    """

    merged: dict[str, dict[str, Any]] = {}
    for item_id in {**existing, **incoming}:
        record = {**existing.get(item_id, {}), **incoming.get(item_id, {})}
        record[METADATA_ID_FIELD] = item_id
        record[METADATA_USER_ID_FIELD] = user_id
        record[METADATA_PROVIDER_FIELD] = provider
        merged[item_id] = record
    return merged


def merge_items(
    items: list[dict[str, Any]], metadata: Mapping[str, Mapping[str, Any]], item_key: str
) -> list[dict[str, Any]]:
    """Left-join metadata into items by id; item fields win on collisions."""

    enriched = []
    for item in items:
        item_id = item.get(item_key)
        record = metadata.get(str(item_id), {}) if item_id is not None else {}
        enriched.append({**record, **item})
    return enriched


def _label(provider: ProviderFunction | None, entity: str | None) -> str:
    if entity:
        return entity
    if provider is None:
        return "<none>"
    return provider.entity or f"{provider.provider}:{provider.name}"

"""Summary: Document store interface and in-memory implementation.

Importance: Gives the cache and pipeline one narrow persistence contract for per-user collections.
Alternatives: Couple the cache directly to a single database client.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from abc import ABC, abstractmethod
from typing import Any

from accountpulse.constants import HISTORY, INVOKE_INFO, SYSTEM_INFO


logger = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Summary: Abstract per-user hierarchical document storage.

    Importance: Models users/{userId}/{collection}/{name} documents plus per-user data sections.
    Alternatives: Expose a generic key/value API and build paths in callers.
    """

    async def get_all_users(self) -> list[str]:
        """Summary: List every user that owns documents or data sections.

        Importance: Drives the load and snapshot fan-out; the system-info pseudo-user is excluded.
        Alternatives: Keep a separate registry of active users.
        """

        users = await self._list_users()
        return [user_id for user_id in users if user_id != SYSTEM_INFO]

    @abstractmethod
    async def _list_users(self) -> list[str]:
        """Return all user ids, including synthetic ones."""

    @abstractmethod
    async def get_document(self, user_id: str, collection: str, name: str) -> dict[str, Any] | None:
        """Summary: Read one document, or None when it does not exist.

        Importance: Point lookups back invocation-info and single-item reads.
        Alternatives: Query the whole collection and filter locally.
        """

    @abstractmethod
    async def store_document(
        self, user_id: str, collection: str, name: str, data: dict[str, Any]
    ) -> None:
        """Summary: Create or overwrite one document.

        Importance: Persists invocation-info and history snapshots.
        Alternatives: Merge into the existing document instead of overwriting.
        """

    @abstractmethod
    async def store_batch(
        self, user_id: str, collection: str, items: list[dict[str, Any]], key_field: str
    ) -> int:
        """Summary: Upsert a batch of documents named by their key field.

        Importance: Shreds provider arrays into documents without deleting absent ones.
        Alternatives: Replace the collection wholesale on every fetch.
        """

    @abstractmethod
    async def remove_document(self, user_id: str, collection: str, name: str) -> bool:
        """Summary: Delete one document and report whether it existed.

        Importance: Supports explicit removal of items and metadata records.
        Alternatives: Soft-delete with a tombstone field.
        """

    @abstractmethod
    async def query(
        self,
        user_id: str,
        collection: str,
        field: str | None = None,
        value: Any = None,
    ) -> list[dict[str, Any]]:
        """Summary: Return the documents of a collection, optionally filtered by field equality.

        Importance: Serves cached items; the invocation-info record is never included.
        Alternatives: Return a cursor and let callers filter.
        """

    @abstractmethod
    async def query_group(self, user_id: str, subcollection: str) -> list[dict[str, Any]]:
        """Summary: Return documents from every collection of a user ending in `subcollection`.

        Importance: Collects metadata across all entities in one call.
        Alternatives: Iterate each entity and query its sub-collection.
        """

    @abstractmethod
    async def get_user_collections(self, user_id: str) -> list[str]:
        """Summary: List the entity collections cached for a user.

        Importance: Lets the load pipeline discover what to refresh.
        Alternatives: Track cached entities on the user record.
        """

    @abstractmethod
    async def get_user_data(self, user_id: str, section: str | None = None) -> dict[str, Any] | None:
        """Summary: Read a user data section, or the whole user record when no section is given.

        Importance: Backs pipeline run state and user profiles.
        Alternatives: Store sections as regular documents.
        """

    @abstractmethod
    async def set_user_data(self, user_id: str, section: str, data: dict[str, Any]) -> dict[str, Any]:
        """Summary: Merge fields into a user data section and return the merged section.

        Importance: Updates run state without clobbering unrelated fields.
        Alternatives: Overwrite the section wholesale.
        """

    @abstractmethod
    async def compare_and_set_user_data(
        self,
        user_id: str,
        section: str,
        expected: dict[str, Any],
        data: dict[str, Any],
    ) -> bool:
        """Summary: Atomically merge `data` only if the section still matches `expected`.

        Importance: Closes the check-then-set race on the pipeline in-progress flag.
        Alternatives: Use an external lock service.
        """


def section_matches(current: dict[str, Any], expected: dict[str, Any]) -> bool:
    return all(current.get(key) == value for key, value in expected.items())


def _collection_leaf(collection: str) -> str:
    return collection.rsplit("/", 1)[-1]


def is_entity_collection(collection: str) -> bool:
    """Return True for top-level entity collections (not history or nested metadata)."""

    return "/" not in collection and collection != HISTORY


class MemoryDocumentStore(DocumentStore):
    """Summary: Dictionary-backed document store.

    Importance: Supports tests and single-process demos without a database file.
    Alternatives: Use SQLite with an in-memory database.
    """

    def __init__(self) -> None:
        self._users: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    def _user(self, user_id: str) -> dict[str, Any]:
        return self._users.setdefault(user_id, {"collections": {}, "data": {}})

    async def _list_users(self) -> list[str]:
        return list(self._users)

    async def get_document(self, user_id: str, collection: str, name: str) -> dict[str, Any] | None:
        user = self._users.get(user_id)
        if not user:
            return None
        document = user["collections"].get(collection, {}).get(name)
        return copy.deepcopy(document) if document is not None else None

    async def store_document(
        self, user_id: str, collection: str, name: str, data: dict[str, Any]
    ) -> None:
        collections = self._user(user_id)["collections"]
        collections.setdefault(collection, {})[str(name)] = copy.deepcopy(data)

    async def store_batch(
        self, user_id: str, collection: str, items: list[dict[str, Any]], key_field: str
    ) -> int:
        documents = self._user(user_id)["collections"].setdefault(collection, {})
        stored = 0
        for item in items:
            name = item.get(key_field)
            if name is None:
                logger.warning("store_batch: item without %s in %s", key_field, collection)
                continue
            documents[str(name)] = copy.deepcopy(item)
            stored += 1
        return stored

    async def remove_document(self, user_id: str, collection: str, name: str) -> bool:
        user = self._users.get(user_id)
        if not user:
            return False
        documents = user["collections"].get(collection, {})
        return documents.pop(str(name), None) is not None

    async def query(
        self,
        user_id: str,
        collection: str,
        field: str | None = None,
        value: Any = None,
    ) -> list[dict[str, Any]]:
        user = self._users.get(user_id)
        if not user:
            return []
        documents = user["collections"].get(collection, {})
        results = []
        for name, document in documents.items():
            if name == INVOKE_INFO:
                continue
            if field and value is not None and document.get(field) != value:
                continue
            results.append(copy.deepcopy(document))
        return results

    async def query_group(self, user_id: str, subcollection: str) -> list[dict[str, Any]]:
        user = self._users.get(user_id)
        if not user:
            return []
        results = []
        for collection, documents in user["collections"].items():
            if "/" not in collection or _collection_leaf(collection) != subcollection:
                continue
            results.extend(copy.deepcopy(document) for document in documents.values())
        return results

    async def get_user_collections(self, user_id: str) -> list[str]:
        user = self._users.get(user_id)
        if not user:
            return []
        return [name for name in user["collections"] if is_entity_collection(name)]

    async def get_user_data(self, user_id: str, section: str | None = None) -> dict[str, Any] | None:
        user = self._users.get(user_id)
        if not user:
            return None
        if section is None:
            return copy.deepcopy(user["data"])
        data = user["data"].get(section)
        return copy.deepcopy(data) if data is not None else None

    async def set_user_data(self, user_id: str, section: str, data: dict[str, Any]) -> dict[str, Any]:
        sections = self._user(user_id)["data"]
        merged = {**sections.get(section, {}), **copy.deepcopy(data)}
        sections[section] = merged
        return copy.deepcopy(merged)

    async def compare_and_set_user_data(
        self,
        user_id: str,
        section: str,
        expected: dict[str, Any],
        data: dict[str, Any],
    ) -> bool:
        async with self._lock:
            sections = self._user(user_id)["data"]
            current = sections.get(section, {})
            if not section_matches(current, expected):
                return False
            sections[section] = {**current, **copy.deepcopy(data)}
            return True

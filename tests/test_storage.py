"""Summary: Tests for the document store implementations.

Importance: Ensures both backends honor the same persistence contract.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from accountpulse.constants import HISTORY, INVOKE_INFO, SYSTEM_INFO, metadata_collection
from accountpulse.storage.document_store import DocumentStore, MemoryDocumentStore
from accountpulse.storage.sqlite_store import SqliteDocumentStore


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> DocumentStore:
    if request.param == "memory":
        return MemoryDocumentStore()
    store = SqliteDocumentStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


@pytest.mark.asyncio
async def test_store_batch_upserts_without_deleting(any_store: DocumentStore) -> None:
    """Summary: Verify batches upsert by key and keep absent documents.

    Importance: Items dropped by a provider stay cached until removed explicitly.
    Alternatives: Replace the collection on every fetch.
    """

    await any_store.store_batch("u1", "demo:posts", [{"id": "a", "v": 1}, {"id": "b", "v": 1}], "id")
    stored = await any_store.store_batch(
        "u1", "demo:posts", [{"id": "a", "v": 2}, {"v": 3}], "id"
    )

    items = await any_store.query("u1", "demo:posts")
    assert stored == 1
    assert sorted((item["id"], item["v"]) for item in items) == [("a", 2), ("b", 1)]


@pytest.mark.asyncio
async def test_query_excludes_invoke_info_and_filters(any_store: DocumentStore) -> None:
    await any_store.store_document("u1", "demo:posts", INVOKE_INFO, {"provider": "demo"})
    await any_store.store_batch(
        "u1", "demo:posts", [{"id": "a", "kind": "x"}, {"id": "b", "kind": "y"}], "id"
    )

    assert len(await any_store.query("u1", "demo:posts")) == 2
    filtered = await any_store.query("u1", "demo:posts", "kind", "y")
    assert [item["id"] for item in filtered] == ["b"]
    assert await any_store.get_document("u1", "demo:posts", INVOKE_INFO) == {"provider": "demo"}


@pytest.mark.asyncio
async def test_query_group_collects_metadata_across_entities(any_store: DocumentStore) -> None:
    await any_store.store_batch("u1", metadata_collection("demo:posts"), [{"id": "a"}], "id")
    await any_store.store_batch("u1", metadata_collection("yelp:reviews"), [{"id": "r"}], "id")
    await any_store.store_batch("u1", "demo:posts", [{"id": "a"}], "id")
    await any_store.store_batch("u2", metadata_collection("demo:posts"), [{"id": "z"}], "id")

    records = await any_store.query_group("u1", "metadata")

    assert sorted(record["id"] for record in records) == ["a", "r"]


@pytest.mark.asyncio
async def test_collections_and_users_skip_system_entries(any_store: DocumentStore) -> None:
    """Summary: Verify enumeration hides history, metadata, and the system-info user.

    Importance: The load pipeline must only see real users and entity collections.
    Alternatives: Filter in the pipeline.
    """

    await any_store.store_batch("u1", "demo:posts", [{"id": "a"}], "id")
    await any_store.store_batch("u1", metadata_collection("demo:posts"), [{"id": "a"}], "id")
    await any_store.store_document("u1", HISTORY, "1", {"timestamp": 1})
    await any_store.set_user_data(SYSTEM_INFO, "load", {"inProgress": False})
    await any_store.set_user_data("u2", "profile", {"notifyEmail": "a@example.com"})

    assert await any_store.get_all_users() == ["u1", "u2"]
    assert await any_store.get_user_collections("u1") == ["demo:posts"]


@pytest.mark.asyncio
async def test_remove_document(any_store: DocumentStore) -> None:
    await any_store.store_batch("u1", "demo:posts", [{"id": "a"}], "id")

    assert await any_store.remove_document("u1", "demo:posts", "a") is True
    assert await any_store.remove_document("u1", "demo:posts", "a") is False
    assert await any_store.query("u1", "demo:posts") == []


@pytest.mark.asyncio
async def test_user_data_merges_sections(any_store: DocumentStore) -> None:
    assert await any_store.get_user_data("u1", "profile") is None

    await any_store.set_user_data("u1", "profile", {"notifyEmail": "a@example.com"})
    merged = await any_store.set_user_data("u1", "profile", {"notifySMS": "555"})

    assert merged == {"notifyEmail": "a@example.com", "notifySMS": "555"}
    assert await any_store.get_user_data("u1") == {"profile": merged}


@pytest.mark.asyncio
async def test_compare_and_set_admits_one_winner(any_store: DocumentStore) -> None:
    """Summary: Verify racing compare-and-set calls on one section admit a single writer.

    Importance: Backs the pipeline in-progress guard.
    Alternatives: Use a process-local lock.
    """

    expected = {"inProgress": None, "lastUpdatedTimestamp": None}
    results = await asyncio.gather(
        *(
            any_store.compare_and_set_user_data(SYSTEM_INFO, "load", expected, {"inProgress": True})
            for _ in range(5)
        )
    )

    assert results.count(True) == 1
    assert await any_store.get_user_data(SYSTEM_INFO, "load") == {"inProgress": True}


def test_sqlite_roots_are_isolated(tmp_path: Path) -> None:
    """Summary: Verify dev and prod roots share a file without sharing data.

    Importance: Dev runs must not touch production documents.
    Alternatives: Use separate database files.
    """

    db_path = str(tmp_path / "shared.db")
    prod = SqliteDocumentStore(db_path, root="users")
    dev = SqliteDocumentStore(db_path, root="users-dev")
    prod.initialize()
    dev.initialize()

    async def scenario() -> tuple[list[str], list[str]]:
        await prod.store_batch("u1", "demo:posts", [{"id": "a"}], "id")
        return await prod.get_all_users(), await dev.get_all_users()

    prod_users, dev_users = asyncio.run(scenario())
    assert prod_users == ["u1"]
    assert dev_users == []

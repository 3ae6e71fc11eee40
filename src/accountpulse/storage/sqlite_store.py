"""Summary: SQLite implementation of the document store.

Importance: Provides a local-first persistence layer for cached entities, metadata, and run state.
Alternatives: Use a hosted document database such as Firestore.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from accountpulse.constants import INVOKE_INFO
from accountpulse.errors import StoreError
from accountpulse.storage.document_store import DocumentStore, section_matches, is_entity_collection


logger = logging.getLogger(__name__)


class SqliteDocumentStore(DocumentStore):
    """Summary: SQLite-backed document store.

    Importance: Stores JSON documents keyed by root, user, collection, and name.
    Alternatives: Map each entity to its own table.
    """

    def __init__(self, db_path: str, root: str = "users") -> None:
        """Summary: Initialize the store with a database path and root collection.

        Importance: The root keeps dev and prod data apart inside one file.
        Alternatives: Use separate database files per environment.
        """

        self._db_path = Path(db_path)
        self._root = root

    @property
    def root(self) -> str:
        return self._root

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first read.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    root TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    collection TEXT NOT NULL,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (root, user_id, collection, name)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_data (
                    root TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    section TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (root, user_id, section)
                )
                """
            )

    async def _list_users(self) -> list[str]:
        return await self._run(self._list_users_sync)

    async def get_document(self, user_id: str, collection: str, name: str) -> dict[str, Any] | None:
        return await self._run(self._get_document_sync, user_id, collection, name)

    async def store_document(
        self, user_id: str, collection: str, name: str, data: dict[str, Any]
    ) -> None:
        await self._run(self._store_documents_sync, user_id, collection, [(str(name), data)])

    async def store_batch(
        self, user_id: str, collection: str, items: list[dict[str, Any]], key_field: str
    ) -> int:
        rows = []
        for item in items:
            name = item.get(key_field)
            if name is None:
                logger.warning("store_batch: item without %s in %s", key_field, collection)
                continue
            rows.append((str(name), item))
        await self._run(self._store_documents_sync, user_id, collection, rows)
        return len(rows)

    async def remove_document(self, user_id: str, collection: str, name: str) -> bool:
        return await self._run(self._remove_document_sync, user_id, collection, str(name))

    async def query(
        self,
        user_id: str,
        collection: str,
        field: str | None = None,
        value: Any = None,
    ) -> list[dict[str, Any]]:
        documents = await self._run(self._query_sync, user_id, collection)
        if field and value is not None:
            documents = [document for document in documents if document.get(field) == value]
        return documents

    async def query_group(self, user_id: str, subcollection: str) -> list[dict[str, Any]]:
        return await self._run(self._query_group_sync, user_id, subcollection)

    async def get_user_collections(self, user_id: str) -> list[str]:
        collections = await self._run(self._collections_sync, user_id)
        return [name for name in collections if is_entity_collection(name)]

    async def get_user_data(self, user_id: str, section: str | None = None) -> dict[str, Any] | None:
        return await self._run(self._get_user_data_sync, user_id, section)

    async def set_user_data(self, user_id: str, section: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._run(self._set_user_data_sync, user_id, section, data)

    async def compare_and_set_user_data(
        self,
        user_id: str,
        section: str,
        expected: dict[str, Any],
        data: dict[str, Any],
    ) -> bool:
        return await self._run(self._compare_and_set_sync, user_id, section, expected, data)

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        """Summary: Run a blocking SQLite call in a worker thread.

        Importance: Keeps the event loop free and maps driver errors onto StoreError.
        Alternatives: Use an async SQLite driver.
        """

        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            raise StoreError(f"{func.__name__.strip('_')} failed: {exc}") from exc

    def _list_users_sync(self) -> list[str]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT user_id FROM documents WHERE root = ?
                UNION
                SELECT user_id FROM user_data WHERE root = ?
                ORDER BY user_id
                """,
                (self._root, self._root),
            )
            rows = cursor.fetchall()
        return [row[0] for row in rows]

    def _get_document_sync(self, user_id: str, collection: str, name: str) -> dict[str, Any] | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT data FROM documents
                WHERE root = ? AND user_id = ? AND collection = ? AND name = ?
                """,
                (self._root, user_id, collection, name),
            )
            row = cursor.fetchone()
        return json.loads(row[0]) if row else None

    def _store_documents_sync(
        self, user_id: str, collection: str, rows: list[tuple[str, dict[str, Any]]]
    ) -> None:
        if not rows:
            return
        with self._transaction() as cursor:
            cursor.executemany(
                """
                INSERT OR REPLACE INTO documents (root, user_id, collection, name, data)
                VALUES (?, ?, ?, ?, ?)
                """,
                [
                    (self._root, user_id, collection, name, json.dumps(data, default=str))
                    for name, data in rows
                ],
            )

    def _remove_document_sync(self, user_id: str, collection: str, name: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                """
                DELETE FROM documents
                WHERE root = ? AND user_id = ? AND collection = ? AND name = ?
                """,
                (self._root, user_id, collection, name),
            )
            return cursor.rowcount > 0

    def _query_sync(self, user_id: str, collection: str) -> list[dict[str, Any]]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT data FROM documents
                WHERE root = ? AND user_id = ? AND collection = ? AND name != ?
                ORDER BY name
                """,
                (self._root, user_id, collection, INVOKE_INFO),
            )
            rows = cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    def _query_group_sync(self, user_id: str, subcollection: str) -> list[dict[str, Any]]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT data FROM documents
                WHERE root = ? AND user_id = ? AND collection LIKE ? ESCAPE '\\'
                ORDER BY collection, name
                """,
                (self._root, user_id, "%/" + _escape_like(subcollection)),
            )
            rows = cursor.fetchall()
        return [json.loads(row[0]) for row in rows]

    def _collections_sync(self, user_id: str) -> list[str]:
        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                SELECT DISTINCT collection FROM documents
                WHERE root = ? AND user_id = ?
                ORDER BY collection
                """,
                (self._root, user_id),
            )
            rows = cursor.fetchall()
        return [row[0] for row in rows]

    def _get_user_data_sync(self, user_id: str, section: str | None) -> dict[str, Any] | None:
        with self._connection() as connection:
            cursor = connection.cursor()
            if section is None:
                cursor.execute(
                    "SELECT section, data FROM user_data WHERE root = ? AND user_id = ?",
                    (self._root, user_id),
                )
                rows = cursor.fetchall()
                return {row[0]: json.loads(row[1]) for row in rows} if rows else None
            cursor.execute(
                "SELECT data FROM user_data WHERE root = ? AND user_id = ? AND section = ?",
                (self._root, user_id, section),
            )
            row = cursor.fetchone()
        return json.loads(row[0]) if row else None

    def _set_user_data_sync(self, user_id: str, section: str, data: dict[str, Any]) -> dict[str, Any]:
        with self._transaction() as cursor:
            current = self._read_section(cursor, user_id, section)
            merged = {**current, **data}
            self._write_section(cursor, user_id, section, merged)
        return merged

    def _compare_and_set_sync(
        self,
        user_id: str,
        section: str,
        expected: dict[str, Any],
        data: dict[str, Any],
    ) -> bool:
        with self._transaction() as cursor:
            current = self._read_section(cursor, user_id, section)
            if not section_matches(current, expected):
                return False
            self._write_section(cursor, user_id, section, {**current, **data})
        return True

    def _read_section(self, cursor: sqlite3.Cursor, user_id: str, section: str) -> dict[str, Any]:
        cursor.execute(
            "SELECT data FROM user_data WHERE root = ? AND user_id = ? AND section = ?",
            (self._root, user_id, section),
        )
        row = cursor.fetchone()
        return json.loads(row[0]) if row else {}

    def _write_section(
        self, cursor: sqlite3.Cursor, user_id: str, section: str, data: dict[str, Any]
    ) -> None:
        cursor.execute(
            """
            INSERT OR REPLACE INTO user_data (root, user_id, section, data)
            VALUES (?, ?, ?, ?)
            """,
            (self._root, user_id, section, json.dumps(data, default=str)),
        )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Summary: Run statements inside an immediate write transaction.

        Importance: Makes read-modify-write section updates atomic across connections.
        Alternatives: Rely on implicit transactions per statement.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                yield cursor
            except BaseException:
                connection.rollback()
                raise
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path, timeout=30, isolation_level=None)
        try:
            yield connection
        finally:
            connection.close()


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def default_store_path() -> str:
    """Summary: Provide the default database path.

    Importance: Centralizes the default storage location.
    Alternatives: Compute the path based on OS user directories.
    """

    return "accountpulse.db"

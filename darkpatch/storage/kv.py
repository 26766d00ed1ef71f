"""
Key-value persistence for the pattern store

The pattern store only needs get/set of whole JSON documents under a fixed
namespace. SqliteKeyValueStore keeps them in the kv_documents table of the
darkpatch database; InMemoryKeyValueStore is for tests and throwaway runs.

Any backend failure surfaces as PersistenceError so callers have one thing to
catch.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from darkpatch.config import STORE_NAMESPACE
from darkpatch.errors import PersistenceError
from darkpatch.infrastructure.database import Database, retry_on_db_lock
from darkpatch.observability.logging import get_logger
from darkpatch.observability.telemetry import counter

logger = get_logger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    namespace: str

    def get(self, key: str) -> dict[str, Any] | None:
        """
        Raises:
            PersistenceError: If the backend cannot be read
        """
        ...

    def set(self, key: str, document: dict[str, Any]) -> None:
        """
        Raises:
            PersistenceError: If the backend cannot be written
        """
        ...


class InMemoryKeyValueStore:
    """Process-local store. Documents are copied through JSON like a real backend."""

    def __init__(self, namespace: str = STORE_NAMESPACE):
        self.namespace = namespace
        self._documents: dict[str, str] = {}

    def get(self, key: str) -> dict[str, Any] | None:
        raw = self._documents.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = json.dumps(document)


class SqliteKeyValueStore:
    """
    JSON documents in SQLite, one row per (namespace, key).

    Last writer wins: set() replaces the whole document.
    """

    def __init__(self, database: Database, namespace: str = STORE_NAMESPACE):
        self.database = database
        self.namespace = namespace

    @retry_on_db_lock()
    def _read(self, key: str) -> str | None:
        with self.database.connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_documents WHERE namespace = ? AND doc_key = ?",
                (self.namespace, key),
            ).fetchone()
        return row["value"] if row else None

    @retry_on_db_lock()
    def _write(self, key: str, value: str) -> None:
        with self.database.transaction() as conn:
            conn.execute(
                """
                INSERT INTO kv_documents (namespace, doc_key, value, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(namespace, doc_key)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (self.namespace, key, value, datetime.now(UTC).isoformat()),
            )

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            raw = self._read(key)
        except (sqlite3.Error, RuntimeError, FileNotFoundError) as e:
            counter("storage.read_error")
            logger.error("Failed to read %s/%s: %s", self.namespace, key, e)
            raise PersistenceError(f"Failed to read {self.namespace}/{key}: {e}") from e

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            counter("storage.corrupt_document")
            raise PersistenceError(f"Corrupt document {self.namespace}/{key}: {e}") from e

    def set(self, key: str, document: dict[str, Any]) -> None:
        try:
            self._write(key, json.dumps(document))
        except (sqlite3.Error, RuntimeError, FileNotFoundError) as e:
            counter("storage.write_error")
            logger.error("Failed to write %s/%s: %s", self.namespace, key, e)
            raise PersistenceError(f"Failed to write {self.namespace}/{key}: {e}") from e

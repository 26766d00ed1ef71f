from __future__ import annotations

import pytest

from darkpatch.contracts.models import ProblemTag, Signature
from darkpatch.errors import PersistenceError
from darkpatch.infrastructure.database import Database
from darkpatch.learning.pattern_store import LEDGER_KEY, PatternStore
from darkpatch.storage.kv import SqliteKeyValueStore

MENU = Signature(tags=(ProblemTag.TRANSPARENT_MENU_BACKGROUND,), element="navigation")
RULE = "{{selector}} { background-color: #222 !important; }"


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "darkpatch.db")
    db.init_schema()
    yield db
    db.close()


def test_schema_is_valid(database):
    assert database.validate_schema()


def test_document_round_trip(database):
    kv = SqliteKeyValueStore(database, namespace="test")

    assert kv.get("missing") is None
    kv.set("doc", {"a": [1, 2, 3]})
    kv.set("doc", {"a": [4]})

    assert kv.get("doc") == {"a": [4]}


def test_namespaces_are_isolated(database):
    SqliteKeyValueStore(database, namespace="one").set("doc", {"v": 1})
    assert SqliteKeyValueStore(database, namespace="two").get("doc") is None


def test_ledger_survives_restart(database, policy):
    first = PatternStore(SqliteKeyValueStore(database), policy=policy)
    first.load()
    for _ in range(3):
        first.record_feedback(MENU, "p-1", "up", rule_text=RULE, domain="example.com")

    second = PatternStore(SqliteKeyValueStore(database), policy=policy)
    second.load()

    assert len(second.ledger()) == 3
    record = second.lookup(MENU, "example.com")
    assert record is not None
    assert record.rule_text == RULE
    assert record.domain_scope == "example.com"


def test_corrupt_document_raises(database, policy):
    with database.transaction() as conn:
        conn.execute(
            "INSERT INTO kv_documents (namespace, doc_key, value, updated_at) VALUES (?, ?, ?, ?)",
            ("darkpatch", LEDGER_KEY, "{not json", "2026-01-01T00:00:00+00:00"),
        )
    kv = SqliteKeyValueStore(database, namespace="darkpatch")

    with pytest.raises(PersistenceError):
        kv.get(LEDGER_KEY)

    store = PatternStore(kv, policy=policy)
    assert store.reload() is False
    assert "Corrupt" in store.last_error


def test_missing_database_raises(tmp_path):
    kv = SqliteKeyValueStore(Database(tmp_path / "absent.db"))

    with pytest.raises(PersistenceError):
        kv.get(LEDGER_KEY)
    with pytest.raises(PersistenceError):
        kv.set(LEDGER_KEY, {})

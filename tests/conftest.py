"""
Shared fixtures for the darkpatch test suite.

Builders follow one pattern: a fixture returns a factory so tests can
override just the fields they care about.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from darkpatch.contracts.models import ProblemTag
from darkpatch.contracts.types import BoundingBox, Color, Issue, StyleSnapshot
from darkpatch.errors import PersistenceError
from darkpatch.host.memory import DocumentTree
from darkpatch.learning.pattern_store import PatternStore
from darkpatch.llm.generator import GenerationResult
from darkpatch.observability.telemetry import reset_telemetry
from darkpatch.runtime.policy import Policy
from darkpatch.storage.kv import InMemoryKeyValueStore

MENU_RULE = ".dropdown-menu { background-color: #222 !important; color: #e4e6ea !important; }"


@pytest.fixture(autouse=True)
def _reset_telemetry():
    reset_telemetry()
    yield


@pytest.fixture
def policy() -> Policy:
    return Policy()


@pytest.fixture
def kv() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv, policy) -> PatternStore:
    pattern_store = PatternStore(kv, policy=policy)
    pattern_store.load()
    return pattern_store


class FlakyKeyValueStore(InMemoryKeyValueStore):
    """In-memory store whose backend can be switched off."""

    def __init__(self):
        super().__init__()
        self.failing = False

    def get(self, key: str) -> dict[str, Any] | None:
        if self.failing:
            raise PersistenceError("backend offline")
        return super().get(key)

    def set(self, key: str, document: dict[str, Any]) -> None:
        if self.failing:
            raise PersistenceError("backend offline")
        super().set(key, document)


@pytest.fixture
def flaky_kv() -> FlakyKeyValueStore:
    return FlakyKeyValueStore()


class FakeGenerator:
    """Scripted generator: returns `result` after an optional delay and records calls."""

    def __init__(
        self,
        result: GenerationResult | None = None,
        delay: float = 0.0,
        converse_result: GenerationResult | None = None,
    ):
        self.result = result or GenerationResult.success(MENU_RULE)
        self.converse_result = converse_result or self.result
        self.delay = delay
        self.calls: list[Any] = []

    async def generate(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result

    async def converse(self, description, page_summary=""):
        self.calls.append(description)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.converse_result


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def make_snapshot():
    def _make(**overrides) -> StyleSnapshot:
        data: dict[str, Any] = {
            "identity": 'id("node")',
            "tag": "div",
            "box": BoundingBox(0, 0, 200, 100),
            "foreground": Color(0, 0, 0),
        }
        data.update(overrides)
        return StyleSnapshot(**data)

    return _make


@pytest.fixture
def menu_snapshot(make_snapshot):
    """Transparent absolutely positioned dropdown: the canonical menu defect."""

    def _make(**overrides) -> StyleSnapshot:
        data: dict[str, Any] = {
            "identity": 'id("menu")',
            "tag": "ul",
            "element_id": "menu",
            "classes": ("dropdown-menu",),
            "element_kind": "navigation",
            "position": "absolute",
            "z_index": 500,
            "box": BoundingBox(10, 40, 200, 300),
        }
        data.update(overrides)
        return make_snapshot(**data)

    return _make


@pytest.fixture
def make_issue(make_snapshot):
    def _make(tags=(ProblemTag.WHITE_BACKGROUND,), **snapshot_overrides) -> Issue:
        snapshot = make_snapshot(**snapshot_overrides)
        return Issue(node_identity=snapshot.identity, tags=frozenset(tags), snapshot=snapshot)

    return _make


def dropdown_document(**menu_style: str) -> dict[str, Any]:
    style = {
        "background-color": "rgba(0, 0, 0, 0)",
        "position": "absolute",
        "z-index": "500",
    }
    style.update(menu_style)
    return {
        "viewport": {"width": 1920, "height": 1080},
        "root": {
            "tag": "html",
            "box": {"width": 1920, "height": 1080},
            "children": [
                {
                    "tag": "body",
                    "box": {"width": 1920, "height": 1080},
                    "children": [
                        {
                            "tag": "div",
                            "classes": ["dropdown-menu"],
                            "style": style,
                            "box": {"x": 100, "y": 60, "width": 200, "height": 300},
                            "children": [
                                {
                                    "tag": "span",
                                    "text": "Settings",
                                    "box": {"x": 100, "y": 60, "width": 200, "height": 30},
                                },
                                {
                                    "tag": "span",
                                    "text": "Sign out",
                                    "box": {"x": 100, "y": 90, "width": 200, "height": 30},
                                },
                            ],
                        },
                        {
                            "tag": "p",
                            "id": "intro",
                            "text": "Welcome back",
                            "box": {"x": 0, "y": 400, "width": 800, "height": 40},
                        },
                    ],
                }
            ],
        },
    }


@pytest.fixture
def dropdown_tree():
    def _make(**menu_style: str) -> DocumentTree:
        return DocumentTree.from_dict(dropdown_document(**menu_style))

    return _make


@pytest.fixture
def dropdown_page(tmp_path):
    """The dropdown document written to a JSON file."""
    path = tmp_path / "page.json"
    path.write_text(json.dumps(dropdown_document()))
    return path

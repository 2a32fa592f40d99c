"""Shared pytest fixtures for raindrop-notebooklm-sync tests."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from raindrop_notebooklm_sync.adapters.base import apply_changes
from raindrop_notebooklm_sync.errors import AdapterError
from raindrop_notebooklm_sync.sync.engine import SyncEngine, SyncOptions
from raindrop_notebooklm_sync.sync.models import (
    ApplyResult,
    Item,
    ItemUpdate,
    Side,
)
from raindrop_notebooklm_sync.sync.state import SyncStateStore


class FakeAdapter:
    """In-memory adapter for testing.

    Stores items in a dict, records every ``apply`` call, and fails the
    ids listed in ``fail_ids`` (creates are keyed by the origin item's id,
    updates and deletes by the target id).
    """

    def __init__(
        self,
        side: Side,
        items: Iterable[Item] = (),
        id_prefix: str | None = None,
    ) -> None:
        self.side = side
        self.name = f"fake-{side.value}"
        self.items: dict[str, Item] = {i.source_id: i for i in items}
        self.id_prefix = id_prefix or ("b-new-" if side is Side.BOOKMARK else "n-new-")
        self.apply_calls: list[tuple[list[Item], list[ItemUpdate], list[str]]] = []
        self.list_calls = 0
        self.fail_ids: dict[str, AdapterError] = {}
        self.list_error: Exception | None = None
        self.health_error: Exception | None = None
        self._counter = 0

    # Test helpers

    def add(
        self,
        source_id: str,
        title: str = "",
        url: str = "",
        tags: Sequence[str] = (),
    ) -> Item:
        item = Item.build(source_id, self.side, title, url, tags)
        self.items[source_id] = item
        return item

    # Adapter contract

    def list_items(self) -> list[Item]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.items.values())

    def apply(
        self,
        creates: Sequence[Item],
        updates: Sequence[ItemUpdate],
        deletes: Sequence[str],
        stop: threading.Event | None = None,
    ) -> ApplyResult:
        self.apply_calls.append((list(creates), list(updates), list(deletes)))
        return apply_changes(
            creates,
            updates,
            deletes,
            create_one=self._create,
            update_one=self._update,
            delete_one=self._delete,
            service=self.name,
            stop=stop,
        )

    def health_check(self) -> str:
        if self.health_error is not None:
            raise self.health_error
        return f"{len(self.items)} items"

    def _create(self, item: Item) -> Item:
        if item.source_id in self.fail_ids:
            raise self.fail_ids[item.source_id]
        self._counter += 1
        new_id = f"{self.id_prefix}{self._counter}"
        return self.add(new_id, item.title, item.url_or_reference, sorted(item.tags))

    def _update(self, target_id: str, item: Item) -> Item:
        if target_id in self.fail_ids:
            raise self.fail_ids[target_id]
        return self.add(target_id, item.title, item.url_or_reference, sorted(item.tags))

    def _delete(self, target_id: str) -> None:
        if target_id in self.fail_ids:
            raise self.fail_ids[target_id]
        del self.items[target_id]


@pytest.fixture
def bookmarks() -> FakeAdapter:
    return FakeAdapter(Side.BOOKMARK)


@pytest.fixture
def notebook() -> FakeAdapter:
    return FakeAdapter(Side.NOTEBOOK)


@pytest.fixture
def state_store(tmp_path: Path) -> SyncStateStore:
    return SyncStateStore(tmp_path / "state" / "sync_state.json")


@pytest.fixture
def make_engine(bookmarks, notebook, state_store):
    """Factory fixture building a SyncEngine over the fake adapters."""

    def _make(**options) -> SyncEngine:
        return SyncEngine(
            bookmarks, notebook, state_store, SyncOptions(**options)
        )

    return _make

"""Raindrop.io bookmark adapter (REST API v1)."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from pydantic import ValidationError

from raindrop_notebooklm_sync.adapters.base import apply_changes, parse_timestamp
from raindrop_notebooklm_sync.core.client import ServiceClient
from raindrop_notebooklm_sync.errors import AdapterError
from raindrop_notebooklm_sync.sync.models import (
    ApplyResult,
    Item,
    ItemUpdate,
    Side,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.raindrop.io/rest/v1"
PAGE_SIZE = 50


class RaindropAdapter:
    """Bookmarks of one Raindrop collection.

    Args:
        client: ``ServiceClient`` pointed at the Raindrop REST API with the
            user's access token.
        collection_id: Collection to sync (``0`` means all bookmarks,
            ``-1`` unsorted).
    """

    side = Side.BOOKMARK
    name = "raindrop"

    def __init__(self, client: ServiceClient, collection_id: int = 0) -> None:
        self.client = client
        self.collection_id = collection_id

    def list_items(self) -> list[Item]:
        items: list[Item] = []
        page = 0
        while True:
            data = self.client.request(
                "GET",
                f"/raindrops/{self.collection_id}",
                params={"page": page, "perpage": PAGE_SIZE},
            ) or {}
            batch = data.get("items") or []
            items.extend(self._to_item(raw) for raw in batch)
            total = data.get("count")
            if len(batch) < PAGE_SIZE or (
                isinstance(total, int) and len(items) >= total
            ):
                break
            page += 1
        logger.info("Fetched %d bookmarks from Raindrop", len(items))
        return items

    def apply(
        self,
        creates: Sequence[Item],
        updates: Sequence[ItemUpdate],
        deletes: Sequence[str],
        stop: threading.Event | None = None,
    ) -> ApplyResult:
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
        data = self.client.request("GET", "/user", retry=False) or {}
        user = data.get("user") or {}
        who = user.get("fullName") or user.get("email") or "unknown user"
        return f"authenticated as {who}"

    # ------------------------------------------------------------------
    # Single-item operations
    # ------------------------------------------------------------------

    def _create(self, item: Item) -> Item:
        body = self._payload(item)
        body["collection"] = {"$id": self.collection_id}
        # Not retried: a lost response may hide a stored item, and a
        # second POST would duplicate it.
        data = self.client.request(
            "POST", "/raindrop", json_body=body, retry=False
        )
        return self._unwrap(data)

    def _update(self, target_id: str, item: Item) -> Item:
        data = self.client.request(
            "PUT", f"/raindrop/{target_id}", json_body=self._payload(item)
        )
        return self._unwrap(data)

    def _delete(self, target_id: str) -> None:
        self.client.request("DELETE", f"/raindrop/{target_id}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _payload(item: Item) -> dict:
        return {
            "link": item.url_or_reference,
            "title": item.title,
            "tags": sorted(item.tags),
        }

    def _unwrap(self, data: object) -> Item:
        if not isinstance(data, dict) or not isinstance(data.get("item"), dict):
            raise AdapterError(
                "raindrop: response has no 'item'", service=self.name
            )
        return self._to_item(data["item"])

    @classmethod
    def _to_item(cls, raw: object) -> Item:
        if not isinstance(raw, dict):
            raise AdapterError(
                f"{cls.name}: bookmark record is not an object", service=cls.name
            )
        try:
            return Item.build(
                source_id=str(raw.get("_id", "")),
                origin=Side.BOOKMARK,
                title=raw.get("title") or "",
                url_or_reference=raw.get("link") or "",
                tags=raw.get("tags") or [],
                updated_at=parse_timestamp(raw.get("lastUpdate")),
            )
        except (TypeError, AttributeError, ValidationError) as exc:
            raise AdapterError(
                f"{cls.name}: malformed bookmark {raw.get('_id')!r}: {exc}",
                service=cls.name,
            ) from exc

"""NotebookLM notebook-source adapter.

Talks to a JSON endpoint exposing one notebook's sources::

    GET    {base}/notebooks/{notebook}               -> notebook metadata
    GET    {base}/notebooks/{notebook}/sources       -> {"sources": [...],
                                                         "nextPageToken": ...}
    POST   {base}/notebooks/{notebook}/sources       -> source
    PATCH  {base}/notebooks/{notebook}/sources/{id}  -> source
    DELETE {base}/notebooks/{notebook}/sources/{id}

A source is ``{"id", "title", "url", "labels", "updateTime"}``; labels map
to item tags.
"""

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

PAGE_SIZE = 100


class NotebookLMAdapter:
    """Sources of one NotebookLM notebook.

    Args:
        client: ``ServiceClient`` pointed at the notebook API.
        notebook_id: Notebook whose sources are synchronised.
    """

    side = Side.NOTEBOOK
    name = "notebooklm"

    def __init__(self, client: ServiceClient, notebook_id: str) -> None:
        self.client = client
        self.notebook_id = notebook_id

    @property
    def _sources_path(self) -> str:
        return f"/notebooks/{self.notebook_id}/sources"

    def list_items(self) -> list[Item]:
        items: list[Item] = []
        page_token: str | None = None
        seen_tokens: set[str] = set()
        while True:
            params: dict = {"pageSize": PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            data = self.client.request(
                "GET", self._sources_path, params=params
            ) or {}
            items.extend(self._to_item(raw) for raw in data.get("sources") or [])
            page_token = data.get("nextPageToken")
            if not page_token:
                break
            if page_token in seen_tokens:
                raise AdapterError(
                    f"{self.name}: page token {page_token!r} repeated, "
                    "listing would never end",
                    service=self.name,
                )
            seen_tokens.add(page_token)
        logger.info("Fetched %d sources from NotebookLM", len(items))
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
        data = self.client.request(
            "GET", f"/notebooks/{self.notebook_id}", retry=False
        ) or {}
        title = data.get("title") or self.notebook_id
        return f"notebook {title!r} reachable"

    # ------------------------------------------------------------------
    # Single-item operations
    # ------------------------------------------------------------------

    def _create(self, item: Item) -> Item:
        data = self.client.request(
            "POST",
            self._sources_path,
            json_body=self._payload(item),
            retry=False,
        )
        return self._unwrap(data)

    def _update(self, target_id: str, item: Item) -> Item:
        data = self.client.request(
            "PATCH",
            f"{self._sources_path}/{target_id}",
            json_body=self._payload(item),
        )
        return self._unwrap(data)

    def _delete(self, target_id: str) -> None:
        self.client.request("DELETE", f"{self._sources_path}/{target_id}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _payload(item: Item) -> dict:
        return {
            "title": item.title,
            "url": item.url_or_reference,
            "labels": sorted(item.tags),
        }

    def _unwrap(self, data: object) -> Item:
        if not isinstance(data, dict) or not data.get("id"):
            raise AdapterError(
                "notebooklm: response is not a source", service=self.name
            )
        return self._to_item(data)

    @classmethod
    def _to_item(cls, raw: object) -> Item:
        if not isinstance(raw, dict):
            raise AdapterError(
                f"{cls.name}: source record is not an object", service=cls.name
            )
        try:
            return Item.build(
                source_id=str(raw.get("id", "")),
                origin=Side.NOTEBOOK,
                title=raw.get("title") or "",
                url_or_reference=raw.get("url") or "",
                tags=raw.get("labels") or [],
                updated_at=parse_timestamp(raw.get("updateTime")),
            )
        except (TypeError, AttributeError, ValidationError) as exc:
            raise AdapterError(
                f"{cls.name}: malformed source {raw.get('id')!r}: {exc}",
                service=cls.name,
            ) from exc

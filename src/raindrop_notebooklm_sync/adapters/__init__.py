"""Service adapters: one per synchronised service."""

from __future__ import annotations

from raindrop_notebooklm_sync.adapters.base import SourceAdapter, apply_changes
from raindrop_notebooklm_sync.adapters.notebooklm import NotebookLMAdapter
from raindrop_notebooklm_sync.adapters.raindrop import RaindropAdapter
from raindrop_notebooklm_sync.config_schema import HttpConfig, UnifiedConfig
from raindrop_notebooklm_sync.core.client import ServiceClient


def _client(service: str, base_url: str, token: str, http: HttpConfig) -> ServiceClient:
    return ServiceClient(
        service,
        base_url,
        token,
        connect_timeout=http.connect_timeout,
        read_timeout=http.read_timeout,
        max_retries=http.max_retries,
        retry_base_delay=http.retry_base_delay,
        retry_max_delay=http.retry_max_delay,
    )


def build_adapters(
    config: UnifiedConfig,
) -> tuple[RaindropAdapter, NotebookLMAdapter]:
    """Create both adapters from a validated config."""
    bookmarks = RaindropAdapter(
        _client(
            RaindropAdapter.name,
            config.raindrop.base_url,
            config.raindrop.token or "",
            config.http,
        ),
        collection_id=config.raindrop.collection_id,
    )
    notebook = NotebookLMAdapter(
        _client(
            NotebookLMAdapter.name,
            config.notebooklm.url or "",
            config.notebooklm.token or "",
            config.http,
        ),
        notebook_id=config.notebooklm.notebook_id or "",
    )
    return bookmarks, notebook


__all__ = [
    "NotebookLMAdapter",
    "RaindropAdapter",
    "SourceAdapter",
    "apply_changes",
    "build_adapters",
]

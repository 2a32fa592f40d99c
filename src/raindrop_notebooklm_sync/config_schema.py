"""Unified configuration schema for raindrop_notebooklm_sync.

Defines Pydantic models for the config structure with dedicated sections
for the two services, the sync engine and logging.

Usage:
    from raindrop_notebooklm_sync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class HttpConfig(BaseModel):
    """Timeouts and retry policy shared by both service clients."""

    connect_timeout: float = Field(
        default=10.0, gt=0, description="Connect timeout (seconds)"
    )
    read_timeout: float = Field(
        default=60.0, gt=0, description="Read timeout (seconds)"
    )
    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries for network errors and rate limiting (0-10)",
    )
    retry_base_delay: float = Field(
        default=1.0, ge=0, description="Initial backoff delay (seconds)"
    )
    retry_max_delay: float = Field(
        default=30.0, ge=0, description="Backoff delay cap (seconds)"
    )

    model_config = {"frozen": True}


class RaindropConfig(BaseModel):
    """Raindrop.io connection settings.

    All fields are optional here so env vars can supply them at runtime.
    """

    token: str | None = Field(
        default=None, description="Raindrop API access token"
    )
    collection_id: int = Field(
        default=0,
        description="Collection to sync (0 = all, -1 = unsorted)",
    )
    base_url: str = Field(
        default="https://api.raindrop.io/rest/v1",
        description="Raindrop REST API base URL",
    )

    model_config = {"frozen": True}


class NotebookLMConfig(BaseModel):
    """NotebookLM notebook connection settings."""

    url: str | None = Field(
        default=None, description="Notebook API base URL"
    )
    notebook_id: str | None = Field(
        default=None, description="Notebook whose sources are synced"
    )
    token: str | None = Field(
        default=None, description="Bearer token for the notebook API"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Reconciliation engine settings.

    Attributes:
        state_file: JSON file holding the link records.
        propagate_deletes: Delete the counterpart when a linked item is
            deleted on one side.  Off by default (irreversible).
        lock_timeout: Seconds to wait for another run to finish.
        fetch_timeout: Upper bound (seconds) on each side's fetch.
        apply_timeout: Upper bound (seconds) on each side's apply batch.
    """

    state_file: str = Field(
        default=".raindrop_notebooklm/sync_state.json",
        description="Path of the sync state file",
    )
    propagate_deletes: bool = Field(
        default=False, description="Propagate deletions to the other side"
    )
    lock_timeout: float = Field(default=0.0, ge=0)
    fetch_timeout: float | None = Field(default=300.0, gt=0)
    apply_timeout: float | None = Field(default=900.0, gt=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", pattern="^(text|json)$")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()``
    (zero-config) is always valid; credentials are checked later by
    ``config.validate_config``.
    """

    raindrop: RaindropConfig = Field(default_factory=RaindropConfig)
    notebooklm: NotebookLMConfig = Field(default_factory=NotebookLMConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)

"""Bookmark/notebook reconciliation engine.

Public API for keeping a Raindrop.io collection and a NotebookLM
notebook's sources in sync.

Architecture
------------
Each side is compared against its own fingerprint recorded at the last
sync (archive-based reconciliation), so a change is attributed to the
side that made it and a change on both sides is surfaced as a conflict
instead of being overwritten.

Modules:

- ``engine``   -- ``SyncEngine``: orchestrates a full run.
- ``matcher``  -- ``match``: pairs items by link identity, then by
  fingerprint.
- ``differ``   -- ``diff``: computes the ``ChangeSet``.
- ``state``    -- ``SyncStateStore``: versioned, atomically committed
  JSON state.
- ``lock``     -- ``RunLock``: one run at a time per state file.
- ``models``   -- ``Item``, ``LinkRecord``, ``ChangeSet``,
  ``SyncSummary`` and friends.
- ``reporter`` -- Human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from raindrop_notebooklm_sync.adapters import build_adapters
    from raindrop_notebooklm_sync.sync import (
        SyncEngine, SyncOptions, SyncStateStore, format_sync_report,
    )

    bookmarks, notebook = build_adapters(config)
    engine = SyncEngine(
        bookmarks,
        notebook,
        SyncStateStore(Path(".raindrop_notebooklm/sync_state.json")),
        SyncOptions(propagate_deletes=False),
    )

    # Dry-run first to preview changes
    preview = engine.run(dry_run=True)
    print(format_dry_run_preview(preview))

    summary = engine.run()
    print(format_sync_report(summary))
"""

from .differ import diff
from .engine import SyncEngine, SyncOptions
from .lock import RunLock
from .matcher import match
from .models import (
    ChangeSet,
    Conflict,
    Item,
    LinkRecord,
    MatchResult,
    Side,
    SyncSummary,
    content_fingerprint,
)
from .reporter import (
    format_dry_run_preview,
    format_sync_report,
    summary_to_json,
)
from .state import SyncStateStore

__all__ = [
    "ChangeSet",
    "Conflict",
    "Item",
    "LinkRecord",
    "MatchResult",
    "RunLock",
    "Side",
    "SyncEngine",
    "SyncOptions",
    "SyncStateStore",
    "SyncSummary",
    "content_fingerprint",
    "diff",
    "format_dry_run_preview",
    "format_sync_report",
    "match",
    "summary_to_json",
]

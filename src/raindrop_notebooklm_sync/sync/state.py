"""Sync state persistence layer.

Stores every ``LinkRecord`` in one versioned JSON document::

    {
      "version": 1,
      "last_sync": "2026-10-19T08:00:00+00:00",
      "links": {
        "<bookmark_id>": {"notebook_id": "...", ...}
      }
    }

Key design choices:

* **Atomic writes** -- ``commit()`` writes to a temp file in the same
  directory, fsyncs it, then calls ``os.replace()`` so readers see either
  the previous snapshot or the new one, never a mixture.
* **Fail fast** -- an unreadable document, an unknown schema version or a
  document that breaks the one-link-per-id rule raises
  ``StateCorruptionError`` instead of being truncated or guessed at.
* **Whole-snapshot commits** -- the engine mutates a plain dict during a
  run and commits once at the end.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from raindrop_notebooklm_sync.errors import StateCorruptionError
from raindrop_notebooklm_sync.sync.models import LinkRecord

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class SyncStateStore:
    """Load and commit the link mapping for one adapter pair.

    Args:
        path: Path of the JSON state file.  The parent directory is
            created on first commit.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> dict[str, LinkRecord]:
        """Load all link records, keyed by bookmark id.

        Returns:
            The link mapping.  Empty when the state file does not exist.

        Raises:
            StateCorruptionError: If the document cannot be trusted.
        """
        document = self._read_document()
        if document is None:
            return {}

        raw_links = document.get("links", {})
        if not isinstance(raw_links, dict):
            raise StateCorruptionError(
                f"{self.path}: 'links' must be an object"
            )

        links: dict[str, LinkRecord] = {}
        seen_notebook_ids: dict[str, str] = {}
        for bookmark_id, raw in raw_links.items():
            if not isinstance(raw, dict):
                raise StateCorruptionError(
                    f"{self.path}: link for bookmark {bookmark_id!r} is not an object"
                )
            try:
                link = LinkRecord(bookmark_id=bookmark_id, **raw)
            except (ValidationError, TypeError) as exc:
                raise StateCorruptionError(
                    f"{self.path}: invalid link for bookmark {bookmark_id!r}: {exc}"
                ) from exc

            previous = seen_notebook_ids.get(link.notebook_id)
            if previous is not None:
                raise StateCorruptionError(
                    f"{self.path}: notebook source {link.notebook_id!r} is "
                    f"linked to both {previous!r} and {bookmark_id!r}"
                )
            seen_notebook_ids[link.notebook_id] = bookmark_id
            links[bookmark_id] = link

        logger.debug("Loaded %d links from %s", len(links), self.path)
        return links

    def commit(self, links: Mapping[str, LinkRecord]) -> None:
        """Persist the full link mapping atomically.

        Args:
            links: Link records keyed by bookmark id.

        Raises:
            ValueError: If two links share a notebook id.
            OSError: If the file cannot be written.  The previous
                snapshot is left intact.
        """
        seen: set[str] = set()
        payload: dict[str, dict] = {}
        for bookmark_id in sorted(links):
            link = links[bookmark_id]
            if link.notebook_id in seen:
                raise ValueError(
                    f"notebook source {link.notebook_id!r} linked twice"
                )
            seen.add(link.notebook_id)
            payload[bookmark_id] = link.model_dump(exclude={"bookmark_id"})

        document = {
            "version": STATE_VERSION,
            "last_sync": datetime.now(timezone.utc).isoformat(),
            "links": payload,
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent),
            prefix=f".{self.path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(document, fh, indent=2, sort_keys=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

        logger.debug("Committed %d links to %s", len(payload), self.path)

    def last_sync(self) -> str | None:
        """Return the timestamp of the last commit, or ``None``."""
        document = self._read_document()
        if document is None:
            return None
        return document.get("last_sync")

    def reset(self) -> Path | None:
        """Move the current state file aside so the next run starts clean.

        Returns:
            Where the old file was moved, or ``None`` if there was none.
        """
        if not self.path.exists():
            return None
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        os.replace(self.path, backup)
        logger.warning("Moved sync state %s to %s", self.path, backup)
        return backup

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _read_document(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            with open(self.path, encoding="utf-8") as fh:
                document = json.load(fh)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StateCorruptionError(
                f"{self.path}: cannot read sync state: {exc}"
            ) from exc

        if not isinstance(document, dict):
            raise StateCorruptionError(
                f"{self.path}: sync state root must be an object"
            )

        version = document.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise StateCorruptionError(
                f"{self.path}: missing or invalid schema version"
            )
        if version != STATE_VERSION:
            raise StateCorruptionError(
                f"{self.path}: unsupported schema version {version} "
                f"(this release reads version {STATE_VERSION})"
            )
        return document

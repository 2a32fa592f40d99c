"""Pydantic models for the reconciliation engine.

Defines the core data contracts used across all sync modules:

- ``Side``: Enum of the two synchronised services.
- ``Item``: One bookmark or notebook source, as fetched.
- ``LinkRecord``: Persisted correspondence between a bookmark and a
  notebook source.
- ``MatchResult``: Output of the matcher.
- ``ChangeSet``: Output of the differ.
- ``ApplyResult``: Per-item outcomes returned by an adapter's ``apply``.
- ``SyncSummary``: Aggregate results for a full sync run.

Item-level models are frozen (immutable) for safety.
"""

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field


class Side(str, Enum):
    """The two services kept in sync."""

    BOOKMARK = "bookmark"
    NOTEBOOK = "notebook"

    @property
    def other(self) -> Side:
        """The opposite side."""
        if self is Side.BOOKMARK:
            return Side.NOTEBOOK
        return Side.BOOKMARK


class Operation(str, Enum):
    """Operations recorded in outcomes and failures."""

    FETCH = "fetch"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ConflictReason(str, Enum):
    BOTH_CHANGED = "both_changed"
    DELETED_AND_CHANGED = "deleted_and_changed"


# ------------------------------------------------------------------
# Fingerprinting
# ------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")


def _normalise_title(title: str) -> str:
    return _WHITESPACE.sub(" ", title.lstrip("\ufeff")).strip()


def _normalise_url(url: str) -> str:
    url = url.strip()
    if not url:
        return ""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return url
    path = parts.path
    if path == "/":
        path = ""
    return urlunsplit(
        (
            parts.scheme.lower(),
            parts.netloc.lower(),
            path,
            parts.query,
            parts.fragment,
        )
    )


def _normalise_tags(tags: frozenset[str] | set[str] | list[str]) -> list[str]:
    return sorted({t.strip().lower() for t in tags if t.strip()})


def content_fingerprint(
    title: str,
    url_or_reference: str,
    tags: frozenset[str] | set[str] | list[str] = frozenset(),
) -> str:
    """Compute the SHA-256 fingerprint of an item's normalised content.

    Normalisation:

    1. Title: strip BOM, collapse whitespace runs, strip.
    2. URL: strip; lower-case scheme and host; drop a bare ``/`` path.
    3. Tags: strip, lower-case, drop empties, deduplicate, sort.

    The fingerprint depends only on content, never on which service the
    item came from, so a copy created on the other side hashes the same.
    """
    payload = json.dumps(
        [
            _normalise_title(title),
            _normalise_url(url_or_reference),
            _normalise_tags(tags),
        ],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# ------------------------------------------------------------------
# Items and links
# ------------------------------------------------------------------


class Item(BaseModel):
    """A synchronisable unit from either side.

    Attributes:
        source_id: Identifier, unique within its origin service.
        origin: Which service the item was fetched from.
        title: Display title.
        url_or_reference: Bookmarked URL or source reference.
        tags: Tags/labels; ordering is irrelevant.
        content_fingerprint: Hash of normalised content.
        updated_at: Timestamp reported by the service, if any.
            Informational only.
    """

    source_id: str
    origin: Side
    title: str = ""
    url_or_reference: str = ""
    tags: frozenset[str] = frozenset()
    content_fingerprint: str
    updated_at: datetime | None = None

    model_config = {"frozen": True}

    @classmethod
    def build(
        cls,
        source_id: str,
        origin: Side,
        title: str = "",
        url_or_reference: str = "",
        tags: frozenset[str] | set[str] | list[str] = frozenset(),
        updated_at: datetime | None = None,
    ) -> Item:
        """Create an item, computing its fingerprint from the content."""
        return cls(
            source_id=source_id,
            origin=origin,
            title=title,
            url_or_reference=url_or_reference,
            tags=frozenset(tags),
            content_fingerprint=content_fingerprint(
                title, url_or_reference, tags
            ),
            updated_at=updated_at,
        )

    @property
    def key(self) -> tuple[Side, str]:
        return (self.origin, self.source_id)

    def describe(self) -> str:
        label = self.title or self.url_or_reference or "(untitled)"
        return f"{self.origin.value}:{self.source_id} {label!r}"


class LinkRecord(BaseModel):
    """Confirmed correspondence between one bookmark and one notebook source.

    Attributes:
        bookmark_id: Raindrop bookmark id.
        notebook_id: NotebookLM source id.
        last_synced_fingerprint_bookmark: Bookmark fingerprint at last sync.
        last_synced_fingerprint_notebook: Notebook fingerprint at last sync.
        last_synced_at: ISO 8601 timestamp of the last successful sync.
    """

    bookmark_id: str
    notebook_id: str
    last_synced_fingerprint_bookmark: str
    last_synced_fingerprint_notebook: str
    last_synced_at: str

    model_config = {"frozen": True}

    def id_for(self, side: Side) -> str:
        if side is Side.BOOKMARK:
            return self.bookmark_id
        return self.notebook_id

    def fingerprint_for(self, side: Side) -> str:
        if side is Side.BOOKMARK:
            return self.last_synced_fingerprint_bookmark
        return self.last_synced_fingerprint_notebook


# ------------------------------------------------------------------
# Matcher output
# ------------------------------------------------------------------


class AmbiguousMatch(BaseModel):
    """A fingerprint shared by more than one candidate on some side."""

    fingerprint: str
    bookmark_ids: list[str]
    notebook_ids: list[str]

    model_config = {"frozen": True}


class MatchedPair(BaseModel):
    """A bookmark and a notebook source believed to be the same thing.

    ``link`` is set when the pair was confirmed by a prior LinkRecord and
    ``None`` when it was paired by fingerprint.
    """

    bookmark: Item
    notebook: Item
    link: LinkRecord | None = None

    model_config = {"frozen": True}


class MatchResult(BaseModel):
    pairs: list[MatchedPair] = []
    unmatched_bookmark: list[Item] = []
    unmatched_notebook: list[Item] = []
    ambiguous: list[AmbiguousMatch] = []

    model_config = {"frozen": True}

    def unmatched(self, side: Side) -> list[Item]:
        if side is Side.BOOKMARK:
            return self.unmatched_bookmark
        return self.unmatched_notebook


# ------------------------------------------------------------------
# Differ output
# ------------------------------------------------------------------


class ItemUpdate(BaseModel):
    """Propagate *item*'s content onto ``target_id`` on the other side."""

    target_id: str
    item: Item
    link: LinkRecord

    model_config = {"frozen": True}


class Conflict(BaseModel):
    """Both sides of a link changed since the last sync.

    For ``deleted_and_changed`` one of ``bookmark``/``notebook`` is
    ``None``.
    """

    bookmark: Item | None = None
    notebook: Item | None = None
    link: LinkRecord | None = None
    reason: ConflictReason = ConflictReason.BOTH_CHANGED

    model_config = {"frozen": True}

    def describe(self) -> str:
        bm = self.bookmark.describe() if self.bookmark else "(deleted)"
        nb = self.notebook.describe() if self.notebook else "(deleted)"
        return f"{bm} <-> {nb}: {self.reason.value}"


class ChangeSet(BaseModel):
    """Everything one reconciliation run intends to do."""

    creates_on_notebook: list[Item] = []
    creates_on_bookmark: list[Item] = []
    updates_on_notebook: list[ItemUpdate] = []
    updates_on_bookmark: list[ItemUpdate] = []
    deletes_on_notebook: list[str] = []
    deletes_on_bookmark: list[str] = []
    conflicts: list[Conflict] = []
    new_links: list[LinkRecord] = []
    dropped_links: list[LinkRecord] = []
    pending_deletes: list[LinkRecord] = []
    ambiguous: list[AmbiguousMatch] = []

    def creates_on(self, side: Side) -> list[Item]:
        if side is Side.BOOKMARK:
            return self.creates_on_bookmark
        return self.creates_on_notebook

    def updates_on(self, side: Side) -> list[ItemUpdate]:
        if side is Side.BOOKMARK:
            return self.updates_on_bookmark
        return self.updates_on_notebook

    def deletes_on(self, side: Side) -> list[str]:
        if side is Side.BOOKMARK:
            return self.deletes_on_bookmark
        return self.deletes_on_notebook

    def has_writes_for(self, side: Side) -> bool:
        return bool(
            self.creates_on(side)
            or self.updates_on(side)
            or self.deletes_on(side)
        )

    @property
    def is_empty(self) -> bool:
        """True when the run would change nothing, locally or remotely."""
        return not (
            self.has_writes_for(Side.BOOKMARK)
            or self.has_writes_for(Side.NOTEBOOK)
            or self.conflicts
            or self.new_links
            or self.dropped_links
        )


# ------------------------------------------------------------------
# Adapter apply results
# ------------------------------------------------------------------


class ItemOutcome(BaseModel):
    """Result of one create/update/delete on one side.

    Attributes:
        operation: Which operation was attempted.
        key: Origin item id for creates, target id otherwise.
        success: Whether the service accepted the change.
        new_id: Identifier allocated by the service (creates only).
        item: The item as stored by the service, when returned.
        error: Error message when ``success`` is False.
    """

    operation: Operation
    key: str
    success: bool
    new_id: str | None = None
    item: Item | None = None
    error: str | None = None

    model_config = {"frozen": True}


class ApplyResult(BaseModel):
    outcomes: list[ItemOutcome] = []

    def outcome_for(
        self, operation: Operation, key: str
    ) -> ItemOutcome | None:
        for outcome in self.outcomes:
            if outcome.operation == operation and outcome.key == key:
                return outcome
        return None


# ------------------------------------------------------------------
# Run summary
# ------------------------------------------------------------------


class ItemFailure(BaseModel):
    side: Side
    operation: Operation
    item_id: str = ""
    error: str

    model_config = {"frozen": True}


class ServiceStatus(BaseModel):
    side: Side
    reachable: bool
    detail: str = ""

    model_config = {"frozen": True}


class SyncSummary(BaseModel):
    """Aggregate report for a full reconciliation run.

    Attributes:
        dry_run: Whether this was a dry-run (no changes applied).
        started_at: ISO 8601 timestamp when the run started.
        completed_at: ISO 8601 timestamp when the run completed.
        changeset: The computed change set (``None`` if fetching failed).
        created: ``"<side>:<id>"`` entries created on each side.
        updated: ``"<side>:<id>"`` entries updated on each side.
        deleted: ``"<side>:<id>"`` entries deleted on each side.
        linked: Links recorded without any write (fingerprint matches).
        conflicts: Every conflict found, never auto-resolved.
        ambiguous: Fingerprints that could not be matched 1:1.
        pending_deletes: Links with one side gone, left untouched.
        failures: Per-item and per-side failures.
        unreachable: Sides whose fetch failed after retries.
    """

    dry_run: bool = False
    started_at: str
    completed_at: str | None = None
    changeset: ChangeSet | None = None
    created: list[str] = []
    updated: list[str] = []
    deleted: list[str] = []
    linked: list[str] = []
    conflicts: list[Conflict] = []
    ambiguous: list[AmbiguousMatch] = []
    pending_deletes: list[LinkRecord] = []
    failures: list[ItemFailure] = []
    unreachable: list[Side] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    def counts(self) -> dict[str, int]:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "deleted": len(self.deleted),
            "linked": len(self.linked),
            "conflicts": len(self.conflicts),
            "ambiguous": len(self.ambiguous),
            "pending_deletes": len(self.pending_deletes),
            "failures": len(self.failures),
        }

    def summary(self) -> str:
        """Format a one-line-per-count summary of the run."""
        header = "Sync summary" + (" (dry run)" if self.dry_run else "")
        lines = [header]
        for name, count in self.counts().items():
            label = name.replace("_", " ").capitalize() + ":"
            lines.append(f"  {label:<17}{count}")
        return "\n".join(lines)

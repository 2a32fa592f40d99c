"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync runs:

- ``format_sync_report`` -- full post-sync summary.
- ``format_dry_run_preview`` -- dry-run preview grouped by action.
- ``summary_to_json`` -- structured dict for ``sync --json``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import AmbiguousMatch, Conflict, SyncSummary


def _ambiguous_line(entry: AmbiguousMatch) -> str:
    return (
        f"  {entry.fingerprint[:12]}: "
        f"bookmarks={entry.bookmark_ids} notebook={entry.notebook_ids}"
    )


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_report(summary: SyncSummary) -> str:
    """Format a complete sync summary as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        summary: The completed sync summary.

    Returns:
        Multi-line formatted string.
    """
    if summary.dry_run:
        return format_dry_run_preview(summary)

    lines: list[str] = []
    lines.append("Sync report")
    lines.append(f"Started: {summary.started_at}")
    if summary.completed_at:
        lines.append(f"Completed: {summary.completed_at}")
    lines.append("")

    counts = summary.counts()
    lines.append(
        f"{counts['created']} created, {counts['updated']} updated, "
        f"{counts['deleted']} deleted, {counts['linked']} linked, "
        f"{counts['conflicts']} conflicts, {counts['failures']} failures"
    )
    lines.append("")

    if summary.unreachable:
        lines.append(
            "Unreachable: "
            + ", ".join(side.value for side in summary.unreachable)
        )
        lines.append("")

    for title, entries in (
        ("Created:", summary.created),
        ("Updated:", summary.updated),
        ("Deleted:", summary.deleted),
        ("Linked:", summary.linked),
    ):
        if entries:
            lines.append(title)
            lines.extend(f"  {entry}" for entry in entries)
            lines.append("")

    if summary.conflicts:
        lines.append("Conflicts (left untouched):")
        for conflict in summary.conflicts:
            lines.append(f"  {conflict.describe()}")
        lines.append("")

    if summary.ambiguous:
        lines.append("Ambiguous (not matched or created):")
        lines.extend(_ambiguous_line(entry) for entry in summary.ambiguous)
        lines.append("")

    if summary.pending_deletes:
        lines.append("Pending deletes (propagation disabled):")
        for link in summary.pending_deletes:
            lines.append(f"  {link.bookmark_id} <-> {link.notebook_id}")
        lines.append("")

    if summary.failures:
        lines.append("Failures:")
        for failure in summary.failures:
            target = f" {failure.item_id}" if failure.item_id else ""
            lines.append(
                f"  {failure.side.value} {failure.operation.value}"
                f"{target}: {failure.error}"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Dry-run preview
# ------------------------------------------------------------------


def format_dry_run_preview(summary: SyncSummary) -> str:
    """Format a dry-run preview grouped by action type.

    Each proposed action is shown under a ``[ACTION]`` heading.

    Args:
        summary: A dry-run sync summary (``dry_run=True``).

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []
    lines.append("DRY RUN -- No changes will be made")
    lines.append("")

    if summary.failures:
        lines.append("[FETCH FAILED]")
        for failure in summary.failures:
            lines.append(f"  {failure.side.value}: {failure.error}")
        lines.append("")
        return "\n".join(lines).rstrip()

    groups = [
        ("CREATE", summary.created),
        ("UPDATE", summary.updated),
        ("DELETE", summary.deleted),
        ("LINK", summary.linked),
        ("CONFLICT", [c.describe() for c in summary.conflicts]),
        (
            "PENDING DELETE",
            [
                f"{link.bookmark_id} <-> {link.notebook_id}"
                for link in summary.pending_deletes
            ],
        ),
    ]
    for label, entries in groups:
        if not entries:
            continue
        lines.append(f"[{label}]")
        lines.extend(f"  {entry}" for entry in entries)
        lines.append("")

    if summary.ambiguous:
        lines.append("[AMBIGUOUS]")
        lines.extend(_ambiguous_line(entry) for entry in summary.ambiguous)
        lines.append("")

    if not any(entries for _, entries in groups) and not summary.ambiguous:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def _conflict_to_json(conflict: Conflict) -> dict:
    link = conflict.link
    bookmark_id = conflict.bookmark.source_id if conflict.bookmark else None
    notebook_id = conflict.notebook.source_id if conflict.notebook else None
    return {
        "bookmark_id": bookmark_id or (link.bookmark_id if link else None),
        "notebook_id": notebook_id or (link.notebook_id if link else None),
        "reason": conflict.reason.value,
    }


def summary_to_json(summary: SyncSummary) -> dict:
    """Convert a sync summary to a structured dict for JSON serialisation.

    Args:
        summary: The sync summary.

    Returns:
        Dict with run info, counts, and per-entry details.
    """
    return {
        "dry_run": summary.dry_run,
        "started_at": summary.started_at,
        "completed_at": summary.completed_at,
        "counts": summary.counts(),
        "created": list(summary.created),
        "updated": list(summary.updated),
        "deleted": list(summary.deleted),
        "linked": list(summary.linked),
        "conflicts": [_conflict_to_json(c) for c in summary.conflicts],
        "ambiguous": [a.model_dump() for a in summary.ambiguous],
        "pending_deletes": [
            {"bookmark_id": link.bookmark_id, "notebook_id": link.notebook_id}
            for link in summary.pending_deletes
        ],
        "failures": [f.model_dump(mode="json") for f in summary.failures],
        "unreachable": [side.value for side in summary.unreachable],
    }

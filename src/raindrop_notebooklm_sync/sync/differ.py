"""Compute the ``ChangeSet`` for one reconciliation run.

Each side is compared against its own fingerprint recorded at the last
sync, never directly against the other side:

=====================  ====================  ===============================
bookmark side          notebook side         result
=====================  ====================  ===============================
unchanged              unchanged             no-op
changed                unchanged             update notebook
unchanged              changed               update bookmark
changed                changed (differs)     conflict, nothing queued
changed                changed (same)        link refreshed, nothing written
missing                unchanged             delete notebook (if enabled)
missing                changed               conflict
missing                missing               link dropped
=====================  ====================  ===============================

Unlinked, unmatched items become creates on the opposite side unless
their fingerprint was ambiguous.  Conflicts are surfaced, never
auto-resolved.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from raindrop_notebooklm_sync.sync.models import (
    ChangeSet,
    Conflict,
    ConflictReason,
    Item,
    ItemUpdate,
    LinkRecord,
    MatchedPair,
    MatchResult,
    Side,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def make_link(
    bookmark_id: str,
    notebook_id: str,
    bookmark_fingerprint: str,
    notebook_fingerprint: str,
    synced_at: str | None = None,
) -> LinkRecord:
    """Build a ``LinkRecord`` stamped with the current time."""
    return LinkRecord(
        bookmark_id=bookmark_id,
        notebook_id=notebook_id,
        last_synced_fingerprint_bookmark=bookmark_fingerprint,
        last_synced_fingerprint_notebook=notebook_fingerprint,
        last_synced_at=synced_at or _now(),
    )


def diff(
    match_result: MatchResult,
    prior_links: Mapping[str, LinkRecord],
    propagate_deletes: bool = False,
    synced_at: str | None = None,
) -> ChangeSet:
    """Compute creates, updates, deletes and conflicts for one run.

    Args:
        match_result: Output of ``matcher.match``.
        prior_links: Persisted links keyed by bookmark id.
        propagate_deletes: Queue deletes on the surviving side when a
            linked item disappears.  Off by default: deletes are
            irreversible.
        synced_at: Timestamp for links created by this diff.

    Returns:
        The ``ChangeSet`` for the run.
    """
    synced_at = synced_at or _now()
    changes = ChangeSet(ambiguous=list(match_result.ambiguous))

    for pair in match_result.pairs:
        _diff_pair(pair, changes, synced_at)

    # Unmatched items: either orphans of a prior link or brand new
    linked_ids = {
        Side.BOOKMARK: {link.bookmark_id for link in prior_links.values()},
        Side.NOTEBOOK: {link.notebook_id for link in prior_links.values()},
    }
    ambiguous_ids = {
        Side.BOOKMARK: {
            bid for a in match_result.ambiguous for bid in a.bookmark_ids
        },
        Side.NOTEBOOK: {
            nid for a in match_result.ambiguous for nid in a.notebook_ids
        },
    }
    present: dict[Side, dict[str, Item]] = {}
    for side in (Side.BOOKMARK, Side.NOTEBOOK):
        present[side] = {}
        for item in match_result.unmatched(side):
            present[side][item.source_id] = item
            if item.source_id in linked_ids[side]:
                continue
            if item.source_id in ambiguous_ids[side]:
                logger.info(
                    "Not creating %s: ambiguous fingerprint match",
                    item.describe(),
                )
                continue
            changes.creates_on(side.other).append(item)

    # Links whose pair was not matched this run
    paired = {p.link.bookmark_id for p in match_result.pairs if p.link}
    for bookmark_id in sorted(prior_links):
        if bookmark_id in paired:
            continue
        link = prior_links[bookmark_id]
        _diff_broken_link(
            link,
            present[Side.BOOKMARK].get(link.bookmark_id),
            present[Side.NOTEBOOK].get(link.notebook_id),
            changes,
            propagate_deletes,
        )

    logger.debug(
        "Diff: %d/%d creates, %d/%d updates, %d/%d deletes, %d conflicts",
        len(changes.creates_on_bookmark),
        len(changes.creates_on_notebook),
        len(changes.updates_on_bookmark),
        len(changes.updates_on_notebook),
        len(changes.deletes_on_bookmark),
        len(changes.deletes_on_notebook),
        len(changes.conflicts),
    )
    return changes


def _diff_pair(pair: MatchedPair, changes: ChangeSet, synced_at: str) -> None:
    bookmark, notebook, link = pair.bookmark, pair.notebook, pair.link

    if link is None:
        # Fingerprint match: same content on both sides, just record it.
        changes.new_links.append(
            make_link(
                bookmark.source_id,
                notebook.source_id,
                bookmark.content_fingerprint,
                notebook.content_fingerprint,
                synced_at,
            )
        )
        return

    bookmark_changed = (
        bookmark.content_fingerprint != link.last_synced_fingerprint_bookmark
    )
    notebook_changed = (
        notebook.content_fingerprint != link.last_synced_fingerprint_notebook
    )

    if not bookmark_changed and not notebook_changed:
        return

    if bookmark_changed and not notebook_changed:
        changes.updates_on_notebook.append(
            ItemUpdate(target_id=notebook.source_id, item=bookmark, link=link)
        )
        return

    if notebook_changed and not bookmark_changed:
        changes.updates_on_bookmark.append(
            ItemUpdate(target_id=bookmark.source_id, item=notebook, link=link)
        )
        return

    # Both changed
    if bookmark.content_fingerprint == notebook.content_fingerprint:
        changes.new_links.append(
            make_link(
                bookmark.source_id,
                notebook.source_id,
                bookmark.content_fingerprint,
                notebook.content_fingerprint,
                synced_at,
            )
        )
        return

    logger.warning(
        "Conflict: %s and %s both changed since last sync",
        bookmark.describe(),
        notebook.describe(),
    )
    changes.conflicts.append(
        Conflict(
            bookmark=bookmark,
            notebook=notebook,
            link=link,
            reason=ConflictReason.BOTH_CHANGED,
        )
    )


def _diff_broken_link(
    link: LinkRecord,
    bookmark: Item | None,
    notebook: Item | None,
    changes: ChangeSet,
    propagate_deletes: bool,
) -> None:
    if bookmark is None and notebook is None:
        changes.dropped_links.append(link)
        return

    survivor = bookmark if bookmark is not None else notebook
    assert survivor is not None
    side = survivor.origin

    if survivor.content_fingerprint != link.fingerprint_for(side):
        logger.warning(
            "Conflict: %s changed but its linked item was deleted",
            survivor.describe(),
        )
        changes.conflicts.append(
            Conflict(
                bookmark=bookmark,
                notebook=notebook,
                link=link,
                reason=ConflictReason.DELETED_AND_CHANGED,
            )
        )
        return

    if propagate_deletes:
        changes.deletes_on(side).append(survivor.source_id)
    else:
        logger.info(
            "Delete propagation disabled: leaving %s in place",
            survivor.describe(),
        )
        changes.pending_deletes.append(link)

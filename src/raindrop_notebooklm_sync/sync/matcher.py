"""Pair bookmarks with notebook sources.

Matching resolution:

1. **Identity** -- every prior ``LinkRecord`` whose two ids are both
   present in the current fetch is a pair.  This always wins over content
   matching, so a renamed-but-linked item is never treated as new.
2. **Fingerprint** -- remaining items that no link names are grouped by
   ``content_fingerprint``.  A fingerprint with exactly one candidate on
   each side is a pair.  A fingerprint with several candidates on either
   side is reported as ambiguous and never auto-linked.
3. **Unmatched** -- everything else.

Matching has no side effects and is deterministic for a given snapshot:
all outputs are sorted by id.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping

from raindrop_notebooklm_sync.sync.models import (
    AmbiguousMatch,
    Item,
    LinkRecord,
    MatchedPair,
    MatchResult,
)

logger = logging.getLogger(__name__)


def _by_id(items: Iterable[Item]) -> dict[str, Item]:
    return {item.source_id: item for item in items}


def _group_by_fingerprint(items: Iterable[Item]) -> dict[str, list[Item]]:
    groups: dict[str, list[Item]] = defaultdict(list)
    for item in items:
        groups[item.content_fingerprint].append(item)
    return groups


def match(
    bookmark_items: Iterable[Item],
    notebook_items: Iterable[Item],
    prior_links: Mapping[str, LinkRecord],
) -> MatchResult:
    """Match the current snapshots of both sides.

    Args:
        bookmark_items: Items fetched from the bookmark service.
        notebook_items: Items fetched from the notebook service.
        prior_links: Persisted links keyed by bookmark id.

    Returns:
        A ``MatchResult`` with identity and fingerprint pairs, the
        unmatched items of each side, and any ambiguous fingerprints.
    """
    bookmarks = _by_id(bookmark_items)
    notebooks = _by_id(notebook_items)

    pairs: list[MatchedPair] = []
    linked_bookmarks: set[str] = set()
    linked_notebooks: set[str] = set()

    # Step 1: identity-confirmed pairs
    for link in prior_links.values():
        linked_bookmarks.add(link.bookmark_id)
        linked_notebooks.add(link.notebook_id)
        bookmark = bookmarks.get(link.bookmark_id)
        notebook = notebooks.get(link.notebook_id)
        if bookmark is not None and notebook is not None:
            pairs.append(
                MatchedPair(bookmark=bookmark, notebook=notebook, link=link)
            )

    # Step 2: fingerprint pairs among items no link mentions.  Items named
    # by a link whose partner vanished stay out of content matching; the
    # differ treats them as deletion candidates.
    free_bookmarks = [
        item
        for bid, item in bookmarks.items()
        if bid not in linked_bookmarks
    ]
    free_notebooks = [
        item
        for nid, item in notebooks.items()
        if nid not in linked_notebooks
    ]

    bookmark_groups = _group_by_fingerprint(free_bookmarks)
    notebook_groups = _group_by_fingerprint(free_notebooks)

    paired_bookmarks: set[str] = set()
    paired_notebooks: set[str] = set()
    ambiguous: list[AmbiguousMatch] = []

    for fingerprint in sorted(bookmark_groups.keys() & notebook_groups.keys()):
        bm_group = bookmark_groups[fingerprint]
        nb_group = notebook_groups[fingerprint]
        if len(bm_group) == 1 and len(nb_group) == 1:
            pairs.append(MatchedPair(bookmark=bm_group[0], notebook=nb_group[0]))
            paired_bookmarks.add(bm_group[0].source_id)
            paired_notebooks.add(nb_group[0].source_id)
            continue

        entry = AmbiguousMatch(
            fingerprint=fingerprint,
            bookmark_ids=sorted(i.source_id for i in bm_group),
            notebook_ids=sorted(i.source_id for i in nb_group),
        )
        logger.warning(
            "Ambiguous fingerprint match %s: bookmarks=%s notebook=%s",
            fingerprint[:12],
            entry.bookmark_ids,
            entry.notebook_ids,
        )
        ambiguous.append(entry)

    # Step 3: everything else
    paired_in_links = {p.bookmark.source_id for p in pairs if p.link}
    unmatched_bookmark = sorted(
        (
            item
            for bid, item in bookmarks.items()
            if bid not in paired_bookmarks and bid not in paired_in_links
        ),
        key=lambda i: i.source_id,
    )
    paired_nb_in_links = {p.notebook.source_id for p in pairs if p.link}
    unmatched_notebook = sorted(
        (
            item
            for nid, item in notebooks.items()
            if nid not in paired_notebooks and nid not in paired_nb_in_links
        ),
        key=lambda i: i.source_id,
    )

    pairs.sort(key=lambda p: (p.bookmark.source_id, p.notebook.source_id))

    logger.debug(
        "Matched %d pairs (%d by link), %d/%d unmatched, %d ambiguous",
        len(pairs),
        len(paired_in_links),
        len(unmatched_bookmark),
        len(unmatched_notebook),
        len(ambiguous),
    )

    return MatchResult(
        pairs=pairs,
        unmatched_bookmark=unmatched_bookmark,
        unmatched_notebook=unmatched_notebook,
        ambiguous=ambiguous,
    )

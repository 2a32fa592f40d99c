"""Tests for sync models: fingerprinting, Item and ChangeSet helpers.

Covers:
- content_fingerprint is deterministic and source-independent
- Title, URL and tag normalisation
- Different content gives different fingerprints
- Side.other, LinkRecord accessors
- ChangeSet.is_empty ignores report-only entries
- SyncSummary counts and summary text
"""

from __future__ import annotations

from raindrop_notebooklm_sync.sync.models import (
    AmbiguousMatch,
    ChangeSet,
    Item,
    LinkRecord,
    Side,
    SyncSummary,
    content_fingerprint,
)

# ---------------------------------------------------------------------------
# content_fingerprint
# ---------------------------------------------------------------------------


class TestContentFingerprint:
    def test_same_content_same_fingerprint(self):
        a = content_fingerprint("Title", "https://example.com/a", ["x", "y"])
        b = content_fingerprint("Title", "https://example.com/a", ["x", "y"])
        assert a == b
        assert len(a) == 64

    def test_tag_order_and_case_ignored(self):
        a = content_fingerprint("T", "https://example.com", ["Python", "news"])
        b = content_fingerprint("T", "https://example.com", ["news", " python "])
        assert a == b

    def test_duplicate_and_empty_tags_ignored(self):
        a = content_fingerprint("T", "u", ["a", "a", ""])
        b = content_fingerprint("T", "u", ["a"])
        assert a == b

    def test_title_whitespace_collapsed(self):
        a = content_fingerprint("  Hello \n  world ", "u")
        b = content_fingerprint("Hello world", "u")
        assert a == b

    def test_title_bom_stripped(self):
        a = content_fingerprint("\ufeffHello", "u")
        b = content_fingerprint("Hello", "u")
        assert a == b

    def test_url_scheme_and_host_case_ignored(self):
        a = content_fingerprint("T", "HTTPS://Example.COM/Path")
        b = content_fingerprint("T", "https://example.com/Path")
        assert a == b

    def test_url_path_case_kept(self):
        a = content_fingerprint("T", "https://example.com/Path")
        b = content_fingerprint("T", "https://example.com/path")
        assert a != b

    def test_bare_root_path_equivalent(self):
        a = content_fingerprint("T", "https://example.com/")
        b = content_fingerprint("T", "https://example.com")
        assert a == b

    def test_different_title_differs(self):
        assert content_fingerprint("A", "u") != content_fingerprint("B", "u")

    def test_field_boundaries_not_ambiguous(self):
        """Moving text between fields changes the fingerprint."""
        assert content_fingerprint("ab", "c") != content_fingerprint("a", "bc")


class TestItem:
    def test_build_computes_fingerprint(self):
        item = Item.build("b1", Side.BOOKMARK, "T", "https://e.com", ["x"])
        assert item.content_fingerprint == content_fingerprint(
            "T", "https://e.com", ["x"]
        )
        assert item.tags == frozenset({"x"})

    def test_fingerprint_independent_of_origin(self):
        b = Item.build("b1", Side.BOOKMARK, "T", "https://e.com")
        n = Item.build("n1", Side.NOTEBOOK, "T", "https://e.com")
        assert b.content_fingerprint == n.content_fingerprint

    def test_key_and_describe(self):
        item = Item.build("b1", Side.BOOKMARK, "Title")
        assert item.key == (Side.BOOKMARK, "b1")
        assert item.describe() == "bookmark:b1 'Title'"


class TestSideAndLink:
    def test_side_other(self):
        assert Side.BOOKMARK.other is Side.NOTEBOOK
        assert Side.NOTEBOOK.other is Side.BOOKMARK

    def test_link_accessors(self):
        link = LinkRecord(
            bookmark_id="b1",
            notebook_id="n1",
            last_synced_fingerprint_bookmark="fb",
            last_synced_fingerprint_notebook="fn",
            last_synced_at="2026-01-01T00:00:00+00:00",
        )
        assert link.id_for(Side.BOOKMARK) == "b1"
        assert link.id_for(Side.NOTEBOOK) == "n1"
        assert link.fingerprint_for(Side.BOOKMARK) == "fb"
        assert link.fingerprint_for(Side.NOTEBOOK) == "fn"


# ---------------------------------------------------------------------------
# ChangeSet / SyncSummary
# ---------------------------------------------------------------------------


class TestChangeSet:
    def test_empty_by_default(self):
        assert ChangeSet().is_empty

    def test_create_is_not_empty(self):
        changes = ChangeSet()
        changes.creates_on(Side.NOTEBOOK).append(
            Item.build("b1", Side.BOOKMARK, "T")
        )
        assert not changes.is_empty
        assert changes.has_writes_for(Side.NOTEBOOK)
        assert not changes.has_writes_for(Side.BOOKMARK)

    def test_ambiguous_only_is_empty(self):
        changes = ChangeSet(
            ambiguous=[
                AmbiguousMatch(
                    fingerprint="f", bookmark_ids=["b1", "b2"], notebook_ids=["n1"]
                )
            ]
        )
        assert changes.is_empty


class TestSyncSummary:
    def test_counts_and_summary(self):
        summary = SyncSummary(
            started_at="2026-01-01T00:00:00+00:00",
            created=["notebook:n1"],
            updated=["bookmark:b2", "notebook:n3"],
        )
        counts = summary.counts()
        assert counts["created"] == 1
        assert counts["updated"] == 2
        assert counts["failures"] == 0
        assert not summary.has_failures
        text = summary.summary()
        assert text.startswith("Sync summary")
        assert "Created:" in text

    def test_dry_run_header(self):
        summary = SyncSummary(started_at="now", dry_run=True)
        assert summary.summary().startswith("Sync summary (dry run)")

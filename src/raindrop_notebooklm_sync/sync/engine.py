"""Reconciliation engine that orchestrates a full sync run.

The ``SyncEngine`` ties together the adapters, matcher, differ and state
store into one run.  It:

1. Acquires the run lock for the state file.
2. Loads the persisted link records.
3. Fetches both sides concurrently.
4. Matches items and computes the ``ChangeSet``.
5. Stops there for a dry run.
6. Applies the changes (the two sides concurrently).
7. Folds per-item outcomes into the link records.
8. Commits the state once, after every apply call has returned.
9. Builds and returns a ``SyncSummary``.

Error handling: ``AuthError`` and ``StateCorruptionError`` abort the run
without committing; a side that cannot be fetched after retries ends the
run early (nothing applied, nothing committed); a failure on one item is
recorded and leaves that item's link untouched so the next run retries
it.

Apply batches share a stop event.  ``cancel()``, an interrupt or an
apply timeout sets it; each batch then stops before its next write and
the engine waits for both batches to return before it commits (timeout)
or raises (cancel, interrupt), so no write outlives the run lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from raindrop_notebooklm_sync.errors import (
    AdapterError,
    AuthError,
    NetworkError,
    SyncCancelledError,
)
from raindrop_notebooklm_sync.sync.differ import diff, make_link
from raindrop_notebooklm_sync.sync.lock import RunLock
from raindrop_notebooklm_sync.sync.matcher import match
from raindrop_notebooklm_sync.sync.models import (
    ApplyResult,
    ChangeSet,
    Item,
    ItemFailure,
    LinkRecord,
    Operation,
    ServiceStatus,
    Side,
    SyncSummary,
)
from raindrop_notebooklm_sync.sync.state import SyncStateStore

if TYPE_CHECKING:
    from raindrop_notebooklm_sync.adapters.base import SourceAdapter

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SyncOptions:
    """Engine settings, normally built from ``SyncConfig``.

    Attributes:
        propagate_deletes: Delete the counterpart of a deleted linked item.
        fetch_timeout: Seconds to wait for each side's fetch (``None``
            waits forever).
        apply_timeout: Seconds to wait for each side's apply batch.
        lock_timeout: Seconds to wait for a concurrent run to finish.
        lock_path: Lock file; defaults to the state file plus ``.lock``.
    """

    propagate_deletes: bool = False
    fetch_timeout: float | None = None
    apply_timeout: float | None = None
    lock_timeout: float = 0.0
    lock_path: Path | None = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncEngine:
    """Reconcile one bookmark collection with one notebook.

    Args:
        bookmarks: Adapter for the bookmark service.
        notebook: Adapter for the notebook service.
        state_store: Store holding this pair's link records.
        options: Engine settings.
    """

    def __init__(
        self,
        bookmarks: SourceAdapter,
        notebook: SourceAdapter,
        state_store: SyncStateStore,
        options: SyncOptions | None = None,
    ) -> None:
        self.adapters: dict[Side, SourceAdapter] = {
            Side.BOOKMARK: bookmarks,
            Side.NOTEBOOK: notebook,
        }
        self.state_store = state_store
        self.options = options or SyncOptions()
        self._cancelled = threading.Event()
        self._stop_writes = threading.Event()

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def run(self, dry_run: bool = False) -> SyncSummary:
        """Execute a full reconciliation run.

        Args:
            dry_run: If ``True``, compute the change set but never call
                an adapter's ``apply`` or commit the state.

        Returns:
            A ``SyncSummary`` of what was (or would be) done.

        Raises:
            SyncInProgressError: Another run holds the lock.
            StateCorruptionError: The state file cannot be trusted.
            AuthError: A service rejected our credentials.
            SyncCancelledError: ``cancel()`` was called mid-run.
        """
        self._cancelled.clear()
        self._stop_writes.clear()
        lock_path = self.options.lock_path or self.state_store.path.with_name(
            self.state_store.path.name + ".lock"
        )
        with RunLock(lock_path, timeout=self.options.lock_timeout):
            return self._run_locked(dry_run)

    def cancel(self) -> None:
        """Ask a running ``run()`` to stop.

        Apply batches stop before their next write, ``run()`` waits for
        them to return and then raises ``SyncCancelledError`` without
        committing.
        """
        logger.warning("Sync cancellation requested")
        self._cancelled.set()
        self._stop_writes.set()

    def status(self) -> dict[Side, ServiceStatus]:
        """Check each service with its lightweight health check."""
        statuses: dict[Side, ServiceStatus] = {}
        for side, adapter in self.adapters.items():
            try:
                detail = adapter.health_check()
            except AdapterError as exc:
                logger.error("%s unreachable: %s", adapter.name, exc)
                statuses[side] = ServiceStatus(
                    side=side, reachable=False, detail=str(exc)
                )
                continue
            statuses[side] = ServiceStatus(
                side=side, reachable=True, detail=detail
            )
        return statuses

    # ------------------------------------------------------------------
    # Run phases
    # ------------------------------------------------------------------

    def _run_locked(self, dry_run: bool) -> SyncSummary:
        started_at = _now()
        logger.info("Starting sync%s", " (dry run)" if dry_run else "")

        links = self.state_store.load()

        snapshots, failures, unreachable = self._fetch_all()
        if failures:
            logger.error("Fetch failed, nothing applied or committed")
            return SyncSummary(
                dry_run=dry_run,
                started_at=started_at,
                completed_at=_now(),
                failures=failures,
                unreachable=unreachable,
            )

        match_result = match(
            snapshots[Side.BOOKMARK], snapshots[Side.NOTEBOOK], links
        )
        changes = diff(
            match_result,
            links,
            propagate_deletes=self.options.propagate_deletes,
            synced_at=started_at,
        )

        summary = SyncSummary(
            dry_run=dry_run,
            started_at=started_at,
            changeset=changes,
            conflicts=list(changes.conflicts),
            ambiguous=list(changes.ambiguous),
            pending_deletes=list(changes.pending_deletes),
        )

        if dry_run:
            self._describe_plan(changes, summary)
            summary.completed_at = _now()
            logger.info("Dry run complete: %s", summary.counts())
            return summary

        self._check_cancelled()
        results, batch_errors = self._apply_all(changes)

        updated_links = dict(links)
        for side in (Side.NOTEBOOK, Side.BOOKMARK):
            self._fold_outcomes(
                side,
                changes,
                results.get(side),
                batch_errors.get(side),
                updated_links,
                summary,
            )
        for link in changes.new_links:
            updated_links[link.bookmark_id] = link
            summary.linked.append(f"{link.bookmark_id}<->{link.notebook_id}")
        for link in changes.dropped_links:
            updated_links.pop(link.bookmark_id, None)

        self._check_cancelled()
        self.state_store.commit(updated_links)

        summary.completed_at = _now()
        logger.info("Sync complete: %s", summary.counts())
        return summary

    def _fetch_all(
        self,
    ) -> tuple[dict[Side, list[Item]], list[ItemFailure], list[Side]]:
        """Fetch both sides concurrently.

        Returns:
            The snapshots by side, the failures of sides that could not be
            fetched, and the sides that were unreachable.

        Raises:
            AuthError: If either side rejected the credentials.
        """
        outcomes = self._run_per_side(
            {side: adapter.list_items for side, adapter in self.adapters.items()},
            self.options.fetch_timeout,
        )

        snapshots: dict[Side, list[Item]] = {}
        failures: list[ItemFailure] = []
        unreachable: list[Side] = []
        auth_error: AuthError | None = None

        for side, (value, error) in outcomes.items():
            if isinstance(error, AuthError):
                auth_error = auth_error or error
                continue
            if error is not None:
                if isinstance(error, NetworkError):
                    unreachable.append(side)
                logger.error(
                    "Fetching %s failed: %s", self.adapters[side].name, error
                )
                failures.append(
                    ItemFailure(
                        side=side, operation=Operation.FETCH, error=str(error)
                    )
                )
                continue
            duplicate = self._first_duplicate(value)
            if duplicate is not None:
                failures.append(
                    ItemFailure(
                        side=side,
                        operation=Operation.FETCH,
                        item_id=duplicate,
                        error=f"duplicate id {duplicate!r} in snapshot",
                    )
                )
                continue
            snapshots[side] = value

        if auth_error is not None:
            raise auth_error
        return snapshots, failures, unreachable

    def _apply_all(
        self, changes: ChangeSet
    ) -> tuple[dict[Side, ApplyResult], dict[Side, str]]:
        """Apply each side's batch; the two sides run concurrently.

        Returns:
            Results by side, and an error message for each side whose whole
            batch failed.

        Raises:
            AuthError: If either side rejected the credentials.
        """
        calls: dict[Side, Callable[[], ApplyResult]] = {}
        for side, adapter in self.adapters.items():
            if not changes.has_writes_for(side):
                continue
            calls[side] = (
                lambda adapter=adapter, side=side: adapter.apply(
                    changes.creates_on(side),
                    changes.updates_on(side),
                    changes.deletes_on(side),
                    stop=self._stop_writes,
                )
            )

        outcomes = self._run_per_side(
            calls, self.options.apply_timeout, stop=self._stop_writes
        )

        results: dict[Side, ApplyResult] = {}
        batch_errors: dict[Side, str] = {}
        auth_error: AuthError | None = None
        for side, (value, error) in outcomes.items():
            if isinstance(error, AuthError):
                auth_error = auth_error or error
            elif error is not None:
                logger.error(
                    "Applying changes to %s failed: %s",
                    self.adapters[side].name,
                    error,
                )
                batch_errors[side] = str(error)
            else:
                results[side] = value

        if auth_error is not None:
            raise auth_error
        return results, batch_errors

    def _fold_outcomes(
        self,
        side: Side,
        changes: ChangeSet,
        result: ApplyResult | None,
        batch_error: str | None,
        links: dict[str, LinkRecord],
        summary: SyncSummary,
    ) -> None:
        """Update *links* and *summary* from one side's apply outcomes."""

        def fail(operation: Operation, item_id: str, error: str | None) -> None:
            summary.failures.append(
                ItemFailure(
                    side=side,
                    operation=operation,
                    item_id=item_id,
                    error=error or batch_error or "no outcome reported",
                )
            )

        for item in changes.creates_on(side):
            outcome = (
                result.outcome_for(Operation.CREATE, item.source_id)
                if result
                else None
            )
            if outcome is None or not outcome.success or not outcome.new_id:
                fail(Operation.CREATE, item.source_id, outcome and outcome.error)
                continue
            written = (
                outcome.item.content_fingerprint
                if outcome.item
                else item.content_fingerprint
            )
            if side is Side.NOTEBOOK:
                link = make_link(
                    item.source_id, outcome.new_id, item.content_fingerprint, written
                )
            else:
                link = make_link(
                    outcome.new_id, item.source_id, written, item.content_fingerprint
                )
            links[link.bookmark_id] = link
            summary.created.append(f"{side.value}:{outcome.new_id}")

        for update in changes.updates_on(side):
            outcome = (
                result.outcome_for(Operation.UPDATE, update.target_id)
                if result
                else None
            )
            if outcome is None or not outcome.success:
                fail(Operation.UPDATE, update.target_id, outcome and outcome.error)
                continue
            written = (
                outcome.item.content_fingerprint
                if outcome.item
                else update.item.content_fingerprint
            )
            source = update.item.content_fingerprint
            link = update.link
            links[link.bookmark_id] = make_link(
                link.bookmark_id,
                link.notebook_id,
                written if side is Side.BOOKMARK else source,
                written if side is Side.NOTEBOOK else source,
            )
            summary.updated.append(f"{side.value}:{update.target_id}")

        for target_id in changes.deletes_on(side):
            outcome = (
                result.outcome_for(Operation.DELETE, target_id) if result else None
            )
            if outcome is None or not outcome.success:
                fail(Operation.DELETE, target_id, outcome and outcome.error)
                continue
            for bookmark_id, link in list(links.items()):
                if link.id_for(side) == target_id:
                    del links[bookmark_id]
            summary.deleted.append(f"{side.value}:{target_id}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _run_per_side(
        calls: dict[Side, Callable[[], T]],
        timeout: float | None,
        stop: threading.Event | None = None,
    ) -> dict[Side, tuple[T | None, BaseException | None]]:
        """Run one call per side on a two-worker pool.

        Exceptions are returned rather than raised so the caller can see
        both sides' results.

        Without *stop* (fetches), a call that exceeds *timeout* is reported
        as a ``NetworkError`` and its worker is left to finish in the
        background; its result is discarded.

        With *stop* (applies), a timeout sets the event and then waits for
        the call to return, so the partial result is kept and no worker
        outlives this method.  The same happens if the waiting thread is
        interrupted.
        """
        if not calls:
            return {}

        executor = ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="sync-worker"
        )
        try:
            futures: dict[Side, Future] = {
                side: executor.submit(call) for side, call in calls.items()
            }
            outcomes: dict[Side, tuple[T | None, BaseException | None]] = {}
            for side, future in futures.items():
                try:
                    outcomes[side] = (future.result(timeout=timeout), None)
                except FutureTimeoutError:
                    if stop is None:
                        future.cancel()
                        outcomes[side] = (
                            None,
                            NetworkError(f"timed out after {timeout}s"),
                        )
                        continue
                    logger.warning(
                        "%s batch still running after %ss, stopping it",
                        side.value,
                        timeout,
                    )
                    stop.set()
                    try:
                        outcomes[side] = (future.result(), None)
                    except AdapterError as exc:
                        outcomes[side] = (None, exc)
                except AdapterError as exc:
                    outcomes[side] = (None, exc)
            return outcomes
        except BaseException:
            if stop is not None:
                stop.set()
            raise
        finally:
            executor.shutdown(wait=stop is not None, cancel_futures=True)

    @staticmethod
    def _first_duplicate(items: list[Item]) -> str | None:
        seen: set[str] = set()
        for item in items:
            if item.source_id in seen:
                return item.source_id
            seen.add(item.source_id)
        return None

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise SyncCancelledError("sync cancelled, state not committed")

    @staticmethod
    def _describe_plan(changes: ChangeSet, summary: SyncSummary) -> None:
        """Fill a dry-run summary with what a real run would do."""
        for side in (Side.NOTEBOOK, Side.BOOKMARK):
            for item in changes.creates_on(side):
                summary.created.append(f"{side.value}:<from {item.source_id}>")
            for update in changes.updates_on(side):
                summary.updated.append(f"{side.value}:{update.target_id}")
            for target_id in changes.deletes_on(side):
                summary.deleted.append(f"{side.value}:{target_id}")
        for link in changes.new_links:
            summary.linked.append(f"{link.bookmark_id}<->{link.notebook_id}")

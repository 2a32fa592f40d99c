"""Adapter contract shared by the bookmark and notebook services.

An adapter is the only thing the engine knows about a service:

- ``list_items()`` returns the current snapshot of the collection.
- ``apply(creates, updates, deletes)`` writes a batch of changes and
  reports a per-item outcome.  Creates are applied before updates before
  deletes.  A set ``stop`` event ends the batch before its next write.
- ``health_check()`` is a cheap reachability check used by ``status``.

``apply_changes()`` implements the per-item loop so each service only
supplies single-item create/update/delete callables.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Protocol

from raindrop_notebooklm_sync.errors import AdapterError, AuthError
from raindrop_notebooklm_sync.sync.models import (
    ApplyResult,
    Item,
    ItemOutcome,
    ItemUpdate,
    Operation,
    Side,
)

logger = logging.getLogger(__name__)

STOPPED_ERROR = "not attempted: run stopped"


class SourceAdapter(Protocol):
    """Protocol that both service adapters satisfy."""

    side: Side
    name: str

    def list_items(self) -> list[Item]:
        """Fetch every item in the synchronised collection.

        Raises:
            AuthError, NetworkError, RateLimited
        """
        ...  # pragma: no cover

    def apply(
        self,
        creates: Sequence[Item],
        updates: Sequence[ItemUpdate],
        deletes: Sequence[str],
        stop: threading.Event | None = None,
    ) -> ApplyResult:
        """Write a batch of changes; one outcome per requested change.

        Once *stop* is set no further item is written; the remaining
        changes are reported as failed.

        Raises:
            AuthError: Credentials were rejected mid-batch.
        """
        ...  # pragma: no cover

    def health_check(self) -> str:
        """Return a short description of the service if reachable.

        Raises:
            AuthError, NetworkError, RateLimited
        """
        ...  # pragma: no cover


def apply_changes(
    creates: Sequence[Item],
    updates: Sequence[ItemUpdate],
    deletes: Sequence[str],
    *,
    create_one: Callable[[Item], Item],
    update_one: Callable[[str, Item], Item],
    delete_one: Callable[[str], None],
    service: str = "",
    stop: threading.Event | None = None,
) -> ApplyResult:
    """Apply creates, then updates, then deletes, one item at a time.

    A failure on one item is recorded and the loop moves on.  ``AuthError``
    is re-raised: nothing else in the batch can succeed either.

    Args:
        creates: Items from the other side to create here.
        updates: Updates to apply here.
        deletes: Ids to delete here.
        create_one: Creates one item, returns it as stored.
        update_one: Updates ``target_id`` with an item's content, returns
            the result as stored.
        delete_one: Deletes one id.
        service: Service name for log messages.
        stop: Checked before every item; once set, each remaining change
            is recorded as a failure without being attempted.

    Returns:
        An ``ApplyResult`` with one outcome per requested change.
    """
    outcomes: list[ItemOutcome] = []

    def stopped(operation: Operation, key: str) -> bool:
        if stop is None or not stop.is_set():
            return False
        outcomes.append(
            ItemOutcome(
                operation=operation,
                key=key,
                success=False,
                error=STOPPED_ERROR,
            )
        )
        return True

    for item in creates:
        if stopped(Operation.CREATE, item.source_id):
            continue
        try:
            created = create_one(item)
        except AuthError:
            raise
        except AdapterError as exc:
            logger.error("%s: create %s failed: %s", service, item.describe(), exc)
            outcomes.append(
                ItemOutcome(
                    operation=Operation.CREATE,
                    key=item.source_id,
                    success=False,
                    error=str(exc),
                )
            )
            continue
        logger.info("%s: created %s from %s", service, created.source_id, item.describe())
        outcomes.append(
            ItemOutcome(
                operation=Operation.CREATE,
                key=item.source_id,
                success=True,
                new_id=created.source_id,
                item=created,
            )
        )

    for update in updates:
        if stopped(Operation.UPDATE, update.target_id):
            continue
        try:
            updated = update_one(update.target_id, update.item)
        except AuthError:
            raise
        except AdapterError as exc:
            logger.error("%s: update %s failed: %s", service, update.target_id, exc)
            outcomes.append(
                ItemOutcome(
                    operation=Operation.UPDATE,
                    key=update.target_id,
                    success=False,
                    error=str(exc),
                )
            )
            continue
        logger.info("%s: updated %s", service, update.target_id)
        outcomes.append(
            ItemOutcome(
                operation=Operation.UPDATE,
                key=update.target_id,
                success=True,
                item=updated,
            )
        )

    for target_id in deletes:
        if stopped(Operation.DELETE, target_id):
            continue
        try:
            delete_one(target_id)
        except AuthError:
            raise
        except AdapterError as exc:
            logger.error("%s: delete %s failed: %s", service, target_id, exc)
            outcomes.append(
                ItemOutcome(
                    operation=Operation.DELETE,
                    key=target_id,
                    success=False,
                    error=str(exc),
                )
            )
            continue
        logger.info("%s: deleted %s", service, target_id)
        outcomes.append(
            ItemOutcome(operation=Operation.DELETE, key=target_id, success=True)
        )

    skipped = sum(1 for o in outcomes if o.error == STOPPED_ERROR)
    if skipped:
        logger.warning("%s: batch stopped, %d change(s) not attempted", service, skipped)
    return ApplyResult(outcomes=outcomes)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO 8601 timestamp; ``None`` when absent or unparseable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None

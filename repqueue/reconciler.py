"""
Status reconciliation for replication transactions and their logs.

A tally is recomputed from scratch on every call; nothing is cached between
reconciliations.
"""

from __future__ import annotations

from repqueue.client.abstract import RemoteQueueClient
from repqueue.domain.models import (
    TXN_LOG_TYPE,
    TXN_TYPE,
    FinalTally,
    ReplicationStatus,
    StatusTally,
)
from repqueue.errors import EmptyResult
from repqueue.utils.logging import get_logger

log = get_logger(__name__)


class StatusReconciler:
    """Aggregates remote items of a type by replication status."""

    def __init__(self, client: RemoteQueueClient) -> None:
        self.client = client

    def tally(self, item_type: str) -> StatusTally:
        """
        Count the items of `item_type` per status bucket.

        "No items found" yields an all-zero tally; any other error propagates.
        Unknown status strings count as failed.
        """
        try:
            records = self.client.query_by_type(item_type)
        except EmptyResult:
            log.info(f"No items of type '{item_type}' found", extra={"item_type": item_type})
            return StatusTally.zero(item_type)

        tally = StatusTally(item_type=item_type)
        for record in records:
            tally.add(ReplicationStatus.classify(record.status))

        log.debug(f"Tally for {item_type}", extra={"item_type": item_type, **tally.as_dict()})
        return tally

    def reconcile(self) -> FinalTally:
        """Tally transactions, then their logs."""
        return FinalTally(transactions=self.tally(TXN_TYPE), logs=self.tally(TXN_LOG_TYPE))


__all__ = ["StatusReconciler"]

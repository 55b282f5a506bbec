"""
Creation of replication transactions.

Each record gets its own `replicate` request. A failure for one record is
recorded in its outcome and does not stop the remaining requests; created
transactions are independent server objects and are never rolled back.
"""

from __future__ import annotations

from typing import List, Sequence

from repqueue.client.abstract import RemoteQueueClient
from repqueue.domain.models import CreationOutcome, Record
from repqueue.errors import ReplicationError
from repqueue.utils.logging import get_logger

log = get_logger(__name__)


class Producer:
    def __init__(self, client: RemoteQueueClient) -> None:
        self.client = client

    def replicate(self, records: Sequence[Record], target_location_id: str) -> List[CreationOutcome]:
        """
        Request one replication transaction per record.

        Returns exactly one outcome per input record, in input order.
        """
        outcomes: List[CreationOutcome] = []
        for record in records:
            try:
                response = self.client.create_transaction(record.id, target_location_id)
            except ReplicationError as exc:
                log.warning(
                    f"Failed to send request for replication of '{record.label}' - {exc}",
                    extra={"record_id": record.id, "target_id": target_location_id},
                )
                outcomes.append(CreationOutcome.failure(record, exc))
            else:
                outcomes.append(CreationOutcome.success(record, response))

        failed = sum(1 for outcome in outcomes if not outcome.ok)
        log.info(
            f"Replication requested for {len(outcomes) - failed}/{len(outcomes)} record(s)",
            extra={"requested": len(outcomes), "failed": failed, "target_id": target_location_id},
        )
        return outcomes


__all__ = ["Producer"]

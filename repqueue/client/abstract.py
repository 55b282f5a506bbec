"""
Remote queue client interface.

The drainer, reconciler and producer depend only on `RemoteQueueClient`;
`repqueue.client.aml.AmlQueueClient` is the Innovator implementation and tests
substitute in-memory fakes.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from repqueue.domain.models import BatchResult, Record


@runtime_checkable
class RemoteQueueClient(Protocol):
    """
    Authenticated RPC channel to the server holding the replication queue.

    Every method raises a `repqueue.errors.RemoteError` subclass on failure,
    or `repqueue.errors.ProtocolError` when the response is malformed.
    """

    def process_batch(self, max_batch: int, max_pending: int) -> BatchResult:
        """
        Ask the server to process one bounded batch of queued transactions.

        Parameters
        ----------
        max_batch : int
            Upper bound on transactions the server attempts in this call.
        max_pending : int
            Upper bound on transactions left in flight at once.
        """
        ...

    def create_transaction(self, record_id: str, target_id: str) -> Optional[Record]:
        """Request a replication transaction copying `record_id` to vault `target_id`."""
        ...

    def query_by_type(self, item_type: str) -> List[Record]:
        """
        Return every item of `item_type`.

        Raises `repqueue.errors.EmptyResult` when none exist.
        """
        ...


__all__ = ["RemoteQueueClient"]

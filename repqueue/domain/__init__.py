"""
Domain package for the replication queue client.

Exports the records, batch results and status aggregates shared by the
drainer, reconciler and producer. Keep this package free of I/O.
"""

from repqueue.domain.models import (
    TXN_LOG_TYPE,
    TXN_TYPE,
    BatchResult,
    CreationOutcome,
    CycleReport,
    DrainReport,
    FinalTally,
    Record,
    ReplicationStatus,
    StatusTally,
)

__all__ = [
    "TXN_TYPE",
    "TXN_LOG_TYPE",
    "BatchResult",
    "CreationOutcome",
    "CycleReport",
    "DrainReport",
    "FinalTally",
    "Record",
    "ReplicationStatus",
    "StatusTally",
]

"""
Domain models for the replication queue client.

Wire-facing values (`Record`, `BatchResult`) are validated Pydantic models;
aggregates built on the client side (`StatusTally`, `FinalTally`, reports and
creation outcomes) are plain dataclasses rebuilt on every call.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, NonNegativeInt, ValidationError

from repqueue.errors import ProtocolError, ReplicationError

TXN_TYPE = "ReplicationTxn"
TXN_LOG_TYPE = "ReplicationTxnLog"


class ReplicationStatus(str, Enum):
    """
    Status vocabulary shared by replication transactions and their logs.

    `FAILED` doubles as the fallback bucket for any value the server reports
    that is not one of the known states.
    """

    NOT_STARTED = "NotStarted"
    PENDING = "Pending"
    COMPLETED = "Completed"
    DISCARDED = "Discarded"
    FAILED = "Failed"

    @classmethod
    def classify(cls, raw: Optional[str]) -> "ReplicationStatus":
        if raw is None:
            return cls.FAILED
        try:
            return cls(raw.strip())
        except ValueError:
            return cls.FAILED


class Record(BaseModel):
    """
    A remote item as seen by the client: a replication transaction, a log
    entry, or a source file to replicate.
    """

    id: str = Field(..., min_length=1, description="Server-assigned item id.")
    status: Optional[str] = Field(None, description="Raw replication_status value.")
    name: Optional[str] = Field(None, description="Human-friendly name (e.g. filename).")
    properties: Dict[str, str] = Field(default_factory=dict)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @property
    def label(self) -> str:
        return self.name or self.id


class BatchResult(BaseModel):
    """
    Outcome of one `ProcessReplicationQueue` call.

    `empty` means the server found nothing addressable in the queue at all,
    not merely that this batch processed nothing.
    """

    processed: NonNegativeInt = 0
    need_processing: NonNegativeInt = 0
    locked_by_others: NonNegativeInt = 0
    empty: bool = False

    model_config = {"frozen": True}

    @classmethod
    def empty_queue(cls) -> "BatchResult":
        return cls(empty=True)

    @classmethod
    def from_attributes(
        cls, attributes: Mapping[str, Any], operation: str = "ProcessReplicationQueue"
    ) -> "BatchResult":
        """Build from the server's item attributes; all three counts are required."""
        missing = [
            name
            for name in ("processed", "need_processing", "locked_by_others")
            if attributes.get(name) in (None, "")
        ]
        if missing:
            raise ProtocolError(
                f"response item is missing attribute(s): {', '.join(missing)}",
                operation=operation,
            )
        try:
            return cls(
                processed=attributes["processed"],
                need_processing=attributes["need_processing"],
                locked_by_others=attributes["locked_by_others"],
            )
        except ValidationError as exc:
            raise ProtocolError(
                f"invalid batch counts {dict(attributes)!r}: {exc.error_count()} error(s)",
                operation=operation,
            ) from exc

    @property
    def remaining(self) -> int:
        """Work this worker can still act on; may be negative under contention."""
        return self.need_processing - self.locked_by_others

    @property
    def contended(self) -> bool:
        return self.remaining <= 0 and self.locked_by_others > 0


@dataclass
class StatusTally:
    """Per item-type counts of each replication status."""

    item_type: str
    not_started: int = 0
    pending: int = 0
    completed: int = 0
    discarded: int = 0
    failed: int = 0

    @classmethod
    def zero(cls, item_type: str) -> "StatusTally":
        return cls(item_type=item_type)

    def add(self, status: ReplicationStatus) -> None:
        if status is ReplicationStatus.NOT_STARTED:
            self.not_started += 1
        elif status is ReplicationStatus.PENDING:
            self.pending += 1
        elif status is ReplicationStatus.COMPLETED:
            self.completed += 1
        elif status is ReplicationStatus.DISCARDED:
            self.discarded += 1
        else:
            self.failed += 1

    @property
    def total(self) -> int:
        return self.not_started + self.pending + self.completed + self.discarded + self.failed

    def as_dict(self) -> Dict[str, int]:
        return {
            ReplicationStatus.NOT_STARTED.value: self.not_started,
            ReplicationStatus.PENDING.value: self.pending,
            ReplicationStatus.COMPLETED.value: self.completed,
            ReplicationStatus.DISCARDED.value: self.discarded,
            ReplicationStatus.FAILED.value: self.failed,
        }


@dataclass
class FinalTally:
    """Both tallies from one reconciliation pass."""

    transactions: StatusTally
    logs: StatusTally

    @property
    def completed(self) -> int:
        # Completed log entries track replication progress across cycles.
        return self.logs.completed

    def __iter__(self):
        yield self.transactions
        yield self.logs


@dataclass
class CycleReport:
    index: int
    result: BatchResult
    duration_seconds: float


@dataclass
class DrainReport:
    """Everything a finished drain run produced."""

    stop_reason: str
    cycles: List[CycleReport] = field(default_factory=list)
    final_tally: Optional[FinalTally] = None
    duration_seconds: float = 0.0

    @property
    def processed(self) -> int:
        return sum(c.result.processed for c in self.cycles)

    @property
    def last_result(self) -> Optional[BatchResult]:
        return self.cycles[-1].result if self.cycles else None


@dataclass
class CreationOutcome:
    """
    Tagged result of one transaction-creation request: `ok` tells whether
    `value` (the server response) or `error` is populated.
    """

    record: Record
    ok: bool
    value: Optional[Record] = None
    error: Optional[ReplicationError] = None

    @classmethod
    def success(cls, record: Record, value: Optional[Record] = None) -> "CreationOutcome":
        return cls(record=record, ok=True, value=value)

    @classmethod
    def failure(cls, record: Record, error: ReplicationError) -> "CreationOutcome":
        return cls(record=record, ok=False, error=error)


__all__ = [
    "TXN_TYPE",
    "TXN_LOG_TYPE",
    "ReplicationStatus",
    "Record",
    "BatchResult",
    "StatusTally",
    "FinalTally",
    "CycleReport",
    "DrainReport",
    "CreationOutcome",
]

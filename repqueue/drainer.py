"""
Replication queue drainer.

Repeatedly asks the server to process a bounded batch of queued replication
transactions until the queue is empty, the worker runs out of actionable
work, or the operator stops it.

Each cycle ends in one of three states:

- the server reports no addressable item at all: the queue is empty, stop;
- `need_processing - locked_by_others > 0`: more work for this worker,
  cool down and run another cycle;
- otherwise nothing is left for this worker (others may still hold locks):
  reconcile statuses, then ask the operator (or the unattended policy)
  whether to keep going.

Usage:
    from repqueue.drainer import CooldownPolicy, Drainer

    drainer = Drainer(client, policy=CooldownPolicy(cooldown=10), confirm=ask)
    report = drainer.drain(max_batch=10, max_pending=15)
"""

from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Callable, Optional, Union

from repqueue.client.abstract import RemoteQueueClient
from repqueue.domain.models import BatchResult, CycleReport, DrainReport, FinalTally
from repqueue.errors import ReplicationError
from repqueue.reconciler import StatusReconciler
from repqueue.utils.logging import get_logger

log = get_logger(__name__)

STOP_EMPTY = "empty"
STOP_IDLE = "idle"
STOP_OPERATOR = "operator"
STOP_CANCELLED = "cancelled"

ConfirmCallback = Callable[[BatchResult, FinalTally], bool]
CycleCallback = Callable[[CycleReport], None]
TallyCallback = Callable[[FinalTally], None]


@dataclass
class CooldownPolicy:
    """
    How long to wait between cycles.

    Genuine remaining work waits `cooldown` seconds. When the only outstanding
    work is locked by other workers, a random `[0, contention_jitter]` is added
    so competing drainers spread out. Unattended runs give up after
    `max_contended_cycles` consecutive contended idle cycles.
    """

    cooldown: float = 10.0
    contention_jitter: float = 0.0
    max_contended_cycles: int = 3
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.cooldown < 0:
            raise ValueError(f"cooldown must be >= 0, got {self.cooldown}")
        if self.contention_jitter < 0:
            raise ValueError(f"contention_jitter must be >= 0, got {self.contention_jitter}")
        if self.max_contended_cycles < 0:
            raise ValueError(f"max_contended_cycles must be >= 0, got {self.max_contended_cycles}")

    def delay(self, result: BatchResult) -> float:
        if result.contended and self.contention_jitter > 0:
            return self.cooldown + self.rng.uniform(0, self.contention_jitter)
        return self.cooldown


class Drainer:
    """
    Drives `ProcessReplicationQueue` cycles for a single worker.

    One drain loop per instance; calls are strictly sequential. `stop()` may be
    called from another thread or a signal handler: it is honoured before the
    next batch call and interrupts a cooldown, but never an in-flight call.
    """

    def __init__(
        self,
        client: RemoteQueueClient,
        reconciler: Optional[StatusReconciler] = None,
        policy: Optional[CooldownPolicy] = None,
        confirm: Optional[ConfirmCallback] = None,
        on_cycle: Optional[CycleCallback] = None,
        on_tally: Optional[TallyCallback] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.client = client
        self.reconciler = reconciler or StatusReconciler(client)
        self.policy = policy or CooldownPolicy()
        self.confirm = confirm
        self.on_cycle = on_cycle
        self.on_tally = on_tally
        self._stop = stop_event or threading.Event()

    def stop(self) -> None:
        self._stop.set()

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def _cooldown(self, seconds: float) -> bool:
        """Sleep unless cancelled; False when the wait was cut short by `stop()`."""
        if self.cancelled:
            return False
        if seconds <= 0:
            return True
        log.debug(f"Cooling down for {seconds:.1f}s", extra={"cooldown_seconds": seconds})
        return not self._stop.wait(seconds)

    def _run_cycle(self, index: int, max_batch: int, max_pending: int) -> CycleReport:
        log.info(
            f"[CYCLE {index}] Executing replication queue cycle",
            extra={"cycle": index, "max_batch": max_batch, "max_pending": max_pending},
        )
        start = time.perf_counter()
        try:
            result = self.client.process_batch(max_batch, max_pending)
        except ReplicationError:
            log.exception(
                f"[CYCLE {index} FAILED] ProcessReplicationQueue",
                extra={"cycle": index, "max_batch": max_batch, "max_pending": max_pending},
            )
            raise
        cycle = CycleReport(index=index, result=result, duration_seconds=time.perf_counter() - start)

        log.info(
            f"[CYCLE {index}] processed={result.processed} remains={result.need_processing} "
            f"locked_by_others={result.locked_by_others}",
            extra={
                "cycle": index,
                "processed": result.processed,
                "need_processing": result.need_processing,
                "locked_by_others": result.locked_by_others,
                "empty": result.empty,
            },
        )
        if self.on_cycle:
            self.on_cycle(cycle)
        return cycle

    def _reconcile(self) -> FinalTally:
        tally = self.reconciler.reconcile()
        if self.on_tally:
            self.on_tally(tally)
        return tally

    def drain(
        self,
        max_batch: int,
        max_pending: int,
        cooldown: Union[float, timedelta, None] = None,
        confirm_each_idle_cycle: bool = True,
    ) -> DrainReport:
        """
        Run processing cycles until the queue is empty or the run is stopped.

        Parameters
        ----------
        max_batch : int
            Transactions the server attempts per cycle; forwarded unchanged.
        max_pending : int
            Transactions allowed in flight at once; forwarded unchanged.
        cooldown : float | timedelta | None
            Seconds between cycles. Defaults to the policy's cooldown.
        confirm_each_idle_cycle : bool
            Ask `confirm` whether to continue whenever this worker runs out of
            work. When False the unattended policy decides.

        Returns
        -------
        DrainReport
            Cycle reports, stop reason and the final status tally.

        Raises
        ------
        ReplicationError
            The first failed batch call or reconciliation; never retried.
        """
        if max_batch <= 0:
            raise ValueError(f"max_batch must be > 0, got {max_batch}")
        if max_pending <= 0:
            raise ValueError(f"max_pending must be > 0, got {max_pending}")
        if confirm_each_idle_cycle and self.confirm is None:
            raise ValueError("confirm_each_idle_cycle requires a confirm callback")

        policy = self.policy
        if cooldown is not None:
            seconds = cooldown.total_seconds() if isinstance(cooldown, timedelta) else cooldown
            policy = replace(policy, cooldown=seconds)

        started = time.perf_counter()
        report = DrainReport(stop_reason=STOP_CANCELLED)
        tally_is_current = False
        previous_completed: Optional[int] = None
        contended_cycles = 0

        while not self.cancelled:
            cycle = self._run_cycle(len(report.cycles) + 1, max_batch, max_pending)
            report.cycles.append(cycle)
            tally_is_current = False
            result = cycle.result

            if result.empty:
                log.info("All transactions processed", extra={"cycle": cycle.index})
                report.stop_reason = STOP_EMPTY
                break

            if result.remaining > 0:
                contended_cycles = 0
                log.info(
                    f"{result.remaining} transactions left to process. Continue ...",
                    extra={"cycle": cycle.index, "remaining": result.remaining},
                )
                if not self._cooldown(policy.delay(result)):
                    break
                continue

            tally = self._reconcile()
            report.final_tally = tally
            tally_is_current = True
            progress = None if previous_completed is None else tally.completed - previous_completed
            previous_completed = tally.completed
            log.info(
                f"[IDLE] No actionable transactions left "
                f"(locked by others: {result.locked_by_others})",
                extra={
                    "cycle": cycle.index,
                    "locked_by_others": result.locked_by_others,
                    "completed": tally.completed,
                    "completed_delta": progress,
                },
            )

            if confirm_each_idle_cycle:
                if self.confirm is None or not self.confirm(result, tally):
                    report.stop_reason = STOP_OPERATOR
                    break
            else:
                contended_cycles = contended_cycles + 1 if result.contended else 0
                if not result.contended or contended_cycles > policy.max_contended_cycles:
                    report.stop_reason = STOP_IDLE
                    break

            if not self._cooldown(policy.delay(result)):
                break

        if not tally_is_current:
            report.final_tally = self._reconcile()
        report.duration_seconds = time.perf_counter() - started

        log.info(
            f"[DRAIN COMPLETE] stop_reason={report.stop_reason} cycles={len(report.cycles)} "
            f"processed={report.processed}",
            extra={
                "stop_reason": report.stop_reason,
                "cycles": len(report.cycles),
                "processed": report.processed,
                "duration_seconds": round(report.duration_seconds, 2),
            },
        )
        return report


__all__ = [
    "CooldownPolicy",
    "Drainer",
    "STOP_CANCELLED",
    "STOP_EMPTY",
    "STOP_IDLE",
    "STOP_OPERATOR",
]

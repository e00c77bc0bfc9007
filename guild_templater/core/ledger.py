"""
Progress ledger for a template run.

The ledger owns the progress of one run. Every recorded operation is
appended and counted under a single lock, and observers are handed a frozen
``ExecutionProgress`` synchronously after every change, so they never see a
counter that disagrees with the operation list.
"""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime
from typing import Callable, Optional

from guild_templater.constants import DEFAULT_PROGRESS_QUEUE_SIZE
from guild_templater.exceptions import InvalidPhaseTransitionError
from guild_templater.types import (
    ExecutionPhase,
    ExecutionProgress,
    OperationResult,
    OperationStatus,
)
from guild_templater.utils.logging import log_with_context

ProgressCallback = Callable[[ExecutionProgress], None]

PHASE_TRANSITIONS: dict[ExecutionPhase, frozenset[ExecutionPhase]] = {
    ExecutionPhase.INITIALIZING: frozenset(
        {ExecutionPhase.SERVER, ExecutionPhase.FAILED}
    ),
    ExecutionPhase.SERVER: frozenset({ExecutionPhase.ROLES, ExecutionPhase.FAILED}),
    ExecutionPhase.ROLES: frozenset(
        {ExecutionPhase.CATEGORIES, ExecutionPhase.FAILED}
    ),
    ExecutionPhase.CATEGORIES: frozenset(
        {ExecutionPhase.CHANNELS, ExecutionPhase.FAILED}
    ),
    # channels -> categories is the per-category loop
    ExecutionPhase.CHANNELS: frozenset(
        {ExecutionPhase.CATEGORIES, ExecutionPhase.COMPLETED, ExecutionPhase.FAILED}
    ),
    ExecutionPhase.COMPLETED: frozenset(),
    ExecutionPhase.FAILED: frozenset(),
}


def can_transition(current: ExecutionPhase, target: ExecutionPhase) -> bool:
    return target in PHASE_TRANSITIONS[current]


class ProgressQueue:
    """Bounded queue of progress snapshots.

    ``put`` blocks while the queue is full, so a slow consumer slows the run
    down instead of losing updates. ``None`` marks the end of the run.
    """

    def __init__(self, maxsize: int = DEFAULT_PROGRESS_QUEUE_SIZE) -> None:
        self._queue: queue.Queue[Optional[ExecutionProgress]] = queue.Queue(
            maxsize=maxsize
        )
        self.closed = False

    def put(self, snapshot: ExecutionProgress) -> None:
        self._queue.put(snapshot)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put(None)

    def get(self, timeout: Optional[float] = None) -> Optional[ExecutionProgress]:
        return self._queue.get(timeout=timeout)

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is None:
                return
            yield item


class ProgressLedger:
    """Append-only record of operation outcomes plus the run's phase."""

    def __init__(
        self,
        total_operations: int,
        on_progress: Optional[ProgressCallback] = None,
        progress_queue: Optional[ProgressQueue] = None,
    ) -> None:
        self._total_operations = total_operations
        self._phase = ExecutionPhase.INITIALIZING
        self._counts = {
            OperationStatus.COMPLETED: 0,
            OperationStatus.FAILED: 0,
            OperationStatus.SKIPPED: 0,
        }
        self._operations: list[OperationResult] = []
        self._current_operation: Optional[str] = None
        self._start_time = datetime.now()
        self._end_time: Optional[datetime] = None
        self._lock = threading.Lock()
        self._on_progress = on_progress
        self._progress_queue = progress_queue

    @property
    def phase(self) -> ExecutionPhase:
        return self._phase

    @property
    def total_operations(self) -> int:
        return self._total_operations

    @property
    def recorded_count(self) -> int:
        with self._lock:
            return len(self._operations)

    def set_phase(self, phase: ExecutionPhase) -> None:
        """
        Move the run to ``phase``.

        Raises:
            InvalidPhaseTransitionError: If the move is not in the transition table
        """
        with self._lock:
            current = self._phase
            if not can_transition(current, phase):
                raise InvalidPhaseTransitionError(
                    f"Cannot move from phase '{current.value}' to '{phase.value}'"
                )
            self._phase = phase
            if phase.is_terminal:
                self._end_time = datetime.now()
                self._current_operation = None
            snapshot = self._snapshot_locked()

        log_with_context(
            logging.DEBUG, f"Execution phase: {phase.value}", phase=phase.value
        )
        self._notify(snapshot)
        if phase.is_terminal and self._progress_queue is not None:
            self._progress_queue.close()

    def set_current_operation(self, description: Optional[str]) -> None:
        with self._lock:
            self._current_operation = description
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def record(self, result: OperationResult) -> None:
        """Append ``result`` and bump exactly one counter, atomically."""
        if result.status not in self._counts:
            raise ValueError(
                f"Only terminal outcomes can be recorded, got '{result.status.value}'"
            )
        with self._lock:
            self._operations.append(result)
            self._counts[result.status] += 1
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def snapshot(self) -> ExecutionProgress:
        """Return a frozen copy of the current progress."""
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> ExecutionProgress:
        return ExecutionProgress(
            phase=self._phase,
            total_operations=self._total_operations,
            completed_operations=self._counts[OperationStatus.COMPLETED],
            failed_operations=self._counts[OperationStatus.FAILED],
            skipped_operations=self._counts[OperationStatus.SKIPPED],
            current_operation=self._current_operation,
            operations=tuple(self._operations),
            start_time=self._start_time,
            end_time=self._end_time,
        )

    def _notify(self, snapshot: ExecutionProgress) -> None:
        if self._on_progress is not None:
            try:
                self._on_progress(snapshot)
            except Exception as e:
                # A broken observer must not change the outcome of the run
                log_with_context(
                    logging.WARNING,
                    f"Progress callback raised {type(e).__name__}: {e}",
                    phase=snapshot.phase.value,
                )
        if self._progress_queue is not None and not self._progress_queue.closed:
            self._progress_queue.put(snapshot)

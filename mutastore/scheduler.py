"""
MutaStore FlushScheduler - Ordered, Non-Reentrant Draining of Mutation Steps
============================================================================

The scheduler owns a FIFO queue of ``MutationStep`` objects and a two-state
flag (``IDLE`` / ``DRAINING``). The first ``enqueue`` that finds the scheduler
idle drains the queue in its own call stack; any ``enqueue`` made while a drain
is running (from a mutator, a listener, a bridge setter or another thread) only
appends, and the running loop picks the new steps up because it re-checks the
live queue on every iteration.

Each step is handed to the ``run_step`` callable supplied by the owner, which
returns the state the step produced. If the step carries a completion signal,
the signal is resolved with that state afterwards.

Failure handling:

- An ``Exception`` raised by ``run_step`` fails the whole update call the step
  belongs to: the call's remaining queued steps are discarded, its signal is
  rejected with ``MutationError``, the failure is logged, and draining
  continues with the next call.
- Anything else (``KeyboardInterrupt``, ``CancelledError``...) fails the update
  call the same way and then propagates. The scheduler still returns to
  ``IDLE``; steps of later calls stay queued for the next drain.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Generic, Iterable, Optional, TypeVar

from .completion import CompletionSignal
from .errors import MutationError

S = TypeVar("S")

logger = logging.getLogger(__name__)


class SchedulerStatus(Enum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass(slots=True)
class MutationStep(Generic[S]):
    """One mutator waiting in the queue."""

    mutate: Callable[[Any, S], None]
    completion: Optional[CompletionSignal[S]] = None
    batch: int = 0


class FlushScheduler(Generic[S]):
    """FIFO mutation queue with at most one active drain loop."""

    def __init__(self, run_step: Callable[[MutationStep[S]], S], name: str = "store"):
        self._run_step = run_step
        self._name = name
        self._queue: Deque[MutationStep[S]] = deque()
        self._status = SchedulerStatus.IDLE
        self._lock = threading.Lock()

    @property
    def status(self) -> SchedulerStatus:
        return self._status

    @property
    def is_draining(self) -> bool:
        return self._status is SchedulerStatus.DRAINING

    @property
    def pending(self) -> int:
        """Number of steps waiting in the queue (excluding the one running)."""
        return len(self._queue)

    def enqueue(self, steps: Iterable[MutationStep[S]]) -> None:
        """Append steps in order and drain unless a drain is already running."""
        with self._lock:
            self._queue.extend(steps)
            if self._status is SchedulerStatus.DRAINING:
                logger.debug("%s: drain active, %d step(s) pending", self._name, len(self._queue))
                return
            self._status = SchedulerStatus.DRAINING

        self._drain()

    def _drain(self) -> None:
        logger.debug("%s: drain started", self._name)
        applied = 0
        try:
            while True:
                with self._lock:
                    if not self._queue:
                        self._status = SchedulerStatus.IDLE
                        break
                    step = self._queue.popleft()

                try:
                    new_state = self._run_step(step)
                except Exception as error:
                    self._fail(step, error)
                    continue
                except BaseException as error:
                    self._fail(step, error)
                    raise

                applied += 1
                if step.completion is not None:
                    step.completion.resolve(new_state)
        except BaseException:
            with self._lock:
                self._status = SchedulerStatus.IDLE
            raise
        logger.debug("%s: drain finished after %d step(s)", self._name, applied)

    def _fail(self, step: MutationStep[S], error: BaseException) -> None:
        completion = step.completion
        discarded = 0
        if completion is None:
            with self._lock:
                while self._queue and self._queue[0].batch == step.batch:
                    dropped = self._queue.popleft()
                    discarded += 1
                    if dropped.completion is not None:
                        completion = dropped.completion
                        break

        logger.error(
            "%s: update #%d failed, %d remaining step(s) discarded: %s",
            self._name,
            step.batch,
            discarded,
            error,
            exc_info=error,
        )

        if completion is not None:
            detail = str(error) or type(error).__name__
            failure = MutationError(f"Update #{step.batch} failed: {detail}", batch=step.batch)
            failure.__cause__ = error
            completion.reject(failure)

    def __repr__(self) -> str:
        return f"FlushScheduler({self._name}, {self._status.value}, pending={len(self._queue)})"

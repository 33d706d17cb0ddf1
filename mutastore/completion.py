"""
MutaStore Completion - Single-Resolution Future for Updates
===========================================================

Every ``Store.update`` call returns one ``CompletionSignal``. It settles exactly
once: resolved with the state produced by the call's last mutator, or rejected
with a ``MutationError`` if any step of the call failed.

The signal can be consumed three ways:

```python
signal = store.update(increment)

state = await signal                  # inside a coroutine; resumes on a later loop turn
state = signal.result(timeout=1.0)    # blocking
signal.add_done_callback(lambda s: print(s.result()))
```

It is backed by ``concurrent.futures.Future`` so it works with or without a
running event loop, and from any thread.
"""

import asyncio
import concurrent.futures
from typing import Any, Callable, Generator, Generic, Optional, TypeVar

from .errors import SignalAlreadySettledError

S = TypeVar("S")


class CompletionSignal(Generic[S]):
    """Awaitable, single-resolution future over a state snapshot."""

    __slots__ = ("_future", "_label")

    def __init__(self, label: Optional[str] = None) -> None:
        self._future: concurrent.futures.Future = concurrent.futures.Future()
        self._label = label

    def resolve(self, state: S) -> None:
        try:
            self._future.set_result(state)
        except concurrent.futures.InvalidStateError:
            raise SignalAlreadySettledError(f"{self!r} is already settled") from None

    def reject(self, error: BaseException) -> None:
        try:
            self._future.set_exception(error)
        except concurrent.futures.InvalidStateError:
            raise SignalAlreadySettledError(f"{self!r} is already settled") from None

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> S:
        """Block until settled, then return the state or raise the rejection."""
        return self._future.result(timeout)

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout)

    def add_done_callback(self, fn: Callable[["CompletionSignal[S]"], Any]) -> None:
        """Call ``fn(signal)`` once settled (immediately if it already is)."""
        self._future.add_done_callback(lambda _future: fn(self))

    @property
    def future(self) -> concurrent.futures.Future:
        return self._future

    def __await__(self) -> Generator[Any, None, S]:
        return asyncio.wrap_future(self._future).__await__()

    def __repr__(self) -> str:
        label = f" {self._label}" if self._label else ""
        if not self._future.done():
            status = "pending"
        elif self._future.exception() is not None:
            status = "rejected"
        else:
            status = "resolved"
        return f"CompletionSignal({status}{label})"

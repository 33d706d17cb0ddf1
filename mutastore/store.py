"""
MutaStore Store - Serialized Updates over an Immutable Snapshot
===============================================================

A ``Store`` holds one immutable snapshot and replaces it wholesale on every
mutation. Updates are queued and applied strictly in order, one step at a time,
by the store's own ``FlushScheduler``; nothing is shared between stores.

Basic Usage
-----------

```python
from mutastore import create_store

def on_change(event):
    print(f"{event.prior_state} -> {event.new_state} ({len(event.patches)} patches)")

store = create_store({"count": 0}, on_change)

def increment(draft, prior):
    draft["count"] = prior["count"] + 1

signal = store.update(increment, increment)
assert signal.result() == {"count": 2}
assert store.state == {"count": 2}
```

Each mutator becomes one step. The listener sees every step; the returned
``CompletionSignal`` resolves with the state after the *last* mutator of the
call.

Dataclass State
---------------

```python
from dataclasses import dataclass

@dataclass(frozen=True)
class Counter:
    count: int = 0

store = create_store(Counter)           # zero-argument callable, evaluated once

def bump(draft, prior):
    draft.count += 1

store.update(bump)
assert store.state == Counter(count=1)
```

Step Pipeline
-------------

For every step the store:

1. applies the mutator through the snapshot engine (with patches when patch
   tracking is enabled for this store),
2. calls the change listener with ``ChangeEvent(prior_state, new_state, patches)``,
3. replaces its held snapshot,
4. calls every bound presentation setter with the new snapshot,

after which the scheduler resolves the step's signal, if it has one.

See Also
--------

- ``mutastore.bridge``: ``connect`` / ``use_store`` view adapter
- ``mutastore.engine``: the snapshot engine
- ``mutastore.config``: process-wide patch tracking switch
"""

import itertools
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    List,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from .completion import CompletionSignal
from .config import get_settings
from .engine import Mutator, apply_mutation
from .patches import Patch
from .scheduler import FlushScheduler, MutationStep, SchedulerStatus

S = TypeVar("S")

logger = logging.getLogger(__name__)

_store_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class ChangeEvent(Generic[S]):
    """What one applied step changed."""

    prior_state: S
    new_state: S
    patches: Tuple[Patch, ...] = ()

    def __repr__(self) -> str:
        return (
            f"ChangeEvent({self.prior_state!r} -> {self.new_state!r}, "
            f"patches={len(self.patches)})"
        )


Listener = Callable[[ChangeEvent], None]
StateSetter = Callable[[Any], None]


class Store(Generic[S]):
    """
    Container for one immutable snapshot with serialized, batched updates.

    Args:
        initial: The initial snapshot, or a zero-argument callable producing it.
            A callable is evaluated exactly once, here.
        listen: Optional change listener, called once per applied step.
        enable_patches: Force patch tracking on or off for this store. ``None``
            defers to ``get_settings().patches_enabled``, read on every step.
        name: Label used in logs and reprs.
    """

    def __init__(
        self,
        initial: Union[S, Callable[[], S], None] = None,
        listen: Optional[Listener] = None,
        *,
        enable_patches: Optional[bool] = None,
        name: Optional[str] = None,
    ):
        self._name = name or f"store-{next(_store_ids)}"
        self._state: S = initial() if callable(initial) else initial
        self._listen = listen
        self._enable_patches = enable_patches
        self._setters: List[StateSetter] = []
        self._batches = itertools.count(1)
        self._scheduler: FlushScheduler[S] = FlushScheduler(self._apply_step, self._name)

    # ========================================================================
    # CORE API
    # ========================================================================

    @property
    def state(self) -> S:
        """The current snapshot."""
        return self._state

    @property
    def name(self) -> str:
        return self._name

    @property
    def patches_enabled(self) -> bool:
        if self._enable_patches is not None:
            return self._enable_patches
        return get_settings().patches_enabled

    @property
    def status(self) -> SchedulerStatus:
        return self._scheduler.status

    @property
    def pending(self) -> int:
        return self._scheduler.pending

    def update(self, *mutators: Mutator) -> CompletionSignal[S]:
        """
        Queue one logical update made of one or more mutators.

        Each mutator is called as ``mutator(draft, prior_state)`` where
        ``prior_state`` is the snapshot immediately before that mutator's own
        step. Mutators of one call are applied back to back; calls are applied
        in the order they were made.

        Returns:
            A signal resolving with the state produced by the last mutator, or
            rejected with ``MutationError`` if any step of this call failed.
            When the store was idle the signal is already settled on return.

        Raises:
            ValueError: No mutators were given.
        """
        if not mutators:
            raise ValueError("update() requires at least one mutator")

        batch = next(self._batches)
        completion: CompletionSignal[S] = CompletionSignal(f"{self._name}#{batch}")
        last = len(mutators) - 1
        steps = [
            MutationStep(mutate, completion if idx == last else None, batch)
            for idx, mutate in enumerate(mutators)
        ]
        logger.debug("%s: update #%d queued with %d step(s)", self._name, batch, len(steps))
        self._scheduler.enqueue(steps)
        return completion

    # ========================================================================
    # PRESENTATION BRIDGE
    # ========================================================================

    def bind(self, setter: StateSetter) -> Callable[[], None]:
        """
        Register a setter called with every new snapshot after each step.

        Returns:
            A function that removes the setter again.
        """
        self._setters.append(setter)

        def unbind() -> None:
            if setter in self._setters:
                self._setters.remove(setter)

        return unbind

    def connect(self, view: Callable[..., Any]) -> Any:
        """Wrap ``view`` so that ``use_store()`` works while it renders."""
        from .bridge import connect

        return connect(self, view)

    def use_store(self) -> Any:
        """State and update capability for the view currently rendering."""
        from .bridge import use_store

        return use_store(self)

    # ========================================================================
    # INTERNAL IMPLEMENTATION
    # ========================================================================

    def _apply_step(self, step: MutationStep[S]) -> S:
        prior_state = self._state
        new_state, patches = apply_mutation(prior_state, step.mutate, self.patches_enabled)

        if self._listen is not None:
            self._listen(ChangeEvent(prior_state, new_state, tuple(patches)))

        self._state = new_state

        for setter in list(self._setters):
            setter(new_state)

        return new_state

    def __repr__(self) -> str:
        return f"Store({self._name}, state={self._state!r}, {self._scheduler.status.value})"


def create_store(
    initial: Union[S, Callable[[], S], None] = None,
    listen: Optional[Listener] = None,
    *,
    enable_patches: Optional[bool] = None,
    name: Optional[str] = None,
) -> Store[S]:
    """Create an independent ``Store``. See ``Store`` for the arguments."""
    return Store(initial, listen, enable_patches=enable_patches, name=name)

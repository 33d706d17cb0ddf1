"""
MutaStore Bridge - Connecting Views to a Store
==============================================

A thin adapter between a ``Store`` and whatever renders its state. It mirrors
the provider/hook pair common in view frameworks:

- ``connect(store, view)`` wraps a view callable. Calling the wrapper renders
  the view inside a provider for ``store``.
- ``use_store(store)``, called while a connected view renders, returns
  ``StoreAccess(state, update)``. Outside a connected view it raises
  ``StoreUsageError``.

The connected view binds a setter to the store the first time it renders, so
after every applied step it holds the newest snapshot and is flagged ``stale``
until it renders again. Rendering policy (immediately, on the next frame, on
the next Streamlit rerun...) belongs to the caller.

```python
store = create_store({"count": 0})

@store.connect
def counter_view(label):
    state, update = store.use_store()
    return f"{label}: {state['count']}"

counter_view("Clicks")          # 'Clicks: 0'
```

Providers are tracked per thread, so views rendering on different threads do
not see each other's providers.
"""

import threading
from typing import Any, Callable, Generic, List, NamedTuple, Optional, TypeVar

from .completion import CompletionSignal
from .errors import StoreUsageError
from .store import Store

S = TypeVar("S")

NOT_CONNECTED_MESSAGE = 'Component must be wrapped with "connect(...)"'


class StoreAccess(NamedTuple):
    """What a connected view gets from ``use_store``."""

    state: Any
    update: Callable[..., CompletionSignal]


class ProviderContext:
    """Stack of views currently rendering on this thread."""

    _local = threading.local()

    @classmethod
    def _get_active(cls) -> List["ConnectedView"]:
        if not hasattr(cls._local, "active"):
            cls._local.active = []
        return cls._local.active

    def __init__(self, view: "ConnectedView"):
        self.view = view

    def __enter__(self):
        self._get_active().append(self.view)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._get_active().pop()

    @classmethod
    def find(cls, store: Store) -> Optional["ConnectedView"]:
        """Innermost rendering view connected to ``store``."""
        for view in reversed(cls._get_active()):
            if view.store is store:
                return view
        return None

    @classmethod
    def _reset_state(cls) -> None:
        """Reset provider state for testing."""
        cls._local.__dict__.clear()


class ConnectedView(Generic[S]):
    """A view callable wrapped with a provider for one store."""

    def __init__(self, store: Store[S], view: Callable[..., Any]):
        self.store = store
        self.view = view
        self.state: S = store.state
        self.stale = False
        self.renders = 0
        self._unbind: Optional[Callable[[], None]] = None
        self.__name__ = getattr(view, "__name__", type(self).__name__)
        self.__doc__ = getattr(view, "__doc__", None)

    @property
    def is_connected(self) -> bool:
        return self._unbind is not None

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._unbind is None:
            self.state = self.store.state
            self._unbind = self.store.bind(self._receive)

        with ProviderContext(self):
            self.stale = False
            self.renders += 1
            return self.view(*args, **kwargs)

    def _receive(self, state: S) -> None:
        self.state = state
        self.stale = True

    def disconnect(self) -> None:
        """Stop receiving snapshots from the store."""
        if self._unbind is not None:
            self._unbind()
            self._unbind = None

    def __repr__(self) -> str:
        return f"ConnectedView({self.__name__}, store={self.store.name}, renders={self.renders})"


def connect(store: Store[S], view: Callable[..., Any]) -> ConnectedView[S]:
    """Wrap ``view`` so that ``use_store(store)`` works while it renders."""
    return ConnectedView(store, view)


def use_store(store: Store[S]) -> StoreAccess:
    """
    State and update capability for the connected view now rendering.

    Raises:
        StoreUsageError: No view connected to ``store`` is rendering on this thread.
    """
    view = ProviderContext.find(store)
    if view is None:
        raise StoreUsageError(NOT_CONNECTED_MESSAGE)
    return StoreAccess(view.state, store.update)


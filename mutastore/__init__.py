"""
MutaStore - Serialized Mutations over Immutable Snapshots

A minimal state container: one immutable snapshot, updated through mutators
that write to a copy-on-write draft, applied strictly in order by a single
drain loop, with an awaitable completion signal per update.
"""

from .bridge import ConnectedView, StoreAccess, connect, use_store
from .completion import CompletionSignal
from .config import (
    StoreSettings,
    configure,
    configure_logging,
    get_settings,
    reset_settings,
)
from .draft import (
    DictDraft,
    Draft,
    ListDraft,
    ObjectDraft,
    SetDraft,
    current,
    is_draft,
    is_draftable,
    original,
)
from .engine import apply_mutation
from .errors import (
    DraftRevokedError,
    MutaStoreError,
    MutationError,
    PatchError,
    SignalAlreadySettledError,
    StoreUsageError,
    UndraftableStateError,
)
from .patches import Patch, PatchOp, apply_patches
from .scheduler import FlushScheduler, MutationStep, SchedulerStatus
from .store import ChangeEvent, Store, create_store

__version__ = "0.1.0"

__all__ = [
    # Store
    "Store",
    "create_store",
    "ChangeEvent",
    # Bridge
    "connect",
    "use_store",
    "ConnectedView",
    "StoreAccess",
    # Engine
    "apply_mutation",
    "apply_patches",
    "Patch",
    "PatchOp",
    "Draft",
    "DictDraft",
    "ListDraft",
    "SetDraft",
    "ObjectDraft",
    "current",
    "original",
    "is_draft",
    "is_draftable",
    # Scheduling
    "CompletionSignal",
    "FlushScheduler",
    "MutationStep",
    "SchedulerStatus",
    # Configuration
    "StoreSettings",
    "configure",
    "configure_logging",
    "get_settings",
    "reset_settings",
    # Exceptions
    "MutaStoreError",
    "StoreUsageError",
    "MutationError",
    "DraftRevokedError",
    "UndraftableStateError",
    "PatchError",
    "SignalAlreadySettledError",
]

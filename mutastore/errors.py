"""
MutaStore Errors
================

Every error raised by the store derives from ``MutaStoreError`` so callers can
catch the whole family at once.
"""

from typing import Optional


class MutaStoreError(Exception):
    """Base class for all store errors."""

    pass


class StoreUsageError(MutaStoreError):
    """Raised when store access is requested outside a connected view."""

    pass


class MutationError(MutaStoreError):
    """
    Raised (through the completion signal) when a step of an update fails.

    The original exception is available as ``__cause__``.
    """

    def __init__(self, message: str, batch: Optional[int] = None):
        super().__init__(message)
        self.batch = batch


class DraftRevokedError(MutaStoreError):
    """Raised when a draft is used after its mutator has returned."""

    pass


class UndraftableStateError(MutaStoreError, TypeError):
    """Raised when the engine is asked to draft a value it cannot copy-on-write."""

    pass


class PatchError(MutaStoreError):
    """Raised when a patch cannot be computed or applied."""

    pass


class SignalAlreadySettledError(MutaStoreError):
    """Raised when a completion signal is resolved or rejected twice."""

    pass

"""
MutaStore Patches
=================

A patch is one structural change between two snapshots: an operation, the path
from the root to the changed slot, and the new value. Patches produced by a
single step are ordered so that applying them one after another to the prior
state reproduces the new state.

Path segments are dict keys, list/tuple indices, dataclass field names, or the
member itself for sets.

Example:
    ```python
    from mutastore import apply_mutation, apply_patches

    def rename(draft, prior):
        draft["user"]["name"] = "Bob"

    new, patches = apply_mutation({"user": {"name": "Alice"}}, rename, True)
    # [Patch(replace ('user', 'name') = 'Bob')]
    assert apply_patches({"user": {"name": "Alice"}}, patches) == new
    ```
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple, TypeVar

from .errors import PatchError

S = TypeVar("S")


class PatchOp(str, Enum):
    """Kind of structural change."""

    ADD = "add"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass(frozen=True, slots=True)
class Patch:
    """Immutable diff operation."""

    op: PatchOp
    path: Tuple[Any, ...]
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-patch style dictionary; ``value`` is omitted for removals."""
        data: Dict[str, Any] = {"op": self.op.value, "path": list(self.path)}
        if self.op is not PatchOp.REMOVE:
            data["value"] = self.value
        return data

    def __repr__(self) -> str:
        if self.op is PatchOp.REMOVE:
            return f"Patch(remove {self.path!r})"
        return f"Patch({self.op.value} {self.path!r} = {self.value!r})"


def apply_patches(base: S, patches: Iterable[Patch]) -> S:
    """
    Apply patches to ``base`` and return the resulting snapshot.

    Patches are replayed through the snapshot engine, so the result shares
    every untouched subtree with ``base`` and ``base`` itself is never written.
    A root-level ``replace`` (empty path) swaps the whole value.
    """
    # Import here to avoid circular imports
    from .engine import apply_mutation

    result = base
    pending = []

    def replay(draft, _prior):
        for patch in pending:
            _apply_one(draft, patch)

    for patch in patches:
        if not patch.path:
            if patch.op is not PatchOp.REPLACE:
                raise PatchError(f"Only 'replace' is valid at the root, got {patch!r}")
            if pending:
                result, _ = apply_mutation(result, replay)
                pending.clear()
            result = patch.value
            continue
        pending.append(patch)

    if pending:
        result, _ = apply_mutation(result, replay)
    return result


def _apply_one(draft: Any, patch: Patch) -> None:
    from .draft import DictDraft, ListDraft, ObjectDraft, SetDraft

    *parents, last = patch.path
    target = draft
    try:
        for segment in parents:
            if isinstance(target, ObjectDraft):
                target = getattr(target, segment)
            else:
                target = target[segment]
    except (KeyError, IndexError, AttributeError, TypeError) as e:
        raise PatchError(f"Path {patch.path!r} does not exist") from e

    op = patch.op
    try:
        if isinstance(target, SetDraft):
            if op is PatchOp.ADD:
                target.add(patch.value)
            elif op is PatchOp.REMOVE:
                target.remove(last)
            else:
                raise PatchError("Set members can only be added or removed")
        elif isinstance(target, ListDraft):
            if op is PatchOp.ADD:
                target.insert(last, patch.value)
            elif op is PatchOp.REPLACE:
                target[last] = patch.value
            else:
                del target[last]
        elif isinstance(target, DictDraft):
            if op is PatchOp.REMOVE:
                del target[last]
            else:
                target[last] = patch.value
        elif isinstance(target, ObjectDraft):
            if op is not PatchOp.REPLACE:
                raise PatchError(f"Fields of {target!r} can only be replaced")
            setattr(target, last, patch.value)
        else:
            raise PatchError(f"Cannot apply {patch!r}: {type(target).__name__} is not a container")
    except (KeyError, IndexError, AttributeError) as e:
        raise PatchError(f"Cannot apply {patch!r}") from e

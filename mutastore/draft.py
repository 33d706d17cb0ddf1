"""
MutaStore Drafts - Copy-on-Write Proxies over Immutable Snapshots
=================================================================

A draft is a temporary, mutable view over an immutable value. Mutators write to
the draft as if it were the real container; the draft keeps its own shallow
copy and never touches the value it was created from. When the mutator
returns, the draft is finalized into a new snapshot:

- A draft that was never written finalizes to its base value by identity.
- A written draft finalizes to a new container whose untouched children are the
  very same objects as in the base (structural sharing).

Supported shapes:

- ``dict`` and subclasses -> ``DictDraft`` (a ``MutableMapping``)
- ``list``, ``tuple`` and namedtuples -> ``ListDraft`` (a ``MutableSequence``)
- ``set`` and ``frozenset`` -> ``SetDraft`` (a ``MutableSet``)
- dataclass instances, frozen or not -> ``ObjectDraft`` (attribute access)

Every other value is a leaf. NumPy arrays are leaves too, but reading one
through a draft returns a read-only view so the base array cannot be changed in
place; assign a new array instead.

Children are drafted lazily when they are read, and stored in the parent's
copy. Writing anywhere marks the whole chain up to the root as modified.

All drafts created for one mutation belong to a ``DraftScope``; the scope is
revoked when the mutation ends, after which any use of its drafts raises
``DraftRevokedError``.
"""

import copy as _copy
import dataclasses
import math
from collections.abc import MutableMapping, MutableSequence, MutableSet
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .errors import DraftRevokedError, MutaStoreError, UndraftableStateError
from .patches import Patch, PatchOp

_UNSET = object()
_IN_PROGRESS = object()

# Leaf types compared by value when deciding whether an assignment is a no-op
_SCALAR_TYPES = (int, float, complex, str, bytes, bool, type(None))


# ============================================================================
# HELPERS
# ============================================================================


def is_draftable(value: Any) -> bool:
    """Whether the engine can create a draft over ``value``."""
    if isinstance(value, (dict, list, tuple, set, frozenset)):
        return True
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def is_draft(value: Any) -> bool:
    return isinstance(value, Draft)


def _same_value(old: Any, new: Any) -> bool:
    """Assignment of ``new`` over ``old`` changes nothing observable."""
    if old is new:
        return True
    if type(old) is not type(new):
        return False
    if isinstance(old, float):
        if math.isnan(old):
            return math.isnan(new)
        return old == new and math.copysign(1.0, old) == math.copysign(1.0, new)
    if isinstance(old, _SCALAR_TYPES):
        return old == new
    if isinstance(old, np.ndarray):
        return (
            old.shape == new.shape
            and old.dtype == new.dtype
            and bool(np.array_equal(old, new))
        )
    return False


def _guard_leaf(value: Any) -> Any:
    if isinstance(value, np.ndarray) and value.flags.writeable:
        view = value.view()
        view.flags.writeable = False
        return view
    return value


def _finalize_value(value: Any) -> Any:
    """Replace drafts (possibly nested in freshly assigned containers) by snapshots."""
    if isinstance(value, Draft):
        return value._draft_finalize()
    return _map_plain(value, _finalize_value)


def _current_value(value: Any) -> Any:
    if isinstance(value, Draft):
        return value._draft_current()
    return _map_plain(value, _current_value)


def _map_plain(value: Any, convert: Callable[[Any], Any]) -> Any:
    if isinstance(value, dict):
        changed = {}
        for key, item in value.items():
            converted = convert(item)
            if converted is not item:
                changed[key] = converted
        if not changed:
            return value
        result = value.copy() if type(value) is dict else _copy.copy(value)
        result.update(changed)
        return result
    if isinstance(value, (list, tuple)):
        items = [convert(v) for v in value]
        if any(a is not b for a, b in zip(items, value)):
            return _rebuild_sequence(value, items)
        return value
    if isinstance(value, (set, frozenset)):
        members = [convert(v) for v in value]
        if any(a is not b for a, b in zip(members, value)):
            return type(value)(members)
        return value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        changed = {}
        for field in dataclasses.fields(value):
            item = getattr(value, field.name)
            converted = convert(item)
            if converted is not item:
                changed[field.name] = converted
        if not changed:
            return value
        return _replace_fields(value, changed)
    return value


def _replace_fields(base: Any, changed: Dict[str, Any]) -> Any:
    """Copy of dataclass ``base`` with ``changed`` fields, ``init=False`` ones included."""
    init = {field.name: field.init for field in dataclasses.fields(base)}
    result = dataclasses.replace(
        base, **{name: value for name, value in changed.items() if init[name]}
    )
    for name, value in changed.items():
        if not init[name]:
            object.__setattr__(result, name, value)
    return result


def _rebuild_sequence(base: Any, items: List[Any]) -> Any:
    kind = type(base)
    if kind is list:
        return items
    if kind is tuple:
        return tuple(items)
    if hasattr(kind, "_make"):
        return kind._make(items)
    return kind(items)


def _is_own_child(parent: "Draft", slot: Any, key: Any, old: Any) -> bool:
    """The slot still holds the draft created for ``key`` over ``old``."""
    return (
        isinstance(slot, Draft)
        and slot._draft_parent is parent
        and slot._draft_key == key
        and slot._draft_base is old
    )


# ============================================================================
# SCOPE
# ============================================================================


class DraftScope:
    """Tracks every draft created during one mutation so they can be revoked together."""

    __slots__ = ("drafts",)

    def __init__(self) -> None:
        self.drafts: List[Draft] = []

    def revoke(self) -> None:
        for draft in self.drafts:
            object.__setattr__(draft, "_draft_revoked", True)
        self.drafts.clear()


def create_draft(
    value: Any,
    scope: DraftScope,
    parent: Optional["Draft"] = None,
    key: Any = None,
) -> "Draft":
    if isinstance(value, dict):
        return DictDraft(value, scope, parent, key)
    if isinstance(value, (list, tuple)):
        return ListDraft(value, scope, parent, key)
    if isinstance(value, (set, frozenset)):
        return SetDraft(value, scope, parent, key)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return ObjectDraft(value, scope, parent, key)
    raise UndraftableStateError(
        f"Cannot create a draft over {type(value).__name__}; state must be a "
        "dict, list, tuple, set, frozenset or dataclass instance"
    )


# ============================================================================
# BASE DRAFT
# ============================================================================


class Draft:
    """Common copy-on-write bookkeeping shared by every draft kind."""

    __slots__ = (
        "_draft_base",
        "_draft_copy",
        "_draft_parent",
        "_draft_key",
        "_draft_scope",
        "_draft_modified",
        "_draft_result",
        "_draft_revoked",
    )

    def __init__(
        self, base: Any, scope: DraftScope, parent: Optional["Draft"], key: Any
    ) -> None:
        object.__setattr__(self, "_draft_base", base)
        object.__setattr__(self, "_draft_copy", None)
        object.__setattr__(self, "_draft_parent", parent)
        object.__setattr__(self, "_draft_key", key)
        object.__setattr__(self, "_draft_scope", scope)
        object.__setattr__(self, "_draft_modified", False)
        object.__setattr__(self, "_draft_result", _UNSET)
        object.__setattr__(self, "_draft_revoked", False)
        scope.drafts.append(self)

    # -- bookkeeping ---------------------------------------------------------

    def _draft_check(self) -> None:
        if self._draft_revoked:
            raise DraftRevokedError(
                f"{type(self).__name__} was used after its mutator returned"
            )

    def _draft_source(self) -> Any:
        return self._draft_copy if self._draft_copy is not None else self._draft_base

    def _draft_prepare(self) -> Any:
        if self._draft_copy is None:
            object.__setattr__(self, "_draft_copy", self._draft_shallow_copy())
        return self._draft_copy

    def _draft_mark_changed(self) -> None:
        draft: Optional[Draft] = self
        while draft is not None and not draft._draft_modified:
            draft._draft_prepare()
            object.__setattr__(draft, "_draft_modified", True)
            draft = draft._draft_parent

    def _draft_child(self, key: Any, value: Any) -> Any:
        """Draft ``value`` read from ``key``, storing the child in our copy."""
        if isinstance(value, Draft) or not is_draftable(value):
            return _guard_leaf(value)
        child = create_draft(value, self._draft_scope, self, key)
        self._draft_store(key, child)
        return child

    def _draft_finalize(self) -> Any:
        result = self._draft_result
        if result is _IN_PROGRESS:
            raise MutaStoreError("A draft cannot be assigned inside itself")
        if result is not _UNSET:
            return result
        if not self._draft_modified:
            result = self._draft_base
        else:
            object.__setattr__(self, "_draft_result", _IN_PROGRESS)
            result = self._draft_build(_finalize_value)
        object.__setattr__(self, "_draft_result", result)
        return result

    def _draft_current(self) -> Any:
        if not self._draft_modified:
            return self._draft_base
        return self._draft_build(_current_value)

    # -- per-kind hooks -------------------------------------------------------

    def _draft_shallow_copy(self) -> Any:
        raise NotImplementedError

    def _draft_store(self, key: Any, child: "Draft") -> None:
        raise NotImplementedError

    def _draft_build(self, convert: Callable[[Any], Any]) -> Any:
        raise NotImplementedError

    def _draft_patches(self, result: Any, path: Tuple[Any, ...], out: List[Patch]) -> None:
        raise NotImplementedError


# ============================================================================
# DICT DRAFT
# ============================================================================


class DictDraft(Draft, MutableMapping):
    """Draft over a ``dict``."""

    __slots__ = ()

    def _draft_shallow_copy(self) -> Dict:
        base = self._draft_base
        return base.copy() if type(base) is dict else _copy.copy(base)

    def _draft_store(self, key: Any, child: Draft) -> None:
        self._draft_prepare()[key] = child

    def _draft_build(self, convert: Callable[[Any], Any]) -> Dict:
        base = self._draft_base
        source = self._draft_copy
        result = source.copy() if type(source) is dict else _copy.copy(source)
        for key, value in source.items():
            if key in base and base[key] is value:
                continue
            result[key] = convert(value)
        if len(result) == len(base) and all(
            key in base and base[key] is value for key, value in result.items()
        ):
            return base
        return result

    def _draft_patches(self, result: Any, path: Tuple[Any, ...], out: List[Patch]) -> None:
        if not self._draft_modified or result is self._draft_base:
            return
        base = self._draft_base
        for key in base:
            if key not in result:
                out.append(Patch(PatchOp.REMOVE, path + (key,)))
        for key, value in result.items():
            if key not in base:
                out.append(Patch(PatchOp.ADD, path + (key,), value))
                continue
            old = base[key]
            if old is value:
                continue
            slot = self._draft_copy.get(key)
            if _is_own_child(self, slot, key, old):
                slot._draft_patches(value, path + (key,), out)
            else:
                out.append(Patch(PatchOp.REPLACE, path + (key,), value))

    def __getitem__(self, key: Any) -> Any:
        self._draft_check()
        return self._draft_child(key, self._draft_source()[key])

    def __setitem__(self, key: Any, value: Any) -> None:
        self._draft_check()
        source = self._draft_source()
        if key in source and _same_value(source[key], value):
            return
        self._draft_mark_changed()
        self._draft_copy[key] = value

    def __delitem__(self, key: Any) -> None:
        self._draft_check()
        if key not in self._draft_source():
            raise KeyError(key)
        self._draft_mark_changed()
        del self._draft_copy[key]

    def __contains__(self, key: object) -> bool:
        self._draft_check()
        return key in self._draft_source()

    def __iter__(self) -> Iterator[Any]:
        self._draft_check()
        return iter(list(self._draft_source()))

    def __len__(self) -> int:
        self._draft_check()
        return len(self._draft_source())

    def clear(self) -> None:
        self._draft_check()
        if not self._draft_source():
            return
        self._draft_mark_changed()
        self._draft_copy.clear()

    def __repr__(self) -> str:
        if self._draft_revoked:
            return "DictDraft(<revoked>)"
        return f"DictDraft({_current_value(self)!r})"


# ============================================================================
# LIST DRAFT
# ============================================================================


class ListDraft(Draft, MutableSequence):
    """Draft over a ``list`` or ``tuple``; finalizes back to the base's type."""

    __slots__ = ()

    def _draft_shallow_copy(self) -> List:
        return list(self._draft_base)

    def _draft_store(self, key: Any, child: Draft) -> None:
        self._draft_prepare()[key] = child

    def _draft_build(self, convert: Callable[[Any], Any]) -> Any:
        base = self._draft_base
        shared = {id(value) for value in base}
        items = [
            value if id(value) in shared else convert(value)
            for value in self._draft_copy
        ]
        if len(items) == len(base) and all(a is b for a, b in zip(items, base)):
            return base
        return _rebuild_sequence(base, items)

    def _draft_patches(self, result: Any, path: Tuple[Any, ...], out: List[Patch]) -> None:
        if not self._draft_modified or result is self._draft_base:
            return
        base = self._draft_base
        shared = min(len(base), len(result))
        for index in range(shared):
            old, value = base[index], result[index]
            if old is value:
                continue
            slot = self._draft_copy[index]
            if _is_own_child(self, slot, index, old):
                slot._draft_patches(value, path + (index,), out)
            else:
                out.append(Patch(PatchOp.REPLACE, path + (index,), value))
        for index in range(shared, len(result)):
            out.append(Patch(PatchOp.ADD, path + (index,), result[index]))
        for index in range(len(base) - 1, shared - 1, -1):
            out.append(Patch(PatchOp.REMOVE, path + (index,)))

    def _normalize(self, index: int) -> int:
        size = len(self._draft_source())
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError("list index out of range")
        return index

    def __getitem__(self, index: Any) -> Any:
        self._draft_check()
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        index = self._normalize(index)
        return self._draft_child(index, self._draft_source()[index])

    def __setitem__(self, index: Any, value: Any) -> None:
        self._draft_check()
        if isinstance(index, slice):
            self._draft_mark_changed()
            self._draft_copy[index] = list(value)
            return
        index = self._normalize(index)
        if _same_value(self._draft_source()[index], value):
            return
        self._draft_mark_changed()
        self._draft_copy[index] = value

    def __delitem__(self, index: Any) -> None:
        self._draft_check()
        if not isinstance(index, slice):
            index = self._normalize(index)
        self._draft_mark_changed()
        del self._draft_copy[index]

    def __len__(self) -> int:
        self._draft_check()
        return len(self._draft_source())

    def insert(self, index: int, value: Any) -> None:
        self._draft_check()
        self._draft_mark_changed()
        self._draft_copy.insert(index, value)

    def clear(self) -> None:
        self._draft_check()
        if not self._draft_source():
            return
        self._draft_mark_changed()
        self._draft_copy.clear()

    def sort(self, *, key: Optional[Callable[[Any], Any]] = None, reverse: bool = False) -> None:
        self._draft_check()
        self._draft_mark_changed()
        self._draft_copy.sort(key=key, reverse=reverse)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (list, tuple, ListDraft)):
            return list(self) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if self._draft_revoked:
            return "ListDraft(<revoked>)"
        return f"ListDraft({_current_value(self)!r})"


# ============================================================================
# SET DRAFT
# ============================================================================


class SetDraft(Draft, MutableSet):
    """Draft over a ``set`` or ``frozenset``. Members are leaves."""

    __slots__ = ()

    @classmethod
    def _from_iterable(cls, it):
        return set(it)

    def _draft_shallow_copy(self) -> set:
        return set(self._draft_base)

    def _draft_store(self, key: Any, child: Draft) -> None:
        raise MutaStoreError("Set members cannot be drafted")

    def _draft_build(self, convert: Callable[[Any], Any]) -> Any:
        base = self._draft_base
        members = {convert(member) for member in self._draft_copy}
        if members == base:
            return base
        return type(base)(members)

    def _draft_patches(self, result: Any, path: Tuple[Any, ...], out: List[Patch]) -> None:
        if not self._draft_modified or result is self._draft_base:
            return
        base = self._draft_base
        for member in base:
            if member not in result:
                out.append(Patch(PatchOp.REMOVE, path + (member,), member))
        for member in result:
            if member not in base:
                out.append(Patch(PatchOp.ADD, path + (member,), member))

    def __contains__(self, member: object) -> bool:
        self._draft_check()
        return member in self._draft_source()

    def __iter__(self) -> Iterator[Any]:
        self._draft_check()
        return iter(list(self._draft_source()))

    def __len__(self) -> int:
        self._draft_check()
        return len(self._draft_source())

    def add(self, member: Any) -> None:
        self._draft_check()
        if member in self._draft_source():
            return
        self._draft_mark_changed()
        self._draft_copy.add(member)

    def discard(self, member: Any) -> None:
        self._draft_check()
        if member not in self._draft_source():
            return
        self._draft_mark_changed()
        self._draft_copy.discard(member)

    def __repr__(self) -> str:
        if self._draft_revoked:
            return "SetDraft(<revoked>)"
        return f"SetDraft({set(self._draft_source())!r})"


# ============================================================================
# DATACLASS DRAFT
# ============================================================================


class ObjectDraft(Draft):
    """
    Draft over a dataclass instance.

    Fields are read and assigned as attributes. Finalization goes through
    ``dataclasses.replace``, so frozen dataclasses work and ``__post_init__``
    runs on the new snapshot. Methods and properties are looked up on the base
    instance and therefore see the prior values.
    """

    __slots__ = ("_draft_fields",)

    def __init__(
        self, base: Any, scope: DraftScope, parent: Optional[Draft], key: Any
    ) -> None:
        super().__init__(base, scope, parent, key)
        object.__setattr__(
            self,
            "_draft_fields",
            {field.name: field.init for field in dataclasses.fields(base)},
        )

    def _draft_shallow_copy(self) -> Dict[str, Any]:
        base = self._draft_base
        return {name: getattr(base, name) for name in self._draft_fields}

    def _draft_store(self, key: Any, child: Draft) -> None:
        self._draft_prepare()[key] = child

    def _draft_build(self, convert: Callable[[Any], Any]) -> Any:
        base = self._draft_base
        changed = {}
        for name, value in self._draft_copy.items():
            if value is getattr(base, name):
                continue
            value = convert(value)
            if value is not getattr(base, name):
                changed[name] = value
        if not changed:
            return base
        return _replace_fields(base, changed)

    def _draft_patches(self, result: Any, path: Tuple[Any, ...], out: List[Patch]) -> None:
        if not self._draft_modified or result is self._draft_base:
            return
        base = self._draft_base
        for name in self._draft_fields:
            old, value = getattr(base, name), getattr(result, name)
            if old is value:
                continue
            slot = self._draft_copy.get(name)
            if _is_own_child(self, slot, name, old):
                slot._draft_patches(value, path + (name,), out)
            else:
                out.append(Patch(PatchOp.REPLACE, path + (name,), value))

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__") or name.startswith("_draft_"):
            raise AttributeError(name)
        self._draft_check()
        if name not in self._draft_fields:
            return getattr(self._draft_base, name)
        source = self._draft_copy
        value = source[name] if source is not None else getattr(self._draft_base, name)
        return self._draft_child(name, value)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_draft_"):
            object.__setattr__(self, name, value)
            return
        self._draft_check()
        if name not in self._draft_fields:
            raise AttributeError(
                f"{type(self._draft_base).__name__} has no field {name!r}"
            )
        source = self._draft_copy
        old = source[name] if source is not None else getattr(self._draft_base, name)
        if _same_value(old, value):
            return
        self._draft_mark_changed()
        self._draft_copy[name] = value

    def __delattr__(self, name: str) -> None:
        raise AttributeError(f"Field {name!r} cannot be deleted from a draft")

    def __repr__(self) -> str:
        if self._draft_revoked:
            return "ObjectDraft(<revoked>)"
        return f"ObjectDraft({_current_value(self)!r})"


# ============================================================================
# PUBLIC HELPERS
# ============================================================================


def current(draft: Draft) -> Any:
    """Snapshot of a live draft's present contents, without ending the mutation."""
    if not isinstance(draft, Draft):
        raise TypeError(f"current() expects a draft, got {type(draft).__name__}")
    draft._draft_check()
    return draft._draft_current()


def original(draft: Draft) -> Any:
    """The value a draft was created from."""
    if not isinstance(draft, Draft):
        raise TypeError(f"original() expects a draft, got {type(draft).__name__}")
    return draft._draft_base


def finalize(draft: Draft) -> Any:
    return draft._draft_finalize()


def collect_patches(draft: Draft, result: Any) -> List[Patch]:
    """Ordered patches turning ``draft``'s base into ``result``."""
    out: List[Patch] = []
    draft._draft_patches(result, (), out)
    return out

"""
MutaStore Snapshot Engine
=========================

Applies one mutator to an immutable snapshot and returns the next snapshot.

```python
from mutastore import apply_mutation

def add_tag(draft, prior):
    draft["tags"].append("urgent")

state = {"title": "Ship it", "tags": ["work"]}
new_state, patches = apply_mutation(state, add_tag, track_patches=True)

assert state == {"title": "Ship it", "tags": ["work"]}   # untouched
assert new_state["tags"] == ["work", "urgent"]
# patches == [Patch(add ('tags', 1) = 'urgent')]
```

The mutator receives a draft of ``current`` and ``current`` itself. Drafts are
revoked as soon as this function returns, whether the mutator succeeded or not.
"""

import logging
from typing import Any, Callable, List, Tuple, TypeVar

from .draft import DraftScope, collect_patches, create_draft, finalize
from .errors import PatchError
from .patches import Patch

S = TypeVar("S")

Mutator = Callable[[Any, S], None]

logger = logging.getLogger(__name__)


def apply_mutation(
    current: S, mutate: Mutator, track_patches: bool = False
) -> Tuple[S, List[Patch]]:
    """
    Run ``mutate`` against a draft of ``current``.

    Args:
        current: The snapshot to derive from. Never written.
        mutate: ``mutate(draft, current)``; its return value is ignored.
        track_patches: Compute the ordered diff between ``current`` and the
            result. When false the diff is skipped entirely.

    Returns:
        ``(new_state, patches)``. ``new_state is current`` when nothing was
        written; ``patches`` is empty unless ``track_patches`` is set.

    Raises:
        UndraftableStateError: ``current`` is not a draftable shape.
        PatchError: The diff could not be computed (patch tracking only).
        Exception: Whatever ``mutate`` raises is propagated unchanged.
    """
    scope = DraftScope()
    draft = create_draft(current, scope)
    try:
        mutate(draft, current)
        new_state = finalize(draft)
        if not track_patches:
            return new_state, []
        try:
            patches = collect_patches(draft, new_state)
        except PatchError:
            raise
        except Exception as e:
            raise PatchError(f"Could not compute patches: {e}") from e
        logger.debug("Mutation produced %d patch(es)", len(patches))
        return new_state, patches
    finally:
        scope.revoke()

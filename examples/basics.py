import asyncio
from dataclasses import dataclass
from typing import Tuple

from mutastore import MutationError, apply_patches, create_store, use_store

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Creating a store and updating it")
print("-" * 100)
print()


# The listener sees every applied step: the state before, the state after, and the patches.
def log_change(event):
    print(f"{event.prior_state} -> {event.new_state}")
    for patch in event.patches:
        print(f"    {patch}")


counter = create_store({"count": 0, "history": []}, log_change)


def add(n):
    def mutate(draft, prior):
        draft["count"] += n
        draft["history"].append(n)

    return mutate


# One call, three mutators: the listener runs three times and the signal
# resolves with the state after the last one.
signal = counter.update(add(1), add(10), add(100))
print(f"Signal resolved with: {signal.result()}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Snapshots are immutable and share untouched parts")
print("-" * 100)
print()

before = counter.state
counter.update(lambda draft, prior: draft.__setitem__("count", 0))
after = counter.state

print(f"Before still reads: {before['count']}")
print(f"History list shared between snapshots: {before['history'] is after['history']}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Dataclass state")
print("-" * 100)
print()


@dataclass(frozen=True)
class Todo:
    title: str
    done: bool = False


@dataclass(frozen=True)
class Todos:
    items: Tuple[Todo, ...] = ()


patch_log = []
todos = create_store(Todos, lambda event: patch_log.append(event.patches))


def add_todo(title):
    def mutate(draft, prior):
        draft.items.append(Todo(title))

    return mutate


def finish(index):
    def mutate(draft, prior):
        draft.items[index].done = True

    return mutate


todos.update(add_todo("write docs"), add_todo("ship"), finish(0))
print(todos.state)

# Patches replayed over the initial value rebuild the same state.
rebuilt = Todos()
for patches in patch_log:
    rebuilt = apply_patches(rebuilt, patches)
print(f"Rebuilt from patches: {rebuilt == todos.state}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Updates from inside a listener are queued, never nested")
print("-" * 100)
print()


def clamp(event):
    if event.new_state["count"] > 5:
        print(f"  clamping {event.new_state['count']} back to 5")
        clamped.update(lambda draft, prior: draft.__setitem__("count", 5))


def add_four(draft, prior):
    draft["count"] = prior["count"] + 4


clamped = create_store({"count": 0}, clamp)
clamped.update(add_four, add_four)
print(f"Final count: {clamped.state['count']}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Failed updates reject their signal")
print("-" * 100)
print()


def explode(draft, prior):
    raise RuntimeError("nothing to see here")


failed = clamped.update(explode)
try:
    failed.result()
except MutationError as e:
    print(f"Rejected: {e} (caused by {e.__cause__!r})")

print(f"Store still usable: {clamped.update(lambda d, p: d.__setitem__('count', 1)).result()}")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Connected views")
print("-" * 100)
print()


@counter.connect
def counter_view():
    state, update = use_store(counter)
    return f"Count is {state['count']}"


print(counter_view())
counter.update(add(7))
print(f"View stale after update: {counter_view.stale}")
print(counter_view())

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Awaiting updates")
print("-" * 100)
print()


async def main():
    state = await counter.update(add(1))
    print(f"Awaited state: {state['count']}")


asyncio.run(main())

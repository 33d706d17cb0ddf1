"""Integration tests exercising stores, drafts, patches and views together."""

import asyncio

import numpy as np
import pytest

from mutastore import (
    MutationError,
    apply_patches,
    configure,
    create_store,
    current,
    use_store,
)
from tests.test_factories import Todo, TodoState, create_todo_state


@pytest.mark.integration
def test_todo_workflow_with_patch_log_replay():
    """Replaying every event's patches from the initial state reproduces the final state"""
    # Arrange
    log = []
    initial = create_todo_state()
    store = create_store(initial, log.append)

    def add_todo(title):
        def mutate(draft, prior):
            draft.todos.append(Todo(title))

        return mutate

    def complete(index):
        def mutate(draft, prior):
            draft.todos[index].done = True

        return mutate

    def drop_finished(draft, prior):
        draft.todos = tuple(todo for todo in prior.todos if not todo.done)

    # Act
    store.update(add_todo("test"), complete(0))
    store.update(lambda draft, prior: draft.tags.add("sprint"))
    final = store.update(drop_finished).result()

    # Assert
    assert final == TodoState(todos=(Todo("test"),), tags=frozenset({"sprint"}))
    replayed = initial
    for event in log:
        assert event.prior_state == replayed
        replayed = apply_patches(replayed, event.patches)
    assert replayed == final
    assert store.state is final


@pytest.mark.integration
def test_listener_driven_follow_up_updates():
    """A listener can react to a change by queueing derived updates"""

    def listener(event):
        state = event.new_state
        total = sum(item["qty"] * item["price"] for item in state["items"])
        if state["total"] != total:
            store.update(lambda draft, prior: draft.__setitem__("total", total))

    store = create_store({"items": [], "total": 0}, listener)

    def add_item(name, qty, price):
        def mutate(draft, prior):
            draft["items"].append({"name": name, "qty": qty, "price": price})

        return mutate

    store.update(add_item("pen", 2, 3), add_item("pad", 1, 4))
    store.update(lambda draft, prior: draft["items"][0].__setitem__("qty", 5))

    assert store.state["total"] == 19


@pytest.mark.integration
def test_connected_view_render_loop():
    """A view that updates during render is re-rendered until it is no longer stale"""
    store = create_store({"clicks": 0, "history": ()})

    @store.connect
    def button(click):
        state, update = use_store(store)
        if click:

            def record(draft, prior):
                draft["clicks"] += 1
                draft["history"].append(current(draft)["clicks"])

            update(record)
        return f"clicked {state['clicks']} times"

    frames = [button(True)]
    while button.stale:
        frames.append(button(False))

    assert frames == ["clicked 0 times", "clicked 1 times"]
    assert store.state == {"clicks": 1, "history": (1,)}


@pytest.mark.integration
def test_failures_are_isolated_between_updates():
    """One failed update does not disturb updates before or after it"""
    events = []
    store = create_store({"values": [1, 2, 3]}, events.append)

    ok = store.update(lambda draft, prior: draft["values"].append(4))
    bad = store.update(lambda draft, prior: draft["values"].remove(99))
    later = store.update(lambda draft, prior: draft["values"].pop(0))

    assert ok.result() == {"values": [1, 2, 3, 4]}
    assert isinstance(bad.exception(), MutationError)
    assert isinstance(bad.exception().__cause__, ValueError)
    assert later.result() == {"values": [2, 3, 4]}
    assert len(events) == 2


@pytest.mark.integration
def test_production_mode_skips_patches_but_keeps_semantics():
    """Patch tracking off changes nothing except the event patches"""
    configure(app_env="production")
    events = []
    store = create_store({"matrix": np.zeros(2), "meta": {"rev": 0}}, events.append)

    def bump(draft, prior):
        draft["matrix"] = prior["matrix"] + 1
        draft["meta"]["rev"] += 1

    store.update(bump, bump)

    assert np.array_equal(store.state["matrix"], np.array([2.0, 2.0]))
    assert store.state["meta"] == {"rev": 2}
    assert all(event.patches == () for event in events)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_async_producers_share_one_store():
    """Coroutines awaiting updates observe a consistent, ordered history"""
    events = []
    store = create_store({"count": 0, "seen": ()}, events.append)

    async def producer(n):
        for _ in range(3):
            await asyncio.sleep(0)

            def bump(draft, prior):
                draft["count"] += n
                draft["seen"].append(n)

            await store.update(bump)

    await asyncio.gather(producer(1), producer(10))

    assert store.state["count"] == 33
    assert len(store.state["seen"]) == 6
    counts = [event.new_state["count"] for event in events]
    assert counts == sorted(counts)
    for previous, event in zip(events, events[1:]):
        assert event.prior_state is previous.new_state

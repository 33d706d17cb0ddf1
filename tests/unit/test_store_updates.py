"""Unit tests for Store updates, listeners and signals."""

import asyncio

import pytest

from mutastore import ChangeEvent, MutationError, Patch, PatchOp, SchedulerStatus, Store, create_store
from tests.test_factories import add, create_event_recorder, create_nested_state, fail_with, set_value


# ============================================================================
# CONSTRUCTION
# ============================================================================


@pytest.mark.unit
@pytest.mark.store
def test_store_holds_the_initial_state(counter_store):
    """A new store exposes its initial snapshot and is idle"""
    assert counter_store.state == {"count": 0}
    assert counter_store.status is SchedulerStatus.IDLE
    assert counter_store.pending == 0


@pytest.mark.unit
@pytest.mark.store
def test_callable_initial_value_is_evaluated_once():
    """A zero-argument factory runs exactly once, at construction"""
    calls = []

    def factory():
        calls.append(1)
        return {"count": 0}

    store = create_store(factory)
    store.update(add(1))

    assert calls == [1]
    assert store.state == {"count": 1}


@pytest.mark.unit
@pytest.mark.store
def test_stores_get_distinct_default_names():
    """Unnamed stores are labelled store-N"""
    first, second = Store({}), Store({})

    assert first.name != second.name
    assert first.name.startswith("store-")
    assert create_store({}, name="cart").name == "cart"


# ============================================================================
# UPDATES
# ============================================================================


@pytest.mark.unit
@pytest.mark.store
def test_single_update_changes_state_and_resolves_signal(counter_store):
    """update() on an idle store returns an already resolved signal"""
    # Act
    signal = counter_store.update(set_value("count", 5))

    # Assert
    assert signal.done()
    assert signal.result() == {"count": 5}
    assert counter_store.state == {"count": 5}


@pytest.mark.unit
@pytest.mark.store
def test_mutators_of_one_call_apply_in_order():
    """Each mutator is its own step; the listener sees 1, 11, 111"""
    recorder = create_event_recorder()
    store = create_store({"count": 0}, recorder.record)

    signal = store.update(add(1), add(10), add(100))

    assert recorder.values() == [1, 11, 111]
    assert signal.result() == {"count": 111}


@pytest.mark.unit
@pytest.mark.store
def test_prior_state_is_the_state_before_each_step():
    """Mutators and listener events see the snapshot right before their step"""
    priors = []
    recorder = create_event_recorder()
    store = create_store({"count": 0}, recorder.record)

    def record_prior(draft, prior):
        priors.append(prior["count"])
        draft["count"] = prior["count"] + 1

    store.update(record_prior, record_prior)

    assert priors == [0, 1]
    assert [e.prior_state["count"] for e in recorder.events] == [0, 1]
    assert recorder.events[1].prior_state is recorder.events[0].new_state


@pytest.mark.unit
@pytest.mark.store
def test_listener_receives_patches_for_each_step():
    """Events carry the step's patches as a tuple"""
    recorder = create_event_recorder()
    store = create_store({"count": 0}, recorder.record, enable_patches=True)

    store.update(set_value("count", 2))

    event = recorder.events[0]
    assert isinstance(event, ChangeEvent)
    assert event.patches == (Patch(PatchOp.REPLACE, ("count",), 2),)


@pytest.mark.unit
@pytest.mark.store
def test_listener_gets_empty_patches_in_production(monkeypatch):
    """With APP_ENV=production the listener still runs but gets no patches"""
    monkeypatch.setenv("APP_ENV", "production")
    recorder = create_event_recorder()
    store = create_store({"count": 0}, recorder.record)

    store.update(add(1))

    assert store.patches_enabled is False
    assert recorder.events[0].patches == ()
    assert recorder.events[0].new_state == {"count": 1}


@pytest.mark.unit
@pytest.mark.store
def test_no_op_update_keeps_the_snapshot_identity():
    """A mutator that writes nothing leaves the exact same snapshot"""
    recorder = create_event_recorder()
    base = create_nested_state()
    store = create_store(base, recorder.record)

    signal = store.update(lambda draft, prior: None)

    assert store.state is base
    assert signal.result() is base
    assert recorder.events[0].patches == ()


@pytest.mark.unit
@pytest.mark.store
def test_update_shares_untouched_subtrees():
    """Successive snapshots share everything the mutator did not touch"""
    base = create_nested_state()
    store = create_store(base)

    store.update(lambda draft, prior: draft["items"][0].__setitem__("qty", 9))

    assert store.state["items"][0]["qty"] == 9
    assert store.state["items"][1] is base["items"][1]
    assert store.state["user"] is base["user"]


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.edge_case
def test_update_without_mutators_is_rejected(counter_store):
    """update() needs at least one mutator"""
    with pytest.raises(ValueError):
        counter_store.update()


@pytest.mark.unit
@pytest.mark.store
def test_stores_are_independent():
    """Each store has its own queue and state"""
    first = create_store({"count": 0})
    second = create_store({"count": 0})

    def cross_update(draft, prior):
        draft["count"] += 1
        second.update(add(5))
        assert second.state == {"count": 5}

    first.update(cross_update)

    assert first.state == {"count": 1}
    assert second.state == {"count": 5}


# ============================================================================
# REENTRANCY
# ============================================================================


@pytest.mark.unit
@pytest.mark.store
def test_update_from_listener_is_queued_behind_the_current_step():
    """A listener-triggered update runs after the current step, in the same drain"""
    store = None
    seen = []
    inner = []

    def listener(event):
        seen.append((event.new_state["count"], store.status))
        if event.new_state["count"] == 1:
            inner.append(store.update(set_value("count", 100)))
            assert store.state == {"count": 0}

    store = create_store({"count": 0}, listener)

    outer = store.update(add(1))

    assert seen == [(1, SchedulerStatus.DRAINING), (100, SchedulerStatus.DRAINING)]
    assert outer.result() == {"count": 1}
    assert inner[0].result() == {"count": 100}
    assert store.state == {"count": 100}
    assert store.status is SchedulerStatus.IDLE


@pytest.mark.unit
@pytest.mark.store
def test_update_from_a_mutator_runs_after_the_current_call():
    """An update issued inside a mutator runs after the rest of the current call"""
    store = create_store({"count": 0, "log": ()})

    def outer(draft, prior):
        draft["count"] = 10
        store.update(lambda d, p: d["log"].append(p["count"]))

    signal = store.update(outer, add(1))

    assert signal.result() == {"count": 11, "log": ()}
    assert store.state == {"count": 11, "log": (11,)}


@pytest.mark.unit
@pytest.mark.store
def test_update_called_while_draining_returns_a_pending_signal():
    """Signals of queued updates are pending until the loop reaches them"""
    store = None
    observed = []

    def listener(event):
        if not observed:
            signal = store.update(add(1))
            observed.append(signal.done())
            observed.append(store.pending)

    store = create_store({"count": 0}, listener)
    store.update(add(1))

    assert observed == [False, 1]
    assert store.state == {"count": 2}


# ============================================================================
# FAILURES
# ============================================================================


@pytest.mark.unit
@pytest.mark.store
def test_failing_mutator_rejects_and_later_updates_still_run(counter_store):
    """A failed update rejects its signal without blocking the queue"""
    # Act
    failed = counter_store.update(add(1), fail_with(RuntimeError("boom")), add(100))
    after = counter_store.update(add(10))

    # Assert
    with pytest.raises(MutationError) as exc_info:
        failed.result()
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert after.result() == {"count": 11}
    assert counter_store.status is SchedulerStatus.IDLE


@pytest.mark.unit
@pytest.mark.store
def test_listener_error_fails_the_step_and_keeps_the_prior_state():
    """A raising listener rejects the update; the snapshot is not replaced"""

    def listener(event):
        if event.new_state["count"] == 1:
            raise ValueError("listener failed")

    store = create_store({"count": 0}, listener)

    failed = store.update(add(1))

    assert isinstance(failed.exception(), MutationError)
    assert store.state == {"count": 0}


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.edge_case
def test_undraftable_state_rejects_the_update():
    """A scalar state cannot be mutated through a draft"""
    store = create_store(0)

    signal = store.update(lambda draft, prior: None)

    with pytest.raises(MutationError, match="Cannot create a draft"):
        signal.result()
    assert store.state == 0


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.edge_case
def test_interrupted_update_is_rejected_and_the_store_keeps_working():
    """A KeyboardInterrupt rejects its own update and drops the rest of that call"""
    store = None
    inner = []

    def interrupting(draft, prior):
        raise KeyboardInterrupt

    def listener(event):
        if not inner:
            inner.append(store.update(interrupting, set_value("b", 1)))

    store = create_store({"a": 0, "b": 0}, listener)

    with pytest.raises(KeyboardInterrupt):
        store.update(set_value("a", 1))

    assert store.status is SchedulerStatus.IDLE
    assert store.pending == 0
    assert isinstance(inner[0].exception().__cause__, KeyboardInterrupt)

    assert store.update(add(1, key="a")).result() == {"a": 2, "b": 0}



# ============================================================================
# BINDING AND ASYNC
# ============================================================================


@pytest.mark.unit
@pytest.mark.store
def test_bound_setter_receives_every_new_snapshot(counter_store):
    """Setters run after the listener, once per step, until unbound"""
    recorder = create_event_recorder()
    unbind = counter_store.bind(recorder.receive)

    counter_store.update(add(1), add(1))
    unbind()
    unbind()
    counter_store.update(add(1))

    assert recorder.states == [{"count": 1}, {"count": 2}]


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.asyncio
async def test_await_update_returns_the_final_state(counter_store):
    """Awaiting the signal yields the state after the last mutator"""
    state = await counter_store.update(add(1), add(2))

    assert state == {"count": 3}


@pytest.mark.unit
@pytest.mark.store
@pytest.mark.asyncio
async def test_concurrent_coroutines_apply_in_call_order():
    """Updates from several coroutines apply in the order update() was called"""
    recorder = create_event_recorder()
    store = create_store({"log": ()}, recorder.record)

    async def worker(tag):
        await asyncio.sleep(0)
        return await store.update(lambda draft, prior: draft["log"].append(tag))

    results = await asyncio.gather(worker("a"), worker("b"), worker("c"))

    assert store.state == {"log": ("a", "b", "c")}
    assert results[-1] == {"log": ("a", "b", "c")}
    assert len(recorder.events) == 3


@pytest.mark.unit
@pytest.mark.store
def test_store_repr():
    """repr shows the name, state and scheduler status"""
    store = create_store({"count": 0}, name="counter")

    assert repr(store) == "Store(counter, state={'count': 0}, idle)"


@pytest.mark.unit
@pytest.mark.store
def test_mutator_derives_from_prior_state():
    """A mutator seeing prior count 3 produces 4"""
    store = create_store({"count": 3})
    seen = []

    def increment(draft, prior):
        seen.append(prior["count"])
        draft["count"] = prior["count"] + 1

    assert store.update(increment).result() == {"count": 4}
    assert seen == [3]

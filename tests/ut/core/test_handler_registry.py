import asyncio

import pytest

from rotonde.core.errors import AwaitTimeoutError
from rotonde.core.handlers.registry import HandlerRegistry, Remaining
from rotonde.core.helpers.spawn import TaskSpawner


class Hooks:
    def __init__(self) -> None:
        self.added: list[str] = []
        self.removed: list[str] = []

    def registry(self, **kwargs) -> HandlerRegistry:
        return HandlerRegistry(
            first_added=self.added.append,
            last_removed=self.removed.append,
            **kwargs,
        )


@pytest.fixture
def hooks():
    return Hooks()


@pytest.mark.ut
def test_dispatch_calls_handlers_in_attachment_order():
    registry = HandlerRegistry()
    calls = []
    registry.attach("E", lambda d: calls.append(("first", d)))
    registry.attach("E", lambda d: calls.append(("second", d)))

    registry.dispatch("E", 1)

    assert calls == [("first", 1), ("second", 1)]


@pytest.mark.ut
def test_dispatch_unknown_identifier_is_noop():
    HandlerRegistry().dispatch("NOPE", {})


@pytest.mark.ut
def test_attach_once_fires_a_single_time(hooks):
    registry = hooks.registry()
    calls = []
    registry.attach_once("E", calls.append)

    registry.dispatch("E", "a")
    registry.dispatch("E", "b")

    assert calls == ["a"]
    assert registry.registered_identifiers() == []
    assert hooks.removed == ["E"]


@pytest.mark.ut
def test_call_count_limits_invocations():
    registry = HandlerRegistry()
    calls = []
    registry.attach("E", calls.append, call_count=2)

    for i in range(4):
        registry.dispatch("E", i)

    assert calls == [0, 1]
    assert "E" not in registry


@pytest.mark.ut
@pytest.mark.parametrize("count", [0, -1])
def test_non_positive_call_count_is_rejected(count):
    with pytest.raises(ValueError):
        HandlerRegistry().attach("E", print, call_count=count)


@pytest.mark.ut
def test_remaining_budget_cannot_be_exhausted():
    with pytest.raises(ValueError):
        Remaining(0)


@pytest.mark.ut
def test_hooks_fire_once_per_transition(hooks):
    registry = hooks.registry()

    def a(_):
        pass

    def b(_):
        pass

    registry.attach("E", a)
    registry.attach("E", b)
    registry.attach("E", a)
    assert hooks.added == ["E"]

    registry.detach("E", a)
    assert hooks.removed == []
    registry.detach("E", b)
    assert hooks.removed == ["E"]

    registry.attach("E", a)
    assert hooks.added == ["E", "E"]


@pytest.mark.ut
def test_detach_removes_every_entry_of_the_callback():
    registry = HandlerRegistry()
    calls = []
    registry.attach("E", calls.append)
    registry.attach("E", calls.append, call_count=3)

    registry.detach("E", calls.append)
    registry.dispatch("E", 1)

    assert calls == []
    assert registry.registered_identifiers() == []


@pytest.mark.ut
def test_detach_unknown_callback_keeps_identifier(hooks):
    registry = hooks.registry()
    registry.attach("E", print)

    registry.detach("E", repr)
    registry.detach("OTHER", print)

    assert registry.registered_identifiers() == ["E"]
    assert hooks.removed == []


@pytest.mark.ut
def test_detach_all_fires_last_removed_per_identifier(hooks):
    registry = hooks.registry()
    registry.attach("A", print)
    registry.attach("A", repr)
    registry.attach("B", print)

    registry.detach_all()

    assert sorted(hooks.removed) == ["A", "B"]
    assert registry.registered_identifiers() == []


@pytest.mark.ut
def test_consumed_entry_is_removed_before_its_callback_runs(hooks):
    registry = hooks.registry()
    observed = []

    def callback(_):
        observed.append((registry.registered_identifiers(), list(hooks.removed)))

    registry.attach_once("E", callback)
    registry.dispatch("E", None)

    assert observed == [([], ["E"])]


@pytest.mark.ut
def test_callback_may_reattach_itself_during_dispatch():
    registry = HandlerRegistry()
    calls = []

    def resubscribe(data):
        calls.append(data)
        registry.attach_once("E", resubscribe)

    registry.attach_once("E", resubscribe)
    registry.dispatch("E", 1)
    registry.dispatch("E", 2)

    assert calls == [1, 2]
    assert registry.registered_identifiers() == ["E"]


@pytest.mark.ut
def test_handler_detached_by_earlier_handler_is_skipped():
    registry = HandlerRegistry()
    calls = []

    def second(data):
        calls.append(("second", data))

    def first(data):
        calls.append(("first", data))
        registry.detach("E", second)

    registry.attach("E", first)
    registry.attach("E", second)
    registry.dispatch("E", 1)

    assert calls == [("first", 1)]


@pytest.mark.ut
def test_reentrant_dispatch_never_overspends_budget():
    registry = HandlerRegistry()
    calls = []

    def first(data):
        calls.append(("first", data))
        if data == "outer":
            registry.dispatch("E", "inner")

    registry.attach("E", first)
    registry.attach_once("E", lambda d: calls.append(("once", d)))
    registry.dispatch("E", "outer")

    assert calls == [("first", "outer"), ("first", "inner"), ("once", "inner")]


@pytest.mark.ut
def test_failing_callback_does_not_stop_dispatch(caplog):
    registry = HandlerRegistry()
    calls = []

    def boom(_):
        raise RuntimeError("boom")

    registry.attach("E", boom)
    registry.attach("E", calls.append)
    registry.dispatch("E", 1)

    assert calls == [1]
    assert "boom" in caplog.text


@pytest.mark.ut
@pytest.mark.asyncio
async def test_coroutine_callback_is_spawned():
    spawner = TaskSpawner()
    registry = HandlerRegistry(spawner=spawner)
    received = asyncio.Event()

    async def handler(data):
        received.set()

    registry.attach("E", handler)
    registry.dispatch("E", 1)
    await asyncio.wait_for(received.wait(), 1)

    assert received.is_set()


@pytest.mark.ut
@pytest.mark.asyncio
async def test_await_once_resolves_with_dispatched_data():
    registry = HandlerRegistry()
    future = registry.await_once("E", timeout=1)

    registry.dispatch("E", {"value": 42})

    assert await future == {"value": 42}
    assert "E" not in registry


@pytest.mark.ut
@pytest.mark.asyncio
async def test_await_once_times_out_and_detaches(hooks):
    registry = hooks.registry()
    future = registry.await_once("E", timeout=0.05)

    with pytest.raises(AwaitTimeoutError) as info:
        await future

    assert info.value.identifier == "E"
    assert isinstance(info.value, TimeoutError)
    assert registry.registered_identifiers() == []
    assert hooks.removed == ["E"]

    # a late dispatch reaches nothing
    registry.dispatch("E", "late")


@pytest.mark.ut
@pytest.mark.asyncio
async def test_await_once_without_timeout_waits():
    registry = HandlerRegistry()
    future = registry.await_once("E")

    await asyncio.sleep(0.01)
    assert not future.done()

    registry.dispatch("E", "ok")
    assert await future == "ok"


@pytest.mark.ut
@pytest.mark.asyncio
async def test_cancelled_await_once_detaches_handler(hooks):
    registry = hooks.registry()
    future = registry.await_once("E", timeout=10)

    future.cancel()
    await asyncio.sleep(0)

    assert registry.registered_identifiers() == []
    assert hooks.removed == ["E"]


@pytest.mark.ut
@pytest.mark.asyncio
async def test_await_once_keeps_other_handlers():
    registry = HandlerRegistry()
    calls = []
    registry.attach("E", calls.append)
    future = registry.await_once("E", timeout=0.01)

    with pytest.raises(AwaitTimeoutError):
        await future

    registry.dispatch("E", 1)
    assert calls == [1]

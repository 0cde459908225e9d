import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from rotonde.core.errors import AwaitTimeoutError
from rotonde.core.helpers.spawn import TaskSpawner


Callback = Callable[[Any], Any]
"""
Subscriber invoked with the data of a dispatched packet. It may return
an awaitable, in which case the awaitable is scheduled on the registry's
spawner.
"""

LifecycleHook = Callable[[str], None]
"""
Invoked with an identifier when it gains its first handler or loses
its last one.
"""


class Unlimited:
    """Budget of a handler that stays attached until detached."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNLIMITED"


UNLIMITED = Unlimited()


@dataclass(frozen=True)
class Remaining:
    """Budget of a handler allowed `count` more invocations."""
    count: int

    def __post_init__(self):
        if self.count < 1:
            raise ValueError(f"Call count must be positive, got {self.count}")


CallBudget = Unlimited | Remaining


@dataclass(eq=False)
class HandlerEntry:
    callback: Callback
    budget: CallBudget = UNLIMITED


class HandlerRegistry:
    """
    Per-identifier callback registry with call budgets and lifecycle hooks.

    Each identifier maps to the ordered list of entries attached to it. An
    identifier is present in the registry if and only if it has at least
    one entry: `first_added` fires when an identifier goes from zero to
    one entry, `last_removed` when it goes back to zero. Both hooks fire
    exactly once per transition.

    Entries attached with a finite call count are removed once their
    budget is spent. The removal happens before the callback itself runs,
    so the callback observes a registry in which it is no longer attached.

    Dispatch iterates over a snapshot of the entry list, which lets
    callbacks attach, detach or dispatch again for the same identifier.
    Entries detached during a dispatch are skipped for the remainder of it.
    """

    def __init__(
        self,
        name: str = "handlers",
        first_added: LifecycleHook | None = None,
        last_removed: LifecycleHook | None = None,
        spawner: TaskSpawner | None = None,
    ) -> None:
        self._name = name
        self._first_added = first_added
        self._last_removed = last_removed
        self._spawner = spawner
        self._handlers: dict[str, list[HandlerEntry]] = {}
        self._logger = logging.getLogger("core.handlers.registry")

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._handlers

    def attach(self, identifier: str, callback: Callback, call_count: int | None = None) -> None:
        """
        Register `callback` for `identifier`.

        `call_count` of None keeps the callback attached until it is
        detached; a positive integer detaches it after that many calls.
        """
        budget = UNLIMITED if call_count is None else Remaining(call_count)
        entries = self._handlers.get(identifier)
        if entries is None:
            self._handlers[identifier] = [HandlerEntry(callback, budget)]
            if self._first_added is not None:
                self._first_added(identifier)
        else:
            entries.append(HandlerEntry(callback, budget))

    def attach_once(self, identifier: str, callback: Callback) -> None:
        self.attach(identifier, callback, 1)

    def detach(self, identifier: str, callback: Callback) -> None:
        entries = self._handlers.get(identifier)
        if entries is None:
            return

        kept = [entry for entry in entries if entry.callback != callback]
        if len(kept) == len(entries):
            return

        if kept:
            self._handlers[identifier] = kept
        else:
            self._drop(identifier)

    def detach_all(self) -> None:
        for identifier in list(self._handlers):
            self._drop(identifier)

    def registered_identifiers(self) -> list[str]:
        return list(self._handlers)

    def dispatch(self, identifier: str, data: Any) -> None:
        """
        Invoke every callback attached to `identifier` with `data`.

        Callbacks run in attachment order. A callback raising an exception
        is logged and does not prevent the following ones from running.
        """
        entries = self._handlers.get(identifier)
        if entries is None:
            self._logger.debug(f"[{self._name}] No handler for '{identifier}'")
            return

        for entry in list(entries):
            if not self._is_attached(identifier, entry):
                continue

            if isinstance(entry.budget, Remaining):
                if entry.budget.count == 1:
                    self._logger.debug(
                        f"[{self._name}] Detaching consumed callback from '{identifier}'"
                    )
                    self._remove_entry(identifier, entry)
                else:
                    entry.budget = Remaining(entry.budget.count - 1)

            self._invoke(identifier, entry.callback, data)

    def await_once(self, identifier: str, timeout: float | None = None) -> asyncio.Future:
        """
        Return a future resolved with the next data dispatched for
        `identifier`.

        When `timeout` elapses first, the pending handler is detached and
        only then is the future failed with AwaitTimeoutError, so a late
        dispatch cannot reach it. Cancelling the future detaches the
        handler as well.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer: asyncio.TimerHandle | None = None

        def resolve(data: Any) -> None:
            if not future.done():
                future.set_result(data)

        def expire() -> None:
            self.detach(identifier, resolve)
            if not future.done():
                future.set_exception(AwaitTimeoutError(identifier, timeout))

        def cleanup(_: asyncio.Future) -> None:
            if timer is not None:
                timer.cancel()
            self.detach(identifier, resolve)

        self.attach_once(identifier, resolve)
        if timeout is not None:
            timer = loop.call_later(timeout, expire)
        future.add_done_callback(cleanup)
        return future

    def _invoke(self, identifier: str, callback: Callback, data: Any) -> None:
        try:
            result = callback(data)
        except Exception as ex:
            self._logger.error(
                f"[{self._name}] Handler for '{identifier}' failed: {ex}", exc_info=ex
            )
            return

        if inspect.isawaitable(result):
            if self._spawner is None:
                self._logger.warning(
                    f"[{self._name}] Awaitable returned for '{identifier}' without a spawner, dropped"
                )
                if inspect.iscoroutine(result):
                    result.close()
                return
            self._spawner.spawn(_await(result), name=f"{self._name}:{identifier}")

    def _is_attached(self, identifier: str, entry: HandlerEntry) -> bool:
        return any(e is entry for e in self._handlers.get(identifier, ()))

    def _remove_entry(self, identifier: str, entry: HandlerEntry) -> None:
        entries = self._handlers[identifier]
        entries[:] = [e for e in entries if e is not entry]
        if not entries:
            self._drop(identifier)

    def _drop(self, identifier: str) -> None:
        del self._handlers[identifier]
        if self._last_removed is not None:
            self._last_removed(identifier)


async def _await(awaitable: Any) -> None:
    await awaitable

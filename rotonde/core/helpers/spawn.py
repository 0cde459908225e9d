import asyncio
import logging
from typing import Any, Coroutine


class TaskSpawner:
    """
    Spawns and tracks the background tasks of a client.

    Tasks spawned here are the transport loops and the coroutines returned
    by asynchronous subscriber callbacks. The spawner ensures that:
    - every task is tracked until completion
    - an exception escaping a task is logged instead of being lost
    - pending tasks can be cancelled together on shutdown
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()
        self._logger = logging.getLogger("core.helpers.spawn")

    @property
    def remaining_tasks(self) -> int:
        """Number of spawned tasks that have not completed yet."""
        return len(self._tasks)

    def on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            return

        if ex := task.exception():
            self._logger.error(
                f"Error occurred in task {task.get_name()}: {str(ex)}",
                exc_info=ex
            )

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """
        Schedule a coroutine as a background task and track it.

        Without an explicit loop, the task is created on the running loop.
        """
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro, name=name)
        task.add_done_callback(self.on_done)
        self._tasks.add(task)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

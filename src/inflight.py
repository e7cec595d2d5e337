import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Coalesce concurrent calls for the same key into one operation.

    The first caller for a key starts the work as a task; callers arriving
    while it runs await that same task and share its result or exception.
    Callers are shielded from each other: one client going away does not
    cancel the work the others are waiting on.
    """

    def __init__(self, name: str = "inflight"):
        self.name = name
        self._tasks: Dict[Hashable, asyncio.Task] = {}

    async def do(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.debug(f"{self.name}: joining in-flight operation for {key}")
        return await asyncio.shield(task)

    def _forget(self, key: Hashable, task: asyncio.Task) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Mark the exception retrieved even when every waiter went away
        if not task.cancelled():
            task.exception()

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

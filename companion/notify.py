"""Change notification fan-out for store observers."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from typing import TypeVar

T = TypeVar("T")


class ChangeNotifier:
    """Wakes observers of a key whenever that key is mutated.

    Each observer owns an unbounded queue, so a slow reader never loses a
    wake-up and never blocks the writer.
    """

    def __init__(self) -> None:
        self._queues: dict[Hashable, set[asyncio.Queue[None]]] = defaultdict(set)

    def notify(self, key: Hashable) -> None:
        for queue in self._queues.get(key, ()):
            queue.put_nowait(None)

    async def observe(
        self, key: Hashable, load: Callable[[], Awaitable[T]]
    ) -> AsyncIterator[T]:
        """Yield ``load()`` now and again after every mutation of *key*."""
        queue: asyncio.Queue[None] = asyncio.Queue()
        self._queues[key].add(queue)
        try:
            while True:
                yield await load()
                await queue.get()
        finally:
            self._queues[key].discard(queue)
            if not self._queues[key]:
                del self._queues[key]

"""
Per-key serial executor.

Work submitted under the same key runs one item at a time, in submission
order. Different keys run concurrently. Each key gets a worker task when it
has work; the worker retires once its queue is empty, so idle keys cost
nothing.
"""

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Hashable, Optional

logger = logging.getLogger("keyed_executor")

Job = Callable[[], Awaitable[None]]


class KeyedSerialExecutor:
    """
    Example:
        executor = KeyedSerialExecutor("availability")
        executor.submit("book-001", lambda: apply(event))
        await executor.join()
    """

    def __init__(self, name: str = "keyed"):
        self.name = name
        self._pending: dict[Hashable, deque[Job]] = {}
        self._workers: dict[Hashable, asyncio.Task] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self.completed = 0
        self.failed = 0

    @property
    def active_keys(self) -> int:
        return len(self._workers)

    def submit(self, key: Hashable, job: Job) -> None:
        """Queue ``job`` behind any earlier work for ``key``."""
        self._pending.setdefault(key, deque()).append(job)
        if key not in self._workers:
            self._idle.clear()
            self._workers[key] = asyncio.create_task(self._work(key), name=f"{self.name}:{key}")

    async def _work(self, key: Hashable) -> None:
        queue = self._pending[key]
        try:
            while queue:
                job = queue.popleft()
                try:
                    await job()
                    self.completed += 1
                except Exception as e:
                    self.failed += 1
                    logger.exception(f"[{self.name}] job for key {key!r} failed: {e}")
        finally:
            del self._pending[key]
            del self._workers[key]
            if not self._workers:
                self._idle.set()

    async def join(self) -> None:
        """Wait until no key has pending work."""
        await self._idle.wait()

    async def close(self, timeout: Optional[float] = None) -> None:
        """Let in-flight work finish (up to ``timeout``), then cancel the rest."""
        if not self._workers:
            return
        try:
            await asyncio.wait_for(self.join(), timeout)
        except asyncio.TimeoutError:
            workers = list(self._workers.values())
            logger.warning(f"[{self.name}] cancelling {len(workers)} workers at shutdown")
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

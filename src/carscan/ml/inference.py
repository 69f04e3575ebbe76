"""Bounded thread pool for the blocking ONNX calls.

Every analysis asks the pool for two slots at once: one for the object
detector and one for the image classifier, gathered concurrently by
``CarAnalyzer``. Model preloading at startup goes through the same pool.
``max_concurrent`` therefore bounds how many model runs execute in parallel
across all requests, not how many requests are in flight. A request whose
two calls cannot both start immediately waits for the slot it is missing.

The wait is unbounded unless ``queue_timeout`` is set, in which case a call
that cannot get a slot in time raises ``TimeoutError`` and the analyzer
reports it as an inference failure.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from carscan.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Runs detector and classifier calls off the event loop, at most ``max_concurrent`` at a time."""

    def __init__(self, settings: Settings) -> None:
        self._slots = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="onnx-inference",
        )
        self._queue_timeout = settings.queue_timeout
        self._lock = threading.Lock()
        self._running = 0
        self._waiting = 0

    def _adjust(self, *, running: int = 0, waiting: int = 0) -> None:
        with self._lock:
            self._running += running
            self._waiting += waiting

    @asynccontextmanager
    async def _slot(self) -> AsyncIterator[None]:
        self._adjust(waiting=1)
        try:
            await asyncio.wait_for(self._slots.acquire(), timeout=self._queue_timeout)
        except TimeoutError:
            logger.warning("No free model slot within %.2fs", self._queue_timeout)
            raise
        finally:
            self._adjust(waiting=-1)

        self._adjust(running=1)
        try:
            yield
        finally:
            self._adjust(running=-1)
            self._slots.release()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Call ``func(*args)`` on a pool thread once a slot is free.

        Used for ``ObjectDetector.detect``, ``ImageClassifier.classify`` and
        ``ModelManager.get_model``. Exceptions from ``func`` propagate
        unchanged and the slot is released either way.

        Raises:
            TimeoutError: If ``queue_timeout`` is set and no slot frees up in time.
        """
        async with self._slot():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)

    @property
    def active_count(self) -> int:
        """Model calls currently executing on pool threads."""
        with self._lock:
            return self._running

    @property
    def queue_depth(self) -> int:
        """Model calls waiting for a slot, reported by /api/v1/health."""
        with self._lock:
            return self._waiting

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

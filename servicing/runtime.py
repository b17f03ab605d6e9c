"""Dedicated worker loop and the injectable context that owns it.

Blocking subprocess calls run on the caller's thread. Readiness polling and
HTTP probes run as asyncio tasks on a single background thread so they
never block the caller that issued them.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, Optional, Set, TypeVar

from .cache import ServiceCache
from .errors import General

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Runtime:
    """An asyncio event loop running on one dedicated daemon thread.

    Attributes:
        loop: The event loop driven by the worker thread
        thread: The worker thread, named ``servicing``
    """

    def __init__(self, thread_name: str = "servicing"):
        self.loop = asyncio.new_event_loop()
        self._tasks: Set[Future] = set()
        self._tasks_lock = threading.Lock()
        self._ready = threading.Event()
        self.thread = threading.Thread(target=self._run, name=thread_name, daemon=True)
        self.thread.start()
        self._ready.wait()
        logger.debug(f"Runtime worker '{thread_name}' started")

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        self.loop.run_forever()

    @property
    def is_running(self) -> bool:
        return self.thread.is_alive() and not self.loop.is_closed()

    def _check_caller(self) -> None:
        if not self.is_running:
            raise General("Runtime has been shut down")
        if threading.current_thread() is self.thread:
            raise General("Cannot block on the runtime from its own worker thread")

    def spawn(self, coro: Coroutine[Any, Any, T]) -> "Future[T]":
        """Schedule a fire-and-forget coroutine on the worker loop.

        The returned future is tracked until it completes so ``shutdown``
        can cancel anything still in flight.
        """
        if not self.is_running:
            coro.close()
            raise General("Runtime has been shut down")

        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        with self._tasks_lock:
            self._tasks.add(future)
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._tasks_lock:
            self._tasks.discard(future)

    def block_on(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the worker loop and wait for its result."""
        try:
            self._check_caller()
        except General:
            coro.close()
            raise
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    @property
    def pending(self) -> int:
        with self._tasks_lock:
            return len(self._tasks)

    def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel in-flight tasks, stop the loop and join the worker."""
        if not self.is_running:
            return

        try:
            asyncio.run_coroutine_threadsafe(_cancel_all(), self.loop).result(timeout)
        except Exception as e:
            logger.warning(f"Failed to cancel runtime tasks cleanly: {e}")

        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout)
        if self.thread.is_alive():
            logger.warning("Runtime worker did not stop within timeout")
            return
        self.loop.close()
        logger.debug("Runtime worker stopped")


async def _cancel_all() -> None:
    current = asyncio.current_task()
    tasks = [task for task in asyncio.all_tasks() if task is not current]
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class ServicingContext:
    """Shared cache and worker runtime handed to a Dispatcher.

    Construct one explicitly to isolate a set of dispatchers, or use
    ``get_context()`` for the process-wide default.
    """

    def __init__(
        self,
        cache: Optional[ServiceCache] = None,
        runtime: Optional[Runtime] = None,
    ):
        self.cache = cache if cache is not None else ServiceCache()
        self.runtime = runtime if runtime is not None else Runtime()

    def close(self) -> None:
        self.runtime.shutdown()


# Global context instance
_context: Optional[ServicingContext] = None
_context_lock = threading.Lock()


def get_context() -> ServicingContext:
    """
    Get the process-wide default context.

    Creates the context on first call, then returns the same instance.

    Returns:
        ServicingContext instance
    """
    global _context
    with _context_lock:
        if _context is None:
            _context = ServicingContext()
        return _context

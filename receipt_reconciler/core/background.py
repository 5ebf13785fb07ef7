import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class BestEffortRunner:
    """Runs side effects that must never fail or delay the caller.

    Tasks go to a fixed pool of worker threads, and at most ``max_pending``
    may be queued or running at once. Tasks submitted past that cap are
    dropped with a warning instead of blocking. Exceptions are logged with the
    task description and dropped. With ``inline=True`` tasks run
    synchronously, which keeps tests deterministic.
    """

    def __init__(self, max_workers: int = 4, inline: bool = False, max_pending: int = 100):
        self.inline = inline
        self._executor: Optional[ThreadPoolExecutor] = None
        self._slots = threading.BoundedSemaphore(max_pending)
        if not inline:
            self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="best-effort")

    def submit(self, description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> bool:
        """Schedule ``fn``; returns False when the task was dropped"""
        if self._executor is None:
            self._run(description, fn, *args, **kwargs)
            return True
        if not self._slots.acquire(blocking=False):
            logger.warning("best-effort queue full, dropping task: %s", description)
            return False
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError:
            self._slots.release()
            logger.warning("best-effort runner shut down, dropping task: %s", description)
            return False
        future.add_done_callback(lambda f: self._finish(description, f))
        return True

    @staticmethod
    def _run(description: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        try:
            fn(*args, **kwargs)
        except Exception:
            logger.warning("best-effort task failed: %s", description, exc_info=True)

    def _finish(self, description: str, future: Future) -> None:
        self._slots.release()
        exc = future.exception()
        if exc is not None:
            logger.warning("best-effort task failed: %s", description, exc_info=exc)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)

"""Tracked background work run off the request path.

Brief:
  BackgroundTasks wraps a ThreadPoolExecutor so cache write-back can be
  drained with a bound at shutdown.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTasks:
    """Brief: Tracked fire-and-forget work that runs off the request path.

    Inputs (constructor):
      - max_workers: Threads available to background work.
      - name: Thread name prefix.

    Outputs:
      - BackgroundTasks with submit(), pending(), drain() and shutdown().

    Notes:
      - Every submitted task stays tracked until it completes, so shutdown can
        wait for outstanding work rather than abandoning it.
      - Task failures are logged and never raised into the submitter.

    Example:
      >>> tasks = BackgroundTasks(max_workers=1)
      >>> fut = tasks.submit(lambda: 42)
      >>> tasks.drain(timeout=1.0)
      True
      >>> fut.result()
      42
      >>> tasks.shutdown()
      True
    """

    def __init__(self, max_workers: int = 4, *, name: str = "bdixdns-bg") -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(max_workers)), thread_name_prefix=name
        )
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Brief: Schedule fn(*args, **kwargs) and track it until done.

        Raises:
          - RuntimeError: After shutdown() has been called.
        """

        with self._lock:
            if self._closed:
                raise RuntimeError("background tasks are shut down")
            fut = self._executor.submit(fn, *args, **kwargs)
            self._pending.add(fut)
        fut.add_done_callback(self._on_done)
        return fut

    def _on_done(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("Background task failed", exc_info=exc)

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Brief: Wait for all currently tracked tasks.

        Inputs:
          - timeout: Seconds to wait, or None to wait indefinitely.

        Outputs:
          - bool: True when nothing is left pending.
        """

        with self._lock:
            snapshot = list(self._pending)
        if snapshot:
            _done, not_done = wait(snapshot, timeout=timeout)
            if not_done:
                logger.warning("%d background task(s) still running after %.1fs", len(not_done), timeout or 0.0)
                return False
        return True

    def shutdown(self, timeout: Optional[float] = 5.0) -> bool:
        """Brief: Stop accepting work, wait (bounded) for pending tasks.

        Outputs:
          - bool: True when every task finished within the timeout.
        """

        with self._lock:
            self._closed = True
        finished = self.drain(timeout)
        self._executor.shutdown(wait=finished, cancel_futures=not finished)
        return finished

"""
Background Worker Module

Runs sample loads on a thread pool and collapses concurrent requests
for the same sound into one load.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class InFlightLoads:
    """
    Deduplicates concurrent loads by name.

    While a load for a name is running, every further request for that
    exact name gets the same Future. Once it settles (result or
    exception) the name is forgotten, so a later request starts a fresh
    load. Different names never share a load, even if they end up in
    the same bank.

    Example:
        ```python
        loads = InFlightLoads(max_workers=4)
        first = loads.load_once("gm_piano", lambda: loader.load("gm_piano", fonts))
        second = loads.load_once("gm_piano", lambda: loader.load("gm_piano", fonts))
        assert first is second
        first.result()
        ```
    """

    def __init__(self, max_workers: int = 4):
        """
        Initialize the load pool.

        Args:
            max_workers: Maximum concurrent loads
        """
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="SampleLoad-"
        )
        self._pending: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._shutdown_requested = False

    def load_once(self, name: str, perform: Callable[[], Any]) -> Future:
        """
        Run perform() for name unless a load for name is already running.

        Args:
            name: Sound name used as the deduplication key
            perform: Callable doing the actual load

        Returns:
            Future of the (possibly shared) load

        Raises:
            RuntimeError: If the pool is shutting down
        """
        with self._lock:
            if self._shutdown_requested:
                raise RuntimeError("Load pool is shutting down")

            future = self._pending.get(name)
            if future is not None:
                logger.debug("Joining in-flight load of %s", name)
                return future

            future = self._executor.submit(perform)
            self._pending[name] = future

        # Runs immediately if the load already finished
        future.add_done_callback(lambda done: self._settle(name, done))
        return future

    def _settle(self, name: str, future: Future) -> None:
        with self._lock:
            if self._pending.get(name) is future:
                del self._pending[name]

    def pending(self) -> List[str]:
        """Names with a load in progress."""
        with self._lock:
            return list(self._pending)

    def is_loading(self, name: str) -> bool:
        with self._lock:
            return name in self._pending

    def shutdown(self, wait: bool = True):
        """
        Shutdown the pool.

        Args:
            wait: Wait for running loads to complete
        """
        with self._lock:
            self._shutdown_requested = True
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

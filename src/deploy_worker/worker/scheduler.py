"""Fixed-interval scheduler driving poll cycles on a background thread."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PollScheduler:
    """Runs ``cycle`` immediately on start and then once per interval."""

    def __init__(
        self,
        cycle: Callable[[], object],
        *,
        interval_seconds: float,
        stop_event: threading.Event | None = None,
        thread_name: str = "deploy-poller",
    ) -> None:
        self.cycle = cycle
        self.interval_seconds = interval_seconds
        self.thread_name = thread_name
        self._stop = stop_event or threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stop.is_set()

    def start(self) -> None:
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            logger.info("Starting polling with interval: %.0fms", self.interval_seconds * 1000)
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name=self.thread_name,
            )
            self._thread.start()

    def stop(self, timeout: float | None = None) -> bool:
        """Stop the timer and wait up to ``timeout`` for an in-flight cycle.

        Returns ``True`` when the loop thread has exited.
        """

        with self._state_lock:
            thread = self._thread
            self._stop.set()
        if thread is None:
            return True
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Polling thread still busy after %ss", timeout)
            return False
        with self._state_lock:
            if self._thread is thread:
                self._thread = None
        logger.info("Polling stopped")
        return True

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.cycle()
            except Exception:
                logger.exception("Error in polling cycle")
            self._stop.wait(timeout=self.interval_seconds)

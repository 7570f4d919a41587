from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Protocol, Tuple

logger = logging.getLogger(__name__)


class Scheduler(Protocol):
    """Recurring trigger source.

    Implementations call `callback` no more often than every `min_interval_s`
    seconds. Registering an id that is already registered replaces it.
    """

    def register(self, callback_id: str, min_interval_s: float, callback: Callable[[], None]) -> None:
        ...

    def cancel(self, callback_id: str) -> None:
        ...


class ThreadScheduler:
    """One daemon thread per registered callback, woken by an interval wait."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._jobs: Dict[str, Tuple[threading.Thread, threading.Event]] = {}

    def register(self, callback_id: str, min_interval_s: float, callback: Callable[[], None]) -> None:
        interval = float(min_interval_s)
        if interval <= 0:
            raise ValueError("min_interval_s must be positive")

        self.cancel(callback_id)
        stop = threading.Event()

        def _loop() -> None:
            while not stop.wait(timeout=interval):
                try:
                    callback()
                except Exception:
                    logger.exception(f"scheduled callback {callback_id} failed")

        t = threading.Thread(target=_loop, name=f"portid-{callback_id}", daemon=True)
        with self._lock:
            self._jobs[callback_id] = (t, stop)
        t.start()
        logger.info(f"scheduled {callback_id} every {interval:.0f}s")

    def cancel(self, callback_id: str) -> None:
        with self._lock:
            job = self._jobs.pop(callback_id, None)
        if job is None:
            return
        t, stop = job
        stop.set()
        if t is not threading.current_thread():
            t.join(timeout=5)

    def registered(self) -> list[str]:
        with self._lock:
            return sorted(self._jobs)

    def shutdown(self) -> None:
        for callback_id in self.registered():
            self.cancel(callback_id)

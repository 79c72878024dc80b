import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """Runs `callback` every `interval` seconds on a daemon thread until stopped."""

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self):
        if self._thread and self._thread.is_alive():
            logger.warning("%s timer already started", self.name)
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name=self.name)
        self._thread.start()
        logger.debug("%s timer started (interval=%ss)", self.name, self.interval)

    def stop(self, timeout: float = 2.0):
        self._stop_event.set()
        thread = self._thread
        if thread and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def is_alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception as exc:
                logger.error("%s timer error: %s", self.name, exc, exc_info=True)

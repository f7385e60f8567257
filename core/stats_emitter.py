import threading
from typing import Callable, Optional

from core.dream_types import DreamStats
from core.logging_utils import log_json


class StatsEmitter:
    """
    Periodic, read-only stats ticker for a running campaign.

    A daemon thread calls ``snapshot()`` every ``interval`` seconds and hands
    the resulting :class:`DreamStats` to ``callback``.  ``stop()`` is
    idempotent and joins the thread, so no tick outlives the campaign.
    """

    def __init__(self, snapshot: Callable[[], DreamStats], callback: Optional[Callable[[DreamStats], None]],
                 interval: float = 2.0):
        self.snapshot = snapshot
        self.callback = callback
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        with self._lock:
            if self._thread is not None:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run, daemon=True, name="dream-stats")
            self._thread.start()

    def stop(self, timeout: float = 5.0):
        with self._lock:
            thread, self._thread = self._thread, None
            self._stop_event.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def emit_now(self):
        if self.callback is None:
            return
        try:
            self.callback(self.snapshot())
        except Exception as e:
            log_json("WARN", "stats_emit_failed", details={"error": str(e)})

    def _run(self):
        while not self._stop_event.wait(self.interval):
            self.emit_now()

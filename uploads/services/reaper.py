"""Background sweep that cancels abandoned upload sessions."""

import logging
import threading

from common.utils import safe_dispatch

logger = logging.getLogger(__name__)


class SessionReaper(threading.Thread):
    """Daemon thread calling ``reap_idle_sessions`` on a fixed interval.

    Sessions whose last activity is older than ``ttl_seconds`` are cancelled
    and their temp files deleted. A failing sweep is logged and the thread
    keeps running.
    """

    def __init__(self, manager, ttl_seconds, interval_seconds):
        super().__init__(name="upload-session-reaper", daemon=True)
        self.manager = manager
        self.ttl_seconds = ttl_seconds
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()

    def run_once(self):
        """Run a single sweep. Returns the reaped session ids."""
        reaped = []
        with safe_dispatch("reap idle upload sessions", logger):
            reaped = self.manager.reap_idle_sessions(self.ttl_seconds)
        return reaped

    def run(self):
        logger.info(
            "Upload session reaper started: ttl=%ds interval=%ds",
            self.ttl_seconds,
            self.interval_seconds,
        )
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()

    def stop(self):
        self._stop_event.set()


_reaper = None
_reaper_lock = threading.Lock()


def start_reaper(manager, ttl_seconds, interval_seconds):
    """Start the process-wide reaper once; later calls return the same thread.

    A call for a different manager replaces the running reaper.
    """
    global _reaper
    with _reaper_lock:
        if _reaper is not None and _reaper.manager is not manager:
            _reaper.stop()
            _reaper = None
        if _reaper is None or not _reaper.is_alive():
            _reaper = SessionReaper(manager, ttl_seconds, interval_seconds)
            _reaper.start()
        return _reaper


def stop_reaper(timeout=None):
    """Stop the process-wide reaper, if one is running."""
    global _reaper
    with _reaper_lock:
        reaper, _reaper = _reaper, None
    if reaper is not None:
        reaper.stop()
        reaper.join(timeout)

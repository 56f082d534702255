"""Background reaper for abandoned upload sessions."""

import threading
from typing import Optional
from core.logging import log
from ingestion.session_manager import UploadSessionManager


class SessionReaper:
    """Periodically asks the session manager to drop expired sessions.

    Runs on a daemon thread: sleep -> reap -> repeat, until stop() is called.
    """

    def __init__(self, manager: UploadSessionManager, interval: float = 60.0):
        """Initialize reaper.

        Args:
            manager: Session manager to sweep
            interval: Seconds between sweeps
        """
        self.manager = manager
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the background sweep thread (no-op if already running)."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-reaper", daemon=True)
        self._thread.start()
        log.info(f"Session reaper started (interval {self.interval:.0f}s, "
                 f"idle timeout {self.manager.idle_timeout:.0f}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Signal the sweep thread to exit and wait for it."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("Session reaper stopped")

    def run_once(self) -> int:
        """Run a single sweep, logging instead of raising on failure.

        Returns:
            int: Number of sessions or orphan directories removed
        """
        try:
            reaped = self.manager.reap()
        except Exception as e:
            log.warning(f"Session sweep failed, will retry: {str(e)}")
            return 0
        if reaped:
            log.info(f"Session reaper removed {len(reaped)} expired upload(s)")
        return len(reaped)

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

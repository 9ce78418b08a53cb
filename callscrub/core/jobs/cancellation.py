# File: callscrub/core/jobs/cancellation.py

import logging
import subprocess
from threading import Event, Lock
from typing import Optional

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import JobCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Per-job cancel signal.
    Also tracks the job's running child process so cancel() can terminate it.
    """

    def __init__(self, kill_grace: Optional[float] = None):
        self._event = Event()
        self._lock = Lock()
        self._process: Optional[subprocess.Popen] = None
        self.kill_grace = settings.SUBPROCESS_KILL_GRACE_SECONDS if kill_grace is None else kill_grace

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()
        with self._lock:
            process = self._process
        if process is not None:
            self._terminate(process)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelledError("Job was cancelled.")

    def wait(self, seconds: float) -> bool:
        """Sleeps up to `seconds`; returns True early if cancelled."""
        return self._event.wait(seconds)

    def attach(self, process: subprocess.Popen) -> None:
        """Registers the child process. Kills it at once if already cancelled."""
        with self._lock:
            self._process = process
        if self._event.is_set():
            self._terminate(process)

    def detach(self) -> None:
        with self._lock:
            self._process = None

    def _terminate(self, process: subprocess.Popen) -> None:
        if process.poll() is not None:
            return
        logger.info(f"Terminating child process {process.pid}")
        process.terminate()
        try:
            process.wait(timeout=self.kill_grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} ignored SIGTERM; killing")
            process.kill()

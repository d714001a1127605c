"""
Connectivity monitor for Health Buddy.

Tracks whether the remote gateway is reachable. A single writer (the
background probe thread or set_online) updates the flag; any thread may
read it.
"""

import logging
import threading
from typing import Callable, Optional

import requests

logger = logging.getLogger(__name__)


def http_probe(url: str, timeout: float = 5.0) -> Callable[[], bool]:
    """Build a probe that reports True when a HEAD request gets any HTTP reply."""
    def probe() -> bool:
        try:
            requests.head(url, timeout=timeout, allow_redirects=True)
            return True
        except requests.RequestException as e:
            logger.debug(f"[NETWORK] Probe to {url} failed: {e}")
            return False
    return probe


class ConnectivityMonitor:
    """
    Online/offline flag with an optional background probe.

    Without a probe the monitor is a plain flag, set with set_online().
    """

    def __init__(
        self,
        probe: Optional[Callable[[], bool]] = None,
        interval: float = 30.0,
        initially_online: bool = True,
    ):
        self.probe = probe
        self.interval = interval
        self._online = initially_online
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_online(self) -> bool:
        with self._lock:
            return self._online

    def set_online(self, online: bool) -> None:
        with self._lock:
            changed = online != self._online
            self._online = online
        if changed:
            logger.info(f"[NETWORK] Connectivity changed: {'online' if online else 'offline'}")

    def check_now(self) -> bool:
        """Run the probe once and update the flag."""
        if self.probe is None:
            return self.is_online
        self.set_online(bool(self.probe()))
        return self.is_online

    def start(self) -> None:
        if self.probe is None or (self._thread is not None and self._thread.is_alive()):
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="connectivity-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self.interval + 1)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.is_set():
            self.check_now()
            self._stop.wait(self.interval)

"""Network reachability monitor with edge-triggered callbacks."""
import logging
import threading

import requests


class ReachabilityMonitor:
    """Tracks whether the API is reachable and reports state transitions.

    Observations arrive through update(), either from the probe thread started
    with start() or from a platform network callback. Only a change of state
    fires callbacks, so repeated identical observations are ignored.
    """

    def __init__(self, probe_url=None, check_interval=15.0, probe_timeout=5.0, initial_reachable=False):
        self.probe_url = probe_url
        self.check_interval = check_interval
        self.probe_timeout = probe_timeout
        self.logger = logging.getLogger(self.__class__.__name__)

        self._reachable = initial_reachable
        self._lock = threading.Lock()
        self._became_reachable_callbacks = []
        self._became_unreachable_callbacks = []

        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_reachable(self):
        with self._lock:
            return self._reachable

    def on_became_reachable(self, callback):
        """Register a callback fired once per unreachable -> reachable edge."""
        self._became_reachable_callbacks.append(callback)

    def on_became_unreachable(self, callback):
        self._became_unreachable_callbacks.append(callback)

    def update(self, reachable):
        """Record an observation. Returns True if it changed the state."""
        reachable = bool(reachable)
        with self._lock:
            if reachable == self._reachable:
                return False
            self._reachable = reachable

        if reachable:
            self.logger.info("Network became reachable")
            callbacks = list(self._became_reachable_callbacks)
        else:
            self.logger.info("Network became unreachable")
            callbacks = list(self._became_unreachable_callbacks)

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                self.logger.error(f"Reachability callback {callback!r} failed: {e}")
        return True

    def probe(self):
        """One lightweight HEAD request; any HTTP response counts as reachable."""
        if not self.probe_url:
            return False
        try:
            requests.head(self.probe_url, timeout=self.probe_timeout, allow_redirects=False)
            return True
        except requests.exceptions.RequestException as e:
            self.logger.debug(f"Reachability probe failed: {e}")
            return False

    def start(self):
        """Start the background probe thread."""
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._probe_loop, daemon=True, name='reachability-monitor')
        self._thread.start()
        self.logger.info(f"Reachability monitor started (interval={self.check_interval}s, url={self.probe_url})")

    def stop(self):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self.probe_timeout + 1)
            self._thread = None

    def _probe_loop(self):
        while not self._stop_event.is_set():
            self.update(self.probe())
            self._stop_event.wait(self.check_interval)

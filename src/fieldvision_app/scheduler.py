"""Periodic background sync with a time budget and failure backoff."""
import asyncio
import logging
import random
import threading

MAX_BACKOFF_SECONDS = 3600  # 1 hour


class BackgroundSyncScheduler:
    """Runs budgeted drains on a timer from a daemon thread.

    Each run is submitted to the engine's event loop through ``submit``
    (a callable taking a coroutine and returning a concurrent future, such
    as SyncRuntime.submit).
    """

    def __init__(self, engine, submit, interval=300.0, budget=25.0, max_backoff=MAX_BACKOFF_SECONDS):
        self.engine = engine
        self.submit = submit
        self.interval = interval
        self.budget = budget
        self.max_backoff = max_backoff
        self.logger = logging.getLogger(self.__class__.__name__)

        self.sync_failures = 0
        self._stop_event = threading.Event()
        self._thread = None

    async def run_background_task(self, budget_seconds):
        """Drain for at most budget_seconds, then stop after the current item.

        Returns True when the drain finished without a batch-level error.
        """
        drain = asyncio.ensure_future(self.engine.trigger_sync())
        done, _ = await asyncio.wait({drain}, timeout=budget_seconds)
        if not done:
            self.logger.info(f"Background budget of {budget_seconds}s expired; stopping after current item")
            self.engine.request_stop()
            await drain
        return self.engine.last_error is None

    def next_delay(self, success):
        """Regular interval after success; exponential backoff with jitter after failure."""
        if success:
            self.sync_failures = 0
            return self.interval

        self.sync_failures += 1
        base_delay = min(self.interval * (2 ** min(self.sync_failures, 6)), self.max_backoff)
        jitter = random.uniform(0.8, 1.2)  # ±20%
        return min(base_delay * jitter, self.max_backoff)

    def run_once(self):
        future = self.submit(self.run_background_task(self.budget))
        return future.result()

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._scheduler_loop, daemon=True, name='background-sync')
        self._thread.start()
        self.logger.info(f"Background sync scheduler started (interval={self.interval}s, budget={self.budget}s)")

    def stop(self, timeout=5):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _scheduler_loop(self):
        while not self._stop_event.is_set():
            try:
                sleep_time = self.next_delay(self.run_once())
            except Exception as e:
                self.logger.error(f"Sync scheduler error: {e}")
                sleep_time = 60  # Fallback delay on error
            self._stop_event.wait(sleep_time)

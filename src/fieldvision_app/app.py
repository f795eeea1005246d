"""FieldVision sync runtime: wires the sync subsystem together."""
import asyncio
import logging
import threading

from .config_manager import ConfigManager
from .local_db import LocalDatabase
from .logging_config import setup_logging
from .reconciler import Reconciler
from .scheduler import BackgroundSyncScheduler
from .services.api_service import RemoteService
from .services.reachability import ReachabilityMonitor
from .services.sync_state import SyncStateStore
from .sync_coordinator import SyncCoordinator
from .sync_engine import SyncEngine


class SyncRuntime:
    """Owns the sync event loop and every long-lived sync component.

    The engine, synchronizers and reconciler only ever run on the loop
    thread. Other threads (reachability probe, scheduler, UI) reach it
    through submit() or the engine's schedule_sync().
    """

    def __init__(self, config, db, remote, reachability, engine, reconciler, coordinator, scheduler=None):
        self.config = config
        self.db = db
        self.remote = remote
        self.reachability = reachability
        self.engine = engine
        self.reconciler = reconciler
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.logger = logging.getLogger(self.__class__.__name__)

        self.loop = asyncio.new_event_loop()
        self._thread = None
        self.engine.attach_loop(self.loop)

    def start(self, probe=True, background=True):
        """Start the loop thread, then the reachability probe and scheduler."""
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name='sync-loop')
        self._thread.start()
        self.logger.info("Sync runtime started")

        if probe:
            self.reachability.start()
        if background and self.scheduler is not None:
            self.scheduler.start()

    def _run_loop(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def submit(self, coro):
        """Run a coroutine on the sync loop; returns a concurrent.futures.Future."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self):
        if self.scheduler is not None:
            self.scheduler.stop()
        self.reachability.stop()
        if self.loop.is_running():
            self.loop.call_soon_threadsafe(self.engine.request_stop)
            self.loop.call_soon_threadsafe(self.loop.stop)
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        if not self.loop.is_running():
            self.loop.close()
        self.remote.close()
        self.db.close()
        self.logger.info("Sync runtime stopped")


def create_sync_runtime(config=None, db=None, remote=None, reachability=None):
    """Build and wire the sync subsystem. Components can be injected for tests."""
    logger = logging.getLogger(__name__)
    config = config or ConfigManager()
    logger.info(f"Configuration loaded: API URL={config.api_url}")

    db = db or LocalDatabase(config.db_path, thumbnail_max_size=config.thumbnail_max_size)
    remote = remote or RemoteService.from_config(config)
    reachability = reachability or ReachabilityMonitor(
        probe_url=config.probe_url,
        check_interval=config.reachability_check_interval,
    )

    engine = SyncEngine(
        remote,
        reachability,
        max_retries=config.sync_max_retries,
        state_store=SyncStateStore(config.sync_state_path),
    )
    engine.configure(db)
    reconciler = Reconciler(db, remote, page_size=config.photos_page_size, engine=engine)
    coordinator = SyncCoordinator(db, engine, reconciler=reconciler, remote=remote)

    runtime = SyncRuntime(config, db, remote, reachability, engine, reconciler, coordinator)
    runtime.scheduler = BackgroundSyncScheduler(
        engine,
        runtime.submit,
        interval=config.background_sync_interval,
        budget=config.background_task_budget,
    )
    reachability.on_became_reachable(engine.schedule_sync)
    reachability.on_became_unreachable(lambda: logger.info("Offline; changes will queue locally"))
    return runtime


def main():
    """Run the sync runtime headless until interrupted."""
    setup_logging()
    runtime = create_sync_runtime()
    runtime.start()
    stop_event = threading.Event()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Interrupted; shutting down")
    finally:
        runtime.stop()


if __name__ == "__main__":
    main()

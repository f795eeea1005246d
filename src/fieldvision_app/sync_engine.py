"""Outbox dispatcher: drains queued mutations to the server one item at a time."""
import asyncio
import logging

from shared.enums import SyncStatus
from shared.models import now
from .errors import SyncError, EntityNotFoundError
from .synchronizers import build_synchronizers, SyncResult


class SyncEngine:
    """Drains the outbox when the network is reachable.

    All coroutines run on one event loop. is_syncing is set before the first
    await of a drain, so overlapping triggers on that loop are no-ops and at
    most one drain runs at a time.
    """

    def __init__(self, remote, reachability, max_retries=3, state_store=None):
        self.remote = remote
        self.reachability = reachability
        self.max_retries = max_retries
        self.state_store = state_store
        self.logger = logging.getLogger(self.__class__.__name__)

        self.db = None
        self.repository = None
        self.outbox = None
        self.synchronizers = {}

        self.is_syncing = False
        self.progress = 0.0
        # Incremented each time a drain starts pushing items.
        self.drain_generation = 0
        self.last_error = None
        self.pending_count = 0
        self.last_sync_date = state_store.load_last_sync_date() if state_store else None

        self._stop_requested = False
        self._loop = None
        self._tasks = set()
        self._listeners = []

    def configure(self, db, synchronizers=None):
        """Attach the local database. Triggers are ignored until this is called."""
        self.db = db
        self.repository = db.repository
        self.outbox = db.outbox
        self.synchronizers = synchronizers or build_synchronizers(db.repository, self.remote, db.media)
        self.repository.reset_interrupted()
        self.refresh_pending_count()
        self.logger.info(f"Sync engine configured with {self.pending_count} pending items")

    def attach_loop(self, loop):
        """Loop that drains scheduled from other threads should run on."""
        self._loop = loop

    # Status

    def add_listener(self, callback):
        """Register callback(status_dict), called whenever the sync status changes."""
        self._listeners.append(callback)

    def status(self):
        return {
            'is_syncing': self.is_syncing,
            'progress': self.progress,
            'pending_count': self.pending_count,
            'last_sync_date': self.last_sync_date.isoformat() if self.last_sync_date else None,
            'last_error': self.last_error,
            'is_reachable': self.reachability.is_reachable,
        }

    def _notify(self):
        snapshot = self.status()
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                self.logger.error(f"Sync status listener {callback!r} failed: {e}")

    def refresh_pending_count(self):
        if self.outbox is None:
            return 0
        try:
            self.pending_count = self.outbox.count(self.max_retries)
        except Exception as e:
            self.logger.error(f"Failed to count pending items: {e}")
        return self.pending_count

    # Queueing

    def add_to_queue(self, entity_type, entity_id, operation, priority=None, payload=None):
        """Persist a mutation in the outbox and start a drain if online."""
        if self.outbox is None:
            raise RuntimeError("SyncEngine.configure() must be called before queueing changes")
        kwargs = {'payload': payload}
        if priority is not None:
            kwargs['priority'] = priority
        item = self.outbox.enqueue(entity_type, entity_id, operation, **kwargs)
        self.refresh_pending_count()
        self._notify()
        if self.reachability.is_reachable:
            self.schedule_sync()
        return item

    def schedule_sync(self):
        """Start a drain without waiting for it. Callable from any thread."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or running is self._loop):
            task = running.create_task(self.trigger_sync())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return task
        if self._loop is not None and self._loop.is_running():
            return asyncio.run_coroutine_threadsafe(self.trigger_sync(), self._loop)

        self.logger.debug("No running event loop; drain deferred to the next trigger")
        return None

    def request_stop(self):
        """Let the in-flight item finish but start no further items."""
        if self.is_syncing:
            self.logger.info("Stop requested; finishing current item")
            self._stop_requested = True

    # Draining

    async def trigger_sync(self):
        if self.is_syncing:
            self.logger.debug("Sync already in progress, skipping")
            return
        if self.db is None:
            self.logger.warning("Sync triggered before a database was configured")
            return
        if not self.reachability.is_reachable:
            self.logger.info("Network unreachable, skipping sync")
            return

        self.is_syncing = True
        self.progress = 0.0
        self.last_error = None
        self._stop_requested = False
        self._notify()
        try:
            await self._drain()
        finally:
            self.is_syncing = False
            self._stop_requested = False
            self._notify()

    async def _drain(self):
        try:
            items = self.outbox.fetch_pending(self.max_retries)
        except SyncError as e:
            self.last_error = str(e)
            self.logger.error(f"Sync aborted: {e}")
            self.refresh_pending_count()
            return

        total = len(items)
        if total == 0:
            self.logger.debug("Outbox empty")
            return

        self.drain_generation += 1
        self.logger.info(f"Sync started: {total} pending items")
        completed = 0
        for item in items:
            if self._stop_requested:
                self.logger.info(f"Sync stopped early after {completed}/{total} items")
                break
            try:
                done = await self._process_item(item)
            except Exception:
                # Bookkeeping failures are isolated to the item like any other error.
                self.logger.exception(f"Failed to record outcome of {item!r}")
                done = False
            if done:
                completed += 1
                self.progress = completed / total
                self._notify()

        self._record_sync_date()
        self.refresh_pending_count()
        self.progress = 1.0
        self.logger.info(f"Sync finished: {completed}/{total} items completed, {self.pending_count} pending")

    async def _process_item(self, item):
        """Dispatch one item and record the outcome. Returns True if it left the queue."""
        synchronizer = self.synchronizers.get(item.entity_type)
        self.repository.set_sync_status(item.entity_type, item.entity_id, SyncStatus.SYNCING)

        if synchronizer is None:
            result = SyncResult.failed(SyncError(f"No synchronizer for {item.entity_type.value}"))
        else:
            result = await synchronizer.sync(item)

        if result.success:
            self.outbox.remove(item)
            self.repository.transition_status(item.entity_type, item.entity_id, SyncStatus.SYNCING, SyncStatus.SYNCED)
            self.logger.debug(f"Synced {item!r}")
            return True

        if isinstance(result.error, EntityNotFoundError):
            self.outbox.remove(item)
            self.logger.info(f"Dropped {item!r}: {result.error}")
            return True

        retry_count = self.outbox.record_failure(item, result.error)
        if retry_count >= self.max_retries:
            self.repository.set_sync_status(item.entity_type, item.entity_id, SyncStatus.FAILED)
            self.logger.warning(f"Giving up on {item!r} after {retry_count} attempts: {result.error}")
        else:
            self.repository.transition_status(item.entity_type, item.entity_id, SyncStatus.SYNCING, SyncStatus.PENDING)
            self.logger.warning(f"Attempt {retry_count}/{self.max_retries} failed for {item!r}: {result.error}")
        return False

    def _record_sync_date(self):
        self.last_sync_date = now()
        if self.state_store is None:
            return
        try:
            self.state_store.save_last_sync_date(self.last_sync_date)
        except OSError as e:
            self.logger.error(f"Failed to persist last sync date: {e}")

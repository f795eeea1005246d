"""Tests for the outbox dispatcher."""
import asyncio
from unittest.mock import AsyncMock, Mock, patch

from shared.enums import SyncEntityType, SyncOperation, SyncPriority, SyncStatus
from shared.models import Project
from shared.schemas import ProjectDTO
from fieldvision_app.errors import FetchFailedError, RemoteRejectedError, NetworkUnavailableError
from fieldvision_app.services.sync_state import SyncStateStore
from fieldvision_app.sync_engine import SyncEngine


def _queue_project(test_db, name, priority=SyncPriority.NORMAL):
    project = test_db.repository.save_project({'name': name})
    test_db.outbox.enqueue(SyncEntityType.PROJECT, project.id, SyncOperation.CREATE, priority)
    return project


def test_empty_outbox_is_a_noop(engine, fake_remote):
    asyncio.run(engine.trigger_sync())

    assert engine.is_syncing is False
    assert engine.last_error is None
    assert engine.last_sync_date is None
    fake_remote.create_project.assert_not_called()


def test_drain_syncs_and_removes_items(engine, test_db):
    project = _queue_project(test_db, 'Warehouse')

    asyncio.run(engine.trigger_sync())

    stored = test_db.repository.get_project(project.id)
    assert stored.sync_status == SyncStatus.SYNCED
    assert stored.remote_id.startswith('srv-project-')
    assert test_db.outbox.count(3) == 0
    assert engine.pending_count == 0
    assert engine.progress == 1.0
    assert engine.last_sync_date is not None


def test_failing_item_does_not_stop_the_batch(engine, test_db, fake_remote):
    """Item 3 of 5 fails; items 4 and 5 are still attempted and completed."""
    projects = [_queue_project(test_db, f"Project {n}") for n in range(1, 6)]

    def create(request):
        if request.name == 'Project 3':
            raise RemoteRejectedError('Server rejected the request', status_code=500)
        return ProjectDTO(id=f"srv-{request.name}", name=request.name)

    fake_remote.create_project.side_effect = create

    asyncio.run(engine.trigger_sync())

    assert fake_remote.create_project.await_count == 5
    statuses = [test_db.repository.get_project(p.id).sync_status for p in projects]
    assert statuses == [SyncStatus.SYNCED, SyncStatus.SYNCED, SyncStatus.PENDING, SyncStatus.SYNCED, SyncStatus.SYNCED]
    remaining = test_db.outbox.fetch_pending(3)
    assert [item.entity_id for item in remaining] == [projects[2].id]
    assert remaining[0].retry_count == 1
    assert engine.last_error is None
    assert engine.pending_count == 1


def test_retry_cap_marks_entity_failed(engine, test_db, fake_remote):
    project = _queue_project(test_db, 'Unlucky')
    fake_remote.create_project.side_effect = NetworkUnavailableError()

    asyncio.run(engine.trigger_sync())
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.PENDING

    asyncio.run(engine.trigger_sync())
    asyncio.run(engine.trigger_sync())

    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.FAILED
    assert test_db.outbox.fetch_pending(3) == []
    item = test_db.outbox.items_for_entity(SyncEntityType.PROJECT, project.id)[0]
    assert item.retry_count == 3
    assert 'Network connection unavailable' in item.error_message

    # Exhausted items are not attempted again
    asyncio.run(engine.trigger_sync())
    assert fake_remote.create_project.await_count == 3


def test_trigger_while_syncing_returns_immediately(engine, test_db, fake_remote):
    _queue_project(test_db, 'Busy')
    engine.is_syncing = True

    asyncio.run(engine.trigger_sync())

    fake_remote.create_project.assert_not_called()
    assert test_db.outbox.count(3) == 1


def test_concurrent_triggers_run_one_drain(engine, test_db, fake_remote):
    _queue_project(test_db, 'Once')

    async def slow_create(request):
        await asyncio.sleep(0.01)
        return ProjectDTO(id='srv-once', name=request.name)

    fake_remote.create_project.side_effect = slow_create

    async def scenario():
        await asyncio.gather(engine.trigger_sync(), engine.trigger_sync(), engine.trigger_sync())

    asyncio.run(scenario())

    assert fake_remote.create_project.await_count == 1
    assert test_db.outbox.count(3) == 0


def test_unreachable_network_skips_drain(engine, test_db, fake_remote, reachability):
    _queue_project(test_db, 'Offline')
    reachability.update(False)

    asyncio.run(engine.trigger_sync())

    fake_remote.create_project.assert_not_called()
    assert test_db.outbox.count(3) == 1


def test_unconfigured_engine_ignores_triggers(fake_remote, reachability):
    engine = SyncEngine(fake_remote, reachability)

    asyncio.run(engine.trigger_sync())

    assert engine.is_syncing is False
    fake_remote.create_project.assert_not_called()


def test_fetch_failure_sets_last_error(engine, test_db, fake_remote):
    _queue_project(test_db, 'Unreadable')

    with patch.object(test_db.outbox, 'fetch_pending', side_effect=FetchFailedError('database is locked')):
        asyncio.run(engine.trigger_sync())

    assert engine.last_error == 'database is locked'
    assert engine.last_sync_date is None
    assert engine.is_syncing is False
    fake_remote.create_project.assert_not_called()


def test_vanished_entity_is_dropped(engine, test_db):
    test_db.outbox.enqueue(SyncEntityType.PHOTO, 'no-such-photo', SyncOperation.CREATE)

    asyncio.run(engine.trigger_sync())

    assert test_db.outbox.items_for_entity(SyncEntityType.PHOTO, 'no-such-photo') == []
    assert engine.progress == 1.0


def test_request_stop_finishes_current_item_only(engine, test_db, fake_remote):
    first = _queue_project(test_db, 'First', SyncPriority.HIGH)
    second = _queue_project(test_db, 'Second')

    def create(request):
        engine.request_stop()
        return ProjectDTO(id=f"srv-{request.name}", name=request.name)

    fake_remote.create_project.side_effect = create

    asyncio.run(engine.trigger_sync())

    assert test_db.repository.get_project(first.id).sync_status == SyncStatus.SYNCED
    assert test_db.repository.get_project(second.id).sync_status == SyncStatus.PENDING
    assert [item.entity_id for item in test_db.outbox.fetch_pending(3)] == [second.id]
    assert engine.is_syncing is False


def test_entity_is_marked_syncing_while_in_flight(engine, test_db, fake_remote):
    project = _queue_project(test_db, 'In flight')
    seen = []

    def create(request):
        seen.append(test_db.repository.get_project(project.id).sync_status)
        return ProjectDTO(id='srv-flight', name=request.name)

    fake_remote.create_project.side_effect = create

    asyncio.run(engine.trigger_sync())

    assert seen == [SyncStatus.SYNCING]


def test_edit_during_flight_keeps_entity_pending(engine, test_db, fake_remote):
    project = _queue_project(test_db, 'Original')

    def create(request):
        test_db.repository.update(Project, project.id, {'name': 'Edited', 'sync_status': SyncStatus.PENDING})
        return ProjectDTO(id='srv-edited', name=request.name)

    fake_remote.create_project.side_effect = create

    asyncio.run(engine.trigger_sync())

    stored = test_db.repository.get_project(project.id)
    assert stored.remote_id == 'srv-edited'
    assert stored.sync_status == SyncStatus.PENDING


def test_last_sync_date_is_persisted(engine, test_db, fake_remote, reachability, tmp_path):
    _queue_project(test_db, 'Persist me')

    asyncio.run(engine.trigger_sync())

    reloaded = SyncEngine(fake_remote, reachability, state_store=SyncStateStore(tmp_path / 'sync_state.json'))
    assert reloaded.last_sync_date == engine.last_sync_date


def test_listeners_receive_status_and_errors_are_contained(engine, test_db):
    _queue_project(test_db, 'Observed')
    snapshots = []
    engine.add_listener(Mock(side_effect=ValueError('listener bug')))
    engine.add_listener(snapshots.append)

    asyncio.run(engine.trigger_sync())

    assert any(s['is_syncing'] for s in snapshots)
    assert snapshots[-1]['is_syncing'] is False
    assert snapshots[-1]['pending_count'] == 0


def test_add_to_queue_starts_drain_when_reachable(engine, test_db, fake_remote):
    project = test_db.repository.save_project({'name': 'Queued online'})

    async def scenario():
        engine.add_to_queue(SyncEntityType.PROJECT, project.id, SyncOperation.CREATE)
        await asyncio.gather(*list(engine._tasks))

    asyncio.run(scenario())

    fake_remote.create_project.assert_awaited_once()
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.SYNCED


def test_add_to_queue_offline_only_persists(engine, test_db, fake_remote, reachability):
    reachability.update(False)
    project = test_db.repository.save_project({'name': 'Queued offline'})

    item = engine.add_to_queue(SyncEntityType.PROJECT, project.id, SyncOperation.CREATE)

    assert item.id is not None
    assert engine.pending_count == 1
    fake_remote.create_project.assert_not_called()


def test_reachability_edge_triggers_drain(engine, test_db, fake_remote, reachability):
    _queue_project(test_db, 'Back online')
    reachability.update(False)

    async def scenario():
        reachability.on_became_reachable(engine.schedule_sync)
        reachability.update(True)
        await asyncio.gather(*list(engine._tasks))

    asyncio.run(scenario())

    fake_remote.create_project.assert_awaited_once()


def test_configure_resets_interrupted_entities(test_db, fake_remote, reachability):
    project = test_db.repository.save_project({'name': 'Crashed', 'sync_status': SyncStatus.SYNCING})

    engine = SyncEngine(fake_remote, reachability)
    engine.configure(test_db, synchronizers={SyncEntityType.PROJECT: Mock(sync=AsyncMock())})

    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.PENDING


def test_drain_generation_counts_drains_that_push(engine, test_db):
    asyncio.run(engine.trigger_sync())
    assert engine.drain_generation == 0

    _queue_project(test_db, 'Counted')
    asyncio.run(engine.trigger_sync())

    assert engine.drain_generation == 1

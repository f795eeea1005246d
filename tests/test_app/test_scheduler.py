"""Tests for the background sync scheduler."""
import asyncio
import concurrent.futures
from unittest.mock import patch

from shared.enums import SyncEntityType, SyncOperation, SyncStatus
from shared.schemas import ProjectDTO
from fieldvision_app.scheduler import BackgroundSyncScheduler


def _run_now(coro):
    """Submit stand-in that runs the coroutine to completion on a fresh loop."""
    future = concurrent.futures.Future()
    future.set_result(asyncio.run(coro))
    return future


def test_success_uses_regular_interval(engine):
    scheduler = BackgroundSyncScheduler(engine, _run_now, interval=300)
    scheduler.sync_failures = 4

    assert scheduler.next_delay(True) == 300
    assert scheduler.sync_failures == 0


def test_failure_backs_off_exponentially():
    scheduler = BackgroundSyncScheduler(None, _run_now, interval=10)

    with patch('fieldvision_app.scheduler.random.uniform', return_value=1.0):
        delays = [scheduler.next_delay(False) for _ in range(3)]

    assert delays == [20, 40, 80]
    assert scheduler.sync_failures == 3


def test_backoff_is_capped_with_jitter():
    scheduler = BackgroundSyncScheduler(None, _run_now, interval=300, max_backoff=3600)
    scheduler.sync_failures = 10

    for _ in range(20):
        delay = scheduler.next_delay(False)
        assert 0.8 * 3600 <= delay <= 3600


def test_run_once_drains_the_outbox(engine, test_db):
    project = test_db.repository.save_project({'name': 'Background'})
    test_db.outbox.enqueue(SyncEntityType.PROJECT, project.id, SyncOperation.CREATE)
    scheduler = BackgroundSyncScheduler(engine, _run_now)

    assert scheduler.run_once() is True
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.SYNCED


def test_budget_expiry_stops_after_current_item(engine, test_db, fake_remote):
    projects = []
    for n in range(3):
        projects.append(test_db.repository.save_project({'name': f"Slow {n}"}))
        test_db.outbox.enqueue(SyncEntityType.PROJECT, projects[-1].id, SyncOperation.CREATE)

    async def slow_create(request):
        await asyncio.sleep(0.2)
        return ProjectDTO(id=f"srv-{request.name}", name=request.name)

    fake_remote.create_project.side_effect = slow_create
    scheduler = BackgroundSyncScheduler(engine, _run_now)

    assert asyncio.run(scheduler.run_background_task(0.05)) is True

    assert fake_remote.create_project.await_count == 1
    assert test_db.repository.get_project(projects[0].id).sync_status == SyncStatus.SYNCED
    assert test_db.outbox.count(3) == 2
    assert engine.is_syncing is False

"""Tests for local mutations and the outbox items they queue."""
import asyncio
import hashlib
import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from shared.enums import SyncEntityType, SyncOperation, SyncPriority, SyncStatus, MediaType
from shared.schemas import CreateShareLinkRequest, ShareLinkDTO, ProjectDTO
from fieldvision_app.errors import MissingRemoteIdError, EntityNotFoundError, NetworkUnavailableError
from fieldvision_app.reconciler import Reconciler
from fieldvision_app.sync_coordinator import SyncCoordinator


@pytest.fixture
def coordinator(test_db, engine, fake_remote):
    return SyncCoordinator(test_db, engine, Reconciler(test_db, fake_remote, engine=engine), fake_remote)


def _only_item(test_db, entity_type, entity_id):
    items = test_db.outbox.items_for_entity(entity_type, entity_id)
    assert len(items) == 1
    return items[0]


def test_create_project_queues_normal_create(coordinator, test_db, engine):
    project = coordinator.create_project('Harbor', address='1 Dock Rd')

    item = _only_item(test_db, SyncEntityType.PROJECT, project.id)
    assert item.operation == SyncOperation.CREATE
    assert item.priority_level == SyncPriority.NORMAL
    assert project.sync_status == SyncStatus.PENDING
    assert engine.pending_count == 1


def test_update_project_marks_pending(coordinator, test_db):
    project = test_db.repository.save_project({'name': 'Old', 'remote_id': 'srv-1',
                                               'sync_status': SyncStatus.SYNCED})

    updated = coordinator.update_project(project.id, name='New')

    assert updated.name == 'New'
    assert updated.sync_status == SyncStatus.PENDING
    assert updated.updated_at >= project.updated_at
    assert _only_item(test_db, SyncEntityType.PROJECT, project.id).operation == SyncOperation.UPDATE


def test_update_missing_project_raises(coordinator):
    with pytest.raises(EntityNotFoundError):
        coordinator.update_project('nope', name='x')


def test_delete_project_captures_remote_id(coordinator, test_db):
    project = test_db.repository.save_project({'name': 'Doomed', 'remote_id': 'srv-9',
                                               'sync_status': SyncStatus.SYNCED})

    assert coordinator.delete_project(project.id) is True

    assert test_db.repository.get_project(project.id) is None
    item = _only_item(test_db, SyncEntityType.PROJECT, project.id)
    assert item.operation == SyncOperation.DELETE
    assert item.priority_level == SyncPriority.HIGH
    assert item.payload == {'remote_id': 'srv-9'}


def test_delete_unknown_project_queues_nothing(coordinator, test_db):
    assert coordinator.delete_project('nope') is False
    assert test_db.outbox.count(3) == 0


def test_create_folder_appends_sort_order(coordinator, test_db):
    project = coordinator.create_project('Harbor')

    first = coordinator.create_folder(project.id, 'Exterior')
    second = coordinator.create_folder(project.id, 'Interior')

    assert (first.sort_order, second.sort_order) == (0, 1)
    assert _only_item(test_db, SyncEntityType.FOLDER, second.id).operation == SyncOperation.CREATE


def test_add_photo_stores_media_and_queues_high_priority(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')

    photo = coordinator.add_photo(project.id, jpeg_bytes, latitude=45.5, longitude=-122.6, note='Crack')

    assert photo.local_path == f"{photo.id}.jpg"
    assert photo.thumbnail_local_path == f"{photo.id}_thumb.jpg"
    assert os.path.exists(test_db.media.resolve_path(photo.local_path))
    assert os.path.exists(test_db.media.resolve_path(photo.thumbnail_local_path))
    item = _only_item(test_db, SyncEntityType.PHOTO, photo.id)
    assert item.priority_level == SyncPriority.HIGH


def test_add_video_has_no_thumbnail(coordinator, test_db):
    project = coordinator.create_project('Harbor')

    video = coordinator.add_photo(project.id, b'\x00\x00\x00\x18ftypqt  ', media_type=MediaType.VIDEO)

    assert video.local_path == f"{video.id}.mov"
    assert video.thumbnail_local_path is None
    assert video.media_type == MediaType.VIDEO


def test_corrupted_photo_is_still_stored(coordinator, test_db):
    project = coordinator.create_project('Harbor')

    photo = coordinator.add_photo(project.id, b'not an image')

    assert photo.thumbnail_local_path is None
    assert test_db.media.read_media(photo.local_path) == b'not an image'


def test_update_photo_and_add_comment(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')
    photo = coordinator.add_photo(project.id, jpeg_bytes)

    coordinator.update_photo(photo.id, note='Edited')
    comment = coordinator.add_comment(photo.id, 'Needs follow-up', user_name='Sam')

    assert test_db.repository.get_photo(photo.id).note == 'Edited'
    operations = [item.operation for item in test_db.outbox.items_for_entity(SyncEntityType.PHOTO, photo.id)]
    assert sorted(op.value for op in operations) == ['create', 'update']
    assert _only_item(test_db, SyncEntityType.COMMENT, comment.id).priority_level == SyncPriority.NORMAL


def test_share_link_requires_synced_project(coordinator, test_db, fake_remote):
    project = coordinator.create_project('Unsynced')

    with pytest.raises(MissingRemoteIdError):
        asyncio.run(coordinator.create_share_link(project.id, CreateShareLinkRequest()))

    fake_remote.create_share_link.assert_not_called()


def test_share_link_is_created_online(coordinator, test_db, fake_remote):
    project = test_db.repository.save_project({'name': 'Shared', 'remote_id': 'srv-1',
                                               'sync_status': SyncStatus.SYNCED})
    fake_remote.create_share_link = AsyncMock(return_value=ShareLinkDTO(
        id='srv-share', token='tok', share_url='https://share.example.com/tok',
        expires_at=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc), allow_download=True))

    link = asyncio.run(coordinator.create_share_link(project.id, CreateShareLinkRequest(allow_download=True)))

    assert fake_remote.create_share_link.await_args.args[0] == 'srv-1'
    assert link.sync_status == SyncStatus.SYNCED
    assert link.expires_at == datetime(2025, 1, 1, 12, 0)
    assert [l.token for l in test_db.repository.get_share_links_for_project(project.id)] == ['tok']
    assert test_db.outbox.count(3) == 0


def test_share_link_for_unknown_project(coordinator):
    with pytest.raises(EntityNotFoundError):
        asyncio.run(coordinator.create_share_link('nope', CreateShareLinkRequest()))


def test_retry_failed_gives_fresh_attempts(coordinator, test_db, engine, fake_remote):
    project = coordinator.create_project('Stubborn')
    fake_remote.create_project.side_effect = NetworkUnavailableError()
    for _ in range(3):
        asyncio.run(engine.trigger_sync())
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.FAILED

    assert coordinator.retry_failed() == 1

    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.PENDING
    assert engine.pending_count == 1
    item = _only_item(test_db, SyncEntityType.PROJECT, project.id)
    assert item.retry_count == 0


def test_manual_sync_pushes_then_pulls(coordinator, test_db, fake_remote):
    project = coordinator.create_project('Local')
    fake_remote.get_projects = AsyncMock(side_effect=lambda: [
        ProjectDTO(id=test_db.repository.get_project(project.id).remote_id, name='Local'),
        ProjectDTO(id='srv-other', name='From server'),
    ])

    status = asyncio.run(coordinator.manual_sync())

    assert status['pending_count'] == 0
    assert status['last_error'] is None
    names = sorted(p.name for p in test_db.repository.get_projects())
    assert names == ['From server', 'Local']
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.SYNCED


def test_manual_sync_survives_refresh_failure(coordinator, fake_remote):
    fake_remote.get_projects.side_effect = NetworkUnavailableError()

    status = asyncio.run(coordinator.manual_sync())

    assert status['is_syncing'] is False


def test_app_did_become_active_schedules_drain(coordinator, test_db, fake_remote):
    project = coordinator.create_project('Foreground')

    async def scenario():
        task = coordinator.app_did_become_active()
        await task

    asyncio.run(scenario())

    fake_remote.create_project.assert_awaited_once()
    assert test_db.repository.get_project(project.id).sync_status == SyncStatus.SYNCED


def test_delete_folder_captures_remote_id(coordinator, test_db):
    project = test_db.repository.save_project({'name': 'Harbor'})
    folder = test_db.repository.save_folder({'project_id': project.id, 'name': 'Roof', 'remote_id': 'srv-f1',
                                             'sync_status': SyncStatus.SYNCED})

    assert coordinator.delete_folder(folder.id) is True
    assert coordinator.delete_folder(folder.id) is False

    assert test_db.repository.get_folder(folder.id) is None
    item = _only_item(test_db, SyncEntityType.FOLDER, folder.id)
    assert item.operation == SyncOperation.DELETE
    assert item.payload == {'remote_id': 'srv-f1'}


def test_delete_project_removes_photo_files(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')
    photo = coordinator.add_photo(project.id, jpeg_bytes)
    media_path = test_db.media.resolve_path(photo.local_path)
    thumb_path = test_db.media.resolve_path(photo.thumbnail_local_path)

    coordinator.delete_project(project.id)

    assert test_db.repository.get_photo(photo.id) is None
    assert not os.path.exists(media_path)
    assert not os.path.exists(thumb_path)


def test_delete_folder_keeps_its_photos(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')
    folder = coordinator.create_folder(project.id, 'Roof')
    photo = coordinator.add_photo(project.id, jpeg_bytes, folder_id=folder.id)

    coordinator.delete_folder(folder.id)

    stored = test_db.repository.get_photo(photo.id)
    assert stored.folder_id is None
    assert os.path.exists(test_db.media.resolve_path(stored.local_path))


def test_add_photo_records_hash_and_size(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')

    photo = coordinator.add_photo(project.id, jpeg_bytes)

    stored = test_db.repository.get_photo(photo.id)
    assert stored.hash_value == hashlib.sha256(jpeg_bytes).hexdigest()
    assert stored.size_bytes == len(jpeg_bytes)


def test_blank_comment_is_refused_locally(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')
    photo = coordinator.add_photo(project.id, jpeg_bytes)
    queued = test_db.outbox.count(3)

    with pytest.raises(ValidationError):
        coordinator.add_comment(photo.id, '   ')

    assert test_db.repository.get_comments_for_photo(photo.id) == []
    assert test_db.outbox.count(3) == queued


def test_comment_text_is_trimmed(coordinator, test_db, jpeg_bytes):
    project = coordinator.create_project('Harbor')
    photo = coordinator.add_photo(project.id, jpeg_bytes)

    comment = coordinator.add_comment(photo.id, '  Needs sealing  ')

    assert comment.text == 'Needs sealing'

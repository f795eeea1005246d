"""Pytest configuration and fixtures for FieldVision sync tests."""
import io
import itertools
from unittest.mock import AsyncMock, Mock

import pytest
from PIL import Image

from shared.schemas import (
    ProjectDTO, FolderDTO, PhotoDTO, PhotoPage, CommentDTO, UploadTarget, ShareLinkDTO,
)
from fieldvision_app.local_db import LocalDatabase
from fieldvision_app.services.reachability import ReachabilityMonitor
from fieldvision_app.services.sync_state import SyncStateStore
from fieldvision_app.sync_engine import SyncEngine


@pytest.fixture
def test_db(tmp_path):
    """Create a temporary local database."""
    db = LocalDatabase(tmp_path / 'fieldvision.db')
    yield db
    db.close()


@pytest.fixture
def fake_remote():
    """Remote service stand-in that assigns sequential server ids."""
    ids = itertools.count(1)
    remote = Mock()
    remote.create_project = AsyncMock(
        side_effect=lambda request: ProjectDTO(id=f"srv-project-{next(ids)}", name=request.name))
    remote.update_project = AsyncMock(
        side_effect=lambda remote_id, request: ProjectDTO(id=remote_id, name=request.name or ''))
    remote.delete_project = AsyncMock(return_value=None)
    remote.create_folder = AsyncMock(
        side_effect=lambda project_id, request: FolderDTO(id=f"srv-folder-{next(ids)}", name=request.name))
    remote.get_upload_target = AsyncMock(return_value=UploadTarget(
        upload_url='https://storage.example.com/upload/abc?sig=1',
        media_url='https://cdn.example.com/media/abc.jpg',
    ))
    remote.upload_bytes = AsyncMock(return_value=None)
    remote.create_photo = AsyncMock(
        side_effect=lambda request: PhotoDTO(
            id=f"srv-photo-{next(ids)}", captured_at=request.captured_at, remote_url=request.remote_url))
    remote.create_comment = AsyncMock(
        side_effect=lambda photo_id, text: CommentDTO(id=f"srv-comment-{next(ids)}", text=text))
    remote.create_share_link = AsyncMock(
        side_effect=lambda project_id, request: ShareLinkDTO(
            id=f"srv-share-{next(ids)}", token='tok123', share_url='https://share.example.com/tok123'))
    remote.get_projects = AsyncMock(return_value=[])
    remote.get_photos = AsyncMock(return_value=PhotoPage())
    return remote


@pytest.fixture
def reachability():
    """Monitor that starts online and never probes."""
    return ReachabilityMonitor(initial_reachable=True)


@pytest.fixture
def engine(test_db, fake_remote, reachability, tmp_path):
    engine = SyncEngine(fake_remote, reachability, max_retries=3,
                        state_store=SyncStateStore(tmp_path / 'sync_state.json'))
    engine.configure(test_db)
    return engine


@pytest.fixture
def jpeg_bytes():
    """A small valid JPEG image."""
    buffer = io.BytesIO()
    Image.new('RGB', (640, 480), color='red').save(buffer, format='JPEG')
    return buffer.getvalue()

"""Local mutation entry points that keep the outbox in step with the store."""
import logging

from shared.enums import (
    SyncEntityType, SyncOperation, SyncPriority, SyncStatus, ProjectStatus, FolderType, MediaType,
)
from shared.models import Project, Folder, Photo, new_id, now, to_naive_utc
from shared.schemas import CreateCommentRequest
from .errors import SyncError, MissingRemoteIdError, EntityNotFoundError


class SyncCoordinator:
    """Writes local changes and queues the matching remote operations.

    Every mutation is committed locally first, so the app keeps working
    offline; the outbox item is what eventually carries it to the server.
    """

    def __init__(self, db, engine, reconciler=None, remote=None):
        self.db = db
        self.repository = db.repository
        self.engine = engine
        self.reconciler = reconciler
        self.remote = remote
        self.logger = logging.getLogger(self.__class__.__name__)

    # Projects

    def create_project(self, name, address='', latitude=None, longitude=None, client_name=None,
                       status=ProjectStatus.WALKTHROUGH):
        project = self.repository.save_project({
            'name': name,
            'address': address,
            'latitude': latitude,
            'longitude': longitude,
            'client_name': client_name,
            'status': status,
        })
        self.engine.add_to_queue(SyncEntityType.PROJECT, project.id, SyncOperation.CREATE, SyncPriority.NORMAL)
        return project

    def update_project(self, project_id, **changes):
        changes['sync_status'] = SyncStatus.PENDING
        project = self.repository.update(Project, project_id, changes)
        if project is None:
            raise EntityNotFoundError(f"Project {project_id} not found")
        self.engine.add_to_queue(SyncEntityType.PROJECT, project.id, SyncOperation.UPDATE, SyncPriority.NORMAL)
        return project

    def delete_project(self, project_id):
        """Delete locally; the server copy is deleted by a queued high-priority item."""
        project = self.repository.get_project(project_id)
        if project is None:
            return False
        photos = self.repository.get_photos_for_project(project_id)
        self.repository.delete(Project, project_id)
        self.db.media.delete_media(*[path for photo in photos
                                     for path in (photo.local_path, photo.thumbnail_local_path) if path])
        self.engine.add_to_queue(SyncEntityType.PROJECT, project_id, SyncOperation.DELETE, SyncPriority.HIGH,
                                 payload={'remote_id': project.remote_id})
        return True

    # Folders

    def create_folder(self, project_id, name, folder_type=FolderType.CUSTOM, sort_order=None):
        if sort_order is None:
            sort_order = len(self.repository.get_folders_for_project(project_id))
        folder = self.repository.save_folder({
            'project_id': project_id,
            'name': name,
            'folder_type': folder_type,
            'sort_order': sort_order,
        })
        self.engine.add_to_queue(SyncEntityType.FOLDER, folder.id, SyncOperation.CREATE, SyncPriority.NORMAL)
        return folder

    def delete_folder(self, folder_id):
        folder = self.repository.get_folder(folder_id)
        if folder is None:
            return False
        self.repository.delete(Folder, folder_id)
        self.engine.add_to_queue(SyncEntityType.FOLDER, folder_id, SyncOperation.DELETE, SyncPriority.NORMAL,
                                 payload={'remote_id': folder.remote_id})
        return True

    # Photos

    def add_photo(self, project_id, data, folder_id=None, media_type=MediaType.PHOTO, latitude=0.0,
                  longitude=0.0, captured_at=None, note=None, uploader_name=None):
        """Store captured media and queue its upload."""
        photo_id = new_id()
        extension = 'jpg' if media_type == MediaType.PHOTO else 'mov'
        media = self.db.media.process_media(photo_id, data, extension=extension)
        if media['corrupted']:
            self.logger.warning(f"Photo {photo_id} stored without thumbnail: image could not be decoded")

        photo = self.repository.save_photo({
            'id': photo_id,
            'project_id': project_id,
            'folder_id': folder_id,
            'media_type': media_type,
            'latitude': latitude,
            'longitude': longitude,
            'captured_at': captured_at or now(),
            'note': note,
            'uploader_name': uploader_name,
            'local_path': media['local_path'],
            'thumbnail_local_path': media['thumbnail_local_path'],
            'hash_value': media['hash_value'],
            'size_bytes': media['size_bytes'],
        })
        self.engine.add_to_queue(SyncEntityType.PHOTO, photo.id, SyncOperation.CREATE, SyncPriority.HIGH)
        return photo

    def update_photo(self, photo_id, **changes):
        changes['sync_status'] = SyncStatus.PENDING
        photo = self.repository.update(Photo, photo_id, changes)
        if photo is None:
            raise EntityNotFoundError(f"Photo {photo_id} not found")
        self.engine.add_to_queue(SyncEntityType.PHOTO, photo.id, SyncOperation.UPDATE, SyncPriority.NORMAL)
        return photo

    # Comments

    def add_comment(self, photo_id, text, user_name=''):
        """Queue a comment. Blank text raises a pydantic ValidationError before anything is stored."""
        request = CreateCommentRequest(text=text)
        comment = self.repository.save_comment({'photo_id': photo_id, 'text': request.text, 'user_name': user_name})
        self.engine.add_to_queue(SyncEntityType.COMMENT, comment.id, SyncOperation.CREATE, SyncPriority.NORMAL)
        return comment

    # Share links

    async def create_share_link(self, project_id, request):
        """Create a share link on the server right away; requires connectivity.

        Raises:
            MissingRemoteIdError: The project has not reached the server yet.
        """
        project = self.repository.get_project(project_id)
        if project is None:
            raise EntityNotFoundError(f"Project {project_id} not found")
        if not project.remote_id:
            raise MissingRemoteIdError(f"Project {project_id} must sync before it can be shared")

        dto = await self.remote.create_share_link(project.remote_id, request)
        return self.repository.save_share_link({
            'project_id': project.id,
            'remote_id': dto.id,
            'token': dto.token,
            'share_url': dto.share_url,
            'folder_ids': dto.folder_ids,
            'expires_at': to_naive_utc(dto.expires_at),
            'password_protected': dto.password_protected,
            'allow_download': dto.allow_download,
            'allow_comments': dto.allow_comments,
            'is_active': dto.is_active,
            'sync_status': SyncStatus.SYNCED,
        })

    # Triggers

    def app_did_become_active(self):
        """Foregrounding is a sync trigger."""
        return self.engine.schedule_sync()

    async def manual_sync(self):
        """Pull-to-refresh: push local changes, then pull server state."""
        await self.engine.trigger_sync()
        if self.reconciler is not None and self.engine.reachability.is_reachable:
            try:
                await self.reconciler.refresh_projects()
            except SyncError as e:
                self.logger.error(f"Project refresh failed: {e}")
        return self.engine.status()

    def retry_failed(self, entity_ids=None):
        """Give exhausted items a fresh set of attempts."""
        items = self.db.outbox.reset_failed(self.engine.max_retries, entity_ids)
        for item in items:
            self.repository.transition_status(item.entity_type, item.entity_id, SyncStatus.FAILED, SyncStatus.PENDING)
        self.engine.refresh_pending_count()
        if items and self.engine.reachability.is_reachable:
            self.engine.schedule_sync()
        return len(items)

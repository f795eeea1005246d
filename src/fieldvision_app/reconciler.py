"""Merge server state into the local store without losing unsynced work."""
import logging

from shared.enums import SyncEntityType, SyncStatus
from shared.models import Project, Folder, Photo, Comment, new_id, now, to_naive_utc


class Reconciler:
    """Applies fetched server records to local entities.

    Rules, per entity kind:
      * a remote record matching a synced local entity overwrites its fields;
      * a matching local entity with unsynced work keeps its local fields;
      * an unknown remote record becomes a new synced local entity;
      * a synced local entity missing from the server is deleted, unless
        unsynced children depend on it;
      * pending, syncing and failed entities are never modified or deleted;
      * a record whose delete is still queued is not recreated.

    Each merge runs in a single transaction without awaiting, so it cannot
    interleave with a drain running on the same event loop.
    """

    def __init__(self, db, remote=None, page_size=50, engine=None):
        self.db = db
        self.remote = remote
        self.page_size = page_size
        self.engine = engine
        self.logger = logging.getLogger(self.__class__.__name__)

    # Fetch and merge

    async def refresh_projects(self):
        """Fetch all projects from the server and merge them.

        Returns the merge summary, or None when the result was discarded
        because a drain ran during the fetch (remote ids may have changed).
        """
        generation = self._drain_generation()
        remote_projects = await self.remote.get_projects()
        if self._drain_interfered(generation):
            return None
        return self.reconcile_projects(remote_projects)

    async def refresh_photos(self, project):
        """Fetch every page of a project's photos and merge them."""
        if not project.remote_id:
            self.logger.debug(f"Project {project.id} not on server yet; no photos to fetch")
            return None

        generation = self._drain_generation()
        photos = []
        page = 1
        while True:
            result = await self.remote.get_photos(project.remote_id, page=page, limit=self.page_size)
            photos.extend(result.data)
            if not result.has_more:
                break
            page += 1

        if self._drain_interfered(generation):
            return None
        return self.reconcile_photos(photos, project)

    def _drain_generation(self):
        """Drain counter at fetch start; None if a drain is already running."""
        if self.engine is None or self.engine.is_syncing:
            return None
        return self.engine.drain_generation

    def _drain_interfered(self, generation):
        """True if a drain is running or started since the fetch began."""
        if self.engine is None:
            return False
        if self.engine.is_syncing or self.engine.drain_generation != generation:
            self.logger.info("Discarding refresh fetched while a sync was running")
            return True
        return False

    # Projects

    def reconcile_projects(self, remote_projects):
        pending_deletes = self.db.outbox.pending_delete_remote_ids(SyncEntityType.PROJECT)
        pending_folder_deletes = self.db.outbox.pending_delete_remote_ids(SyncEntityType.FOLDER)
        summary = {'created': 0, 'updated': 0, 'deleted': 0, 'skipped': 0}
        removed_media = []

        with self.db.session_scope() as session:
            local_by_remote = {
                p.remote_id: p for p in session.query(Project).filter(Project.remote_id.isnot(None))
            }
            seen = set()

            for dto in remote_projects:
                seen.add(dto.id)
                if dto.id in pending_deletes:
                    summary['skipped'] += 1
                    continue

                project = local_by_remote.get(dto.id)
                if project is None:
                    project = Project(
                        id=new_id(),
                        remote_id=dto.id,
                        sync_status=SyncStatus.SYNCED,
                        created_at=to_naive_utc(dto.created_at) or now(),
                        updated_at=to_naive_utc(dto.updated_at) or now(),
                    )
                    self._apply_project_fields(project, dto)
                    session.add(project)
                    local_by_remote[dto.id] = project
                    summary['created'] += 1
                elif project.sync_status == SyncStatus.SYNCED:
                    self._apply_project_fields(project, dto)
                    summary['updated'] += 1
                else:
                    self.logger.debug(f"Keeping local changes to project {project.id} ({project.sync_status.value})")
                    summary['skipped'] += 1

                if dto.folders is not None:
                    self._merge_folders(session, project, dto.folders, pending_folder_deletes)

            for remote_id, project in local_by_remote.items():
                if remote_id in seen or project.sync_status != SyncStatus.SYNCED:
                    continue
                if self._has_unsynced_children(session, project):
                    self.logger.warning(f"Project {project.id} is gone from the server but has unsynced work; keeping it")
                    continue
                removed_media.extend(self._media_paths(session.query(Photo).filter(Photo.project_id == project.id)))
                session.delete(project)
                summary['deleted'] += 1

        self.db.media.delete_media(*removed_media)
        self.logger.info(f"Reconciled projects: {summary}")
        return summary

    @staticmethod
    def _apply_project_fields(project, dto):
        project.name = dto.name
        project.address = dto.address
        project.latitude = dto.latitude
        project.longitude = dto.longitude
        project.client_name = dto.client_name
        project.status = dto.status
        if dto.updated_at:
            project.updated_at = to_naive_utc(dto.updated_at)

    def _merge_folders(self, session, project, remote_folders, pending_deletes):
        local_by_remote = {
            f.remote_id: f for f in session.query(Folder).filter(
                Folder.project_id == project.id, Folder.remote_id.isnot(None))
        }
        seen = set()

        for dto in remote_folders:
            seen.add(dto.id)
            if dto.id in pending_deletes:
                continue
            folder = local_by_remote.get(dto.id)
            if folder is None:
                folder = Folder(
                    id=new_id(),
                    remote_id=dto.id,
                    project_id=project.id,
                    sync_status=SyncStatus.SYNCED,
                    created_at=to_naive_utc(dto.created_at) or now(),
                    updated_at=to_naive_utc(dto.updated_at) or now(),
                )
                session.add(folder)
                local_by_remote[dto.id] = folder
            elif folder.sync_status != SyncStatus.SYNCED:
                continue
            folder.name = dto.name
            folder.folder_type = dto.folder_type
            folder.sort_order = dto.sort_order

        for remote_id, folder in local_by_remote.items():
            if remote_id in seen or folder.sync_status != SyncStatus.SYNCED:
                continue
            unsynced_photos = session.query(Photo).filter(
                Photo.folder_id == folder.id, Photo.sync_status != SyncStatus.SYNCED).count()
            if unsynced_photos:
                continue
            session.delete(folder)

    @staticmethod
    def _media_paths(photos):
        paths = []
        for photo in photos:
            paths.extend(p for p in (photo.local_path, photo.thumbnail_local_path) if p)
        return paths

    @staticmethod
    def _has_unsynced_children(session, project):
        for model in (Folder, Photo):
            if session.query(model).filter(
                    model.project_id == project.id, model.sync_status != SyncStatus.SYNCED).count():
                return True
        return session.query(Comment).join(Photo, Comment.photo_id == Photo.id).filter(
            Photo.project_id == project.id, Comment.sync_status != SyncStatus.SYNCED).count() > 0

    # Photos

    def reconcile_photos(self, remote_photos, project):
        pending_deletes = self.db.outbox.pending_delete_remote_ids(SyncEntityType.PHOTO)
        summary = {'created': 0, 'updated': 0, 'deleted': 0, 'skipped': 0}
        removed_media = []

        with self.db.session_scope() as session:
            folder_ids = {
                f.remote_id: f.id for f in session.query(Folder).filter(
                    Folder.project_id == project.id, Folder.remote_id.isnot(None))
            }
            local_by_remote = {
                p.remote_id: p for p in session.query(Photo).filter(
                    Photo.project_id == project.id, Photo.remote_id.isnot(None))
            }
            seen = set()

            for dto in remote_photos:
                seen.add(dto.id)
                if dto.id in pending_deletes:
                    summary['skipped'] += 1
                    continue

                photo = local_by_remote.get(dto.id)
                if photo is None:
                    photo = Photo(
                        id=new_id(),
                        remote_id=dto.id,
                        project_id=project.id,
                        local_path='',
                        sync_status=SyncStatus.SYNCED,
                        created_at=to_naive_utc(dto.created_at) or now(),
                        updated_at=to_naive_utc(dto.updated_at) or now(),
                    )
                    self._apply_photo_fields(photo, dto, folder_ids)
                    session.add(photo)
                    local_by_remote[dto.id] = photo
                    summary['created'] += 1
                elif photo.sync_status == SyncStatus.SYNCED:
                    self._apply_photo_fields(photo, dto, folder_ids)
                    summary['updated'] += 1
                else:
                    summary['skipped'] += 1

            for remote_id, photo in local_by_remote.items():
                if remote_id in seen or photo.sync_status != SyncStatus.SYNCED:
                    continue
                unsynced_comments = session.query(Comment).filter(
                    Comment.photo_id == photo.id, Comment.sync_status != SyncStatus.SYNCED).count()
                if unsynced_comments:
                    continue
                removed_media.extend(self._media_paths([photo]))
                session.delete(photo)
                summary['deleted'] += 1

        self.db.media.delete_media(*removed_media)
        self.logger.info(f"Reconciled photos for project {project.id}: {summary}")
        return summary

    @staticmethod
    def _apply_photo_fields(photo, dto, folder_ids):
        photo.captured_at = to_naive_utc(dto.captured_at)
        photo.latitude = dto.latitude
        photo.longitude = dto.longitude
        photo.media_type = dto.media_type
        photo.remote_url = dto.remote_url
        photo.thumbnail_remote_url = dto.thumbnail_url
        photo.note = dto.note
        photo.uploader_name = dto.uploader_name
        photo.folder_id = folder_ids.get(dto.folder_id) if dto.folder_id else None
        if dto.updated_at:
            photo.updated_at = to_naive_utc(dto.updated_at)

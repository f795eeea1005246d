import os

from shared.enums import SyncEntityType, MediaType
from shared.models import Photo, Project, Folder
from shared.schemas import CreatePhotoRequest
from shared.utils import compute_photo_hash, is_valid_upload_url
from ..errors import SyncError, InvalidUploadTargetError, UploadFailedError
from .base import BaseSynchronizer


class PhotoSynchronizer(BaseSynchronizer):
    """Two-phase photo create: upload the media, then register the photo record.

    The uploaded media URL is persisted before the record is created, so a
    retry after a failed registration never uploads the bytes again.
    """

    entity_type = SyncEntityType.PHOTO

    async def create(self, item):
        photo = self.load_entity(item)
        if photo.remote_id:
            self.repository.mark_synced(Photo, photo.id, unchanged_since=photo.updated_at)
            return

        project_remote_id = self.parent_remote_id(Project, photo.project_id)
        folder_remote_id = self.parent_remote_id(Folder, photo.folder_id) if photo.folder_id else None

        if not photo.remote_url:
            photo = await self._upload_media(photo, project_remote_id)

        request = CreatePhotoRequest(
            project_id=project_remote_id,
            folder_id=folder_remote_id,
            captured_at=photo.captured_at,
            latitude=photo.latitude or 0.0,
            longitude=photo.longitude or 0.0,
            media_type=photo.media_type,
            remote_url=photo.remote_url,
            thumbnail_url=photo.thumbnail_remote_url,
            note=photo.note,
        )
        dto = await self.remote.create_photo(request)
        self.repository.mark_synced(Photo, photo.id, unchanged_since=photo.updated_at, remote_id=dto.id)
        self.logger.info(f"Created photo {photo.id} on server as {dto.id}")

    async def _upload_media(self, photo, project_remote_id):
        data = self.media.read_media(photo.local_path)
        if data is None:
            raise UploadFailedError(f"Media file for photo {photo.id} is missing: {photo.local_path}")
        if photo.hash_value and compute_photo_hash(data) != photo.hash_value:
            raise UploadFailedError(f"Media file for photo {photo.id} no longer matches its capture hash")

        content_type = photo.media_type.content_type
        filename = os.path.basename(photo.local_path or '') or f"{photo.id}.jpg"
        target = await self.remote.get_upload_target(project_remote_id, filename, content_type)
        if not is_valid_upload_url(target.upload_url):
            raise InvalidUploadTargetError(f"Invalid upload URL received: {target.upload_url!r}")

        await self.remote.upload_bytes(target.upload_url, data, content_type)
        thumbnail_url = await self._upload_thumbnail(photo, target)

        stored = self.repository.update(
            Photo, photo.id,
            {'remote_url': target.media_url, 'thumbnail_remote_url': thumbnail_url},
            touch=False,
        )
        self.logger.info(f"Uploaded media for photo {photo.id} to {target.media_url}")
        return stored or photo

    async def _upload_thumbnail(self, photo, target):
        """Best effort; a thumbnail problem never fails the photo."""
        if not target.thumbnail_upload_url:
            return target.thumbnail_url
        if photo.media_type != MediaType.PHOTO:
            return None
        if not is_valid_upload_url(target.thumbnail_upload_url):
            self.logger.warning(f"Ignoring invalid thumbnail upload URL for photo {photo.id}")
            return None

        thumbnail = self.media.thumbnail_bytes(photo.local_path, photo.thumbnail_local_path)
        if not thumbnail:
            self.logger.warning(f"No thumbnail available for photo {photo.id}")
            return None
        try:
            await self.remote.upload_bytes(target.thumbnail_upload_url, thumbnail, 'image/jpeg')
        except SyncError as e:
            self.logger.warning(f"Thumbnail upload failed for photo {photo.id}: {e}")
            return None
        return target.thumbnail_url

from shared.enums import SyncEntityType
from shared.models import Folder, Project
from shared.schemas import CreateFolderRequest
from .base import BaseSynchronizer


class FolderSynchronizer(BaseSynchronizer):
    """Pushes folder creation. Renames and deletes are not sent to the server."""

    entity_type = SyncEntityType.FOLDER

    async def create(self, item):
        folder = self.load_entity(item)
        if folder.remote_id:
            self.repository.mark_synced(Folder, folder.id, unchanged_since=folder.updated_at)
            return

        project_remote_id = self.parent_remote_id(Project, folder.project_id)
        request = CreateFolderRequest(name=folder.name, folder_type=folder.folder_type)
        dto = await self.remote.create_folder(project_remote_id, request)
        self.repository.mark_synced(Folder, folder.id, unchanged_since=folder.updated_at, remote_id=dto.id)
        self.logger.info(f"Created folder {folder.id} on server as {dto.id}")

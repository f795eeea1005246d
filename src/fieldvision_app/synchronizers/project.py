from shared.enums import SyncEntityType
from shared.models import Project
from shared.schemas import CreateProjectRequest, UpdateProjectRequest
from ..errors import MissingRemoteIdError, RemoteRejectedError
from .base import BaseSynchronizer


class ProjectSynchronizer(BaseSynchronizer):
    entity_type = SyncEntityType.PROJECT

    async def create(self, item):
        project = self.load_entity(item)
        if project.remote_id:
            # An earlier attempt reached the server; creating again would duplicate it.
            self.logger.info(f"Project {project.id} already has remote id {project.remote_id}; skipping create")
            self.repository.mark_synced(Project, project.id, unchanged_since=project.updated_at)
            return

        request = CreateProjectRequest(
            name=project.name,
            address=project.address or '',
            latitude=project.latitude,
            longitude=project.longitude,
            client_name=project.client_name,
            status=project.status,
        )
        dto = await self.remote.create_project(request)
        self.repository.mark_synced(Project, project.id, unchanged_since=project.updated_at, remote_id=dto.id)
        self.logger.info(f"Created project {project.id} on server as {dto.id}")

    async def update(self, item):
        project = self.load_entity(item)
        if not project.remote_id:
            raise MissingRemoteIdError(f"Project {project.id} has not been synced to server yet")

        request = UpdateProjectRequest(
            name=project.name,
            address=project.address,
            latitude=project.latitude,
            longitude=project.longitude,
            client_name=project.client_name,
            status=project.status,
        )
        await self.remote.update_project(project.remote_id, request)
        self.repository.mark_synced(Project, project.id, unchanged_since=project.updated_at)

    async def delete(self, item):
        project = self.repository.get_project(item.entity_id)
        remote_id = project.remote_id if project and project.remote_id else (item.payload or {}).get('remote_id')
        if not remote_id:
            self.logger.info(f"Project {item.entity_id} never reached the server; nothing to delete")
            return

        try:
            await self.remote.delete_project(remote_id)
        except RemoteRejectedError as e:
            if e.status_code != 404:
                raise
            self.logger.info(f"Project {remote_id} was already deleted on server")
        self.logger.info(f"Deleted project {remote_id} on server")

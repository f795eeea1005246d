"""Base class for per-entity synchronizers."""
import logging
from dataclasses import dataclass
from typing import Optional

from shared.enums import SyncOperation
from ..errors import SyncError, RemoteRejectedError, EntityNotFoundError, MissingRemoteIdError


@dataclass
class SyncResult:
    """Outcome of pushing one outbox item."""
    success: bool
    error: Optional[SyncError] = None

    @classmethod
    def ok(cls):
        return cls(success=True)

    @classmethod
    def failed(cls, error):
        return cls(success=False, error=error)


class BaseSynchronizer:
    """Pushes one entity type's outbox items to the remote service.

    Subclasses implement create/update/delete coroutines that raise SyncError
    subclasses on failure. sync() never raises: every exception becomes a
    failed SyncResult so one bad item cannot stop a drain.
    """

    entity_type = None

    def __init__(self, repository, remote, media=None):
        self.repository = repository
        self.remote = remote
        self.media = media
        self.logger = logging.getLogger(self.__class__.__name__)

    async def sync(self, item):
        handler = {
            SyncOperation.CREATE: self.create,
            SyncOperation.UPDATE: self.update,
            SyncOperation.DELETE: self.delete,
        }[item.operation]
        try:
            await handler(item)
            return SyncResult.ok()
        except SyncError as e:
            return SyncResult.failed(e)
        except Exception as e:
            self.logger.exception(f"Unexpected error syncing {item!r}")
            return SyncResult.failed(self._wrap_unexpected(e))

    @staticmethod
    def _wrap_unexpected(exc):
        status_code = getattr(getattr(exc, 'response', None), 'status_code', None)
        if status_code is None:
            status_code = getattr(exc, 'status_code', None)
        if status_code is not None:
            return RemoteRejectedError(str(exc), status_code=status_code)
        return SyncError(f"{type(exc).__name__}: {exc}")

    def load_entity(self, item):
        entity = self.repository.get_for_type(item.entity_type, item.entity_id)
        if entity is None:
            raise EntityNotFoundError(f"{item.entity_type.value} {item.entity_id} no longer exists locally")
        return entity

    def parent_remote_id(self, model, parent_id):
        """Server id of a parent record; children wait until their parent is synced."""
        parent = self.repository.get(model, parent_id) if parent_id else None
        if parent is None or not parent.remote_id:
            raise MissingRemoteIdError(f"{model.__name__} {parent_id} has not been synced to server yet")
        return parent.remote_id

    async def create(self, item):
        raise NotImplementedError

    async def update(self, item):
        self.logger.debug(f"{item.operation.value} is not pushed for {item.entity_type.value}; skipping")

    async def delete(self, item):
        self.logger.debug(f"{item.operation.value} is not pushed for {item.entity_type.value}; skipping")

"""Error taxonomy for outbox processing.

Synchronizers and the remote service raise these; the sync engine turns them
into per-item failure records. ``retryable`` is False only for errors where
another attempt can never succeed (the local record is gone).
"""


class SyncError(Exception):
    """Base class for every failure the sync engine knows how to record."""

    code = 'sync_error'
    retryable = True
    default_message = 'Sync failed'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class FetchFailedError(SyncError):
    code = 'fetch_failed'
    default_message = 'Failed to fetch sync items'


class EntityNotFoundError(SyncError):
    code = 'entity_not_found'
    retryable = False
    default_message = 'Entity not found in local database'


class MissingRemoteIdError(SyncError):
    """A required server id (own or parent's) does not exist yet."""
    code = 'missing_remote_id'
    default_message = 'Entity has not been synced to server yet'


class InvalidUploadTargetError(SyncError):
    code = 'invalid_upload_target'
    default_message = 'Invalid upload URL received'


class UploadFailedError(SyncError):
    code = 'upload_failed'
    default_message = 'Failed to upload media'

    def __init__(self, message=None, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class RemoteRejectedError(SyncError):
    code = 'remote_rejected'
    default_message = 'Server rejected the request'

    def __init__(self, message=None, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class NetworkUnavailableError(SyncError):
    code = 'network_unavailable'
    default_message = 'Network connection unavailable'

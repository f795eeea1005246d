import enum


class SyncStatus(str, enum.Enum):
    """Sync state carried by every syncable entity.

    PENDING and FAILED both mean the entity still needs to reach the server;
    FAILED is surfaced to the user once the retry budget is exhausted.
    """
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


class SyncEntityType(str, enum.Enum):
    """Entity kinds that can be referenced by an outbox item."""
    PROJECT = "project"
    FOLDER = "folder"
    PHOTO = "photo"
    COMMENT = "comment"
    SHARE_LINK = "share_link"


class SyncOperation(str, enum.Enum):
    """Remote operation an outbox item asks for."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncPriority(int, enum.Enum):
    """Outbox priority. Higher values are drained first."""
    LOW = 0
    NORMAL = 1
    HIGH = 2
    CRITICAL = 3


class ProjectStatus(str, enum.Enum):
    """Project lifecycle stages."""
    WALKTHROUGH = "walkthrough"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class FolderType(str, enum.Enum):
    LOCATION = "location"
    PHASE = "phase"
    CUSTOM = "custom"


class MediaType(str, enum.Enum):
    """Captured media kinds."""
    PHOTO = "photo"
    VIDEO = "video"

    @property
    def content_type(self):
        return "image/jpeg" if self is MediaType.PHOTO else "video/quicktime"

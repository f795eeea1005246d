from datetime import datetime, timezone
import uuid
from sqlalchemy import Column, Integer, String, Float, Boolean, Text, DateTime, ForeignKey, Index, Enum, JSON
from sqlalchemy.orm import relationship, declarative_base
from shared.enums import SyncStatus, SyncEntityType, SyncOperation, SyncPriority, ProjectStatus, FolderType, MediaType

Base = declarative_base()

# All timestamps are UTC. SQLite drops tzinfo on storage, so values are kept
# naive throughout to make stored and in-memory datetimes comparable.


def now():
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value):
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id():
    """Generate a local entity identifier."""
    return str(uuid.uuid4())


class SyncableMixin:
    """Columns shared by every entity that is pushed to the server."""

    id = Column(String(36), primary_key=True, default=new_id)
    remote_id = Column(String(100), nullable=True, index=True)
    sync_status = Column(Enum(SyncStatus), default=SyncStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=now)
    # Bumped explicitly on local mutations, not on sync bookkeeping.
    updated_at = Column(DateTime, default=now)


class Project(Base, SyncableMixin):
    __tablename__ = 'projects'
    name = Column(String(200), nullable=False, server_default="")
    address = Column(Text, server_default="")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    client_name = Column(String(200), nullable=True)
    status = Column(Enum(ProjectStatus), default=ProjectStatus.WALKTHROUGH, nullable=False)
    folders = relationship('Folder', backref='project', lazy='select', cascade="all, delete-orphan")
    photos = relationship('Photo', backref='project', lazy='select', cascade="all, delete-orphan")
    share_links = relationship('ShareLink', backref='project', lazy='select', cascade="all, delete-orphan")


class Folder(Base, SyncableMixin):
    __tablename__ = 'folders'
    name = Column(String(200), nullable=False, server_default="")
    folder_type = Column(Enum(FolderType), default=FolderType.CUSTOM, nullable=False)
    sort_order = Column(Integer, default=0, server_default="0")
    project_id = Column(String(36), ForeignKey('projects.id', ondelete='CASCADE'), index=True)
    photos = relationship('Photo', backref='folder', lazy='select')


class Photo(Base, SyncableMixin):
    __tablename__ = 'photos'
    project_id = Column(String(36), ForeignKey('projects.id', ondelete='CASCADE'), index=True)
    folder_id = Column(String(36), ForeignKey('folders.id', ondelete='SET NULL'), index=True, nullable=True)
    uploader_name = Column(String(200), nullable=True)
    captured_at = Column(DateTime, default=now, index=True)
    latitude = Column(Float, server_default="0.0")
    longitude = Column(Float, server_default="0.0")
    media_type = Column(Enum(MediaType), default=MediaType.PHOTO, nullable=False)
    local_path = Column(String(500), server_default="")
    remote_url = Column(String(1000), nullable=True)
    thumbnail_local_path = Column(String(500), nullable=True)
    thumbnail_remote_url = Column(String(1000), nullable=True)
    hash_value = Column(String(64), server_default="")
    size_bytes = Column(Integer, server_default="0")
    note = Column(Text, nullable=True)
    comments = relationship('Comment', backref='photo', lazy='select', cascade="all, delete-orphan")


class Comment(Base, SyncableMixin):
    __tablename__ = 'comments'
    photo_id = Column(String(36), ForeignKey('photos.id', ondelete='CASCADE'), index=True)
    user_name = Column(String(200), server_default="")
    text = Column(Text, nullable=False, server_default="")


class ShareLink(Base, SyncableMixin):
    __tablename__ = 'share_links'
    project_id = Column(String(36), ForeignKey('projects.id', ondelete='CASCADE'), index=True)
    token = Column(String(100), server_default="")
    share_url = Column(String(1000), nullable=True)
    folder_ids = Column(JSON, default=list)
    expires_at = Column(DateTime, nullable=True)
    password_protected = Column(Boolean, default=False, server_default='0')
    allow_download = Column(Boolean, default=False, server_default='0')
    allow_comments = Column(Boolean, default=False, server_default='0')
    is_active = Column(Boolean, default=True, server_default='1')


# Entity type -> model class, used by the outbox, engine and reconciler.
ENTITY_MODELS = {
    SyncEntityType.PROJECT: Project,
    SyncEntityType.FOLDER: Folder,
    SyncEntityType.PHOTO: Photo,
    SyncEntityType.COMMENT: Comment,
    SyncEntityType.SHARE_LINK: ShareLink,
}


class SyncQueueItem(Base):
    """Durable outbox entry for one pending remote mutation."""
    __tablename__ = 'sync_queue'
    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(Enum(SyncEntityType), nullable=False)
    entity_id = Column(String(36), nullable=False, index=True)
    operation = Column(Enum(SyncOperation), nullable=False)
    priority = Column(Integer, default=int(SyncPriority.NORMAL), nullable=False)
    retry_count = Column(Integer, default=0, nullable=False)
    last_attempt_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=now, nullable=False)

    @property
    def priority_level(self):
        return SyncPriority(self.priority)

    def __repr__(self):
        return (f"<SyncQueueItem {self.id} {self.entity_type.value}:{self.entity_id} "
                f"{self.operation.value} p={self.priority} retries={self.retry_count}>")

Index('idx_sync_queue_order', SyncQueueItem.retry_count, SyncQueueItem.priority, SyncQueueItem.created_at)
Index('idx_sync_queue_entity', SyncQueueItem.entity_type, SyncQueueItem.entity_id)

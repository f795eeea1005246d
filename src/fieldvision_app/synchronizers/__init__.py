"""Per-entity synchronizers used by the sync engine."""
from .base import BaseSynchronizer, SyncResult
from .project import ProjectSynchronizer
from .folder import FolderSynchronizer
from .photo import PhotoSynchronizer
from .comment import CommentSynchronizer
from .share_link import ShareLinkSynchronizer

SYNCHRONIZER_CLASSES = (
    ProjectSynchronizer,
    FolderSynchronizer,
    PhotoSynchronizer,
    CommentSynchronizer,
    ShareLinkSynchronizer,
)


def build_synchronizers(repository, remote, media=None):
    """Map each entity type to a synchronizer instance."""
    return {cls.entity_type: cls(repository, remote, media) for cls in SYNCHRONIZER_CLASSES}


__all__ = [
    'BaseSynchronizer',
    'SyncResult',
    'ProjectSynchronizer',
    'FolderSynchronizer',
    'PhotoSynchronizer',
    'CommentSynchronizer',
    'ShareLinkSynchronizer',
    'build_synchronizers',
]

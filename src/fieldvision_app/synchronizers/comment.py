from shared.enums import SyncEntityType
from shared.models import Comment, Photo
from .base import BaseSynchronizer


class CommentSynchronizer(BaseSynchronizer):
    entity_type = SyncEntityType.COMMENT

    async def create(self, item):
        comment = self.load_entity(item)
        if comment.remote_id:
            self.repository.mark_synced(Comment, comment.id, unchanged_since=comment.updated_at)
            return

        photo_remote_id = self.parent_remote_id(Photo, comment.photo_id)
        dto = await self.remote.create_comment(photo_remote_id, comment.text)
        self.repository.mark_synced(Comment, comment.id, unchanged_since=comment.updated_at, remote_id=dto.id)
        self.logger.info(f"Created comment {comment.id} on server as {dto.id}")

from shared.enums import SyncEntityType
from .base import BaseSynchronizer


class ShareLinkSynchronizer(BaseSynchronizer):
    """Share links are created online by SyncCoordinator.create_share_link.

    Queued share link items have nothing to push and succeed immediately.
    """

    entity_type = SyncEntityType.SHARE_LINK

    async def create(self, item):
        self.logger.debug(f"Share link {item.entity_id} is created online; nothing to push")

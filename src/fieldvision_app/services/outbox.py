"""Durable outbox of local mutations waiting to reach the server."""
import logging

from sqlalchemy.exc import SQLAlchemyError

from shared.enums import SyncOperation, SyncPriority
from shared.models import SyncQueueItem, now
from ..errors import FetchFailedError


class OutboxQueue:
    """Ordered, persistent queue of pending remote operations.

    Items are never deduplicated: a create followed by an update for the same
    entity yields two rows. An item leaves the queue only through remove().
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.logger = logging.getLogger(self.__class__.__name__)

    def _get_session(self):
        return self.session_factory()

    def enqueue(self, entity_type, entity_id, operation, priority=SyncPriority.NORMAL, payload=None):
        """Append a durable item and return it."""
        session = self._get_session()
        try:
            item = SyncQueueItem(
                entity_type=entity_type,
                entity_id=entity_id,
                operation=operation,
                priority=int(priority),
                retry_count=0,
                payload=payload,
                created_at=now(),
            )
            session.add(item)
            session.commit()
            session.refresh(item)
            self.logger.debug(f"Enqueued {item!r}")
            return item
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def fetch_pending(self, max_retry):
        """Items with retry_count < max_retry, highest priority first, oldest first within a priority.

        Raises:
            FetchFailedError: If the queue cannot be read.
        """
        session = self._get_session()
        try:
            return (
                session.query(SyncQueueItem)
                .filter(SyncQueueItem.retry_count < max_retry)
                .order_by(
                    SyncQueueItem.priority.desc(),
                    SyncQueueItem.created_at.asc(),
                    SyncQueueItem.id.asc(),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to read outbox: {e}")
            raise FetchFailedError(f"Failed to fetch sync items: {e}") from e
        finally:
            session.close()

    def remove(self, item):
        """Delete an item after its remote operation is confirmed."""
        session = self._get_session()
        try:
            deleted = session.query(SyncQueueItem).filter_by(id=item.id).delete()
            session.commit()
            return deleted > 0
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def record_failure(self, item, error):
        """Bump retry bookkeeping for a failed attempt; the item stays queued.

        Returns:
            int: The item's new retry count.
        """
        session = self._get_session()
        try:
            stored = session.get(SyncQueueItem, item.id)
            if stored is None:
                return item.retry_count
            stored.retry_count += 1
            stored.last_attempt_at = now()
            stored.error_message = str(error)
            session.commit()
            item.retry_count = stored.retry_count
            item.last_attempt_at = stored.last_attempt_at
            item.error_message = stored.error_message
            return stored.retry_count
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def count(self, max_retry):
        """Number of items still eligible for another attempt."""
        session = self._get_session()
        try:
            return session.query(SyncQueueItem).filter(SyncQueueItem.retry_count < max_retry).count()
        finally:
            session.close()

    def items_for_entity(self, entity_type, entity_id):
        session = self._get_session()
        try:
            return (
                session.query(SyncQueueItem)
                .filter_by(entity_type=entity_type, entity_id=entity_id)
                .order_by(SyncQueueItem.id)
                .all()
            )
        finally:
            session.close()

    def pending_delete_remote_ids(self, entity_type):
        """Remote ids captured by queued deletes of one entity type, whatever their retry count."""
        session = self._get_session()
        try:
            items = (
                session.query(SyncQueueItem)
                .filter_by(entity_type=entity_type, operation=SyncOperation.DELETE)
                .all()
            )
            return {item.payload['remote_id'] for item in items if item.payload and item.payload.get('remote_id')}
        finally:
            session.close()

    def reset_failed(self, max_retry, entity_ids=None):
        """Make exhausted items eligible again (manual "retry now").

        Args:
            max_retry: Retry cap; items at or above it are reset.
            entity_ids: Optional iterable restricting the reset to these entities.

        Returns:
            list: The reset items.
        """
        session = self._get_session()
        try:
            query = session.query(SyncQueueItem).filter(SyncQueueItem.retry_count >= max_retry)
            if entity_ids is not None:
                query = query.filter(SyncQueueItem.entity_id.in_(list(entity_ids)))
            items = query.all()
            for item in items:
                item.retry_count = 0
                item.error_message = None
                self.logger.info(f"Reset exhausted outbox item {item.id} for {item.entity_type.value} {item.entity_id}")
            session.commit()
            return items
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

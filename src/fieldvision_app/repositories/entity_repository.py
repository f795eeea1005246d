"""Repository for CRUD operations on syncable entities."""
import logging

from shared.enums import SyncStatus
from shared.models import ENTITY_MODELS, Project, Folder, Photo, Comment, ShareLink, now


class EntityRepository:
    """Database CRUD for projects, folders, photos, comments and share links.

    Every method opens and closes its own session. Returned objects are
    detached; their column attributes stay readable but relationships are not
    loaded, so callers look parents up by id.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.logger = logging.getLogger(self.__class__.__name__)

    def _get_session(self):
        return self.session_factory()

    # Generic operations
    def get(self, model, entity_id):
        session = self._get_session()
        try:
            return session.get(model, entity_id)
        finally:
            session.close()

    def get_for_type(self, entity_type, entity_id):
        """Look up an entity by its outbox entity type."""
        return self.get(ENTITY_MODELS[entity_type], entity_id)

    def find_all(self, model, **filters):
        session = self._get_session()
        try:
            return session.query(model).filter_by(**filters).order_by(model.created_at).all()
        finally:
            session.close()

    def create(self, model, data):
        session = self._get_session()
        try:
            entity = model(**data)
            session.add(entity)
            session.commit()
            session.refresh(entity)
            return entity
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def update(self, model, entity_id, data, touch=True):
        """Apply field changes. touch=True marks a local edit and bumps updated_at."""
        session = self._get_session()
        try:
            entity = session.get(model, entity_id)
            if not entity:
                return None
            for key, value in data.items():
                setattr(entity, key, value)
            if touch:
                entity.updated_at = now()
            session.commit()
            session.refresh(entity)
            return entity
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def delete(self, model, entity_id):
        session = self._get_session()
        try:
            entity = session.get(model, entity_id)
            if entity:
                session.delete(entity)
                session.commit()
            return entity is not None
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def set_sync_status(self, entity_type, entity_id, status):
        """Flip sync_status without counting it as a local edit."""
        entity = self.update(ENTITY_MODELS[entity_type], entity_id, {'sync_status': status}, touch=False)
        if entity is None:
            self.logger.debug(f"Cannot set {entity_type.value} {entity_id} to {status.value}: not found")
        return entity

    def mark_synced(self, model, entity_id, unchanged_since=None, **fields):
        """Record a confirmed remote write, storing any server-assigned fields.

        When unchanged_since is given and the row was edited locally after it,
        the fields are stored but the row stays unsynced so the newer edit
        still goes out.
        """
        session = self._get_session()
        try:
            entity = session.get(model, entity_id)
            if not entity:
                return None
            for key, value in fields.items():
                setattr(entity, key, value)
            if unchanged_since is None or entity.updated_at == unchanged_since:
                entity.sync_status = SyncStatus.SYNCED
            else:
                self.logger.info(f"{model.__name__} {entity_id} changed during sync; leaving it {entity.sync_status.value}")
            session.commit()
            session.refresh(entity)
            return entity
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def transition_status(self, entity_type, entity_id, expected, status):
        """Set sync_status only if it currently equals expected. Returns True on change."""
        session = self._get_session()
        try:
            entity = session.get(ENTITY_MODELS[entity_type], entity_id)
            if not entity or entity.sync_status != expected:
                return False
            entity.sync_status = status
            session.commit()
            return True
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def reset_interrupted(self):
        """Return rows left 'syncing' by an interrupted drain to 'pending'."""
        session = self._get_session()
        try:
            reset = 0
            for model in ENTITY_MODELS.values():
                reset += (session.query(model)
                          .filter_by(sync_status=SyncStatus.SYNCING)
                          .update({'sync_status': SyncStatus.PENDING}, synchronize_session=False))
            session.commit()
            if reset:
                self.logger.info(f"Reset {reset} entities interrupted mid-sync")
            return reset
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def count_by_status(self, model, status):
        session = self._get_session()
        try:
            return session.query(model).filter_by(sync_status=status).count()
        finally:
            session.close()

    # Project operations
    def get_project(self, project_id):
        return self.get(Project, project_id)

    def get_projects(self):
        return self.find_all(Project)

    def save_project(self, project_data):
        return self.create(Project, project_data)

    # Folder operations
    def get_folder(self, folder_id):
        return self.get(Folder, folder_id)

    def get_folders_for_project(self, project_id):
        return self.find_all(Folder, project_id=project_id)

    def save_folder(self, folder_data):
        return self.create(Folder, folder_data)

    # Photo operations
    def get_photo(self, photo_id):
        return self.get(Photo, photo_id)

    def get_photos_for_project(self, project_id):
        return self.find_all(Photo, project_id=project_id)

    def save_photo(self, photo_data):
        return self.create(Photo, photo_data)

    # Comment operations
    def get_comment(self, comment_id):
        return self.get(Comment, comment_id)

    def get_comments_for_photo(self, photo_id):
        return self.find_all(Comment, photo_id=photo_id)

    def save_comment(self, comment_data):
        return self.create(Comment, comment_data)

    # Share link operations
    def get_share_links_for_project(self, project_id):
        return self.find_all(ShareLink, project_id=project_id)

    def save_share_link(self, share_link_data):
        return self.create(ShareLink, share_link_data)

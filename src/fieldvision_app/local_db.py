from contextlib import contextmanager
from pathlib import Path
import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from shared.models import Base
from .repositories.entity_repository import EntityRepository
from .services.outbox import OutboxQueue
from .services.image_service import ImageService


class LocalDatabase:
    """Durable local store: syncable entities plus the outbox table.

    Owns the SQLAlchemy engine and hands the same session factory to the
    entity repository and the outbox so both write to one SQLite file.
    """

    def __init__(self, db_path='fieldvision.db', thumbnail_max_size=300):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.logger.info(f"Initializing LocalDatabase with path: {db_path}")

        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self.media_dir = Path(self.db_path).parent / 'media'
        self.media_dir.mkdir(parents=True, exist_ok=True)

        # The engine is shared by the sync loop thread and callers on other threads.
        self.engine = create_engine(
            f'sqlite:///{self.db_path}',
            connect_args={'check_same_thread': False},
        )

        @event.listens_for(self.engine, "connect")
        def enable_foreign_keys(db_conn, conn_record):
            cursor = db_conn.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        self.logger.info("Creating database tables")
        Base.metadata.create_all(self.engine)

        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

        self.repository = EntityRepository(self.Session)
        self.outbox = OutboxQueue(self.Session)
        self.media = ImageService(self.media_dir, thumbnail_max_size=thumbnail_max_size)
        self.logger.info("Services initialized: repository, outbox, media")

    @contextmanager
    def session_scope(self):
        """Provide a transactional scope around a series of operations."""
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        """Dispose of the engine."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            self.logger.info("Database engine disposed")

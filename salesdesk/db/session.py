"""
Database session management for the salesdesk application.
"""

from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker

from salesdesk.logging_config import configure_logging

logger = configure_logging(
    name="salesdesk.db",
    logfile="salesdesk.log",
    level=None  # Will use environment-based level
)


class Database:
    """Owns the engine and the session factory. Constructed once at startup."""

    def __init__(self, database_url):
        self.database_url = database_url
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Concurrent writers wait for SQLite's write lock instead of failing immediately.
            connect_args = {"check_same_thread": False, "timeout": 30}

        try:
            self.engine = create_engine(database_url, connect_args=connect_args, future=True)
            if database_url.startswith("sqlite"):
                event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
            with self.engine.connect():
                logger.debug("Successfully connected to database")
        except Exception as e:
            logger.error("Failed to connect to database: %s", str(e), exc_info=True)
            raise

        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False, future=True)

    def create_all(self):
        from salesdesk.db.models import Base

        Base.metadata.create_all(bind=self.engine)

    def get_session(self):
        """Get a new database session."""
        try:
            session = self.SessionLocal()
            session.execute(text("SELECT 1"))
            return session
        except Exception as e:
            logger.error("Failed to create database session: %s", str(e), exc_info=True)
            raise

    @contextmanager
    def session_scope(self):
        """One unit of work: commit on success, roll back on error, always close."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self):
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()

"""
Database engine + session factory.

A Store is built once at process start (create_app) and handed to whatever
needs the database, so tests can inject an in-memory SQLite store instead.
Defaults to SQLite for local dev, Postgres in production.
"""
import logging
from contextlib import contextmanager

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from casedesk.config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_CONNECT_TIMEOUT
from casedesk.errors import StoreError

logger = logging.getLogger('casedesk.database')


class Base(DeclarativeBase):
    pass


def make_engine(url):
    """Create an engine with dialect-appropriate kwargs."""
    # Hosting platforms inject postgres:// but SQLAlchemy 2.x requires postgresql://
    url = url.replace('postgres://', 'postgresql://', 1)

    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=DB_POOL_SIZE,
        max_overflow=DB_MAX_OVERFLOW,
        connect_args={'connect_timeout': DB_CONNECT_TIMEOUT},
    )


class Store:
    """Owns the connection pool and hands out sessions."""

    def __init__(self, url=None, engine=None):
        self.engine = engine if engine is not None else make_engine(url or DATABASE_URL)
        self._sessionmaker = sessionmaker(bind=self.engine, expire_on_commit=False)

    def session(self):
        """Return a new DB session."""
        return self._sessionmaker()

    @contextmanager
    def session_scope(self):
        """
        Transactional scope: commit on success, rollback on any error.

        SQLAlchemy errors are re-raised as StoreError so callers only deal
        with the casedesk taxonomy.
        """
        session = self.session()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError.from_exception(e) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self):
        """Round-trip a trivial statement. Raises StoreError when unreachable."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text('SELECT 1'))
        except SQLAlchemyError as e:
            raise StoreError.from_exception(e, 'Database unreachable') from e

    def table_names(self):
        """Names of the tables currently present in the database."""
        try:
            return set(inspect(self.engine).get_table_names())
        except SQLAlchemyError as e:
            raise StoreError.from_exception(e, 'Could not inspect database tables') from e

    def create_all(self):
        """Create every mapped table. Used by tests and local SQLite dev."""
        import casedesk.models  # noqa: F401 — register models with Base
        Base.metadata.create_all(self.engine)

    def dispose(self):
        self.engine.dispose()

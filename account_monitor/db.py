# account_monitor/db.py
"""Ledger database engine and session management"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from account_monitor.models.db import Base

logger = logging.getLogger(__name__)

# Balance cycles hit the database from every worker thread
SERVER_POOL_OPTIONS = {'pool_size': 25, 'max_overflow': 5, 'pool_recycle': 300, 'pool_pre_ping': True}


class Database:
    """Owns the engine and hands out transactional sessions to the ledger store"""

    def __init__(self):
        self._engine = None
        self._sessions = None

    def init(self, connection_string: str) -> None:
        """
        Connect to the ledger database and create any missing tables.

        Args:
            connection_string: SQLAlchemy URL, see DatabaseManager.connection_string

        Raises:
            SQLAlchemyError: If the engine cannot be created or the schema cannot be applied
        """
        try:
            self._engine = create_engine(connection_string, **self._engine_options(connection_string))
            Base.metadata.create_all(self._engine)
            self._sessions = sessionmaker(bind=self._engine, expire_on_commit=False)
            logger.info(f"Ledger database ready ({self._engine.dialect.name})")
        except SQLAlchemyError as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    @staticmethod
    def _engine_options(connection_string: str) -> dict:
        if not connection_string.startswith('sqlite'):
            return dict(SERVER_POOL_OPTIONS)

        options = {'connect_args': {'check_same_thread': False}}
        if ':memory:' in connection_string or connection_string.rstrip('/') == 'sqlite:':
            # One shared connection so every session sees the same in-memory database
            options['poolclass'] = StaticPool
        return options

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Transactional scope: commits on success, rolls back and re-raises on any error.

            with db.session() as session:
                session.add(BalanceRecord(...))

        Raises:
            RuntimeError: If init() has not been called
        """
        if self._sessions is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._sessions()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Close pooled connections on shutdown"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._sessions = None


db = Database()

"""Database session management."""

from contextlib import contextmanager
from typing import Dict, Any, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session as SQLAlchemySession

from tribora.utils.config import load_config
from tribora.utils.logger import setup_worker_logger


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, engine: Optional[Engine] = None):
        self.logger = setup_worker_logger('database')
        db_config = (config or {}).get('database', {})

        if engine is not None:
            self.engine = engine
        else:
            url = db_config.get('url')
            if not url:
                raise RuntimeError("database.url is not configured (set DATABASE_URL)")
            self.engine = self._create_engine(url, db_config)

        self.session_factory = sessionmaker(bind=self.engine)

    def _create_engine(self, url: str, db_config: Dict[str, Any]) -> Engine:
        pool_config = db_config.get('pool', {})
        kwargs = {'echo': db_config.get('echo', False), 'pool_pre_ping': True}
        if pool_config.get('enabled', True) and not url.startswith('sqlite'):
            kwargs.update(
                pool_size=pool_config.get('size', 10),
                max_overflow=pool_config.get('max_overflow', 20),
                pool_recycle=pool_config.get('recycle', 1800),
            )
            self.logger.info(f"Initializing database connection pool (size={kwargs['pool_size']})")
        masked = url.split('@')[-1] if '@' in url else url
        self.logger.info(f"Creating engine for {masked}")
        return create_engine(url, **kwargs)

    def session(self) -> SQLAlchemySession:
        """Return a new session; the caller owns commit and close."""
        return self.session_factory()

    @contextmanager
    def session_scope(self):
        """Transactional scope: commit on success, rollback on error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            self.logger.error(f"Database connection test failed: {e}")
            return False

    def init_db(self) -> None:
        """Create all tables (and the pgvector extension on PostgreSQL)."""
        from .models import Base
        if self.engine.dialect.name == 'postgresql':
            with self.engine.begin() as conn:
                conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        Base.metadata.create_all(self.engine)
        self.logger.info("Successfully initialized database schema")

    def dispose(self) -> None:
        self.engine.dispose()


# Global database instance (lazy initialized)
_database: Optional[Database] = None


def get_database(config: Optional[Dict[str, Any]] = None) -> Database:
    """Get or create the process-wide Database from config (loads config.yaml if omitted)."""
    global _database
    if _database is None:
        _database = Database(config if config is not None else load_config())
    return _database


@contextmanager
def get_session():
    """Context manager for sessions on the global Database."""
    with get_database().session_scope() as session:
        yield session


def init_db(config: Optional[Dict[str, Any]] = None) -> None:
    """Initialize the database schema."""
    get_database(config).init_db()

"""
Database management module for the GoldSphere order service.

Provides an explicitly constructed PostgreSQL connection manager with:
- Connection pooling
- Health monitoring
- Session management
- Transaction utilities

The application entry point owns the instance: it connects at startup,
hands it to request handlers through dependency injection, and disposes it
on shutdown. There is no module-level connection singleton.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from fastapi import Request
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from goldsphere.core.config import Settings, get_settings
from goldsphere.core.error_handling import DatabaseConnectionError

logger = logging.getLogger(__name__)

# Base class for SQLAlchemy models
Base = declarative_base()


class PostgresDB:
    """
    PostgreSQL database connection manager.
    
    Handles connection pooling, session management, and health checks.
    Any SQLAlchemy URL is accepted, which lets tests run against SQLite.
    """
    
    def __init__(self, settings: Optional[Settings] = None, url: Optional[str] = None):
        """
        Initialize the connection manager.
        
        Args:
            settings: Application settings (uses singleton if not provided)
            url: Database URL overriding the one assembled from settings
        """
        self.settings = settings or get_settings()
        self.url = url or str(self.settings.db.POSTGRES_URI)
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker] = None
        self.is_connected = False

    @classmethod
    def from_url(cls, url: str, settings: Optional[Settings] = None) -> "PostgresDB":
        """Build and connect a manager for an explicit URL."""
        db = cls(settings=settings, url=url)
        db.connect()
        return db
    
    @property
    def is_sqlite(self) -> bool:
        return make_url(self.url).get_backend_name() == "sqlite"

    def _engine_kwargs(self) -> Dict[str, Any]:
        if self.is_sqlite:
            return {
                "connect_args": {"check_same_thread": False, "timeout": 15},
            }
        db_settings = self.settings.db
        return {
            "pool_pre_ping": True,
            "pool_size": db_settings.POSTGRES_MIN_CONNECTIONS,
            "max_overflow": db_settings.POSTGRES_MAX_CONNECTIONS - db_settings.POSTGRES_MIN_CONNECTIONS,
            "pool_recycle": 3600,
            "connect_args": {
                "connect_timeout": 10,
                "options": f"-c statement_timeout={db_settings.POSTGRES_STATEMENT_TIMEOUT}",
            },
        }

    def connect(self) -> None:
        """
        Create the connection pool and session factory, then verify connectivity.
        """
        try:
            self.engine = create_engine(self.url, **self._engine_kwargs())
            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self.engine
            )
            self._register_event_listeners()
            
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            
            self.is_connected = True
            logger.info(f"Database connection established ({self.engine.dialect.name})")
        
        except Exception as e:
            self.is_connected = False
            logger.error(f"Failed to connect to database: {e}")
            raise DatabaseConnectionError(f"Failed to connect to database: {e}", db_name="postgres") from e
    
    def disconnect(self) -> None:
        """Close the connection pool."""
        if self.engine:
            self.engine.dispose()
            self.is_connected = False
            logger.info("Database connection closed")
    
    def check_health(self) -> bool:
        """
        Check if the connection is healthy.
        
        Returns:
            True if connection is healthy, False otherwise
        """
        if not self.engine:
            return False
        
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
    
    def _require_session_factory(self) -> sessionmaker:
        if not self.SessionLocal:
            raise DatabaseConnectionError("Database connection not initialized. Call connect() first.")
        return self.SessionLocal

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Get a read-oriented database session as a context manager.
        
        Yields:
            SQLAlchemy session, rolled back on error and always closed
        
        Example:
            ```
            with db.session() as session:
                order = session.get(Order, order_id)
            ```
        """
        session = self._require_session_factory()()
        try:
            yield session
        except Exception as e:
            logger.debug(f"Database session error: {e}")
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def transaction(self, isolation_level: Optional[str] = None) -> Generator[Session, None, None]:
        """
        Run a unit of work in a single transaction.

        Commits when the block exits normally and rolls back on any exception,
        including cancellation, so nothing partial is ever committed.

        Args:
            isolation_level: Optional isolation level, e.g. "SERIALIZABLE"

        Yields:
            SQLAlchemy session bound to the transaction
        """
        session = self._require_session_factory()()
        try:
            if isolation_level:
                session.connection(execution_options={"isolation_level": isolation_level})
            yield session
            session.commit()
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()
    
    def get_status(self) -> Dict[str, Any]:
        """Get status information about the connection pool."""
        status = {
            "name": self.__class__.__name__,
            "connected": self.is_connected,
        }
        
        if self.engine and not self.is_sqlite:
            pool = self.engine.pool
            status.update({
                "pool_size": pool.size(),
                "pool_checkedin": pool.checkedin(),
                "pool_overflow": pool.overflow(),
                "pool_checkedout": pool.checkedout(),
            })
        
        return status
    
    def _register_event_listeners(self) -> None:
        """Register SQLAlchemy event listeners for connection management."""
        if not self.engine:
            return
        
        @event.listens_for(self.engine, "checkout")
        def checkout(dbapi_connection, connection_record, connection_proxy):
            logger.debug(f"Connection checkout: {id(dbapi_connection)}")
        
        @event.listens_for(self.engine, "checkin")
        def checkin(dbapi_connection, connection_record):
            logger.debug(f"Connection checkin: {id(dbapi_connection)}")

        if self.is_sqlite:
            @event.listens_for(self.engine, "connect")
            def enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()


def get_db(request: Request) -> PostgresDB:
    """
    Dependency injection function for FastAPI returning the database manager
    owned by the running application.

    Raises:
        DatabaseConnectionError: If the application has no connected database
    """
    db = getattr(request.app.state, "db", None)
    if db is None or not db.is_connected:
        raise DatabaseConnectionError("Database is not connected", db_name="postgres")
    return db

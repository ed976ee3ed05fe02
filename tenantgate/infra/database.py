"""Database engines and session management for the shared tenant directory."""

from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import QueuePool, StaticPool

from tenantgate.infra.config import config
from tenantgate.infra.timeout import connect_args_for


def engine_options(
    url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    timeout: int = 30,
) -> Dict[str, Any]:
    """
    Build create_engine() keyword arguments for a database URL.

    PostgreSQL gets a bounded QueuePool; SQLite (used for local development
    and tests) gets the pool SQLAlchemy recommends for its mode.
    """
    parsed = make_url(url)
    options: Dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": config.DEBUG,
        "connect_args": connect_args_for(url, timeout),
    }
    if parsed.get_backend_name() == "sqlite":
        if not parsed.database or parsed.database == ":memory:":
            # A single shared connection keeps an in-memory database alive
            options["poolclass"] = StaticPool
            options["connect_args"]["check_same_thread"] = False
        return options

    options.update(
        poolclass=QueuePool,
        pool_size=pool_size,  # Number of connections to maintain
        max_overflow=max_overflow,  # Max connections beyond pool_size
        pool_timeout=timeout,  # Seconds to wait for connection from pool
        pool_recycle=3600,  # Recycle connections after 1 hour
    )
    return options


def create_directory_engine(url: Optional[str] = None) -> Engine:
    """Create the engine for the shared tenant directory store."""
    url = url or config.DIRECTORY_DATABASE_URL
    return create_engine(url, **engine_options(url, timeout=config.CONNECTION_TIMEOUT_SECONDS))


engine = create_directory_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def get_db_session(session_factory: sessionmaker = SessionLocal) -> Generator[Session, None, None]:
    """
    Get a directory database session.

    Commits on success and rolls back on any exception.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI routes that need the directory store."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_directory(bind: Engine) -> None:
    """Create the tenant directory tables if they do not exist."""
    from tenantgate.models.directory import DirectoryBase

    DirectoryBase.metadata.create_all(bind=bind)


def ping(session: Session) -> bool:
    """Return True when the database answers a trivial query."""
    session.execute(text("SELECT 1"))
    return True

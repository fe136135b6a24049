"""Database configuration and session management.

The tutor row is the only shared mutable resource of the meeting core, so
the engine is configured for several workers writing to it at once:

    - **WAL (Write-Ahead Logging)**: readers keep going while a request
      holds the write lock to stamp a permanent link or take a lease.

    - **Foreign Keys**: ad-hoc meetings reference their tutor, and SQLite
      only enforces that when the pragma is on.

    - **check_same_thread=False**: FastAPI runs sync endpoints in a thread
      pool, so a connection may be used from a thread other than the one
      that opened it.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from tutormeet import models  # noqa: F401  registers tables on the metadata
from tutormeet.core.config import settings

connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,  # Log SQL statements when DEBUG=true
)


def set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite pragmas on each new connection.

    These settings are connection-level, not database-level, so they must
    be set each time a new connection is established from the pool.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


if engine.dialect.name == "sqlite":
    sa_event.listen(engine, "connect", set_sqlite_pragma)


def create_db_and_tables():
    """Create all database tables."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session

"""Engine and session factory.

SQLite URLs (local development and the test suite) get a single shared
connection so that in-memory databases survive across sessions, and take
over transaction begin from the driver so SAVEPOINTs behave.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ums.core.config import get_settings

settings = get_settings()


def build_engine(url: str, echo: bool = False):
    """Create an engine with pool settings appropriate for the backend."""
    engine_kwargs = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        engine_kwargs.update(
            {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        )

    engine = create_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = build_engine(settings.database_url, echo=settings.sql_echo)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

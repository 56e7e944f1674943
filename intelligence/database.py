"""
Database connection and session management.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config.settings import settings
from intelligence.models import Base


def make_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for the registry.

    SQLite gets the pysqlite transaction fix so SAVEPOINTs (used for
    optimistic inserts) behave the same as on Postgres.
    """
    engine = create_engine(url, echo=settings.DEBUG, future=True, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = make_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine = engine):
    """Initialize database tables."""
    if bind.url.drivername.startswith("sqlite") and bind.url.database:
        settings.project_root.joinpath("data").mkdir(exist_ok=True)
    Base.metadata.create_all(bind=bind)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

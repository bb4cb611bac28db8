# precast_pricing/db/session.py
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from precast_pricing.config import load_settings
from precast_pricing.logger import get_logger

logger = get_logger(__name__)

_engine: Optional[Engine] = None
_SessionLocal = None


def _engine_kwargs(db_url: str) -> dict:
    if db_url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def enable_sqlite_savepoints(engine: Engine) -> None:
    '''
    pysqlite defers BEGIN on its own and breaks SAVEPOINT; let SQLAlchemy emit
    BEGIN itself so begin_nested() works for imports and upserts.
    '''
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        db_url = load_settings().database_url
        if not db_url:
            raise RuntimeError("DATABASE_URL not set")
        logger.info("Using database URL: %s", db_url)
        _engine = create_engine(db_url, **_engine_kwargs(db_url))
        if _engine.dialect.name == "sqlite":
            enable_sqlite_savepoints(_engine)
    return _engine


def configure_engine(engine: Engine) -> None:
    '''
    Bind the module to an already-built engine (tests, workers).
    Drops the cached sessionmaker so the next get_session() uses it.
    '''
    global _engine, _SessionLocal
    _engine = engine
    _SessionLocal = None


def get_session() -> Session:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal()

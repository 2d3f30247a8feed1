import functools
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import Settings
from .logging_utils import log_warning
from .results import Err, ErrorKind

Base = declarative_base()


def build_engine(config: Settings) -> Engine:
    url = config.database_url
    if url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": max(config.lock_timeout_ms, 1) / 1000}
        engine = create_engine(url, connect_args=connect_args)
        _enable_sqlite_savepoints(engine)
        return engine

    connect_args = {}
    if url.startswith("postgresql"):
        connect_args["options"] = (
            f"-c statement_timeout={config.statement_timeout_ms} -c lock_timeout={config.lock_timeout_ms}"
        )
    return create_engine(url, pool_pre_ping=True, connect_args=connect_args)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    # pysqlite manages BEGIN itself and breaks SAVEPOINT; take over transaction control and turn on FKs.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):  # noqa: ANN001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """Commit everything done inside the block as one transaction, or nothing at all."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def is_postgres(db: Session) -> bool:
    return bool(db.bind and db.bind.dialect.name == "postgresql")


def storage_guard(func):
    """Turn storage failures escaping a core operation into a retryable ``storage_unavailable`` result."""

    @functools.wraps(func)
    def wrapper(db: Session, *args, **kwargs):
        try:
            return func(db, *args, **kwargs)
        except SQLAlchemyError as exc:
            db.rollback()
            log_warning("storage_unavailable", operation=func.__name__, error=str(exc))
            return Err(ErrorKind.storage_unavailable)

    return wrapper

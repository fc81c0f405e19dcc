# shopbook/db.py

import logging

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

logger = logging.getLogger(__name__)


def make_engine(database_url: str, echo: bool = False):
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False  # required for SQLite + FastAPI
        if ":memory:" in database_url or database_url == "sqlite://":
            # one shared connection, otherwise every session sees an empty database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, echo=echo, connect_args=connect_args, **kwargs)
    if engine.dialect.name == "sqlite":
        _begin_immediate(engine)
    logger.info("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def create_db_and_tables(engine):
    # import for side effect: registers the table metadata
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# Dependency: one session per request, engine owned by the application
def get_session(request: Request):
    with Session(request.app.state.engine) as session:
        yield session


def _begin_immediate(engine):
    """
    Start every SQLite transaction with BEGIN IMMEDIATE.

    pysqlite defers BEGIN until the first write, so a read-check-insert
    sequence would run its reads outside any transaction. Taking the write
    lock up front makes the REJECT booking check and its insert atomic on
    SQLite, where SELECT ... FOR UPDATE is ignored.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

from __future__ import annotations
from typing import Tuple
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base


Base = declarative_base()

# Seconds a SQLite writer waits for the lock
SQLITE_BUSY_TIMEOUT = 30


def _enable_sqlite_savepoints(engine: Engine) -> None:
	# pysqlite defers BEGIN on its own, which breaks SAVEPOINT nesting.
	# IMMEDIATE takes the write lock at BEGIN; other writers wait on the busy
	# timeout rather than failing a read-to-write lock upgrade.
	@event.listens_for(engine, "connect")
	def _on_connect(dbapi_connection, connection_record):
		dbapi_connection.isolation_level = None

	@event.listens_for(engine, "begin")
	def _on_begin(conn):
		conn.exec_driver_sql("BEGIN IMMEDIATE")


def make_engine(database_url: str) -> Engine:
	is_sqlite = database_url.startswith("sqlite")
	connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {}
	engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True, future=True)
	if is_sqlite:
		_enable_sqlite_savepoints(engine)
	return engine


def make_session_factory(database_url: str) -> Tuple[Engine, sessionmaker]:
	engine = make_engine(database_url)
	return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def ensure_schema(engine: Engine) -> None:
	# Register the analytics tables on Base before creating them
	from . import models  # noqa: F401

	Base.metadata.create_all(bind=engine)

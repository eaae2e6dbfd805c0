"""Helpers shared by the portfolio unit tests."""

import sqlalchemy
import sqlalchemy.event
import sqlalchemy.pool
import sqlmodel

from . import models  # noqa: F401 # pyright: ignore[reportUnusedImport]


def make_in_memory_engine() -> sqlalchemy.Engine:
    """Create an in-memory SQLite engine for testing."""
    engine = sqlmodel.create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=sqlalchemy.pool.StaticPool,
    )
    sqlmodel.SQLModel.metadata.create_all(engine)
    return engine


def make_file_engine(path: str) -> sqlalchemy.Engine:
    """Create a file-backed SQLite engine that several threads can write to.

    Transactions begin with BEGIN IMMEDIATE, so writers queue on the busy
    timeout instead of failing on a lock upgrade.
    """
    engine = sqlmodel.create_engine(
        f'sqlite:///{path}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )

    @sqlalchemy.event.listens_for(engine, 'connect')
    def _disable_driver_transactions(  # type: ignore[no-untyped-def]
        dbapi_connection, connection_record
    ):
        dbapi_connection.isolation_level = None

    @sqlalchemy.event.listens_for(engine, 'begin')
    def _begin_immediate(conn):  # type: ignore[no-untyped-def]
        conn.exec_driver_sql('BEGIN IMMEDIATE')

    sqlmodel.SQLModel.metadata.create_all(engine)
    return engine


class StatementCounter:
    """Record INSERT/UPDATE/DELETE statements issued against an engine."""

    def __init__(self, engine: sqlalchemy.Engine) -> None:
        self.engine = engine
        self.statements: list[str] = []

    def _record(  # type: ignore[no-untyped-def]
        self, conn, cursor, statement, parameters, context, executemany
    ):
        verb = statement.lstrip().split(None, 1)[0].upper()
        if verb in ('INSERT', 'UPDATE', 'DELETE'):
            self.statements.append(statement)

    def __enter__(self) -> 'StatementCounter':
        sqlalchemy.event.listen(self.engine, 'before_cursor_execute', self._record)
        return self

    def __exit__(self, *exc: object) -> None:
        sqlalchemy.event.remove(self.engine, 'before_cursor_execute', self._record)

    def count(self, verb: str) -> int:
        """Number of recorded statements starting with ``verb``."""
        return sum(1 for s in self.statements if s.lstrip().upper().startswith(verb))

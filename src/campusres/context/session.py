from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.pool import QueuePool
from sqlalchemy.orm import scoped_session, sessionmaker

from campusres.context.core import StoppableService


from typing import Any
from typing import TYPE_CHECKING
if TYPE_CHECKING:
    from sqlalchemy.engine import Connection, Engine


SERIALIZABLE = 'SERIALIZABLE'


class SessionProvider(StoppableService):
    """ Provides a thread-local SERIALIZABLE session to campusres.

    The conflict checks run before a reservation is written. Without
    serializable transactions two concurrent requests could both pass those
    checks before either of them commits. If you override this provider,
    keep the isolation level.

    SQLite has no SERIALIZABLE setting that covers this, there the
    transactions are serialized by taking the write lock when they begin.

    """

    def __init__(
        self,
        dsn: str,
        engine_config: dict[str, Any] | None = None,
        session_config: dict[str, Any] | None = None
    ):
        assert dsn, 'No dsn configured, set settings.dsn on your context'

        self.dsn = dsn
        self.backend = make_url(dsn).get_backend_name()

        if self.backend == 'postgresql':
            self.assert_valid_postgres_version(dsn)
            self.engine = create_engine(
                dsn, poolclass=QueuePool, pool_size=5, max_overflow=5,
                isolation_level=SERIALIZABLE,
                **(engine_config or {})
            )
        elif self.backend == 'sqlite':
            self.engine = create_engine(
                dsn, poolclass=QueuePool, pool_size=5, max_overflow=5,
                **(engine_config or {})
            )
            self.serialize_sqlite_transactions(self.engine)
        else:
            raise RuntimeError(
                f'Unsupported database {self.backend}, '
                'use PostgreSQL or SQLite'
            )

        self.session = scoped_session(sessionmaker(
            bind=self.engine, **(session_config or {})
        ))

    def stop_service(self) -> None:
        """ Called by the context when the session provider is replaced,
        so no idle connections are left behind.

        """
        self.session.remove()
        self.engine.dispose()

    def serialize_sqlite_transactions(self, engine: Engine) -> None:
        """ SQLite only knows one writer at a time, but pysqlite defers the
        write lock until the first write. Two transactions could therefore
        both read an empty slot before either of them writes.

        Starting each transaction with ``BEGIN IMMEDIATE`` takes the write
        lock up front, so transactions run one after the other. A waiting
        transaction gives up after the ``timeout`` of the connection
        (5 seconds by default).

        """

        @event.listens_for(engine, 'connect')
        def disable_pysqlite_transactions(
            dbapi_connection: Any,
            connection_record: Any
        ) -> None:
            # SQLAlchemy emits the BEGIN itself
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, 'begin')
        def begin_immediate(connection: Connection) -> None:
            connection.exec_driver_sql('BEGIN IMMEDIATE')

    def get_postgres_version(self, dsn: str) -> tuple[str, int]:
        """ Returns the postgres version as a tuple (string, integer), using
        a connection independent of any session.

        """
        query = text("""
            SELECT current_setting('server_version'),
                   current_setting('server_version_num')
        """)

        engine = create_engine(dsn)

        try:
            with engine.connect() as connection:
                result = connection.execute(query).first()
            assert result is not None
            version, number = result
            return version, int(number)
        finally:
            engine.dispose()

    def assert_valid_postgres_version(self, dsn: str) -> str:
        v, n = self.get_postgres_version(dsn)

        # exclusion constraints with WHERE clauses need 9.2+
        if n < 90200:
            raise RuntimeError(f'PostgreSQL 9.2+ is required, got {v}')

        return dsn

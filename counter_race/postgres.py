"""
PostgreSQL implementation of the transactional store.

Each harness transaction checks a dedicated connection out of a
ThreadedConnectionPool, sets the requested isolation level on it and keeps it
until commit or rollback. Each concurrent client MUST have its own connection
for row-level locking (SELECT ... FOR UPDATE) to mean anything, so the pool is
sized for every client plus the validation reads done by the runner
(config.POOL_HEADROOM). The runner refuses a concurrency the pool cannot hold.

Table layout:

    CREATE TABLE counter_row (
        id    BIGINT PRIMARY KEY,
        count INTEGER
    );
"""

import psycopg2
from psycopg2 import pool, sql

from . import config, console
from .errors import InvariantViolation
from .store import LockMode, Row, Transaction, TransactionalStore

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS {table} (
        id    BIGINT PRIMARY KEY,
        count INTEGER
    )
"""


class PostgresStore(TransactionalStore):

    def __init__(self, connect_kwargs=None, table=config.TABLE_NAME, max_connections=config.NUM_CONCURRENT + config.POOL_HEADROOM):
        self.connect_kwargs = connect_kwargs or config.connection_kwargs()
        self.max_connections = max_connections
        self.table_name = table
        self.table = sql.Identifier(table)
        self.pool = pool.ThreadedConnectionPool(minconn=1, maxconn=max_connections, **self.connect_kwargs)

    def _sql(self, template):
        return sql.SQL(template).format(table=self.table)

    def _getconn(self, autocommit=False, isolation_level=None):
        conn = self.pool.getconn()
        try:
            conn.set_session(isolation_level=isolation_level or 'DEFAULT', autocommit=autocommit)
        except psycopg2.Error:
            self.pool.putconn(conn, close=True)
            raise
        return conn

    def _putconn(self, conn):
        self.pool.putconn(conn, close=bool(conn.closed))

    def _autocommit(self, query, params=None, fetch=None):
        """Run one statement on an autocommit connection"""
        conn = self._getconn(autocommit=True)
        try:
            with conn.cursor() as cursor:
                cursor.execute(query, params)
                if fetch == 'one':
                    return cursor.fetchone()
                return None
        finally:
            self._putconn(conn)

    # -- lifecycle -----------------------------------------------------------

    def authenticate(self):
        """Fail fast when the database cannot be reached"""
        version = self._autocommit("SELECT version()", fetch='one')
        console.log('OK', f"Connected to {config.describe_target(self.connect_kwargs)}")
        return version[0]

    def ensure_schema(self):
        self._autocommit(self._sql(CREATE_TABLE_SQL))
        console.log('OK', f"Table {self.table_name} is ready")

    def close(self):
        if not self.pool.closed:
            self.pool.closeall()

    # -- TransactionalStore --------------------------------------------------

    def reset(self, seed_row=False):
        conn = self._getconn()
        try:
            with conn.cursor() as cursor:
                cursor.execute(self._sql("TRUNCATE {table}"))
                if seed_row:
                    cursor.execute(self._sql("INSERT INTO {table} (id, count) VALUES (%s, 1)"), (config.ROW_ID,))
            conn.commit()
        except psycopg2.Error:
            conn.rollback()
            raise
        finally:
            self._putconn(conn)

        expected = 1 if seed_row else 0
        num_rows = self.count_rows()
        if num_rows != expected:
            raise InvariantViolation(f"after reset, numRows should be {expected} but was {num_rows}")

    def begin_transaction(self, isolation_level):
        conn = self._getconn(isolation_level=isolation_level.value)
        return Transaction(conn, isolation_level, release=self._putconn)

    def _select(self, tx, row_id, lock_mode):
        query = "SELECT id, count FROM {table} WHERE id = %s"
        if lock_mode is LockMode.FOR_UPDATE:
            query += " FOR UPDATE"
        with tx.connection.cursor() as cursor:
            cursor.execute(self._sql(query), (row_id,))
            found = cursor.fetchone()
        return Row(*found) if found else None

    def _insert(self, tx, row_id):
        with tx.connection.cursor() as cursor:
            cursor.execute(self._sql("INSERT INTO {table} (id) VALUES (%s) RETURNING id, count"), (row_id,))
            return Row(*cursor.fetchone())

    def find_or_create(self, tx, row_id, lock_mode=LockMode.NONE):
        tx.ensure_open()
        try:
            row = self._select(tx, row_id, lock_mode)
            if row is None:
                row = self._insert(tx, row_id)
            return row
        except psycopg2.Error:
            # the transaction is aborted server side; finish it here
            tx.rollback()
            raise

    def create(self, tx, row_id):
        tx.ensure_open()
        return self._insert(tx, row_id)

    def find_by_pk(self, tx, row_id, lock_mode=LockMode.NONE):
        tx.ensure_open()
        return self._select(tx, row_id, lock_mode)

    def upsert(self, row_id):
        self._autocommit(self._sql("INSERT INTO {table} (id) VALUES (%s) ON CONFLICT (id) DO NOTHING"), (row_id,))

    def update(self, tx, row_id, new_count):
        tx.ensure_open()
        with tx.connection.cursor() as cursor:
            cursor.execute(self._sql("UPDATE {table} SET count = %s WHERE id = %s"), (new_count, row_id))

    def count_rows(self):
        return self._autocommit(self._sql("SELECT COUNT(*) FROM {table}"), fetch='one')[0]

    def fetch_row(self, row_id):
        found = self._autocommit(self._sql("SELECT id, count FROM {table} WHERE id = %s"), (row_id,), fetch='one')
        return Row(*found) if found else None

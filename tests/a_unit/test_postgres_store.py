"""PostgresStore connection handling with a mocked pool."""

from unittest import mock

import psycopg2
import pytest
from psycopg2 import errors

from counter_race.errors import InvariantViolation
from counter_race.outcome import Scenario
from counter_race.postgres import PostgresStore
from counter_race.runner import ConcurrentRunner
from counter_race.store import ROLLBACK, IsolationLevel, LockMode, Row
from counter_race.strategies import NoLock


@pytest.fixture
def pool(monkeypatch):
    fake_pool = mock.Mock(closed=False)
    fake_pool.getconn.side_effect = lambda: mock.MagicMock(closed=0)
    monkeypatch.setattr("counter_race.postgres.pool.ThreadedConnectionPool", mock.Mock(return_value=fake_pool))
    return fake_pool


@pytest.fixture
def pg_store(pool):
    return PostgresStore({"dsn": "dbname=counter_db"}, max_connections=6)


def cursor_of(conn):
    return conn.cursor.return_value.__enter__.return_value


def test_begin_transaction_sets_isolation_level(pg_store, pool):
    tx = pg_store.begin_transaction(IsolationLevel.REPEATABLE_READ)

    tx.connection.set_session.assert_called_once_with(isolation_level="REPEATABLE READ", autocommit=False)
    tx.commit()
    pool.putconn.assert_called_once_with(tx.connection, close=False)


def test_pool_size_is_exposed_to_the_runner(pg_store):
    assert pg_store.max_connections == 6
    with pytest.raises(ValueError, match="needs 7 connections"):
        ConcurrentRunner(pg_store).run(NoLock(), IsolationLevel.REPEATABLE_READ, 5, Scenario.ROW_ABSENT)


def test_find_or_create_inserts_when_select_finds_nothing(pg_store):
    tx = pg_store.begin_transaction(IsolationLevel.READ_COMMITTED)
    cursor = cursor_of(tx.connection)
    cursor.fetchone.side_effect = [None, (1, None)]

    row = pg_store.find_or_create(tx, 1, LockMode.FOR_UPDATE)

    assert row == Row(1, None)
    assert cursor.execute.call_count == 2
    select_sql = cursor.execute.call_args_list[0][0][0]
    assert "FOR UPDATE" in repr(select_sql)


def test_find_or_create_rolls_back_on_driver_error(pg_store, pool):
    tx = pg_store.begin_transaction(IsolationLevel.REPEATABLE_READ)
    cursor_of(tx.connection).execute.side_effect = errors.UniqueViolation("duplicate key")

    with pytest.raises(errors.UniqueViolation):
        pg_store.find_or_create(tx, 1)

    assert tx.finished == ROLLBACK
    tx.connection.rollback.assert_called_once_with()
    pool.putconn.assert_called_once_with(tx.connection, close=False)
    pg_store.rollback(tx)


def test_reset_checks_row_count(pg_store, monkeypatch):
    monkeypatch.setattr(pg_store, "count_rows", lambda: 3)

    with pytest.raises(InvariantViolation, match="numRows should be 1 but was 3"):
        pg_store.reset(seed_row=True)


def test_failed_set_session_discards_connection(pg_store, pool):
    conn = mock.MagicMock(closed=0)
    conn.set_session.side_effect = psycopg2.OperationalError("server closed the connection")
    pool.getconn.side_effect = None
    pool.getconn.return_value = conn

    with pytest.raises(psycopg2.OperationalError):
        pg_store.begin_transaction(IsolationLevel.READ_COMMITTED)
    pool.putconn.assert_called_once_with(conn, close=True)

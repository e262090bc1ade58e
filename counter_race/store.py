"""
Transactional store interface used by every strategy.

The harness never talks to the database directly. Strategies open a
Transaction through a TransactionalStore, read and write the single counter
row inside it, and finish it with commit() or rollback(). A Transaction owns
exactly one connection for its whole lifetime and hands it back to the store
as soon as it finishes, whichever way it finishes.

Rollback is the one place where the store is lenient: some store operations
(find_or_create) roll the transaction back themselves when they hit a
conflict, so a strategy's own rollback on its error path may find the
transaction already finished. That case is reported and ignored. A
transaction that finished any other way (for example it was committed) is a
harness bug and raises TransactionFinishedError.
"""

import abc
import enum
from dataclasses import dataclass
from typing import Optional

from . import console
from .errors import TransactionFinishedError

COMMIT = 'commit'
ROLLBACK = 'rollback'


class IsolationLevel(enum.Enum):
    REPEATABLE_READ = 'REPEATABLE READ'
    READ_COMMITTED = 'READ COMMITTED'

    def __str__(self):
        return self.name


class LockMode(enum.Enum):
    NONE = None
    FOR_UPDATE = 'FOR UPDATE'


ISOLATION_LEVELS = (IsolationLevel.REPEATABLE_READ, IsolationLevel.READ_COMMITTED)


@dataclass(frozen=True)
class Row:
    id: int
    count: Optional[int]

    def incremented(self):
        """Count after one increment; a NULL count counts as zero"""
        return self.count + 1 if self.count else 1


class Transaction:
    """
    One unit of work bound to an isolation level.

    `connection` is anything with commit() and rollback(); `release` is called
    with the connection once the transaction has finished.
    """

    def __init__(self, connection, isolation_level, release=None):
        self.connection = connection
        self.isolation_level = isolation_level
        self.finished = None
        self._release = release

    def ensure_open(self):
        if self.finished:
            raise TransactionFinishedError(self.finished, 'used')

    def commit(self):
        if self.finished:
            raise TransactionFinishedError(self.finished, 'committed')
        # A failed commit leaves the transaction open so the caller can roll back
        self.connection.commit()
        self._finish(COMMIT)

    def rollback(self):
        if self.finished:
            raise TransactionFinishedError(self.finished, 'rolled back')
        try:
            self.connection.rollback()
        finally:
            self._finish(ROLLBACK)

    def _finish(self, state):
        self.finished = state
        if self._release is not None:
            release, self._release = self._release, None
            release(self.connection)

    def __repr__(self):
        return f"<Transaction {self.isolation_level} finished={self.finished}>"


class TransactionalStore(abc.ABC):
    """Abstract single-row counter table"""

    # size of the connection pool behind the store, None when unbounded
    max_connections = None

    @abc.abstractmethod
    def reset(self, seed_row=False):
        """Empty the table, optionally seeding one row with count = 1"""

    @abc.abstractmethod
    def begin_transaction(self, isolation_level):
        """Open a new Transaction"""

    @abc.abstractmethod
    def find_or_create(self, tx, row_id, lock_mode=LockMode.NONE):
        """
        Return the row, inserting it with a NULL count when it is missing.

        On any error the store rolls `tx` back itself before re-raising.
        """

    @abc.abstractmethod
    def create(self, tx, row_id):
        """Blind insert of the row with a NULL count"""

    @abc.abstractmethod
    def find_by_pk(self, tx, row_id, lock_mode=LockMode.NONE):
        """Return the row or None"""

    @abc.abstractmethod
    def upsert(self, row_id):
        """Insert the row unless it exists, outside any explicit transaction"""

    @abc.abstractmethod
    def update(self, tx, row_id, new_count):
        pass

    @abc.abstractmethod
    def count_rows(self):
        pass

    @abc.abstractmethod
    def fetch_row(self, row_id):
        """Unlocked read outside any harness transaction"""

    def commit(self, tx):
        tx.commit()

    def rollback(self, tx):
        """Roll back `tx`, ignoring a transaction that already rolled back"""
        try:
            tx.rollback()
        except TransactionFinishedError as ex:
            if ex.state != ROLLBACK:
                raise
            console.log('INFO', 'transaction was rolled back already')

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

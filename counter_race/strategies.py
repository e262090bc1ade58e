"""
Read-increment-write strategies for the shared counter row.

Every strategy answers the same question differently: how do we make sure the
row exists and then add one to its count when several clients do it at the
same moment? Each client calls attempt() exactly once. Failures are recorded
on the recorder passed in, attributed to the strategy by name, and never
escape attempt() except for the retry strategy once it gives up, and for
fatal harness errors.

1. no_lock                SELECT (or INSERT) + increment in Python + UPDATE.
                          Concurrent readers can see the same stale count, so
                          updates get lost.
2. lock_for_update        Same, but SELECT ... FOR UPDATE. Waiting clients
                          queue on the row lock. Conflicts (deadlocks, unique
                          violations while creating the row) are recorded,
                          not retried.
3. always_create          Blind INSERT in its own transaction, ignore the
                          failure, then an unlocked read-increment-write.
                          Deliberately racy baseline.
4. lock_for_update_retry  lock_for_update inside a bounded retry loop.
5. upsert                 INSERT ... ON CONFLICT DO NOTHING outside any
                          transaction, then a FOR UPDATE read-increment-write.
"""

import abc
import random
import time
from contextlib import contextmanager

from . import config, console
from .errors import FATAL_ERRORS, MissingRowError
from .outcome import ExceptionRecord
from .store import LockMode


@contextmanager
def transaction(store, isolation_level):
    """Open a transaction and roll it back if the block raises"""
    tx = store.begin_transaction(isolation_level)
    try:
        yield tx
    except BaseException:
        store.rollback(tx)
        raise


def _message(ex):
    return str(ex).strip() or type(ex).__name__


class Strategy(abc.ABC):
    name = None
    description = None

    def __init__(self, row_id=config.ROW_ID):
        self.row_id = row_id

    @abc.abstractmethod
    def attempt(self, store, isolation_level, label, recorder):
        """Run one client's increment, recording every exception it handles"""

    def _record(self, label, recorder, ex, phase='increment'):
        recorder.record_exception(ExceptionRecord(self.name, label, _message(ex), phase))
        console.log('ERROR', f"{self.name} {label}: caught: {type(ex).__name__}: {_message(ex)}")

    def __repr__(self):
        return f"<{type(self).__name__} {self.name}>"


class NoLock(Strategy):
    name = 'no_lock'
    description = 'no lock'
    lock_mode = LockMode.NONE

    def increment(self, store, isolation_level):
        """One find-or-create, increment, commit transaction"""
        with transaction(store, isolation_level) as tx:
            row = store.find_or_create(tx, self.row_id, self.lock_mode)
            store.update(tx, self.row_id, row.incremented())
            store.commit(tx)

    def attempt(self, store, isolation_level, label, recorder):
        try:
            self.increment(store, isolation_level)
        except FATAL_ERRORS:
            raise
        except Exception as ex:
            self._record(label, recorder, ex)


class LockForUpdate(NoLock):
    name = 'lock_for_update'
    description = 'lock for update'
    lock_mode = LockMode.FOR_UPDATE


class AlwaysCreate(Strategy):
    name = 'always_create'
    description = 'always create, then read-increment-write'

    def attempt(self, store, isolation_level, label, recorder):
        try:
            with transaction(store, isolation_level) as tx:
                store.create(tx, self.row_id)
                store.commit(tx)
        except FATAL_ERRORS:
            raise
        except Exception as ex:
            # the row already exists, nothing to do
            console.log('INFO', f"{self.name} {label}: create failed ({type(ex).__name__}), doing nothing")

        # The row exists now. Two clients can still read the same old count
        # here and both write the same new count.
        try:
            with transaction(store, isolation_level) as tx:
                row = store.find_by_pk(tx, self.row_id)
                if row is None:
                    console.log('WARNING', f"{self.name} {label}: no row found :(")
                else:
                    store.update(tx, self.row_id, row.incremented())
                store.commit(tx)
        except FATAL_ERRORS:
            raise
        except Exception as ex:
            self._record(label, recorder, ex)


class LockForUpdateRetry(LockForUpdate):
    name = 'lock_for_update_retry'
    description = 'lock for update, with retries'

    def __init__(self, row_id=config.ROW_ID, max_attempts=config.MAX_ATTEMPTS, backoff=config.RETRY_BACKOFF):
        super().__init__(row_id)
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.max_attempts = max_attempts
        self.backoff = backoff

    def _sleep_before(self, attempt):
        if self.backoff > 0:
            # Exponential backoff, capped at 1 second
            time.sleep(min(self.backoff * (2 ** (attempt - 2)), 1.0))

    def attempt(self, store, isolation_level, label, recorder):
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                recorder.record_retry()
                self._sleep_before(attempt)
                console.log('INFO', f"{self.name} {label}: retry {attempt - 1} of {self.max_attempts - 1}")
            try:
                self.increment(store, isolation_level)
                return
            except FATAL_ERRORS:
                raise
            except Exception as ex:
                self._record(label, recorder, ex)
                last_error = ex

        recorder.record_exception(ExceptionRecord(self.name, label, 'gave up'))
        console.log('ERROR', f"{self.name} {label}: gave up after {self.max_attempts} attempts")
        raise last_error


class Upsert(Strategy):
    name = 'upsert'
    description = 'upsert, then lock for update'

    def attempt(self, store, isolation_level, label, recorder):
        try:
            store.upsert(self.row_id)
        except FATAL_ERRORS:
            raise
        except Exception as ex:
            self._record(label, recorder, ex, phase='upsert')
            return

        try:
            with transaction(store, isolation_level) as tx:
                row = store.find_by_pk(tx, self.row_id, LockMode.FOR_UPDATE)
                if row is None:
                    raise MissingRowError(self.row_id)
                store.update(tx, self.row_id, row.incremented())
                store.commit(tx)
        except FATAL_ERRORS:
            raise
        except Exception as ex:
            self._record(label, recorder, ex)


STRATEGIES = (NoLock, LockForUpdate, AlwaysCreate, LockForUpdateRetry, Upsert)
STRATEGY_NAMES = tuple(cls.name for cls in STRATEGIES)


def build_strategies(names=None, shuffle=True, seed=None, row_id=config.ROW_ID,
                     max_attempts=config.MAX_ATTEMPTS, backoff=config.RETRY_BACKOFF):
    """Instantiate the selected strategies, in shuffled order unless told otherwise"""
    by_name = {cls.name: cls for cls in STRATEGIES}
    names = list(names or STRATEGY_NAMES)
    unknown = [name for name in names if name not in by_name]
    if unknown:
        raise ValueError(f"unknown strategies: {', '.join(unknown)} (choose from {', '.join(STRATEGY_NAMES)})")

    strategies = []
    for name in dict.fromkeys(names):
        cls = by_name[name]
        if cls is LockForUpdateRetry:
            strategies.append(cls(row_id, max_attempts=max_attempts, backoff=backoff))
        else:
            strategies.append(cls(row_id))

    if shuffle:
        random.Random(seed).shuffle(strategies)
    return strategies

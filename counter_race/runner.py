"""
Concurrent execution of one strategy.

K clients (labelled A, B, C, ...) run strategy.attempt() on their own threads.
They all wait on a barrier first so their transactions start as close together
as possible: a run where the clients never overlap tells us nothing. Once every
client has settled, the runner checks the table and reports the final count.
"""

import string
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from . import config, console
from .errors import FATAL_ERRORS, InvariantViolation
from .outcome import StrategyOutcome


class AttemptRecorder:
    """Thread-safe collector for the exceptions and retries of one run"""

    def __init__(self):
        self._lock = threading.Lock()
        self._exceptions = []
        self._retries = 0

    def record_exception(self, record):
        with self._lock:
            self._exceptions.append(record)

    def record_retry(self):
        with self._lock:
            self._retries += 1

    @property
    def exceptions(self):
        with self._lock:
            return tuple(self._exceptions)

    @property
    def retries(self):
        with self._lock:
            return self._retries


def client_label(index):
    letters = string.ascii_uppercase
    if index < len(letters):
        return letters[index]
    return f"{letters[index % len(letters)]}{index // len(letters)}"


class ConcurrentRunner:

    def __init__(self, store, row_id=config.ROW_ID, start_timeout=30):
        self.store = store
        self.row_id = row_id
        self.start_timeout = start_timeout

    def run(self, strategy, isolation_level, concurrency, scenario):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        capacity = self.store.max_connections
        if capacity is not None and concurrency + config.POOL_HEADROOM > capacity:
            raise ValueError(
                f"concurrency {concurrency} needs {concurrency + config.POOL_HEADROOM} connections "
                f"but the store pool holds {capacity}")

        recorder = AttemptRecorder()
        barrier = threading.Barrier(concurrency)

        def client(label):
            barrier.wait(timeout=self.start_timeout)
            strategy.attempt(self.store, isolation_level, label, recorder)

        failures = 0
        fatal = None
        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=strategy.name) as executor:
            futures = {executor.submit(client, client_label(i)): client_label(i) for i in range(concurrency)}
            for future in as_completed(futures):
                try:
                    future.result()
                except FATAL_ERRORS as ex:
                    if fatal is None:
                        fatal = ex
                except Exception as ex:
                    failures += 1
                    console.log('ERROR', f"{strategy.name} {futures[future]}: failed: {type(ex).__name__}: {ex}")

        if fatal is not None:
            raise fatal

        final_count = self.final_count()
        return StrategyOutcome(
            strategy_name=strategy.name,
            isolation_level=isolation_level,
            scenario=scenario,
            final_count=final_count,
            exceptions=recorder.exceptions,
            retries=recorder.retries,
            failures=failures,
        )

    def final_count(self):
        """Count of the single counter row; None when its count is NULL"""
        num_rows = self.store.count_rows()
        if num_rows != 1:
            raise InvariantViolation(f"after run, numRows should be 1 but was {num_rows}")
        row = self.store.fetch_row(self.row_id)
        if row is None:
            raise InvariantViolation(f"after run, row {self.row_id} is missing")
        return row.count

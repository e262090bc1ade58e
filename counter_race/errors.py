"""
Exception taxonomy for the counter race harness.

Contention conflicts (deadlocks, serialization failures, unique violations,
lock wait timeouts) are raised by the database driver and handled inside each
strategy. The classes below are the harness's own errors. Anything listed in
FATAL_ERRORS must abort the whole run instead of being recorded as a strategy
finding.
"""


class CounterRaceError(Exception):
    """Base class for harness errors"""


class InvariantViolation(CounterRaceError):
    """The store is not in the shape the harness expects (bug or misconfiguration)"""


class TransactionFinishedError(CounterRaceError):
    """A transaction was committed or rolled back after it already finished"""

    def __init__(self, state, action):
        self.state = state
        self.action = action
        super().__init__(
            f"Transaction cannot be {action} because it has been finished with state: {state}"
        )


class MissingRowError(CounterRaceError):
    """A locked read found no row although its existence was guaranteed"""

    def __init__(self, row_id):
        self.row_id = row_id
        super().__init__(f"no row found with id = {row_id}")


FATAL_ERRORS = (InvariantViolation, TransactionFinishedError)

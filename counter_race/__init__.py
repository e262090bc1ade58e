"""Correctness of read-increment-write strategies on one contended counter row."""

from .errors import CounterRaceError, InvariantViolation, MissingRowError, TransactionFinishedError
from .ledger import ResultLedger
from .orchestrator import MatrixResult, Orchestrator
from .outcome import SCENARIOS, ExceptionRecord, Scenario, StrategyOutcome
from .runner import AttemptRecorder, ConcurrentRunner
from .store import ISOLATION_LEVELS, IsolationLevel, LockMode, Row, Transaction, TransactionalStore
from .strategies import STRATEGIES, STRATEGY_NAMES, build_strategies

__version__ = '0.1.0'

"""Records produced by a concurrent run."""

import enum
from dataclasses import dataclass
from typing import Optional, Tuple


class Scenario(enum.Enum):
    """Initial state of the counter row before a run"""

    ROW_ABSENT = 'no row already exists'
    ROW_PRESENT = '1 row already exists'

    @property
    def seed_row(self):
        return self is Scenario.ROW_PRESENT

    def expected_count(self, concurrency):
        return concurrency + 1 if self.seed_row else concurrency


SCENARIOS = (Scenario.ROW_ABSENT, Scenario.ROW_PRESENT)


@dataclass(frozen=True)
class ExceptionRecord:
    strategy: str
    label: str
    message: str
    phase: str = 'increment'

    def __str__(self):
        if self.phase == 'increment':
            return f"{self.strategy}: {self.message}"
        return f"{self.strategy} ({self.phase}): {self.message}"


@dataclass(frozen=True)
class StrategyOutcome:
    strategy_name: str
    isolation_level: object
    scenario: Scenario
    final_count: Optional[int]
    exceptions: Tuple[ExceptionRecord, ...] = ()
    retries: int = 0
    failures: int = 0

    @property
    def succeeded(self):
        """True when no attempt escaped with an exception"""
        return self.failures == 0

"""Aggregation of run outcomes per scenario."""

from dataclasses import dataclass, field
from typing import List

from .outcome import SCENARIOS, ExceptionRecord, StrategyOutcome


@dataclass
class LedgerPartition:
    expected_count: int
    correct: List[StrategyOutcome] = field(default_factory=list)
    incorrect: List[StrategyOutcome] = field(default_factory=list)
    exceptions: List[ExceptionRecord] = field(default_factory=list)
    retries: int = 0

    def is_correct(self, outcome):
        return outcome.final_count == self.expected_count


class ResultLedger:
    """Correct/incorrect outcomes, exceptions and retries for each scenario"""

    def __init__(self, concurrency, scenarios=SCENARIOS):
        self.concurrency = concurrency
        self.partitions = {
            scenario: LedgerPartition(scenario.expected_count(concurrency)) for scenario in scenarios
        }

    def __getitem__(self, scenario):
        return self.partitions[scenario]

    def record(self, outcome):
        """File `outcome` under its scenario; returns True when it was correct"""
        partition = self.partitions[outcome.scenario]
        correct = partition.is_correct(outcome)
        if correct:
            partition.correct.append(outcome)
        else:
            partition.incorrect.append(outcome)
        partition.exceptions.extend(outcome.exceptions)
        partition.retries += outcome.retries
        return correct

    def outcomes(self):
        for partition in self.partitions.values():
            yield from partition.correct
            yield from partition.incorrect

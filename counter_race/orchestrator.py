"""
Full comparison matrix.

For each scenario (row absent, then row present with count = 1), each trial,
each strategy and each isolation level: reset the table, run the strategy with
K concurrent clients, and file the outcome in the ledger. The report is printed
no matter how the matrix ends. An exception that escapes a run aborts the rest
of the matrix; whatever was collected up to that point is still reported.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from tqdm import tqdm

from . import config, console, report
from .ledger import ResultLedger
from .outcome import SCENARIOS
from .runner import ConcurrentRunner
from .store import ISOLATION_LEVELS


@dataclass
class MatrixResult:
    ledger: ResultLedger
    aborted: Optional[BaseException] = None
    lines: List[str] = field(default_factory=list)

    @property
    def exit_code(self):
        return 1 if self.aborted is not None else 0


class Orchestrator:

    def __init__(self, store, strategies, isolation_levels=ISOLATION_LEVELS, concurrency=config.NUM_CONCURRENT,
                 trials=config.TRIALS, scenarios=SCENARIOS, progress=True, results_file=None, target=None):
        self.store = store
        self.strategies = list(strategies)
        self.isolation_levels = list(isolation_levels)
        self.concurrency = concurrency
        self.trials = trials
        self.scenarios = list(scenarios)
        self.progress = progress
        self.results_file = results_file
        self.target = target
        self.runner = ConcurrentRunner(store)

    @property
    def total_runs(self):
        return len(self.scenarios) * self.trials * len(self.strategies) * len(self.isolation_levels)

    def run(self):
        ledger = ResultLedger(self.concurrency, self.scenarios)
        result = MatrixResult(ledger)
        progress_bar = tqdm(total=self.total_runs, desc="Runs", unit="run", disable=not self.progress)
        try:
            for scenario in self.scenarios:
                self._run_scenario(scenario, ledger, progress_bar)
        except Exception as ex:
            result.aborted = ex
            console.log('ERROR', f"caught top-level exception, bailing: {type(ex).__name__}: {ex}")
        finally:
            progress_bar.close()
            result.lines = report.render(ledger, result.aborted)
            report.print_report(result.lines)
            if self.results_file:
                report.save_results(self.results_file, result.lines, self.concurrency, self.target)
        return result

    def _run_scenario(self, scenario, ledger, progress_bar):
        expected = ledger[scenario].expected_count
        console.banner(f"{scenario.value} -- correct final count is {expected}")
        for trial in range(1, self.trials + 1):
            for strategy in self.strategies:
                for isolation_level in self.isolation_levels:
                    self.store.reset(seed_row=scenario.seed_row)
                    console.log('INFO', f"-- {strategy.name}, {isolation_level} (trial {trial}/{self.trials}) ----------")
                    outcome = self.runner.run(strategy, isolation_level, self.concurrency, scenario)
                    correct = ledger.record(outcome)

                    observed = report.observed_count(outcome)
                    console.log('OK' if correct else 'WARNING', f"count: {observed} (expected {expected})")
                    progress_bar.update(1)

"""
Final report: which strategy / isolation level pairs ended with the correct
count, which did not (observed vs expected), how many retries were used and
every exception that was caught, per scenario.
"""

from datetime import datetime

from . import console

WIDTH = 60


def _pair(outcome):
    return f"{outcome.strategy_name}, {outcome.isolation_level}"


def _failures(outcome):
    if outcome.succeeded:
        return ""
    return f" ({outcome.failures} attempt(s) failed)"


def observed_count(outcome):
    """Final count as shown in the report, 'NULL count' when the row was never incremented"""
    return outcome.final_count if outcome.final_count is not None else 'NULL count'


def render(ledger, aborted=None):
    """Return the report as a list of lines"""
    lines = []
    for scenario, partition in ledger.partitions.items():
        lines.append("#" * WIDTH)
        lines.append(f"## correct strategies   - {scenario.value}")
        for outcome in partition.correct:
            lines.append(f"{_pair(outcome)}{_failures(outcome)}")

        lines.append("")
        lines.append(f"## incorrect strategies - {scenario.value}")
        for outcome in partition.incorrect:
            observed = observed_count(outcome)
            lines.append(
                f"{_pair(outcome)} yielded {observed} instead of {partition.expected_count}{_failures(outcome)}"
            )

        lines.append("")
        lines.append(f"## retry count - {scenario.value}: {partition.retries}")
        lines.append("")
        lines.append(f"## exceptions - {scenario.value}: {len(partition.exceptions)}")
        for record in partition.exceptions:
            lines.append(str(record))
        lines.append("")

    if aborted is not None:
        lines.append("#" * WIDTH)
        lines.append(f"## run aborted: {type(aborted).__name__}: {aborted}")
        lines.append("## results above are partial")
    return lines


def print_report(lines):
    for line in lines:
        console.echo(line)


def save_results(filename, lines, concurrency, target=None):
    """Save the report to a file"""
    with open(filename, 'w', encoding='utf-8') as f:
        f.write("=" * WIDTH + "\n")
        f.write("Counter race: read-increment-write strategies under contention\n")
        f.write("=" * WIDTH + "\n\n")
        f.write(f"Written: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Concurrent clients per run: {concurrency}\n")
        if target:
            f.write(f"Database: {target}\n")
        f.write("\n")
        for line in lines:
            f.write(line + "\n")

    console.log('OK', f"Results saved to: {filename}")

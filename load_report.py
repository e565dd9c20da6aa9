"""
📊 Load test results
====================
Summary statistics over a finished run, the console report and the JSON
report export.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Sequence, Dict

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from load_types import RequestOutcome, ScenarioResult, RunSummary, EndpointTally

console = Console()

MAX_FAILED_DETAILS = 50


def endpoint_key(url: str) -> str:
    """Endpoint identity: the URL without its query string."""
    return url.split("?", 1)[0]


def summarize(results: Sequence[ScenarioResult], duration_seconds: float) -> RunSummary:
    """Aggregate every outcome of the run. Pure, no I/O."""
    outcomes = [r for result in results for r in result.requests]
    total = len(outcomes)
    successful = [r for r in outcomes if r.success]

    endpoints: Dict[str, EndpointTally] = {}
    for outcome in outcomes:
        tally = endpoints.setdefault(endpoint_key(outcome.url), EndpointTally())
        if outcome.success:
            tally.successes += 1
        else:
            tally.failures += 1

    return RunSummary(
        total_scenarios=len(results),
        failed_scenarios=sum(1 for r in results if not r.success),
        total_requests=total,
        successful_requests=len(successful),
        failed_requests=total - len(successful),
        average_response_ms=(
            sum(r.elapsed_ms for r in successful) / len(successful) if successful else 0.0
        ),
        duration_seconds=duration_seconds,
        requests_per_second=total / duration_seconds if duration_seconds > 0 else 0.0,
        success_rate=(len(successful) / total * 100) if total > 0 else 0.0,
        endpoints=endpoints,
    )


def failed_requests(results: Sequence[ScenarioResult]) -> List[RequestOutcome]:
    return [r for result in results for r in result.requests if not r.success]


def _endpoint_marker(rate: float) -> str:
    if rate >= 90:
        return "[green]✓[/green]"
    if rate >= 70:
        return "[yellow]⚠[/yellow]"
    return "[red]✗[/red]"


def _endpoint_table(summary: RunSummary) -> Table:
    table = Table(title="📈 Request Breakdown by Endpoint", expand=True)
    table.add_column("", width=2)
    table.add_column("Endpoint", style="cyan")
    table.add_column("OK", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Rate", justify="right")
    for url, tally in summary.endpoints.items():
        table.add_row(
            _endpoint_marker(tally.success_rate),
            escape(url),
            f"{tally.successes:,}",
            f"{tally.total:,}",
            f"{tally.success_rate:.1f}%",
        )
    return table


def print_summary(
    summary: RunSummary,
    results: Sequence[ScenarioResult],
    rampup_seconds: float = 0,
):
    """Print the final report."""
    rampup_line = f"\n[dim]Ramp-up Period:[/dim]        {rampup_seconds:g}s" if rampup_seconds > 0 else ""
    console.print("\n")
    console.print(Panel(
        f"""[bold]Load Test Summary[/bold]

[cyan]Total Scenarios:[/cyan]       {summary.total_scenarios:,}
[cyan]Total Requests:[/cyan]        {summary.total_requests:,}
[green]✓ Successful:[/green]          {summary.successful_requests:,}
[red]✗ Failed:[/red]              {summary.failed_requests:,}
[yellow]Success Rate:[/yellow]          {summary.success_rate:.1f}%
[cyan]Average Response Time:[/cyan] {summary.average_response_ms:.0f}ms
[magenta]Requests/Second:[/magenta]       {summary.requests_per_second:,.1f}
[dim]Total Test Time:[/dim]       {summary.duration_seconds * 1000:,.0f}ms{rampup_line}""",
        title="📊 Load Test Results",
        border_style="green" if summary.failed_requests == 0 else "red",
    ))

    failed = failed_requests(results)
    if failed:
        console.print("\n[bold red]❌ Failed Requests Details:[/bold red]")
        for i, request in enumerate(failed[:MAX_FAILED_DETAILS], start=1):
            console.print(f"[red]{i}. {request.method} {escape(request.url)} ({request.user_id})[/red]")
            if request.status > 0:
                console.print(f"[yellow]   Status: {request.status}[/yellow]")
            if request.error:
                console.print(f"[red]   Error: {escape(request.error)}[/red]")
            console.print(f"[cyan]   Response Time: {request.elapsed_ms:.0f}ms[/cyan]")
        if len(failed) > MAX_FAILED_DETAILS:
            console.print(f"[dim]... and {len(failed) - MAX_FAILED_DETAILS:,} more failed requests[/dim]")

    failed_scenarios = [r for r in results if not r.success]
    if failed_scenarios:
        console.print("\n[bold red]📋 Failed Scenarios Summary:[/bold red]")
        for scenario in failed_scenarios:
            console.print(
                f"[red]  {scenario.user_id}: {scenario.failed_count}/{len(scenario.requests)} requests failed[/red]"
            )

    if summary.endpoints:
        console.print()
        console.print(_endpoint_table(summary))


def generate_report(summary: RunSummary, output_path: Optional[str] = None) -> str:
    """Serialize the summary as JSON, writing it to output_path when given."""
    report = summary.to_dict()
    report["timestamp"] = datetime.now(timezone.utc).isoformat()

    json_str = json.dumps(report, indent=2)

    if output_path:
        Path(output_path).write_text(json_str)
        console.print(f"[green]Report saved to: {escape(output_path)}[/green]")

    return json_str

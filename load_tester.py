#!/usr/bin/env python3
"""
🚀 Pet Store Microservice Load Tester
=====================================
Drives concurrent pet store user journeys against the pet search, adoption,
payment and pet food services and reports latency, throughput and error rate.

Features:
- N users x C concurrent journeys per user, all started at once or ramped
  up evenly over a fixed period
- Endpoint discovery from AWS SSM Parameter Store with local fallbacks
- Live progress while scenarios are in flight
- Summary report with per-endpoint breakdown, optional JSON export
- Dry-run mode to validate scenario wiring without sending traffic

Requirements:
    pip install aiohttp rich boto3

Usage:
    python load_tester.py --users 10 --concurrent 5
    python load_tester.py -u 100 -c 2 --rampup 60 --region eu-west-1
    python load_tester.py -u 3 -c 1 --dry-run --no-discovery -v
"""

import argparse
import asyncio
import logging
import math
import random
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional, List, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from endpoint_discovery import SSMEndpointDiscovery
from load_report import summarize, print_summary, generate_report
from load_types import (
    ConfigurationError,
    Endpoints,
    LoadTestConfig,
    ProgressState,
    RunSummary,
    ScenarioResult,
)
from pet_scenario import PetStoreScenario
from progress_monitor import ProgressMonitor
from request_executor import RequestExecutor, open_transport

console = Console()

RAMP_MILESTONES = (25, 50, 75, 100)


def generate_actor_ids(
    count: int,
    population: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[str]:
    """
    Sequential ids (user0001, user0002, ...) or, with a population, a random
    sample of distinct ids drawn from user0001..user<population>.
    """
    if population is None:
        return [f"user{i:04d}" for i in range(1, count + 1)]
    if population < count:
        raise ConfigurationError(f"Cannot draw {count} distinct users from a population of {population}")
    rng = rng or random.Random()
    return [f"user{n:04d}" for n in rng.sample(range(1, population + 1), count)]


# =============================================================================
# LOAD ORCHESTRATOR
# =============================================================================

class LoadTester:
    """
    Fans out users x concurrent scenarios, then waits for all of them while
    the progress monitor reports on the shared counters.
    """

    def __init__(
        self,
        config: LoadTestConfig,
        endpoints: Endpoints,
        transport=None,
        rng: Optional[random.Random] = None,
        monitor_interval: Optional[float] = None,
    ):
        self.config = config
        self.endpoints = endpoints
        self.rng = rng or random.Random(config.seed)
        self.monitor_interval = monitor_interval
        self._transport = transport
        self.progress: Optional[ProgressState] = None
        self.monitor: Optional[ProgressMonitor] = None
        self.start_times: List[float] = []
        self.started_at = 0.0
        self.finished_at = 0.0

    @property
    def duration(self) -> float:
        """Wall-clock seconds of the last run."""
        end = self.finished_at or time.perf_counter()
        return end - self.started_at if self.started_at else 0.0

    @asynccontextmanager
    async def _transport_context(self):
        if self._transport is not None or self.config.dry_run:
            yield self._transport
            return
        async with open_transport(
            limit=self.config.total_scenarios,
            timeout=self.config.request_timeout,
        ) as transport:
            yield transport

    def _schedule(self, users: List[str]) -> Iterator[str]:
        # Round-major: every user once per round
        for _ in range(self.config.concurrent):
            yield from users

    def _start(self, scenario: PetStoreScenario, user_id: str) -> "asyncio.Task":
        # Seeded in start order so request shapes do not depend on task interleaving
        scenario_rng = random.Random(self.rng.getrandbits(64))
        self.start_times.append(time.perf_counter())
        return asyncio.create_task(scenario.run(user_id, scenario_rng))

    async def run(self) -> List[ScenarioResult]:
        config = self.config
        total = config.total_scenarios
        users = generate_actor_ids(config.users, config.population, self.rng)

        console.print("\n[blue]🎯 Starting load test...[/blue]")

        self.progress = ProgressState(total)
        self.start_times = []
        self.finished_at = 0.0
        self.started_at = time.perf_counter()
        tasks: List[asyncio.Task] = []

        try:
            async with self._transport_context() as transport:
                executor = RequestExecutor(
                    transport,
                    dry_run=config.dry_run,
                    verbose=config.verbose,
                    timeout=config.request_timeout,
                )
                scenario = PetStoreScenario(self.endpoints, executor, self.progress, self.rng)

                try:
                    if config.rampup_seconds > 0:
                        console.print(
                            f"[cyan]📈 Ramping up {total:,} scenarios over {config.rampup_seconds:g} seconds...[/cyan]"
                        )
                        await self._start_ramped(scenario, users, tasks)
                    else:
                        console.print(f"[yellow]⚡ Running {total:,} concurrent scenarios...[/yellow]")
                        for user_id in self._schedule(users):
                            tasks.append(self._start(scenario, user_id))

                    return await self._wait_all(tasks)
                except BaseException:
                    for task in tasks:
                        task.cancel()
                    await asyncio.gather(*tasks, return_exceptions=True)
                    raise
        finally:
            self.finished_at = time.perf_counter()

    async def _start_ramped(
        self,
        scenario: PetStoreScenario,
        users: List[str],
        tasks: List[asyncio.Task],
    ):
        config = self.config
        total = config.total_scenarios
        interval = config.rampup_seconds / total
        milestones = {math.ceil(total * pct / 100) for pct in RAMP_MILESTONES}

        console.print(f"[dim]⏱️  Starting new scenario every {interval * 1000:.0f}ms[/dim]")

        ramp_start = time.perf_counter()
        for index, user_id in enumerate(self._schedule(users), start=1):
            tasks.append(self._start(scenario, user_id))

            elapsed_ms = (time.perf_counter() - ramp_start) * 1000
            if config.verbose:
                console.print(
                    f"[dim][RAMP-UP] Starting scenario {index}/{total} for {user_id} "
                    f"({elapsed_ms:.0f}ms elapsed)[/dim]"
                )
            elif index % config.checkpoint_every == 0 or index in milestones:
                snap = await self.progress.snapshot()
                console.print(
                    f"[dim][RAMP-UP] {index:,}/{total:,} started ({index / total * 100:.0f}%) | "
                    f"{snap.completed:,} completed | {elapsed_ms / 1000:.1f}s elapsed[/dim]"
                )

            if index < total:
                # Pace against the ramp start so sleep overhead does not accumulate
                delay = ramp_start + index * interval - time.perf_counter()
                await asyncio.sleep(max(delay, 0))

        console.print(f"[green]🚀 All {total:,} scenarios started, waiting for completion...[/green]")

    async def _wait_all(self, tasks: List[asyncio.Task]) -> List[ScenarioResult]:
        self.monitor = ProgressMonitor(self.progress, interval=self.monitor_interval)
        monitor_task = self.monitor.start()
        try:
            return list(await asyncio.gather(*tasks))
        finally:
            await ProgressMonitor.stop(monitor_task)


# =============================================================================
# MAIN
# =============================================================================

def configure_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


async def resolve_endpoints(config: LoadTestConfig) -> Endpoints:
    if config.discover:
        discovery = SSMEndpointDiscovery(config.region)
        # boto3 is blocking
        endpoints = await asyncio.to_thread(discovery.resolve_endpoints)
    else:
        endpoints = Endpoints.from_env()

    if endpoints.is_empty():
        raise ConfigurationError("No usable endpoints: every endpoint URL is empty")
    return endpoints


async def run_load_test(config: LoadTestConfig) -> RunSummary:
    """Discover endpoints, run the load test and print the report."""
    console.print("[bold blue]🚀 Microservice Load Tester[/bold blue]")
    console.print(
        f"[dim]Users: {config.users}, Concurrent: {config.concurrent}, Region: {config.region}"
        f"{' (dry run)' if config.dry_run else ''}[/dim]"
    )

    endpoints = await resolve_endpoints(config)

    tester = LoadTester(config, endpoints)
    results = await tester.run()

    summary = summarize(results, tester.duration)
    print_summary(summary, results, rampup_seconds=config.rampup_seconds)

    if config.output:
        generate_report(summary, config.output)

    return summary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="🚀 High concurrent load testing CLI for the pet store microservices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--users", "-u", type=int, default=10, help="Number of users")
    parser.add_argument("--concurrent", "-c", type=int, default=5, help="Concurrent scenarios per user")
    parser.add_argument("--region", "-r", default="us-east-1", help="AWS region for endpoint discovery")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be tested without sending requests")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log every request")
    parser.add_argument("--rampup", type=float, default=0,
                        help="Seconds over which to spread scenario starts (0 = start all at once)")
    parser.add_argument("--population", type=int,
                        help="Draw random distinct user ids from this many users instead of user0001..N")
    parser.add_argument("--seed", type=int, help="Seed for user ids and per-scenario request choices")
    parser.add_argument("--timeout", "-t", type=float, default=10.0, help="Per-request timeout in seconds")
    parser.add_argument("--checkpoint-every", type=int, default=10,
                        help="Ramp-up progress line every N scenario starts")
    parser.add_argument("--no-discovery", action="store_true", help="Skip SSM and use default endpoints")
    parser.add_argument("--output", "-o", type=str, help="Output file for JSON report")
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> LoadTestConfig:
    return LoadTestConfig(
        users=args.users,
        concurrent=args.concurrent,
        region=args.region,
        dry_run=args.dry_run,
        verbose=args.verbose,
        rampup_seconds=args.rampup,
        population=args.population,
        seed=args.seed,
        request_timeout=args.timeout,
        checkpoint_every=args.checkpoint_every,
        discover=not args.no_discovery,
        output=args.output,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = config_from_args(args)
        asyncio.run(run_load_test(config))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())

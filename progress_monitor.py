"""
Progress monitor
================
Background sampler for the shared progress counters while the orchestrator
waits on its scenarios. It only reads state and can be cancelled at any time.
"""

import asyncio
from typing import Optional, List

from rich.console import Console

from load_types import ProgressState, ProgressSnapshot

console = Console()


def sample_interval(total: int) -> float:
    """Seconds between samples; larger runs are sampled less often."""
    if total <= 50:
        return 1.0
    if total <= 500:
        return 2.0
    if total <= 5000:
        return 5.0
    return 10.0


class ProgressMonitor:

    def __init__(
        self,
        state: ProgressState,
        interval: Optional[float] = None,
        quiet: bool = False,
    ):
        self.state = state
        self.interval = interval if interval is not None else sample_interval(state.total)
        self.quiet = quiet
        self.snapshots: List[ProgressSnapshot] = []

    async def sample(self) -> ProgressSnapshot:
        snap = await self.state.snapshot()
        self.snapshots.append(snap)
        if not self.quiet:
            console.print(
                f"[dim]📊 Progress: {snap.completed:,}/{snap.total:,} scenarios ({snap.percent:.1f}%) | "
                f"{snap.requests:,} requests | {snap.failed:,} failed | {snap.rps:,.1f} req/s[/dim]"
            )
        return snap

    async def run(self):
        """Sample until every expected scenario has completed."""
        while True:
            snap = await self.state.snapshot()
            if snap.completed >= snap.total:
                return
            await asyncio.sleep(self.interval)
            snap = await self.sample()
            if snap.completed >= snap.total:
                return

    def start(self) -> "asyncio.Task":
        return asyncio.create_task(self.run())

    @staticmethod
    async def stop(task: "asyncio.Task"):
        """Cancel a running monitor task and wait for it to unwind."""
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

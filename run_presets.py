#!/usr/bin/env python3
"""
🎯 Preset Load Profiles
=======================
Pre-configured pet store load profiles, from a three-user smoke check to a
long soak.

Usage:
    python run_presets.py smoke --dry-run --no-discovery
    python run_presets.py moderate --region eu-west-1
    python run_presets.py spike
"""

import argparse
import asyncio
import sys
from typing import Optional, List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from load_tester import configure_logging, run_load_test
from load_types import ConfigurationError, LoadTestConfig

console = Console()

# =============================================================================
# PRESET CONFIGURATIONS
# =============================================================================

PRESETS = {
    "smoke": {
        "name": "🌱 Smoke Check",
        "description": "Three users, one journey each, to verify every service answers",
        "params": {"users": 3, "concurrent": 1},
    },
    "gentle": {
        "name": "🚶 Gentle Warmup",
        "description": "Light load started all at once",
        "params": {"users": 10, "concurrent": 1},
    },
    "moderate": {
        "name": "🏃 Moderate Load",
        "description": "Production-like traffic ramped up over 30 seconds",
        "params": {"users": 50, "concurrent": 2, "rampup_seconds": 30},
    },
    "heavy": {
        "name": "🏋️ Heavy Load",
        "description": "Sustained pressure ramped up over two minutes",
        "params": {"users": 200, "concurrent": 5, "rampup_seconds": 120},
    },
    "spike": {
        "name": "⚡ Spike",
        "description": "Everything starts at once to test burst handling",
        "params": {"users": 500, "concurrent": 2},
    },
    "soak": {
        "name": "🛁 Soak",
        "description": "Randomized users from a large population over ten minutes",
        "params": {"users": 1000, "concurrent": 3, "rampup_seconds": 600, "population": 10000},
    },
}


def print_presets():
    """Print all available presets."""
    console.print("\n[bold]Available Presets:[/bold]\n")
    for key, preset in PRESETS.items():
        params = preset["params"]
        shape = f"{params['users']}x{params['concurrent']}"
        if params.get("rampup_seconds"):
            shape += f", ramp {params['rampup_seconds']}s"
        console.print(f"  [cyan]{key:<10}[/cyan] {preset['name']:<22} [dim]({shape})[/dim] - {preset['description']}")
    console.print("")


def build_config(
    preset_name: str,
    region: str = "us-east-1",
    dry_run: bool = False,
    discover: bool = True,
    output: Optional[str] = None,
) -> LoadTestConfig:
    if preset_name not in PRESETS:
        raise ConfigurationError(f"Unknown preset: {preset_name}")
    return LoadTestConfig(
        region=region,
        dry_run=dry_run,
        discover=discover,
        output=output,
        **PRESETS[preset_name]["params"],
    )


async def run_preset(config: LoadTestConfig, preset_name: str):
    """Run a preset profile."""
    preset = PRESETS[preset_name]
    console.print(Panel(
        f"[bold]{preset['name']}[/bold]\n\n{preset['description']}",
        title=f"Running Preset: {preset_name}",
        border_style="blue",
    ))
    return await run_load_test(config)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="🎯 Preset pet store load profiles")
    parser.add_argument("preset", nargs="?", help="Preset name")
    parser.add_argument("--region", "-r", default="us-east-1")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--no-discovery", action="store_true")
    parser.add_argument("--output", "-o", type=str)
    args = parser.parse_args(argv)

    if not args.preset:
        print_presets()
        return 0

    configure_logging()
    try:
        config = build_config(
            args.preset,
            region=args.region,
            dry_run=args.dry_run,
            discover=not args.no_discovery,
            output=args.output,
        )
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        print_presets()
        return 2

    try:
        asyncio.run(run_preset(config, args.preset))
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())

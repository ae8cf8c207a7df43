"""One-call entry point that runs a registry the way the settings describe.

``run_scenarios`` configures logging from ``log_level``/``json_logs``, builds
a simulated world for ``network``/``deployment`` unless one is given, runs
the registry and writes a report for each of ``report_formats`` into
``report_dir``.

Example:
    >>> settings = load_settings("cometqa.yaml")
    >>> result = run_scenarios_sync(registry, settings=settings)
    >>> result.raise_for_failures()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from rich.console import Console

from cometqa.config import RunnerSettings, load_settings
from cometqa.observability import configure_logging
from cometqa.reporters import ConsoleReporter, write_reports
from cometqa.scenario import Constraint, RunResult, ScenarioRegistry, ScenarioRunner, World
from cometqa.world import ForkingWorld

logger = logging.getLogger(__name__)


async def run_scenarios(
    registry: ScenarioRegistry,
    world: World | None = None,
    constraints: Iterable[Constraint] | None = None,
    settings: RunnerSettings | None = None,
    console: Console | None = None,
) -> RunResult:
    """Run every selected scenario and write the configured reports.

    Args:
        registry: Scenarios to run.
        world: Source of isolated Contexts. Defaults to a simulated market
            for the configured network and deployment.
        constraints: Constraints in registration order, defaults to
            ``default_constraints()``.
        settings: Run settings, defaults to ``load_settings()``.
        console: Where the console report is printed when ``console`` is
            one of the report formats.

    Returns:
        The run result.
    """
    settings = settings or load_settings()
    configure_logging(level=settings.log_level, json_format=settings.json_logs)

    if world is None:
        world = ForkingWorld.from_settings(settings)
        logger.info(f"Using simulated {settings.network}/{settings.deployment} market")

    result = await ScenarioRunner(world, constraints, settings).run(registry)

    if "console" in settings.report_formats:
        ConsoleReporter(console=console).print(result)
    write_reports(result, settings)
    return result


def run_scenarios_sync(
    registry: ScenarioRegistry,
    world: World | None = None,
    constraints: Iterable[Constraint] | None = None,
    settings: RunnerSettings | None = None,
    console: Console | None = None,
) -> RunResult:
    return asyncio.run(run_scenarios(registry, world, constraints, settings, console))

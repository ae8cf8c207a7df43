"""Scenario runner.

For every selected scenario the runner:

1. evaluates the admission filter on a freshly acquired Context (false means
   every execution is reported skipped and nothing is applied),
2. resolves context-dependent requirement values on that same Context and
   fuzzes the template into concrete variants,
3. runs each variant as an independent execution on its own isolated
   Context: solve with every constraint in registration order, apply the
   solutions in sequence, optionally check each constraint's
   post-condition, then run the body,
4. restores the Context's state when the execution ends, however it ends.

Executions run concurrently on an asyncio worker pool bounded by
``settings.workers``; the steps inside one execution are strictly
sequential.

Example:
    >>> runner = ScenarioRunner(ForkingWorld.simulated(), default_constraints())
    >>> result = runner.run_sync(registry)
    >>> print(result.summary())
    >>> result.raise_for_failures()
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from cometqa.config import RunnerSettings
from cometqa.errors import (
    CometQAError,
    ConstraintCheckError,
    ConstraintConflictError,
    SolveError,
)
from cometqa.observability.logging import log_context
from cometqa.scenario.constraint import Constraint, NotApplicable
from cometqa.scenario.context import World
from cometqa.scenario.fuzzing import fuzz
from cometqa.scenario.registry import Scenario, ScenarioRegistry
from cometqa.scenario.requirements import ConcreteRequirement
from cometqa.scenario.result import ExecutionResult, RunResult, ScenarioStatus
from cometqa.scenario.solution import Solution, apply_solutions

logger = logging.getLogger(__name__)


def find_conflicts(solutions: Sequence[Solution]) -> dict[str, list[str]]:
    """Configuration fields written by solutions of more than one constraint."""
    writers: dict[str, list[str]] = {}
    for solution in solutions:
        for name in sorted(solution.touches):
            owners = writers.setdefault(name, [])
            if solution.constraint not in owners:
                owners.append(solution.constraint)
    return {name: owners for name, owners in writers.items() if len(owners) > 1}


class ScenarioRunner:
    """Expands, sets up and executes registered scenarios."""

    def __init__(
        self,
        world: World,
        constraints: Iterable[Constraint] | None = None,
        settings: RunnerSettings | None = None,
    ) -> None:
        if constraints is None:
            from cometqa.constraints import default_constraints

            constraints = default_constraints()
        self.world = world
        self.constraints = list(constraints)
        self.settings = settings or RunnerSettings()
        self._stopped = False

    # -- public API --------------------------------------------------------

    async def run(self, registry: ScenarioRegistry) -> RunResult:
        """Run every selected scenario in the registry."""
        scenarios = registry.selected()
        run = RunResult()
        self._stopped = False
        semaphore = asyncio.Semaphore(self.settings.workers)

        logger.info(f"Running {len(scenarios)} scenarios with {self.settings.workers} workers")
        per_scenario = await asyncio.gather(
            *(self._run_scenario(scenario, semaphore) for scenario in scenarios)
        )
        for results in per_scenario:
            run.results.extend(results)
        run.finished_at = datetime.now()

        counts = run.counts()
        logger.info(
            f"Run finished: {counts['passed']} passed, {len(run.failures)} failed, "
            f"{counts['skipped']} skipped"
        )
        return run

    def run_sync(self, registry: ScenarioRegistry) -> RunResult:
        return asyncio.run(self.run(registry))

    async def run_scenario(self, scenario: Scenario) -> list[ExecutionResult]:
        """Run all executions of one scenario."""
        self._stopped = False
        return await self._run_scenario(scenario, asyncio.Semaphore(self.settings.workers))

    async def plan(self, scenario: Scenario) -> list[ConcreteRequirement] | ExecutionResult:
        """Filter and expand a scenario.

        Returns the concrete variants to execute, or a terminal result when
        the scenario is skipped or its requirement cannot be expanded.
        """
        stage = "filter"
        start = time.perf_counter()
        with log_context(scenario=scenario.name):
            try:
                async with self.world.isolated() as context:
                    if not await scenario.admit(context):
                        logger.info(f"Skipping {scenario.name}: filter rejected the context")
                        return self._skipped(scenario.name, "filtered out", stage)
                    stage = "resolve"
                    resolved = await scenario.requirement.resolve(context)
                    variants = fuzz(resolved)
            except Exception as e:
                result = ExecutionResult(scenario=scenario.name)
                self._fail(result, ScenarioStatus.SETUP_FAILED, stage, e)
                result.duration_ms = (time.perf_counter() - start) * 1000
                return result

        if not variants:
            logger.info(f"Skipping {scenario.name}: requirement expands to no variants")
            return self._skipped(scenario.name, "no variants", "resolve")
        logger.debug(f"{scenario.name} expands to {len(variants)} variants")
        return variants

    async def execute(self, scenario: Scenario, variant: ConcreteRequirement) -> ExecutionResult:
        """Run one concrete variant of a scenario on its own isolated Context."""
        result = ExecutionResult(scenario=scenario.name, variant=variant.label)
        start = time.perf_counter()
        with log_context(scenario=scenario.name, variant=variant.label or "-"):
            try:
                async with self.world.isolated() as context:
                    await self._setup_and_run(scenario, variant, context, result)
            except Exception as e:
                # isolation itself failed: snapshot on entry or restore on exit
                if result.status == ScenarioStatus.PASSED:
                    self._fail(result, ScenarioStatus.ERRORED, "isolation", e)
                else:
                    logger.error(f"Teardown of {result.display_name} failed: {e}")
        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(f"{result.display_name}: {result.status.value} ({result.duration_ms:.1f}ms)")
        return result

    # -- internals ---------------------------------------------------------

    async def _run_scenario(self, scenario: Scenario, semaphore: asyncio.Semaphore) -> list[ExecutionResult]:
        if scenario.skip:
            return [self._skipped(scenario.name, "marked skip", None)]

        async with semaphore:
            if self._stopped:
                return [self._skipped(scenario.name, "fail fast", None)]
            planned = await self.plan(scenario)
        if isinstance(planned, ExecutionResult):
            self._note(planned)
            return [planned]

        async def bounded(variant: ConcreteRequirement) -> ExecutionResult:
            async with semaphore:
                if self._stopped:
                    return self._skipped(scenario.name, "fail fast", None, variant.label)
                outcome = await self.execute(scenario, variant)
            self._note(outcome)
            return outcome

        return list(await asyncio.gather(*(bounded(variant) for variant in planned)))

    async def _solve(
        self, variant: ConcreteRequirement, context: Any
    ) -> tuple[list[Solution], list[Constraint]]:
        solutions: list[Solution] = []
        applicable: list[Constraint] = []
        for constraint in self.constraints:
            try:
                outcome = await constraint.solve(variant, context)
            except CometQAError as e:
                e.with_context(constraint=constraint.name)
                raise
            except Exception as e:
                raise SolveError(
                    message=f"{constraint.name} failed to solve: {type(e).__name__}: {e}",
                    cause=e,
                ).with_context(constraint=constraint.name) from e
            if isinstance(outcome, NotApplicable):
                continue
            applicable.append(constraint)
            solutions.extend(outcome)
        return solutions, applicable

    async def _setup_and_run(
        self,
        scenario: Scenario,
        variant: ConcreteRequirement,
        context: Any,
        result: ExecutionResult,
    ) -> None:
        stage = "solve"
        try:
            solutions, applicable = await self._solve(variant, context)
            result.solutions = [s.name for s in solutions]

            conflicts = find_conflicts(solutions)
            if conflicts:
                result.conflicts = conflicts
                described = "; ".join(f"{name} <- {', '.join(owners)}" for name, owners in conflicts.items())
                if self.settings.fail_on_conflict:
                    raise ConstraintConflictError(
                        message=f"Constraints write the same configuration fields: {described}",
                        conflicts=conflicts,
                    )
                logger.warning(f"Constraints write the same configuration fields, last one wins: {described}")

            stage = "apply"
            logger.debug(f"Applying {len(solutions)} solutions")
            context = await apply_solutions(solutions, context)

            if self.settings.verify_constraints:
                stage = "check"
                conflicting = {owner for owners in conflicts.values() for owner in owners}
                for constraint in applicable:
                    if constraint.name in conflicting:
                        logger.debug(f"Not checking {constraint.name}: its fields were overwritten")
                        continue
                    try:
                        await constraint.check(variant, context)
                    except CometQAError as e:
                        e.with_context(constraint=constraint.name)
                        raise
                    except Exception as e:
                        raise ConstraintCheckError(
                            message=f"{constraint.name} check failed: {type(e).__name__}: {e}",
                            cause=e,
                        ).with_context(constraint=constraint.name) from e
        except Exception as e:
            self._fail(result, ScenarioStatus.SETUP_FAILED, stage, e)
            return

        try:
            await scenario.invoke(context, variant)
        except AssertionError as e:
            self._fail(result, ScenarioStatus.FAILED, "body", e)
        except Exception as e:
            self._fail(result, ScenarioStatus.ERRORED, "body", e)
        else:
            result.status = ScenarioStatus.PASSED
            result.stage = "body"

    def _fail(self, result: ExecutionResult, status: ScenarioStatus, stage: str, error: BaseException) -> None:
        if isinstance(error, CometQAError):
            error.with_context(scenario_name=result.scenario, variant=result.variant or None, stage=stage)
            message = str(error)
        else:
            message = str(error) or type(error).__name__
        result.status = status
        result.stage = stage
        result.error = message
        result.error_type = type(error).__name__
        result.traceback = "".join(traceback.format_exception(type(error), error, error.__traceback__))

        log = logger.warning if status == ScenarioStatus.FAILED else logger.error
        log(f"{result.display_name} {status.value} at {stage}: {message}")

    def _skipped(
        self, scenario: str, reason: str, stage: str | None, variant: str = ""
    ) -> ExecutionResult:
        return ExecutionResult(
            scenario=scenario,
            variant=variant,
            status=ScenarioStatus.SKIPPED,
            stage=stage,
            reason=reason,
        )

    def _note(self, result: ExecutionResult) -> None:
        if result.status.is_failure and self.settings.fail_fast and not self._stopped:
            logger.warning(f"Stopping after first failure: {result.display_name}")
            self._stopped = True

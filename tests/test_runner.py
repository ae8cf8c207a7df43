"""Tests for the scenario runner."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

import pytest

from cometqa.config import RunnerSettings
from cometqa.errors import ScenarioFailedError
from cometqa.scenario import (
    ConcreteRequirement,
    OneOf,
    ScenarioRegistry,
    ScenarioRunner,
    ScenarioStatus,
    Solution,
    find_conflicts,
)
from cometqa.world import ForkingWorld, SnapshotWorld
from tests.conftest import ExplodingConstraint, FakeContext, FakeWorld, RecordingConstraint


def _settings(**overrides: Any) -> RunnerSettings:
    return RunnerSettings(_env_file=None, **overrides)


def _noop(ctx: Any) -> None:
    return None


# =============================================================================
# Outcomes
# =============================================================================


class TestOutcomes:
    """Each execution ends in exactly one status."""

    @pytest.mark.asyncio
    async def test_passing_scenario(self, fake_world: FakeWorld) -> None:
        level = RecordingConstraint("level", "level")
        registry = ScenarioRegistry()
        registry.scenario("passes", {"level": 3}, _noop)

        result = await ScenarioRunner(fake_world, [level], _settings()).run(registry)

        execution = result.get("passes")
        assert execution.status == ScenarioStatus.PASSED
        assert execution.stage == "body"
        assert execution.solutions == ["level(3)"]
        assert level.seen == [3]
        assert level.checked == [3]
        assert result.success

    @pytest.mark.asyncio
    async def test_repeated_values_get_distinct_names(self, fake_world: FakeWorld) -> None:
        level = RecordingConstraint("level", "level")
        registry = ScenarioRegistry()
        registry.scenario("twice", {"level": OneOf([1, 1])}, _noop)

        result = await ScenarioRunner(fake_world, [level], _settings()).run(registry)

        names = sorted(r.display_name for r in result.results)
        assert names == ["twice [level=1, #1]", "twice [level=1, #2]"]
        assert result.get("twice [level=1, #2]").status == ScenarioStatus.PASSED
        assert level.seen == [1, 1]

    @pytest.mark.asyncio
    async def test_assertion_is_failed(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()

        @registry.scenario("asserts")
        async def asserts(ctx: Any) -> None:
            assert ctx.version == 99, "wrong version"

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        execution = result.get("asserts")
        assert execution.status == ScenarioStatus.FAILED
        assert execution.stage == "body"
        assert execution.error_type == "AssertionError"
        assert "wrong version" in execution.error

    @pytest.mark.asyncio
    async def test_exception_is_errored(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()

        @registry.scenario("raises")
        def raises(ctx: Any) -> None:
            raise KeyError("missing")

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        execution = result.get("raises")
        assert execution.status == ScenarioStatus.ERRORED
        assert execution.error_type == "KeyError"
        assert "KeyError" in execution.traceback

    @pytest.mark.asyncio
    async def test_solve_failure_is_setup_failed(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("solver", {"explode": True}, _noop)

        result = await ScenarioRunner(fake_world, [ExplodingConstraint()], _settings()).run(registry)

        execution = result.get("solver")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "solve"
        assert execution.error_type == "SolveError"
        assert "solver blew up" in execution.error
        assert "constraint=exploding" in execution.error

    @pytest.mark.asyncio
    async def test_apply_failure_is_setup_failed(self, fake_world: FakeWorld) -> None:
        class Broken(RecordingConstraint):
            def build_solutions(self, values: dict, context: Any) -> list[Solution]:
                async def fail(ctx: Any) -> Any:
                    raise RuntimeError("ledger rejected")

                return [Solution("broken", fail, constraint=self.name)]

        registry = ScenarioRegistry()
        ran: list[bool] = []
        registry.scenario("apply", {"level": 1}, lambda ctx: ran.append(True))

        result = await ScenarioRunner(fake_world, [Broken("level", "level")], _settings()).run(registry)

        execution = result.get("apply")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "apply"
        assert execution.error_type == "ApplyError"
        assert "solution=broken" in execution.error
        assert ran == []

    @pytest.mark.asyncio
    async def test_check_failure_is_setup_failed(self, fake_world: FakeWorld) -> None:
        class Unsatisfied(RecordingConstraint):
            async def verify(self, values: dict, context: Any) -> None:
                raise ValueError("post-condition broken")

        registry = ScenarioRegistry()
        registry.scenario("check", {"level": 1}, _noop)

        result = await ScenarioRunner(fake_world, [Unsatisfied("level", "level")], _settings()).run(registry)

        execution = result.get("check")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "check"
        assert execution.error_type == "ConstraintCheckError"

    @pytest.mark.asyncio
    async def test_checks_can_be_disabled(self, fake_world: FakeWorld) -> None:
        level = RecordingConstraint("level", "level")
        registry = ScenarioRegistry()
        registry.scenario("unchecked", {"level": 1}, _noop)

        await ScenarioRunner(fake_world, [level], _settings(verify_constraints=False)).run(registry)

        assert level.seen == [1]
        assert level.checked == []

    @pytest.mark.asyncio
    async def test_raise_for_failures(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("ok", {}, _noop)
        registry.scenario("bad", {}, lambda ctx: 1 / 0)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        with pytest.raises(ScenarioFailedError) as exc_info:
            result.raise_for_failures()
        assert [f.scenario for f in exc_info.value.failures] == ["bad"]
        assert "FAILURES (1)" in result.summary()


# =============================================================================
# Filtering, skipping and expansion
# =============================================================================


class TestSelection:
    """Which executions run at all."""

    @pytest.mark.asyncio
    async def test_filter_false_skips_without_setup(self, fake_world: FakeWorld) -> None:
        level = RecordingConstraint("level", "level")
        registry = ScenarioRegistry()
        registry.scenario("filtered", {"level": OneOf([1, 2])}, _noop, filter=lambda ctx: False)

        result = await ScenarioRunner(fake_world, [level], _settings()).run(registry)

        assert len(result.results) == 1
        execution = result.results[0]
        assert execution.status == ScenarioStatus.SKIPPED
        assert execution.reason == "filtered out"
        assert level.seen == []

    @pytest.mark.asyncio
    async def test_async_filter(self, fake_world: FakeWorld) -> None:
        async def only_version_zero(ctx: FakeContext) -> bool:
            return ctx.version == 0

        registry = ScenarioRegistry()
        registry.scenario("admitted", {}, _noop, filter=only_version_zero)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)
        assert result.get("admitted").passed

    @pytest.mark.asyncio
    async def test_filter_exception_is_setup_failed(self, fake_world: FakeWorld) -> None:
        def broken(ctx: Any) -> bool:
            raise RuntimeError("filter broke")

        registry = ScenarioRegistry()
        registry.scenario("broken filter", {}, _noop, filter=broken)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        execution = result.get("broken filter")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "filter"

    @pytest.mark.asyncio
    async def test_resolution_failure_is_setup_failed(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("unresolvable", {"level": lambda ctx: ctx.missing}, _noop)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        execution = result.get("unresolvable")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "resolve"
        assert execution.error_type == "RequirementResolutionError"

    @pytest.mark.asyncio
    async def test_marked_skip(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.skip("later", {}, _noop)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        assert result.results[0].status == ScenarioStatus.SKIPPED
        assert result.results[0].reason == "marked skip"
        assert fake_world.acquired == 0

    @pytest.mark.asyncio
    async def test_only_restricts_run(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("ignored", {}, _noop)
        registry.only("focused", {}, _noop)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)
        assert [r.scenario for r in result.results] == ["focused"]

    @pytest.mark.asyncio
    async def test_empty_expansion_is_skipped(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("empty", {"level": OneOf([])}, _noop)

        result = await ScenarioRunner(fake_world, [], _settings()).run(registry)

        assert result.results[0].status == ScenarioStatus.SKIPPED
        assert result.results[0].reason == "no variants"

    @pytest.mark.asyncio
    async def test_variants_run_in_enumeration_order(self, fake_world: FakeWorld) -> None:
        seen: list[Any] = []
        registry = ScenarioRegistry()

        @registry.scenario("fuzzed", {"a": OneOf([1, 2]), "b": OneOf(["x", "y"])})
        async def fuzzed(ctx: Any, requirement: ConcreteRequirement) -> None:
            seen.append((requirement["a"], requirement["b"]))

        result = await ScenarioRunner(fake_world, [], _settings(workers=1)).run(registry)

        assert seen == [(1, "x"), (1, "y"), (2, "x"), (2, "y")]
        assert [r.display_name for r in result.results] == [
            "fuzzed [a=1, b='x']",
            "fuzzed [a=1, b='y']",
            "fuzzed [a=2, b='x']",
            "fuzzed [a=2, b='y']",
        ]

    @pytest.mark.asyncio
    async def test_dynamic_requirement_resolved_before_fuzzing(self, fake_world: FakeWorld) -> None:
        level = RecordingConstraint("level", "level")
        registry = ScenarioRegistry()
        registry.scenario("dynamic", {"level": lambda ctx: OneOf([ctx.version, ctx.version + 1])}, _noop)

        result = await ScenarioRunner(fake_world, [level], _settings(workers=1)).run(registry)

        assert len(result.results) == 2
        assert level.seen == [0, 1]


# =============================================================================
# Conflicts
# =============================================================================


class TestConflicts:
    """Two constraints writing the same configuration field."""

    def test_find_conflicts(self) -> None:
        async def same(ctx: Any) -> Any:
            return ctx

        solutions = [
            Solution("a", same, constraint="upgrade", touches=frozenset({"asset_configs", "kink"})),
            Solution("b", same, constraint="supply_caps", touches=frozenset({"asset_configs"})),
            Solution("c", same, constraint="upgrade", touches=frozenset({"kink"})),
        ]
        assert find_conflicts(solutions) == {"asset_configs": ["upgrade", "supply_caps"]}

    @pytest.mark.asyncio
    async def test_conflict_is_recorded_and_later_wins(self, fake_world: FakeWorld) -> None:
        first = RecordingConstraint("first", "one", touches=frozenset({"base_token"}))
        second = RecordingConstraint("second", "two", touches=frozenset({"base_token"}))
        registry = ScenarioRegistry()
        registry.scenario("conflict", {"one": 1, "two": 2}, _noop)

        result = await ScenarioRunner(fake_world, [first, second], _settings()).run(registry)

        execution = result.get("conflict")
        assert execution.status == ScenarioStatus.PASSED
        assert execution.conflicts == {"base_token": ["first", "second"]}
        assert fake_world.contexts[-1].log == ["first=1", "second=2"]
        assert first.checked == []
        assert second.checked == []

    @pytest.mark.asyncio
    async def test_conflict_fails_setup_when_configured(self, fake_world: FakeWorld) -> None:
        first = RecordingConstraint("first", "one", touches=frozenset({"base_token"}))
        second = RecordingConstraint("second", "two", touches=frozenset({"base_token"}))
        registry = ScenarioRegistry()
        registry.scenario("conflict", {"one": 1, "two": 2}, _noop)

        result = await ScenarioRunner(
            fake_world, [first, second], _settings(fail_on_conflict=True)
        ).run(registry)

        execution = result.get("conflict")
        assert execution.status == ScenarioStatus.SETUP_FAILED
        assert execution.stage == "solve"
        assert execution.error_type == "ConstraintConflictError"
        assert fake_world.contexts[-1].log == []


# =============================================================================
# Scheduling
# =============================================================================


class TestScheduling:
    """Worker pool, fail fast and ordering."""

    @pytest.mark.asyncio
    async def test_constraints_apply_in_registration_order(self, fake_world: FakeWorld) -> None:
        constraints = [RecordingConstraint("b", "b"), RecordingConstraint("a", "a")]
        registry = ScenarioRegistry()
        registry.scenario("ordered", {"a": 1, "b": 2}, _noop)

        await ScenarioRunner(fake_world, constraints, _settings()).run(registry)

        assert fake_world.contexts[-1].log == ["b=2", "a=1"]

    @pytest.mark.asyncio
    async def test_workers_bound_concurrency(self, fake_world: FakeWorld) -> None:
        active = 0
        peak = 0
        registry = ScenarioRegistry()

        async def body(ctx: Any) -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        registry.scenario("many", {"n": OneOf(range(6))}, body)

        result = await ScenarioRunner(fake_world, [], _settings(workers=2)).run(registry)

        assert len(result.passed) == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_fail_fast_skips_remaining(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("first", {}, lambda ctx: 1 / 0)
        registry.scenario("second", {}, _noop)

        result = await ScenarioRunner(fake_world, [], _settings(workers=1, fail_fast=True)).run(registry)

        assert result.get("first").status == ScenarioStatus.ERRORED
        assert result.get("second").status == ScenarioStatus.SKIPPED
        assert result.get("second").reason == "fail fast"

    def test_run_sync(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("sync", {}, _noop)
        result = ScenarioRunner(fake_world, [], _settings()).run_sync(registry)
        assert result.success
        assert result.counts()["passed"] == 1

    def test_default_constraints(self, fake_world: FakeWorld) -> None:
        runner = ScenarioRunner(fake_world)
        assert [c.name for c in runner.constraints] == [
            "upgrade",
            "supply_caps",
            "prices",
            "token_balances",
            "comet_balances",
            "utilization",
            "pause",
        ]


# =============================================================================
# Isolation
# =============================================================================


class TestIsolation:
    """Every execution starts from, and leaves behind, the baseline state."""

    @pytest.mark.asyncio
    async def test_every_context_is_restored(self, fake_world: FakeWorld) -> None:
        registry = ScenarioRegistry()
        registry.scenario("ok", {"n": OneOf([1, 2])}, _noop)
        registry.scenario("bad", {}, lambda ctx: 1 / 0)

        await ScenarioRunner(fake_world, [], _settings()).run(registry)

        # one planning context per scenario plus one per execution
        assert fake_world.acquired == 5
        assert fake_world.restored == 5

    @pytest.mark.asyncio
    async def test_snapshot_world_state_is_restored(self, snapshot_world: SnapshotWorld) -> None:
        chain = snapshot_world.snapshotter
        registry = ScenarioRegistry()

        @registry.scenario("mutates", {"token_balances": {"albert": {"$base": 100}}})
        async def mutates(ctx: Any) -> None:
            assert await ctx.balance_of("albert", "$base") == 100 * 10**6
            await ctx.pause(supply_paused=True)
            raise AssertionError("fail after mutating")

        result = await ScenarioRunner(snapshot_world, settings=_settings()).run(registry)

        assert result.get("mutates").status == ScenarioStatus.FAILED
        assert chain.balance_of("albert", "USDC") == 0
        assert chain.state.pause["supply_paused"] is False

    @pytest.mark.asyncio
    async def test_forking_world_isolates_variants(self, forking_world: ForkingWorld) -> None:
        balances: list[int] = []
        registry = ScenarioRegistry()

        @registry.scenario("variants", {"token_balances": {"albert": {"$base": OneOf([1, 2, 3])}}})
        async def variants(ctx: Any) -> None:
            await ctx.source_tokens("albert", "$base", 10**6)
            balances.append(await ctx.balance_of("albert", "$base"))

        result = await ScenarioRunner(forking_world, settings=_settings()).run(registry)

        assert result.success
        assert sorted(balances) == [2 * 10**6, 3 * 10**6, 4 * 10**6]
        assert forking_world.baseline.balance_of("albert", "USDC") == 0

    @pytest.mark.asyncio
    async def test_restore_failure_errors_a_passing_execution(self) -> None:
        class LeakyWorld:
            def __init__(self) -> None:
                self.calls = 0

            @asynccontextmanager
            async def isolated(self) -> Any:
                self.calls += 1
                yield FakeContext()
                if self.calls > 1:
                    raise OSError("revert failed")

        registry = ScenarioRegistry()
        registry.scenario("leaky", {}, _noop)

        result = await ScenarioRunner(LeakyWorld(), [], _settings()).run(registry)

        execution = result.get("leaky")
        assert execution.status == ScenarioStatus.ERRORED
        assert execution.stage == "isolation"

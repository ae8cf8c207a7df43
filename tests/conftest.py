"""Pytest fixtures for cometqa tests."""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterator, Mapping
from typing import Any

import pytest

from cometqa.config import RunnerSettings
from cometqa.scenario import Constraint, DimensionConstraint, NOT_APPLICABLE, Solution
from cometqa.world import ForkingWorld, SimulatedChain, SimulatedCometContext, SnapshotWorld


class FakeContext:
    """Context that only knows about configuration, for engine-level tests."""

    def __init__(self, configuration: dict[str, Any] | None = None, version: int = 0) -> None:
        self.configuration = configuration or {"base_token": "Y", "borrow_kink": 80}
        self.version = version
        self.log: list[str] = []

    async def get_configuration(self) -> dict[str, Any]:
        return copy.deepcopy(self.configuration)

    async def upgrade(self, configuration: Mapping[str, Any]) -> FakeContext:
        upgraded = FakeContext(dict(configuration), self.version + 1)
        upgraded.log = self.log
        return upgraded


class RecordingConstraint(DimensionConstraint):
    """Constraint that logs every value it is asked to solve for."""

    def __init__(self, name: str, dimension: str, touches: frozenset[str] = frozenset()) -> None:
        self.name = name
        self.dimensions = (dimension,)
        self.touches = touches
        self.seen: list[Any] = []
        self.checked: list[Any] = []

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        value = values[self.dimensions[0]]
        self.seen.append(value)

        async def record(ctx: Any) -> Any:
            log = getattr(ctx, "log", None)
            if log is not None:
                log.append(f"{self.name}={value!r}")
            return ctx

        return [Solution(name=f"{self.name}({value!r})", transform=record, constraint=self.name, touches=self.touches)]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        self.checked.append(values[self.dimensions[0]])


class ExplodingConstraint(Constraint):
    """Constraint whose solve raises a plain exception."""

    name = "exploding"
    dimensions = ("explode",)

    async def solve(self, requirement: Any, context: Any) -> Any:
        if "explode" not in requirement:
            return NOT_APPLICABLE
        raise RuntimeError("solver blew up")


class FakeWorld:
    """World handing out FakeContexts and counting snapshot/restore calls."""

    def __init__(self) -> None:
        self.acquired = 0
        self.restored = 0
        self.contexts: list[FakeContext] = []

    def isolated(self) -> Any:
        world = self

        class _Scope:
            async def __aenter__(self) -> FakeContext:
                world.acquired += 1
                context = FakeContext()
                world.contexts.append(context)
                return context

            async def __aexit__(self, *exc: Any) -> None:
                world.restored += 1

        return _Scope()


@pytest.fixture
def chain() -> SimulatedChain:
    """A fresh default USDC market."""
    return SimulatedChain.default_market()


@pytest.fixture
def context(chain: SimulatedChain) -> SimulatedCometContext:
    return SimulatedCometContext(chain)


@pytest.fixture
def forking_world() -> ForkingWorld:
    return ForkingWorld.simulated()


@pytest.fixture
def snapshot_world(chain: SimulatedChain) -> SnapshotWorld:
    return SnapshotWorld.simulated(chain)


@pytest.fixture
def fake_context() -> FakeContext:
    return FakeContext()


@pytest.fixture
def fake_world() -> FakeWorld:
    return FakeWorld()


@pytest.fixture
def settings() -> RunnerSettings:
    """Settings isolated from COMETQA_* variables in the environment."""
    return RunnerSettings(_env_file=None, workers=4, fail_fast=False, verify_constraints=True, fail_on_conflict=False)


@pytest.fixture
def restore_logger() -> Iterator[logging.Logger]:
    """Put the cometqa logger back the way the test found it."""
    logger = logging.getLogger("cometqa")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate

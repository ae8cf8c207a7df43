"""Scenario engine: requirements, fuzzing, constraints, solutions and the runner."""

from cometqa.scenario.constraint import (
    NOT_APPLICABLE,
    Constraint,
    DimensionConstraint,
    NotApplicable,
    Solutions,
    SolveResult,
)
from cometqa.scenario.context import Context, LendingContext, SnapshotRestorer, World
from cometqa.scenario.fuzzing import fuzz, fuzz_points
from cometqa.scenario.registry import Scenario, ScenarioRegistry
from cometqa.scenario.requirements import (
    ConcreteRequirement,
    Dynamic,
    FuzzRange,
    FuzzType,
    Literal,
    OneOf,
    Requirement,
    ValueSpec,
)
from cometqa.scenario.result import ExecutionResult, RunResult, ScenarioStatus
from cometqa.scenario.runner import ScenarioRunner, find_conflicts
from cometqa.scenario.solution import Solution, apply_solutions

__all__ = [
    "NOT_APPLICABLE",
    "ConcreteRequirement",
    "Constraint",
    "Context",
    "DimensionConstraint",
    "Dynamic",
    "ExecutionResult",
    "FuzzRange",
    "FuzzType",
    "LendingContext",
    "Literal",
    "NotApplicable",
    "OneOf",
    "Requirement",
    "RunResult",
    "Scenario",
    "ScenarioRegistry",
    "ScenarioRunner",
    "ScenarioStatus",
    "SnapshotRestorer",
    "Solution",
    "Solutions",
    "SolveResult",
    "ValueSpec",
    "World",
    "apply_solutions",
    "find_conflicts",
    "fuzz",
    "fuzz_points",
]

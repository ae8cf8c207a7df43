"""cometqa - Requirement-driven scenario testing for lending markets.

Scenarios declare the market state they need as a requirement. The runner
fuzzes the requirement into concrete variants, lets each constraint turn its
part of a variant into solutions, applies those solutions to an isolated copy
of the market, and then runs the scenario body.

Example:
    >>> from cometqa import ScenarioRegistry, ScenarioRunner, ForkingWorld
    >>>
    >>> registry = ScenarioRegistry()
    >>>
    >>> @registry.scenario("borrows base", {"prices": {"$base": 1}})
    ... async def borrows_base(context):
    ...     await context.supply("albert", "$asset0", 100 * 10**18)
    >>>
    >>> runner = ScenarioRunner(ForkingWorld.simulated())
    >>> result = runner.run_sync(registry)
    >>> print(result.summary())
"""

__version__ = "0.1.0"

from cometqa.config import RunnerSettings, get_config_for_scenario, load_settings
from cometqa.errors import CometQAError, ErrorCode
from cometqa.observability import configure_logging
from cometqa.scenario import (
    NOT_APPLICABLE,
    ConcreteRequirement,
    Constraint,
    DimensionConstraint,
    Dynamic,
    ExecutionResult,
    FuzzRange,
    FuzzType,
    Literal,
    OneOf,
    Requirement,
    RunResult,
    Scenario,
    ScenarioRegistry,
    ScenarioRunner,
    ScenarioStatus,
    Solution,
    Solutions,
    apply_solutions,
    fuzz,
)
from cometqa.world import ForkingWorld, SimulatedChain, SimulatedCometContext, SnapshotWorld
from cometqa.constraints import default_constraints
from cometqa.harness import run_scenarios, run_scenarios_sync

__all__ = [
    "NOT_APPLICABLE",
    "CometQAError",
    "ConcreteRequirement",
    "Constraint",
    "DimensionConstraint",
    "Dynamic",
    "ErrorCode",
    "ExecutionResult",
    "ForkingWorld",
    "FuzzRange",
    "FuzzType",
    "Literal",
    "OneOf",
    "Requirement",
    "RunResult",
    "RunnerSettings",
    "Scenario",
    "ScenarioRegistry",
    "ScenarioRunner",
    "ScenarioStatus",
    "SimulatedChain",
    "SimulatedCometContext",
    "SnapshotWorld",
    "Solution",
    "Solutions",
    "__version__",
    "apply_solutions",
    "configure_logging",
    "default_constraints",
    "fuzz",
    "get_config_for_scenario",
    "load_settings",
    "run_scenarios",
    "run_scenarios_sync",
]

"""Scenario definitions and the registry test authors add them to.

A registry is an explicit object: the harness creates one, scenario modules
register into it, and the runner is handed the same object. Registration
does no I/O.

Example:
    >>> registry = ScenarioRegistry()
    >>>
    >>> @registry.scenario(
    ...     "borrow against collateral",
    ...     {"prices": {"$base": 1}, "token_balances": {"$comet": {"$base": ">= 1000"}}},
    ... )
    ... async def borrow(context):
    ...     await context.supply("albert", "$asset0", ...)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from cometqa.errors import ValidationError
from cometqa.scenario.requirements import Requirement

logger = logging.getLogger(__name__)

Filter = Callable[[Any], Union[bool, Awaitable[bool]]]
Body = Callable[..., Any]


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass
class Scenario:
    """A named test unit: requirement template, admission filter and body.

    The body is called as ``body(context)`` or, when it takes a second
    parameter (or one named ``requirement``), as
    ``body(context, requirement)`` with the concrete variant being run.
    """

    name: str
    requirement: Requirement
    body: Body
    filter: Filter | None = None
    skip: bool = False
    only: bool = False
    _accepts_requirement: bool | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValidationError(message="Scenario name must be a non-empty string", field="name", value=self.name)
        self.requirement = Requirement.coerce(self.requirement)

        if self._accepts_requirement is None:
            try:
                params = list(inspect.signature(self.body).parameters)
                self._accepts_requirement = len(params) >= 2 or "requirement" in params
            except (ValueError, TypeError):
                self._accepts_requirement = False

    async def admit(self, context: Any) -> bool:
        """Evaluate the admission filter; no filter admits everything."""
        if self.filter is None:
            return True
        return bool(await _call(self.filter, context))

    async def invoke(self, context: Any, requirement: Mapping[str, Any]) -> Any:
        if self._accepts_requirement:
            return await _call(self.body, context, requirement)
        return await _call(self.body, context)


class ScenarioRegistry:
    """Ordered collection of scenarios for one test run."""

    def __init__(self) -> None:
        self._scenarios: dict[str, Scenario] = {}

    def register(self, scenario: Scenario) -> Scenario:
        if scenario.name in self._scenarios:
            raise ValidationError(
                message=f"Scenario {scenario.name!r} is already registered",
                field="name",
                value=scenario.name,
            )
        self._scenarios[scenario.name] = scenario
        logger.debug(f"Registered scenario: {scenario.name}")
        return scenario

    def scenario(
        self,
        name: str,
        requirements: Requirement | Mapping[str, Any] | None = None,
        body: Body | None = None,
        *,
        filter: Filter | None = None,
        skip: bool = False,
        only: bool = False,
    ) -> Any:
        """Register a scenario, or return a decorator that does when ``body`` is omitted."""

        def decorator(fn: Body) -> Body:
            self.register(
                Scenario(
                    name=name,
                    requirement=Requirement.coerce(requirements or {}),
                    body=fn,
                    filter=filter,
                    skip=skip,
                    only=only,
                )
            )
            return fn

        if body is None:
            return decorator
        decorator(body)
        return self._scenarios[name]

    def skip(self, name: str, requirements: Any = None, body: Body | None = None, **options: Any) -> Any:
        """Register a scenario that is reported as skipped without running."""
        return self.scenario(name, requirements, body, skip=True, **options)

    def only(self, name: str, requirements: Any = None, body: Body | None = None, **options: Any) -> Any:
        """Register a scenario and restrict the run to ``only`` scenarios."""
        return self.scenario(name, requirements, body, only=True, **options)

    def get(self, name: str) -> Scenario:
        return self._scenarios[name]

    def __iter__(self) -> Iterator[Scenario]:
        return iter(self._scenarios.values())

    def __len__(self) -> int:
        return len(self._scenarios)

    def __contains__(self, name: object) -> bool:
        return name in self._scenarios

    def selected(self) -> list[Scenario]:
        """Scenarios to run: the ``only`` ones if any are marked, otherwise all."""
        scenarios = list(self._scenarios.values())
        focused = [s for s in scenarios if s.only]
        return focused or scenarios

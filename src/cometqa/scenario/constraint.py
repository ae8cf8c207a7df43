"""Constraint contract and the solve result type.

``Constraint.solve`` returns either ``NOT_APPLICABLE`` (the requirement has
none of the constraint's dimensions) or ``Solutions`` (possibly empty: the
constraint applies but has nothing to mutate). The two are never conflated.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any, Union

from cometqa.scenario.fuzzing import fuzz
from cometqa.scenario.requirements import ConcreteRequirement, Requirement
from cometqa.scenario.solution import Solution

logger = logging.getLogger(__name__)


class NotApplicable:
    """Sentinel type: the constraint has nothing to do for this requirement."""

    _instance: NotApplicable | None = None

    def __new__(cls) -> NotApplicable:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_APPLICABLE"

    def __reduce__(self) -> str:
        return "NOT_APPLICABLE"


NOT_APPLICABLE = NotApplicable()


class Solutions(Sequence[Solution]):
    """Ordered solutions returned by a constraint that applies."""

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Solution] = ()) -> None:
        self._items = tuple(items)

    def __getitem__(self, index: Any) -> Any:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Solution]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Solutions):
            return self._items == other._items
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Solutions({[s.name for s in self._items]!r})"


SolveResult = Union[NotApplicable, Solutions]

RequirementLike = Union[Requirement, ConcreteRequirement, Mapping[str, Any]]


def as_requirement(requirement: RequirementLike) -> Requirement:
    if isinstance(requirement, ConcreteRequirement):
        return requirement.to_requirement()
    return Requirement.coerce(requirement)


class Constraint(ABC):
    """A pluggable resolver for a fixed set of requirement dimensions.

    Subclasses set ``name`` and ``dimensions``. Dimensions a constraint does
    not list are ignored by it.
    """

    name: str = "constraint"
    dimensions: tuple[str, ...] = ()

    def applies_to(self, requirement: Mapping[str, Any]) -> bool:
        return any(dimension in requirement for dimension in self.dimensions)

    @abstractmethod
    async def solve(self, requirement: RequirementLike, context: Any) -> SolveResult:
        """Return the solutions needed to satisfy ``requirement``, or NOT_APPLICABLE."""

    async def check(self, requirement: RequirementLike, context: Any) -> None:
        """Verify the context satisfies ``requirement`` after setup.

        Raises ConstraintCheckError when it does not. No-op by default.
        """
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(dimensions={list(self.dimensions)!r})"


class DimensionConstraint(Constraint):
    """Constraint that resolves, fuzzes and solves its own dimensions.

    ``solve`` resolves context-dependent specs of the owned dimensions,
    fuzzes what remains and asks ``build_solutions`` for each variant.
    Subclasses implement ``build_solutions`` and optionally ``verify``.
    """

    async def solve(self, requirement: RequirementLike, context: Any) -> SolveResult:
        owned = as_requirement(requirement).select(self.dimensions)
        if not owned:
            return NOT_APPLICABLE

        resolved = await owned.resolve(context)
        solutions: list[Solution] = []
        for variant in fuzz(resolved):
            values = self._present_values(variant)
            if values:
                solutions.extend(self.build_solutions(values, context))

        logger.debug(f"{self.name}: {len(solutions)} solutions for {list(owned)}")
        return Solutions(solutions)

    async def check(self, requirement: RequirementLike, context: Any) -> None:
        owned = as_requirement(requirement).select(self.dimensions)
        if not owned:
            return
        for variant in fuzz(await owned.resolve(context)):
            values = self._present_values(variant)
            if values:
                await self.verify(values, context)

    def _present_values(self, variant: ConcreteRequirement) -> dict[str, Any]:
        return {
            dimension: variant[dimension]
            for dimension in self.dimensions
            if dimension in variant and variant[dimension] is not None
        }

    @abstractmethod
    def build_solutions(self, values: dict[str, Any], context: Any) -> Sequence[Solution]:
        """Solutions for one concrete variant of the owned dimensions."""

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        return None

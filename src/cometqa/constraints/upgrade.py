"""Configuration upgrade constraint.

Requirement dimension ``upgrade``: a mapping of configuration fields to new
values (or a function of the context returning one). Each concrete variant
becomes one solution that overlays the fields on the current configuration,
the delta winning on conflict, and redeploys through ``context.upgrade``.

``upgrade: True`` redeploys with the configuration unchanged, ``False`` does
nothing.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cometqa.errors import ConstraintCheckError, RequirementValidationError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution


def merge_configuration(current: Mapping[str, Any], delta: Mapping[str, Any]) -> dict[str, Any]:
    """Right-biased shallow merge: ``delta`` fields replace ``current`` fields."""
    return {**current, **delta}


class UpgradeConstraint(DimensionConstraint):
    name = "upgrade"
    dimensions = ("upgrade",)

    @staticmethod
    def _delta(value: Any) -> dict[str, Any] | None:
        if value is True:
            return {}
        if value is False:
            return None
        if not isinstance(value, Mapping):
            raise RequirementValidationError(
                message=f"upgrade: expected a mapping of configuration fields, got {value!r}",
                dimension="upgrade",
            )
        return dict(value)

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        delta = self._delta(values["upgrade"])
        if delta is None:
            return []

        async def upgrade(ctx: Any) -> Any:
            current = await ctx.get_configuration()
            return await ctx.upgrade(merge_configuration(current, delta))

        fields = ", ".join(delta) or "redeploy"
        return [
            Solution(
                name=f"upgrade({fields})",
                transform=upgrade,
                constraint=self.name,
                touches=frozenset(delta),
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        delta = self._delta(values["upgrade"])
        if not delta:
            return
        configuration = await context.get_configuration()
        for field, expected in delta.items():
            actual = configuration.get(field)
            if actual != expected:
                raise ConstraintCheckError(
                    message=f"Configuration field {field!r} is {actual!r}, expected {expected!r}",
                    expected=expected,
                    actual=actual,
                )

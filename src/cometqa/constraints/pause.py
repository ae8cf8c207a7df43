"""Pause constraint: ``pause: {supply_paused: True, ...}``.

Flags not named keep their current value.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from cometqa.errors import ConstraintCheckError, RequirementValidationError
from cometqa.scenario.constraint import DimensionConstraint
from cometqa.scenario.solution import Solution


class PauseConstraint(DimensionConstraint):
    name = "pause"
    dimensions = ("pause",)

    @staticmethod
    def _parse(value: Any) -> dict[str, bool]:
        if not isinstance(value, Mapping) or not all(isinstance(v, bool) for v in value.values()):
            raise RequirementValidationError(
                message=f"pause: expected a mapping of flag to bool, got {value!r}",
                dimension="pause",
            )
        return {str(flag): paused for flag, paused in value.items()}

    def build_solutions(self, values: dict[str, Any], context: Any) -> list[Solution]:
        requested = self._parse(values["pause"])

        async def pause(ctx: Any) -> Any:
            flags = await ctx.pause_flags()
            await ctx.pause(**{**flags, **requested})
            return ctx

        return [
            Solution(
                name=f"pause({', '.join(f'{k}={v}' for k, v in requested.items())})",
                transform=pause,
                constraint=self.name,
            )
        ]

    async def verify(self, values: dict[str, Any], context: Any) -> None:
        flags = await context.pause_flags()
        for flag, expected in self._parse(values["pause"]).items():
            if flags.get(flag) != expected:
                raise ConstraintCheckError(
                    message=f"Pause flag {flag} is {flags.get(flag)}, expected {expected}",
                    expected=expected,
                    actual=flags.get(flag),
                )

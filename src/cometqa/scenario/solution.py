"""Solutions and their sequential application."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from cometqa.errors import ApplyError, CometQAError

logger = logging.getLogger(__name__)

Transform = Callable[[Any], Awaitable[Any]]


@dataclass(frozen=True)
class Solution:
    """One atomic asynchronous Context -> Context mutation.

    Attributes:
        name: Short description used in logs and errors, e.g. ``"upgrade(kink)"``.
        transform: The mutation. Closes over the concrete values it needs.
        constraint: Name of the constraint that produced it.
        touches: Configuration fields the mutation writes.
    """

    name: str
    transform: Transform
    constraint: str = ""
    touches: frozenset[str] = field(default_factory=frozenset)

    async def apply(self, context: Any) -> Any:
        result = await self.transform(context)
        if result is None:
            raise ApplyError(message=f"Solution {self.name!r} returned no context").with_context(
                solution=self.name, stage="apply"
            )
        return result


async def apply_solutions(solutions: Sequence[Solution], context: Any) -> Any:
    """Apply solutions left to right, each on the Context the previous one returned.

    Stops at the first failure. The Context produced before the failure is
    never returned.

    Raises:
        ApplyError: A solution raised; ``applied`` counts the ones that succeeded.
    """
    current = context
    for index, solution in enumerate(solutions):
        logger.debug(f"Applying solution {index + 1}/{len(solutions)}: {solution.name}")
        try:
            current = await solution.apply(current)
        except Exception as e:
            if isinstance(e, ApplyError):
                e.applied = index
                e.with_context(constraint=solution.constraint or None, solution=solution.name)
                raise
            reason = e.message if isinstance(e, CometQAError) else f"{type(e).__name__}: {e}"
            raise ApplyError(
                message=f"Solution {solution.name!r} failed: {reason}",
                applied=index,
                cause=e,
            ).with_context(
                constraint=solution.constraint or None,
                solution=solution.name,
                stage="apply",
            ) from e
    return current

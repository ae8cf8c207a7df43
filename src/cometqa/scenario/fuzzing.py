"""Expansion of a static Requirement into concrete variants.

``fuzz`` takes the Cartesian product of every fuzzable position of a
requirement: top-level ``OneOf``/``FuzzRange`` dimensions as well as such
leaves nested inside literal mappings. Enumeration order is dimension order,
then nested key order, then the order of values within each position, with
the first position varying slowest. A position with no values vetoes the
whole expansion.

Example:
    >>> fuzz(Requirement({"utilization": OneOf([0.25, 0.5]), "prices": {"$base": 1}}))
    [ConcreteRequirement({'utilization': 0.25, 'prices': {'$base': 1}}),
     ConcreteRequirement({'utilization': 0.5, 'prices': {'$base': 1}})]
"""

from __future__ import annotations

import copy
import itertools
import logging
from collections import Counter
from collections.abc import Mapping
from typing import Any

from cometqa.errors import FuzzInputError
from cometqa.scenario.requirements import (
    ConcreteRequirement,
    Dynamic,
    FuzzRange,
    FuzzType,
    Literal,
    OneOf,
    Requirement,
    ValueSpec,
    rebuild_sequence,
)

logger = logging.getLogger(__name__)

Path = tuple[Any, ...]

__all__ = ["FuzzType", "fuzz", "fuzz_points"]


def fuzz_points(spec: FuzzRange, path: str = "") -> tuple[int, ...]:
    """Boundary points of an integer range: min, midpoint, max (ascending, unique)."""
    low, high = spec.low, spec.high
    if not isinstance(low, int) or not isinstance(high, int):
        raise FuzzInputError(message=f"{path or 'range'}: bounds must be integers, got {low!r}..{high!r}")
    if low > high:
        raise FuzzInputError(message=f"{path or 'range'}: min {low} is greater than max {high}")
    if low < spec.type.min_value or high > spec.type.max_value:
        raise FuzzInputError(
            message=f"{path or 'range'}: {low}..{high} does not fit in {spec.type.value}"
        )
    return tuple(sorted({low, (low + high) // 2, high}))


def _options(spec: OneOf | FuzzRange, path: Path) -> tuple[Any, ...]:
    if isinstance(spec, FuzzRange):
        return fuzz_points(spec, _dotted(path))
    return spec.values


def _collect_axes(path: Path, value: Any, axes: list[tuple[Path, tuple[Any, ...]]]) -> None:
    if isinstance(value, (OneOf, FuzzRange)):
        axes.append((path, _options(value, path)))
    elif isinstance(value, Dynamic):
        raise FuzzInputError(
            message=f"{_dotted(path)}: context-dependent value must be resolved before fuzzing",
            dimension=str(path[0]),
        )
    elif isinstance(value, Literal):
        _collect_axes(path, value.value, axes)
    elif isinstance(value, Mapping):
        for key, item in value.items():
            _collect_axes(path + (key,), item, axes)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _collect_axes(path + (index,), item, axes)


def _substitute(path: Path, value: Any, chosen: dict[Path, Any]) -> Any:
    if isinstance(value, (OneOf, FuzzRange)):
        return copy.deepcopy(chosen[path])
    if isinstance(value, Literal):
        return _substitute(path, value.value, chosen)
    if isinstance(value, Mapping):
        return {key: _substitute(path + (key,), item, chosen) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return rebuild_sequence(
            value, (_substitute(path + (index,), item, chosen) for index, item in enumerate(value))
        )
    return copy.deepcopy(value)


def _dotted(path: Path) -> str:
    return ".".join(str(part) for part in path)


def _number_repeated_labels(variants: list[ConcreteRequirement]) -> None:
    """Give variants that would share a label (duplicate set values) an ordinal."""
    totals = Counter(variant.label for variant in variants)
    seen: Counter[str] = Counter()
    for variant in variants:
        label = variant.label
        if totals[label] > 1:
            seen[label] += 1
            variant.ordinal = seen[label]


def fuzz(requirement: Requirement | Mapping[str, Any]) -> list[ConcreteRequirement]:
    """Expand a static requirement into its concrete variants.

    Args:
        requirement: A Requirement (or raw mapping) with no unresolved
            context-dependent dimensions.

    Returns:
        The concrete variants in enumeration order. A requirement with only
        literal dimensions yields exactly one variant; any empty set yields
        none.

    Raises:
        FuzzInputError: A dynamic spec is still present or a range is malformed.
    """
    requirement = Requirement.coerce(requirement)
    specs: dict[str, ValueSpec] = dict(requirement)

    axes: list[tuple[Path, tuple[Any, ...]]] = []
    for dimension, spec in specs.items():
        _collect_axes((dimension,), spec, axes)

    paths = [path for path, _ in axes]
    variants = []
    for combination in itertools.product(*(options for _, options in axes)):
        chosen = dict(zip(paths, combination))
        values = {
            dimension: _substitute((dimension,), spec, chosen) for dimension, spec in specs.items()
        }
        choices = [(_dotted(path), value) for path, value in zip(paths, combination)]
        variants.append(ConcreteRequirement(values, choices))

    _number_repeated_labels(variants)
    if axes:
        logger.debug(
            f"Fuzzed {len(axes)} positions into {len(variants)} variants "
            f"({', '.join(_dotted(p) for p in paths)})"
        )
    return variants

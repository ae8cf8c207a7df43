"""Requirement data types.

A Requirement maps dimension names (``"upgrade"``, ``"prices"``,
``"token_balances"`` ...) to value specs. Raw Python values are tagged once,
when the Requirement is built:

- a callable becomes ``Dynamic`` and is resolved against a Context before
  fuzzing
- a ``range`` becomes ``OneOf``
- ``OneOf`` / ``FuzzRange`` / ``Literal`` / ``Dynamic`` are kept as given
- anything else becomes ``Literal``

Literal mappings may carry ``OneOf``/``FuzzRange`` leaves so that a single
field of, say, an upgrade can be fuzzed while the others stay fixed::

    Requirement({
        "upgrade": {"borrow_kink": OneOf([0.8, 0.9]), "base_min_for_rewards": 10},
        "utilization": lambda ctx: 0.5 if ctx.network == "mainnet" else 0.25,
    })
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from cometqa.errors import RequirementResolutionError, RequirementValidationError


class FuzzType(Enum):
    """Integer types a FuzzRange can be drawn from."""

    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    UINT128 = "uint128"
    UINT256 = "uint256"

    @property
    def signed(self) -> bool:
        return not self.value.startswith("u")

    @property
    def bits(self) -> int:
        return int(self.value.lstrip("uint"))

    @property
    def min_value(self) -> int:
        return -(2 ** (self.bits - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return 2 ** (self.bits - 1) - 1 if self.signed else 2**self.bits - 1


@dataclass(frozen=True)
class Literal:
    """A fixed value, possibly a mapping with fuzzable leaves."""

    value: Any


@dataclass(frozen=True)
class OneOf:
    """A finite ordered set of values to fuzz over."""

    values: tuple[Any, ...]

    def __init__(self, values: Iterable[Any]) -> None:
        object.__setattr__(self, "values", tuple(values))

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True)
class FuzzRange:
    """An integer range of a FuzzType.

    Expands to its boundary points: ``min``, the midpoint and ``max``.
    Omitted bounds default to the bounds of the type.
    """

    type: FuzzType
    min: int | None = None
    max: int | None = None

    @property
    def low(self) -> int:
        return self.type.min_value if self.min is None else self.min

    @property
    def high(self) -> int:
        return self.type.max_value if self.max is None else self.max


@dataclass(frozen=True)
class Dynamic:
    """A value computed from the current Context (sync or async)."""

    fn: Callable[[Any], Any]

    async def resolve(self, context: Any) -> Any:
        value = self.fn(context)
        if inspect.isawaitable(value):
            value = await value
        return value


ValueSpec = Union[Literal, OneOf, FuzzRange, Dynamic]
FUZZABLE = (OneOf, FuzzRange)
SPEC_TYPES = (Literal, OneOf, FuzzRange, Dynamic)


def tag_value(value: Any, dimension: str | None = None) -> ValueSpec:
    """Tag a raw top-level dimension value as a ValueSpec."""
    if isinstance(value, SPEC_TYPES):
        if isinstance(value, Literal):
            _check_nested(value.value, dimension)
        return value
    if isinstance(value, range):
        return OneOf(value)
    if callable(value):
        return Dynamic(value)
    _check_nested(value, dimension)
    return Literal(_tag_nested(value))


def _children(value: Any) -> Iterable[tuple[Any, Any]]:
    """(key, item) pairs of a mapping, or (index, item) pairs of a list or tuple."""
    if isinstance(value, Mapping):
        return value.items()
    if isinstance(value, (list, tuple)):
        return enumerate(value)
    return ()


def rebuild_sequence(value: list | tuple, items: Iterable[Any]) -> list | tuple:
    """A list or tuple of the same type as ``value`` holding ``items``."""
    if isinstance(value, list):
        return list(items)
    if hasattr(value, "_fields"):
        return type(value)(*items)
    return type(value)(items)


def _tag_nested(value: Any) -> Any:
    if isinstance(value, range):
        return OneOf(value)
    if isinstance(value, Mapping):
        return {key: _tag_nested(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return rebuild_sequence(value, (_tag_nested(item) for item in value))
    return value


def _check_nested(value: Any, dimension: str | None) -> None:
    for _, item in _children(value):
        if isinstance(item, (Dynamic, Literal)) or (callable(item) and not isinstance(item, type)):
            raise RequirementValidationError(
                message=(
                    f"Dimension {dimension!r}: context-dependent and tagged literal values "
                    "are only allowed at the top level of a dimension"
                ),
                dimension=dimension,
            )
        _check_nested(item, dimension)


def contains_spec(value: Any) -> bool:
    """Whether a plain value still holds a value spec or a callable at any depth."""
    if isinstance(value, SPEC_TYPES):
        return True
    return any(
        contains_spec(item) or (callable(item) and not isinstance(item, type))
        for _, item in _children(value)
    )


class Requirement(Mapping[str, ValueSpec]):
    """An immutable mapping from dimension name to value spec."""

    __slots__ = ("_specs",)

    def __init__(self, specs: Mapping[str, Any] | None = None, **kwargs: Any) -> None:
        raw: dict[str, Any] = dict(specs or {})
        raw.update(kwargs)
        tagged: dict[str, ValueSpec] = {}
        for dimension, value in raw.items():
            if not isinstance(dimension, str) or not dimension:
                raise RequirementValidationError(
                    message=f"Dimension names must be non-empty strings, got {dimension!r}",
                    dimension=str(dimension),
                )
            tagged[dimension] = tag_value(value, dimension)
        self._specs = MappingProxyType(tagged)

    @classmethod
    def build(cls, mapping: Mapping[str, Any]) -> Requirement:
        """Tag raw values: callables become Dynamic, ranges OneOf, the rest Literal."""
        return cls(mapping)

    @classmethod
    def coerce(cls, value: Requirement | Mapping[str, Any]) -> Requirement:
        if isinstance(value, Requirement):
            return value
        return cls.build(value)

    def __getitem__(self, dimension: str) -> ValueSpec:
        return self._specs[dimension]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConcreteRequirement):
            return other == self
        if isinstance(other, Requirement):
            return dict(self._specs) == dict(other._specs)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Requirement({dict(self._specs)!r})"

    @property
    def dimensions(self) -> tuple[str, ...]:
        return tuple(self._specs)

    @property
    def is_static(self) -> bool:
        """True when no dimension is context-dependent."""
        return not any(isinstance(spec, Dynamic) for spec in self._specs.values())

    @property
    def is_literal(self) -> bool:
        """True when every dimension is a plain literal with nothing to fuzz."""
        return all(
            isinstance(spec, Literal) and not contains_spec(spec.value)
            for spec in self._specs.values()
        )

    def literal_values(self) -> dict[str, Any]:
        if not self.is_literal:
            raise RequirementValidationError(message="Requirement still has specs to expand")
        return {dimension: spec.value for dimension, spec in self._specs.items()}  # type: ignore[union-attr]

    def select(self, dimensions: Iterable[str]) -> Requirement:
        """Sub-requirement holding only the given dimensions that are present."""
        wanted = set(dimensions)
        return Requirement({d: s for d, s in self._specs.items() if d in wanted})

    async def resolve(self, context: Any, only: Iterable[str] | None = None) -> Requirement:
        """Resolve Dynamic specs against ``context``.

        Args:
            context: The Context handed to each dynamic function.
            only: Restrict resolution to these dimensions; others are kept as-is.

        Returns:
            A new Requirement; ``self`` is left untouched.

        Raises:
            RequirementResolutionError: A dynamic function raised or produced
                another dynamic value.
        """
        wanted = None if only is None else set(only)
        resolved: dict[str, ValueSpec] = {}
        for dimension, spec in self._specs.items():
            if isinstance(spec, Dynamic) and (wanted is None or dimension in wanted):
                try:
                    value = await spec.resolve(context)
                except Exception as e:
                    raise RequirementResolutionError(
                        message=f"Dimension {dimension!r} failed to resolve: {e}",
                        dimension=dimension,
                        cause=e,
                    ) from e
                if isinstance(value, Dynamic) or (
                    callable(value) and not isinstance(value, SPEC_TYPES)
                ):
                    raise RequirementResolutionError(
                        message=f"Dimension {dimension!r} resolved to another dynamic value",
                        dimension=dimension,
                    )
                try:
                    spec = tag_value(value, dimension)
                except RequirementValidationError as e:
                    raise RequirementResolutionError(
                        message=e.message, dimension=dimension, cause=e
                    ) from e
            resolved[dimension] = spec
        return Requirement(resolved)


class ConcreteRequirement(Mapping[str, Any]):
    """A requirement whose every dimension is a single plain value.

    Attributes:
        choices: The fuzzed positions that produced this variant, as
            ``(path, value)`` pairs where path is dotted, e.g. ``"upgrade.kink"``.
        ordinal: 1-based position among variants whose choices print the
            same, e.g. from ``OneOf([1, 1])``; None when the label is unique.
    """

    __slots__ = ("_values", "choices", "ordinal")

    def __init__(
        self,
        values: Mapping[str, Any],
        choices: Iterable[tuple[str, Any]] = (),
        ordinal: int | None = None,
    ) -> None:
        for dimension, value in values.items():
            if contains_spec(value) or callable(value):
                raise RequirementValidationError(
                    message=f"Dimension {dimension!r} is not concrete: {value!r}",
                    dimension=dimension,
                )
        self._values = MappingProxyType(dict(values))
        self.choices: tuple[tuple[str, Any], ...] = tuple(choices)
        self.ordinal = ordinal

    def __getitem__(self, dimension: str) -> Any:
        return self._values[dimension]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ConcreteRequirement):
            return dict(self._values) == dict(other._values)
        if isinstance(other, Requirement):
            return other.is_literal and other.literal_values() == dict(self._values)
        if isinstance(other, Mapping):
            return dict(self._values) == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"ConcreteRequirement({dict(self._values)!r})"

    @property
    def label(self) -> str:
        """Distinguishing suffix for this variant, empty if nothing was fuzzed."""
        if not self.choices:
            return ""
        parts = [f"{path}={value!r}" for path, value in self.choices]
        if self.ordinal is not None:
            parts.append(f"#{self.ordinal}")
        return "[" + ", ".join(parts) + "]"

    def to_requirement(self) -> Requirement:
        return Requirement({dimension: Literal(value) for dimension, value in self._values.items()})

"""Exception hierarchy for cometqa.

Every error raised by the scenario engine derives from CometQAError and carries:
- error_code: an ErrorCode enum member for programmatic handling
- context: ErrorContext with the scenario/variant/constraint that failed
- suggestions: actionable steps to resolve the issue

Faults raised below the runner are always re-raised with the identity of the
execution that produced them, so a report line such as

    [E402] Solution failed | at scenario=borrow [utilization=0.5] > solution=prices

points straight at the failing setup step.

Example:
    try:
        result.raise_for_failures()
    except ScenarioFailedError as e:
        for failure in e.failures:
            print(failure.display_name, failure.error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for cometqa.

    Error codes are organized by category:
    - E1xx: Requirement errors (construction, resolution, fuzzing)
    - E2xx: Validation errors (settings, scenario config)
    - E3xx: Snapshot errors
    - E4xx: Scenario execution errors
    - E5xx: Ledger errors raised by the system under test
    - E9xx: Unknown/internal errors
    """

    # Requirement errors (E1xx)
    INVALID_REQUIREMENT = "E101"
    RESOLUTION_FAILED = "E102"
    INVALID_FUZZ_INPUT = "E103"

    # Validation errors (E2xx)
    VALIDATION_FAILED = "E201"
    INVALID_CONFIG = "E202"

    # Snapshot errors (E3xx)
    SNAPSHOT_FAILED = "E301"
    RESTORE_FAILED = "E302"

    # Scenario execution errors (E4xx)
    SCENARIO_FAILED = "E401"
    SOLVE_FAILED = "E402"
    APPLY_FAILED = "E403"
    CHECK_FAILED = "E404"
    CONSTRAINT_CONFLICT = "E405"

    # Ledger errors (E5xx)
    LEDGER_ERROR = "E501"
    LEDGER_REVERT = "E502"

    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if code_num < 200:
            return "requirement"
        elif code_num < 300:
            return "validation"
        elif code_num < 400:
            return "snapshot"
        elif code_num < 500:
            return "scenario"
        elif code_num < 600:
            return "ledger"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Where in a scenario run an error happened.

    Attributes:
        scenario_name: Name of the registered scenario.
        variant: Fuzz variant label (empty for a single-variant scenario).
        stage: Runner stage (filter, solve, apply, check, body, teardown).
        constraint: Name of the constraint involved, if any.
        solution: Name of the solution involved, if any.
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    scenario_name: str | None = None
    variant: str | None = None
    stage: str | None = None
    constraint: str | None = None
    solution: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "scenario_name": self.scenario_name,
            "variant": self.variant,
            "stage": self.stage,
            "constraint": self.constraint,
            "solution": self.solution,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.scenario_name:
            scenario = self.scenario_name
            if self.variant:
                scenario = f"{scenario} {self.variant}"
            parts.append(f"scenario={scenario}")
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.constraint:
            parts.append(f"constraint={self.constraint}")
        if self.solution:
            parts.append(f"solution={self.solution}")
        return " > ".join(parts) if parts else "unknown location"


class CometQAError(Exception):
    """Base exception for all cometqa errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with execution details
        suggestions: List of actionable steps to resolve the issue
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected error occurred"
    default_suggestions: list[str] = []

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def with_context(self, **fields: Any) -> CometQAError:
        """Fill in unset location fields and return self.

        Used by the runner to stamp the execution identity onto errors that
        were raised deep inside a constraint or solution.
        """
        for name, value in fields.items():
            if getattr(self.context, name, None) is None:
                setattr(self.context, name, value)
        return self

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
            "",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.cause is not None:
            lines.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class RequirementError(CometQAError):
    """A requirement could not be built, resolved or expanded."""

    error_code = ErrorCode.INVALID_REQUIREMENT
    default_message = "Invalid requirement"


class RequirementValidationError(RequirementError):
    """A requirement mapping is malformed.

    Raised at construction time, before any context is involved.
    """

    error_code = ErrorCode.INVALID_REQUIREMENT
    default_message = "Invalid requirement definition"
    default_suggestions = [
        "Dimension names must be non-empty strings",
        "Context-dependent values are only allowed at the top level of a dimension",
    ]

    def __init__(
        self,
        message: str | None = None,
        dimension: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.dimension = dimension
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["dimension"] = self.dimension
        return result


class RequirementResolutionError(RequirementError):
    """A context-dependent value raised, or the fuzzer received malformed input."""

    error_code = ErrorCode.RESOLUTION_FAILED
    default_message = "Failed to resolve requirement"
    default_suggestions = [
        "Check the context-dependent requirement functions for exceptions",
        "Fuzz ranges must satisfy min <= max and lie within their integer type",
    ]

    def __init__(
        self,
        message: str | None = None,
        dimension: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.dimension = dimension
        super().__init__(message=message, **kwargs)


class FuzzInputError(RequirementResolutionError):
    """The fuzzer was given a value spec it cannot enumerate."""

    error_code = ErrorCode.INVALID_FUZZ_INPUT
    default_message = "Malformed fuzz input"


class ValidationError(CometQAError):
    """Validation failed."""

    error_code = ErrorCode.VALIDATION_FAILED
    default_message = "Validation failed"

    def __init__(
        self,
        message: str | None = None,
        field: str | None = None,
        value: Any = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value
        self.expected = expected
        super().__init__(message=message, **kwargs)

    def __str__(self) -> str:
        base = super().__str__()
        if self.field:
            base = f"{base} (field: {self.field})"
        return base

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["field"] = self.field
        result["value"] = repr(self.value)
        if self.expected:
            result["expected"] = self.expected
        return result


class ConfigValidationError(ValidationError):
    """Runner settings or scenario configuration contain invalid values."""

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid configuration"
    default_suggestions = [
        "Check the COMETQA_* environment variables",
        "Check cometqa.yaml syntax with a YAML linter",
    ]


class SnapshotError(CometQAError):
    """Taking a snapshot of the underlying system failed."""

    error_code = ErrorCode.SNAPSHOT_FAILED
    default_message = "Snapshot operation failed"


class RestoreError(SnapshotError):
    """Restoring a snapshot failed."""

    error_code = ErrorCode.RESTORE_FAILED
    default_message = "Restore operation failed"


class ScenarioError(CometQAError):
    """Scenario execution error."""

    error_code = ErrorCode.SCENARIO_FAILED
    default_message = "Scenario execution failed"


class SetupError(ScenarioError):
    """Any failure that happens before the scenario body runs."""

    error_code = ErrorCode.SCENARIO_FAILED
    default_message = "Scenario setup failed"


class SolveError(SetupError):
    """A constraint raised while solving a requirement."""

    error_code = ErrorCode.SOLVE_FAILED
    default_message = "Constraint failed to solve requirement"


class ApplyError(SetupError):
    """A solution failed while mutating the context."""

    error_code = ErrorCode.APPLY_FAILED
    default_message = "Solution failed"

    def __init__(
        self,
        message: str | None = None,
        applied: int = 0,
        **kwargs: Any,
    ) -> None:
        self.applied = applied
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["applied"] = self.applied
        return result


class ConstraintCheckError(SetupError):
    """A constraint post-condition did not hold after setup."""

    error_code = ErrorCode.CHECK_FAILED
    default_message = "Requirement not satisfied after setup"

    def __init__(
        self,
        message: str | None = None,
        expected: Any = None,
        actual: Any = None,
        **kwargs: Any,
    ) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(message=message, **kwargs)


class ConstraintConflictError(SetupError):
    """Solutions from different constraints write the same configuration field."""

    error_code = ErrorCode.CONSTRAINT_CONFLICT
    default_message = "Constraints write the same configuration field"
    default_suggestions = [
        "Express the field through a single requirement dimension",
        "Disable fail_on_conflict to let the later constraint win",
    ]

    def __init__(
        self,
        message: str | None = None,
        conflicts: dict[str, list[str]] | None = None,
        **kwargs: Any,
    ) -> None:
        self.conflicts = conflicts or {}
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["conflicts"] = self.conflicts
        return result


class ScenarioFailedError(ScenarioError):
    """One or more scenario executions did not pass."""

    error_code = ErrorCode.SCENARIO_FAILED
    default_message = "Scenario run had failures"

    def __init__(
        self,
        message: str | None = None,
        failures: list[Any] | None = None,
        **kwargs: Any,
    ) -> None:
        self.failures = failures or []
        super().__init__(message=message, **kwargs)


class LedgerError(CometQAError):
    """The system under test rejected or failed an operation."""

    error_code = ErrorCode.LEDGER_ERROR
    default_message = "Ledger operation failed"


class LedgerRevertError(LedgerError):
    """The ledger reverted an operation with a reason."""

    error_code = ErrorCode.LEDGER_REVERT
    default_message = "Ledger operation reverted"

    def __init__(
        self,
        reason: str,
        operation: str | None = None,
        **kwargs: Any,
    ) -> None:
        self.reason = reason
        self.operation = operation
        message = f"{operation} reverted: {reason}" if operation else f"reverted: {reason}"
        super().__init__(message=message, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["reason"] = self.reason
        result["operation"] = self.operation
        return result

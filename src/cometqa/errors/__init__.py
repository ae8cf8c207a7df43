"""cometqa error handling module.

Exception hierarchy with error codes and scenario execution context.
"""

from cometqa.errors.base import (
    ApplyError,
    CometQAError,
    ConfigValidationError,
    ConstraintCheckError,
    ConstraintConflictError,
    ErrorCode,
    ErrorContext,
    FuzzInputError,
    LedgerError,
    LedgerRevertError,
    RequirementError,
    RequirementResolutionError,
    RequirementValidationError,
    RestoreError,
    ScenarioError,
    ScenarioFailedError,
    SetupError,
    SnapshotError,
    SolveError,
    ValidationError,
)

__all__ = [
    "ApplyError",
    "CometQAError",
    "ConfigValidationError",
    "ConstraintCheckError",
    "ConstraintConflictError",
    "ErrorCode",
    "ErrorContext",
    "FuzzInputError",
    "LedgerError",
    "LedgerRevertError",
    "RequirementError",
    "RequirementResolutionError",
    "RequirementValidationError",
    "RestoreError",
    "ScenarioError",
    "ScenarioFailedError",
    "SetupError",
    "SnapshotError",
    "SolveError",
    "ValidationError",
]

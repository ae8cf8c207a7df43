"""Outcomes of scenario executions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cometqa.errors import ScenarioFailedError


class ScenarioStatus(Enum):
    """Terminal state of one scenario execution."""

    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    SETUP_FAILED = "setup_failed"
    SKIPPED = "skipped"

    @property
    def is_failure(self) -> bool:
        return self in (ScenarioStatus.FAILED, ScenarioStatus.ERRORED, ScenarioStatus.SETUP_FAILED)


@dataclass
class ExecutionResult:
    """Result of one execution of a scenario.

    Attributes:
        scenario: Name of the registered scenario.
        variant: Label of the fuzz variant, empty for a single variant.
        status: Terminal state.
        stage: Stage the execution stopped in (filter, solve, apply, check, body).
        error: Error message, if any.
        error_type: Class name of the error, if any.
        traceback: Formatted traceback for failures.
        reason: Why the execution was skipped.
        solutions: Names of the solutions applied, in order.
        conflicts: Configuration fields written by more than one constraint.
        duration_ms: Wall time of the execution.
    """

    scenario: str
    variant: str = ""
    status: ScenarioStatus = ScenarioStatus.PASSED
    stage: str | None = None
    error: str | None = None
    error_type: str | None = None
    traceback: str | None = None
    reason: str | None = None
    solutions: list[str] = field(default_factory=list)
    conflicts: dict[str, list[str]] = field(default_factory=dict)
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def display_name(self) -> str:
        return f"{self.scenario} {self.variant}" if self.variant else self.scenario

    @property
    def passed(self) -> bool:
        return self.status == ScenarioStatus.PASSED

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "variant": self.variant,
            "name": self.display_name,
            "status": self.status.value,
            "stage": self.stage,
            "error": self.error,
            "error_type": self.error_type,
            "reason": self.reason,
            "solutions": list(self.solutions),
            "conflicts": dict(self.conflicts),
            "duration_ms": round(self.duration_ms, 3),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class RunResult:
    """All execution results of a run, in scheduling order."""

    results: list[ExecutionResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime = field(default_factory=datetime.now)

    def by_status(self, status: ScenarioStatus) -> list[ExecutionResult]:
        return [r for r in self.results if r.status == status]

    @property
    def passed(self) -> list[ExecutionResult]:
        return self.by_status(ScenarioStatus.PASSED)

    @property
    def skipped(self) -> list[ExecutionResult]:
        return self.by_status(ScenarioStatus.SKIPPED)

    @property
    def failures(self) -> list[ExecutionResult]:
        return [r for r in self.results if r.status.is_failure]

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def total_duration_ms(self) -> float:
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def get(self, display_name: str) -> ExecutionResult:
        for result in self.results:
            if result.display_name == display_name:
                return result
        raise KeyError(display_name)

    def counts(self) -> dict[str, int]:
        return {status.value: len(self.by_status(status)) for status in ScenarioStatus}

    def summary(self) -> str:
        """Multi-line plain-text summary."""
        counts = self.counts()
        lines = [
            "Scenario Run",
            "=" * 60,
            f"Executions:       {len(self.results)}",
            f"Duration:         {self.total_duration_ms / 1000:.2f}s",
            f"  Passed:         {counts['passed']}",
            f"  Failed:         {counts['failed']}",
            f"  Errored:        {counts['errored']}",
            f"  Setup failed:   {counts['setup_failed']}",
            f"  Skipped:        {counts['skipped']}",
            "",
        ]
        if self.failures:
            lines.append(f"FAILURES ({len(self.failures)}):")
            lines.append("-" * 40)
            for i, failure in enumerate(self.failures, 1):
                lines.append(f"  {i}. {failure.display_name} [{failure.status.value}]")
                lines.append(f"     Error: {failure.error}")
        else:
            lines.append("ALL SCENARIOS PASSED")
        return "\n".join(lines)

    def raise_for_failures(self) -> None:
        """Raise ScenarioFailedError naming every execution that did not pass."""
        failures = self.failures
        if failures:
            names = ", ".join(f.display_name for f in failures)
            raise ScenarioFailedError(
                message=f"{len(failures)} scenario execution(s) failed: {names}",
                failures=failures,
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": {
                "total": len(self.results),
                **self.counts(),
                "duration_ms": round(self.total_duration_ms, 3),
                "started_at": self.started_at.isoformat(),
                "finished_at": self.finished_at.isoformat(),
            },
            "results": [r.to_dict() for r in self.results],
        }

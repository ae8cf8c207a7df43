"""JSON reporter for machine-readable run output.

Example:
    >>> reporter = JSONReporter(indent=4)
    >>> data = json.loads(reporter.generate(run_result))
    >>> data["summary"]["passed"]
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from cometqa import __version__
from cometqa.reporters.base import BaseReporter
from cometqa.scenario.result import RunResult


class JSONReporter(BaseReporter):
    """Generate JSON reports with a summary and one entry per execution."""

    @property
    def file_extension(self) -> str:
        return ".json"

    def __init__(
        self,
        output_path: str | Path | None = None,
        indent: int = 2,
        include_tracebacks: bool = False,
    ) -> None:
        super().__init__(output_path)
        self.indent = indent
        self.include_tracebacks = include_tracebacks

    def generate(self, result: RunResult) -> str:
        report = {
            "report": {
                "generator": "cometqa",
                "version": __version__,
                "generated_at": datetime.now().isoformat(),
            },
            **result.to_dict(),
        }
        if self.include_tracebacks:
            for entry, execution in zip(report["results"], result.results):
                entry["traceback"] = execution.traceback
        return json.dumps(report, indent=self.indent, default=str)

"""Abstract base reporter for scenario runs.

Reporters turn a RunResult into an output format. Subclasses implement
``generate`` and ``file_extension``; ``save`` writes the report to disk.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from cometqa.scenario.result import RunResult


class BaseReporter(ABC):
    """Abstract base class for all cometqa reporters.

    Attributes:
        output_path: Optional default path for saving reports.
    """

    def __init__(self, output_path: str | Path | None = None) -> None:
        self.output_path = Path(output_path) if output_path else None

    @property
    @abstractmethod
    def file_extension(self) -> str:
        """Extension of saved reports, including the dot."""

    @abstractmethod
    def generate(self, result: RunResult) -> str | dict[str, Any]:
        """Generate a report from a run result."""

    def save(self, result: RunResult, path: str | Path | None = None) -> Path:
        """Save the generated report to a file.

        Creates parent directories if they don't exist.

        Raises:
            ValueError: If no path is given and none was set in the constructor.
        """
        output_path = Path(path) if path else self.output_path
        if not output_path:
            raise ValueError(
                "Output path required for saving report. "
                "Provide 'path' argument or set 'output_path' in constructor."
            )

        content = self.generate(result)
        if not isinstance(content, str):
            content = json.dumps(content, indent=2, default=str)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(content)
        return output_path

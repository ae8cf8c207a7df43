"""Run reporters."""

from __future__ import annotations

import logging
from pathlib import Path

from cometqa.config import RunnerSettings
from cometqa.reporters.base import BaseReporter
from cometqa.reporters.console import ConsoleReporter
from cometqa.reporters.json_report import JSONReporter
from cometqa.scenario.result import RunResult

logger = logging.getLogger(__name__)

REPORTERS: dict[str, type[BaseReporter]] = {
    "console": ConsoleReporter,
    "json": JSONReporter,
}


def get_reporter(name: str, output_path: str | Path | None = None) -> BaseReporter:
    """Instantiate a reporter by format name."""
    try:
        reporter_cls = REPORTERS[name]
    except KeyError:
        raise ValueError(f"Unknown report format {name!r}. Available: {sorted(REPORTERS)}") from None
    return reporter_cls(output_path=output_path)


def write_reports(result: RunResult, settings: RunnerSettings) -> list[Path]:
    """Save one report per configured format into ``settings.report_dir``.

    Files are named ``report<ext>`` after each reporter's extension.
    """
    report_dir = Path(settings.report_dir)
    paths = []
    for name in settings.report_formats:
        reporter = get_reporter(name)
        path = reporter.save(result, report_dir / f"report{reporter.file_extension}")
        logger.info(f"Report generated: {path}")
        paths.append(path)
    return paths


__all__ = [
    "BaseReporter",
    "ConsoleReporter",
    "JSONReporter",
    "REPORTERS",
    "get_reporter",
    "write_reports",
]

"""Read coverage.py JSON reports into coverage metrics."""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Union

from diff_test_generator.models.data_models import (
    CoverageDelta,
    CoverageMetric,
    CoverageMetrics,
    CoverageReport,
    FileCoverage,
)

logger = logging.getLogger(__name__)


class CoverageReader:
    """Load the JSON report written by ``pytest --cov-report=json``."""

    def __init__(self, project_root: Union[str, Path], report_path: str = 'coverage.json'):
        self.project_root = Path(project_root)
        self.report_path = Path(report_path)

    @property
    def path(self) -> Path:
        if self.report_path.is_absolute():
            return self.report_path
        return self.project_root / self.report_path

    def read_coverage_report(self) -> Optional[CoverageReport]:
        """Return the current report, or None when it is missing or malformed."""
        if not self.path.exists():
            logger.debug(f"No coverage report at {self.path}")
            return None
        try:
            payload = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read coverage report {self.path}: {e}")
            return None
        return parse_coverage_json(payload)


def parse_coverage_json(payload: Dict) -> Optional[CoverageReport]:
    if not isinstance(payload, dict) or not isinstance(payload.get('totals'), dict):
        logger.warning("Coverage report has no totals section")
        return None

    files = [
        FileCoverage(path=path, metrics=_metrics(data.get('summary', {}), data.get('functions')))
        for path, data in sorted((payload.get('files') or {}).items())
        if isinstance(data, dict)
    ]
    return CoverageReport(total=_metrics(payload['totals'], _all_functions(payload)), files=files)


def _metric(total: int, covered: int) -> CoverageMetric:
    percentage = round(covered * 100.0 / total, 2) if total else 100.0
    return CoverageMetric(total=total, covered=covered, percentage=percentage)


def _metrics(summary: Dict, functions: Optional[Dict]) -> CoverageMetrics:
    statements = _metric(summary.get('num_statements', 0), summary.get('covered_lines', 0))
    branches = _metric(summary.get('num_branches', 0), summary.get('covered_branches', 0))

    # coverage.py reports lines and statements with the same counters;
    # the "" function entry is module-level code
    functions = {name: fn for name, fn in (functions or {}).items() if name}
    if functions:
        covered = sum(1 for fn in functions.values()
                      if fn.get('summary', {}).get('covered_lines', 0) > 0)
        function_metric = _metric(len(functions), covered)
    else:
        function_metric = _metric(0, 0)

    return CoverageMetrics(
        lines=CoverageMetric(statements.total, statements.covered, statements.percentage),
        branches=branches,
        functions=function_metric,
        statements=statements,
    )


def _all_functions(payload: Dict) -> Optional[Dict]:
    merged: Dict[str, Dict] = {}
    for path, data in (payload.get('files') or {}).items():
        for name, fn in (data.get('functions') or {}).items():
            if name:
                merged[f"{path}::{name}"] = fn
    return merged or None


def compute_coverage_delta(baseline: Optional[CoverageReport],
                           current: Optional[CoverageReport]) -> Optional[CoverageDelta]:
    """Percentage points gained per metric; None unless both reports exist."""
    if baseline is None or current is None:
        return None
    before, after = baseline.total, current.total
    return CoverageDelta(
        lines=round(after.lines.percentage - before.lines.percentage, 2),
        branches=round(after.branches.percentage - before.branches.percentage, 2),
        functions=round(after.functions.percentage - before.functions.percentage, 2),
        statements=round(after.statements.percentage - before.statements.percentage, 2),
    )

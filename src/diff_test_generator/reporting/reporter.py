"""Test generation reporting: JSON report, commit messages and pull request comments."""

import json
import logging
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from diff_test_generator.models.data_models import CoverageMetric, TestGenerationSummary

logger = logging.getLogger(__name__)

REPORT_FILENAME = ".difftest_report.json"


class TestGenerationReporter:
    """Render a run summary for files, commits and pull request comments."""

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)
        self.report_file = self.project_root / REPORT_FILENAME

    def summary_dict(self, summary: TestGenerationSummary) -> Dict[str, Any]:
        return {
            "targets_processed": summary.targets_processed,
            "tests_generated": summary.tests_generated,
            "tests_failed": summary.tests_failed,
            "aborted": summary.aborted,
            "test_files": [asdict(f) for f in summary.test_files],
            "errors": [asdict(e) for e in summary.errors],
            "coverage": asdict(summary.coverage_report.total) if summary.coverage_report else None,
            "coverage_delta": asdict(summary.coverage_delta) if summary.coverage_delta else None,
            "test_results": [
                {
                    "test_file": r.test_file,
                    "success": r.success,
                    "total": r.total,
                    "passed": r.passed,
                    "failed": r.failed,
                    "duration": r.duration,
                }
                for r in summary.test_results
            ],
        }

    def generate_report(self, summary: TestGenerationSummary) -> Path:
        """Save the summary as JSON next to the project and return its path."""
        report = {
            "timestamp": datetime.now().isoformat(),
            "summary": self.summary_dict(summary),
        }
        with open(self.report_file, 'w', encoding='utf-8') as f:
            json.dump(report, f, indent=2)
        logger.info(f"Report saved to {self.report_file}")
        return self.report_file


def build_commit_message(summary: TestGenerationSummary, template: Optional[str] = None,
                         pr_number: Optional[int] = None) -> str:
    """Commit message from ``github.commit_message_template`` or the default wording."""
    if template:
        try:
            return template.format(
                tests_generated=summary.tests_generated,
                targets_processed=summary.targets_processed,
                test_files_count=len(summary.test_files),
                tests_failed=summary.tests_failed,
                pr_number=pr_number if pr_number is not None else '',
            )
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(f"Ignoring commit_message_template ({e!r}); using the default message")

    headline = f"test: add unit tests for PR #{pr_number}" if pr_number is not None else "test: add unit tests"
    return (f"{headline}\n\nGenerated {summary.tests_generated} test(s) "
            f"for {summary.targets_processed} function(s)")


def _coverage_line(name: str, metric: CoverageMetric) -> str:
    return f"- **{name}:** {metric.percentage:.1f}% ({metric.covered}/{metric.total})"


def build_pr_comment(summary: TestGenerationSummary, framework: str, coverage_notes: Optional[str] = None) -> str:
    """Markdown summary posted on the pull request.

    ``coverage_notes`` is prose placed under the coverage metrics when coverage was measured.
    """
    lines: List[str] = [
        "## Test Generation Summary",
        "",
        f"**Framework:** {framework}",
        f"**Targets Processed:** {summary.targets_processed}",
        f"**Tests Generated:** {summary.tests_generated}",
        f"**Failures:** {summary.tests_failed}",
    ]
    if summary.aborted:
        lines.append("**Status:** stopped early, see errors below")

    lines += ["", "### Test Files"]
    if summary.test_files:
        lines += [f"- `{f.path}` ({len(f.targets)} target(s))" for f in summary.test_files]
    else:
        lines.append("No test files generated")

    if summary.errors:
        lines += ["", "### Errors"]
        lines += [f"- `{e.target}`: {e.error}" for e in summary.errors]

    if summary.coverage_report is not None:
        total = summary.coverage_report.total
        lines += [
            "",
            "### Coverage",
            _coverage_line("Lines", total.lines),
            _coverage_line("Branches", total.branches),
            _coverage_line("Functions", total.functions),
            _coverage_line("Statements", total.statements),
        ]
        delta = summary.coverage_delta
        if delta is not None:
            lines += ["", f"**Coverage change:** lines {delta.lines:+.1f}% | branches {delta.branches:+.1f}% | "
                          f"functions {delta.functions:+.1f}% | statements {delta.statements:+.1f}%"]
        if coverage_notes:
            lines += ["", coverage_notes]

    return "\n".join(lines) + "\n"

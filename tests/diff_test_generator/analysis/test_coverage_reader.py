import json

import pytest

from diff_test_generator.analysis.coverage_reader import (
    CoverageReader,
    compute_coverage_delta,
    parse_coverage_json,
)
from diff_test_generator.models.data_models import CoverageMetric, CoverageMetrics, CoverageReport


def report(covered_lines, num_statements=100, covered_branches=0, num_branches=0):
    return {
        'meta': {'version': '7.4.0'},
        'files': {
            'pkg/calc.py': {
                'summary': {'num_statements': num_statements, 'covered_lines': covered_lines,
                            'num_branches': num_branches, 'covered_branches': covered_branches},
                'functions': {
                    '': {'summary': {'covered_lines': 3}},
                    'add': {'summary': {'covered_lines': 2}},
                    'divide': {'summary': {'covered_lines': 0}},
                },
            },
        },
        'totals': {'num_statements': num_statements, 'covered_lines': covered_lines,
                   'num_branches': num_branches, 'covered_branches': covered_branches},
    }


def metrics_with_lines(percentage):
    metric = CoverageMetric(total=100, covered=int(percentage), percentage=percentage)
    return CoverageReport(total=CoverageMetrics(lines=metric, branches=metric, functions=metric, statements=metric))


class TestParseCoverageJson:
    """Test coverage.py JSON parsing."""

    def test_totals_and_files(self):
        """Test totals and per-file metrics are computed."""
        # Act
        parsed = parse_coverage_json(report(50, covered_branches=3, num_branches=4))

        # Assert
        assert parsed.total.lines.percentage == 50.0
        assert parsed.total.statements.covered == 50
        assert parsed.total.branches.percentage == 75.0
        assert parsed.files[0].path == 'pkg/calc.py'

    def test_functions_exclude_module_level_entry(self):
        """Test module-level code is not counted as a function."""
        # Act
        parsed = parse_coverage_json(report(50))

        # Assert
        assert parsed.total.functions.total == 2
        assert parsed.total.functions.covered == 1
        assert parsed.total.functions.percentage == 50.0

    def test_zero_totals_are_fully_covered(self):
        """Test metrics with nothing to cover report 100 percent."""
        # Act
        parsed = parse_coverage_json({'totals': {}, 'files': {}})

        # Assert
        assert parsed.total.lines.percentage == 100.0
        assert parsed.total.branches.percentage == 100.0
        assert parsed.total.functions.percentage == 100.0

    def test_missing_totals_returns_none(self):
        """Test payloads without totals are rejected."""
        # Assert
        assert parse_coverage_json({'files': {}}) is None
        assert parse_coverage_json([]) is None


class TestCoverageReader:
    """Test reading reports from disk."""

    def test_reads_relative_report(self, tmp_path):
        """Test the report path resolves against the project root."""
        # Arrange
        (tmp_path / 'coverage.json').write_text(json.dumps(report(60)))
        reader = CoverageReader(tmp_path)

        # Act
        parsed = reader.read_coverage_report()

        # Assert
        assert reader.path == tmp_path / 'coverage.json'
        assert parsed.total.lines.percentage == 60.0

    def test_missing_report_returns_none(self, tmp_path):
        """Test a missing report yields None."""
        # Assert
        assert CoverageReader(tmp_path, 'out/cov.json').read_coverage_report() is None

    def test_malformed_report_returns_none(self, tmp_path):
        """Test invalid JSON yields None."""
        # Arrange
        (tmp_path / 'coverage.json').write_text('{not json')

        # Assert
        assert CoverageReader(tmp_path).read_coverage_report() is None


class TestComputeCoverageDelta:
    """Test percentage point deltas."""

    def test_delta_is_current_minus_baseline(self):
        """Test going from 50/100 to 60/100 lines is a 10 point gain."""
        # Arrange
        baseline = parse_coverage_json(report(50))
        current = parse_coverage_json(report(60))

        # Act
        delta = compute_coverage_delta(baseline, current)

        # Assert
        assert delta.lines == 10.0
        assert delta.statements == 10.0
        assert delta.branches == 0.0

    def test_negative_delta(self):
        """Test losing coverage yields a negative delta."""
        # Act
        delta = compute_coverage_delta(metrics_with_lines(80.5), metrics_with_lines(70.25))

        # Assert
        assert delta.lines == pytest.approx(-10.25)

    def test_missing_report_gives_no_delta(self):
        """Test a delta needs both reports."""
        # Assert
        assert compute_coverage_delta(None, metrics_with_lines(10.0)) is None
        assert compute_coverage_delta(metrics_with_lines(10.0), None) is None

from pathlib import Path

from diff_test_generator.analysis.coverage.failure_parser import (
    ERROR,
    FAILED,
    PASSED,
    SKIPPED,
    parse_junit_xml,
    parse_stdout_stderr,
)


JUNIT = """<?xml version="1.0" encoding="utf-8"?>
<testsuites>
  <testsuite name="pytest" errors="0" failures="1" skipped="1" tests="4" time="0.05">
    <testcase classname="tests.pkg.test_calc" name="test_add" file="tests/pkg/test_calc.py" line="3" time="0.01" />
    <testcase classname="tests.pkg.test_calc.TestDivide" name="test_by_zero" file="tests/pkg/test_calc.py" line="10" time="0.02">
      <failure message="AssertionError: assert 1 == 2">def test_by_zero():
&gt;       assert 1 == 2
E       AssertionError: assert 1 == 2</failure>
    </testcase>
    <testcase classname="tests.pkg.test_calc" name="test_later" file="tests/pkg/test_calc.py" line="20" time="0.0">
      <skipped message="not yet" />
    </testcase>
    <testcase classname="tests.pkg.test_calc" name="test_fixture" time="0.0">
      <error message="">fixture 'db' not found</error>
    </testcase>
  </testsuite>
</testsuites>
"""


class TestParseJunitXml:
    """Test reading pytest JUnit reports."""

    def test_reads_all_cases_with_outcomes(self, tmp_path: Path):
        """Test every case is returned with its outcome and a 1-based line."""
        # Arrange
        report = tmp_path / "junit.xml"
        report.write_text(JUNIT)

        # Act
        cases = parse_junit_xml(report)

        # Assert
        assert [c.outcome for c in cases] == [PASSED, FAILED, SKIPPED, ERROR]
        assert cases[0].nodeid == "tests/pkg/test_calc.py::test_add"
        assert cases[0].line == 4
        assert cases[1].nodeid == "tests/pkg/test_calc.py::TestDivide::test_by_zero"
        assert cases[1].message == "AssertionError: assert 1 == 2"
        assert "assert 1 == 2" in cases[1].details
        assert cases[1].duration == 0.02
        assert cases[1].is_failure
        assert not cases[2].is_failure

    def test_missing_file_attribute_is_derived_from_classname(self, tmp_path: Path):
        """Test the file path falls back to the dotted classname."""
        # Arrange
        report = tmp_path / "junit.xml"
        report.write_text(JUNIT)

        # Act
        error_case = parse_junit_xml(report)[3]

        # Assert
        assert error_case.file == "tests/pkg/test_calc.py"
        assert error_case.line is None
        assert error_case.message == "fixture 'db' not found"

    def test_unreadable_report_returns_empty(self, tmp_path: Path):
        """Test missing or broken reports yield no cases."""
        # Arrange
        broken = tmp_path / "broken.xml"
        broken.write_text("<testsuite")

        # Act & Assert
        assert parse_junit_xml(tmp_path / "missing.xml") == []
        assert parse_junit_xml(broken) == []


class TestParseStdoutStderr:
    """Test console output fallback."""

    def test_summary_lines(self):
        """Test short summary lines become failed records with their message."""
        # Arrange
        stdout = (
            "F.\n"
            "=========================== short test summary info ===========================\n"
            "FAILED tests/test_calc.py::TestDivide::test_by_zero - ZeroDivisionError: division by zero\n"
            "ERROR tests/test_calc.py::test_fixture\n"
        )

        # Act
        cases = parse_stdout_stderr(stdout, "")

        # Assert
        by_id = {c.nodeid: c for c in cases}
        failed = by_id["tests/test_calc.py::TestDivide::test_by_zero"]
        assert failed.outcome == FAILED
        assert failed.file == "tests/test_calc.py"
        assert failed.name == "test_by_zero"
        assert failed.message == "ZeroDivisionError: division by zero"
        assert by_id["tests/test_calc.py::test_fixture"].outcome == ERROR

    def test_verbose_lines_are_not_duplicated_by_summary(self):
        """Test a case seen in both formats is reported once with the summary message."""
        # Arrange
        stdout = (
            "tests/test_a.py::test_one FAILED\n"
            "FAILED tests/test_a.py::test_one - assert 1 == 2\n"
        )

        # Act
        cases = parse_stdout_stderr(stdout, "")

        # Assert
        assert len(cases) == 1
        assert cases[0].message == "assert 1 == 2"

    def test_collection_error(self):
        """Test module-level collection errors are recognised."""
        # Arrange
        stdout = "ERROR tests/test_broken.py - ImportError: cannot import name 'x'\n"

        # Act
        cases = parse_stdout_stderr(stdout, "")

        # Assert
        assert any(c.file == "tests/test_broken.py" and c.outcome == ERROR for c in cases)

    def test_empty_output(self):
        """Test empty output yields nothing."""
        # Assert
        assert parse_stdout_stderr("", "") == []

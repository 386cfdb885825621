from io import StringIO
from unittest.mock import Mock

from rich.console import Console

from diff_test_generator.models.data_models import (
    ChangeType,
    ChangedRange,
    CoverageDelta,
    FunctionKind,
    TargetError,
    TestGenerationSummary,
    TestResult,
    TestTarget,
)
from diff_test_generator.utils.user_feedback import StatusIcon, UserFeedback, format_delta


def recording_feedback(verbose=False, quiet=False):
    out, err = StringIO(), StringIO()
    feedback = UserFeedback(
        verbose=verbose, quiet=quiet,
        console=Console(file=out, width=120, color_system=None),
        error_console=Console(file=err, width=120, color_system=None),
    )
    return feedback, out, err


class TestUserFeedback:
    """Test console messages."""

    def test_success_basic_message(self):
        """Test success prints the icon and message."""
        feedback = UserFeedback()
        feedback.console = Mock()

        feedback.success("Tests written")

        feedback.console.print.assert_called_once_with(f"{StatusIcon.SUCCESS} Tests written")

    def test_quiet_suppresses_info_but_not_errors(self):
        """Test quiet mode keeps errors only."""
        feedback, out, err = recording_feedback(quiet=True)

        feedback.info("hidden")
        feedback.warning("hidden too")
        feedback.error("shown", "fix it")

        assert out.getvalue() == ""
        assert "shown" in err.getvalue()
        assert "fix it" in err.getvalue()

    def test_debug_needs_verbose(self):
        """Test debug output only appears in verbose mode."""
        quiet_feedback, quiet_out, _ = recording_feedback()
        verbose_feedback, verbose_out, _ = recording_feedback(verbose=True)

        quiet_feedback.debug("details")
        verbose_feedback.debug("details")

        assert quiet_out.getvalue() == ""
        assert "details" in verbose_out.getvalue()

    def test_status_spinner_quiet_yields(self):
        """Test the spinner context works without output in quiet mode."""
        feedback, out, _ = recording_feedback(quiet=True)

        with feedback.status_spinner("working"):
            pass

        assert out.getvalue() == ""


class TestSummaryRendering:
    """Test tables and the run summary."""

    def test_targets_table_lists_functions(self):
        """Test the targets table shows qualified names and line spans."""
        feedback, out, _ = recording_feedback()
        target = TestTarget(
            file_path="pkg/bank.py", function_name="deposit", function_type=FunctionKind.METHOD,
            code="", context="", start_line=3, end_line=9,
            changed_ranges=(ChangedRange(4, 4, ChangeType.ADDITION),), class_name="Account",
        )

        feedback.targets_table([target])

        rendered = out.getvalue()
        assert "Account.deposit" in rendered
        assert "3-9" in rendered

    def test_generation_summary_with_failures(self):
        """Test failing summaries list results and errors."""
        feedback, out, err = recording_feedback()
        summary = TestGenerationSummary(
            targets_processed=2, tests_generated=1, tests_failed=1,
            errors=[TargetError("pkg/a.py::f", "quota exhausted")],
            test_results=[TestResult(test_file="tests/test_a.py", success=False, total=2, passed=1, failed=1)],
            coverage_delta=CoverageDelta(lines=10.0, branches=0.0, functions=5.5, statements=10.0),
        )

        feedback.generation_summary(summary)

        rendered = out.getvalue()
        assert "Targets processed" in rendered
        assert "tests/test_a.py" in rendered
        assert "1/2 passed" in rendered
        assert "lines +10.00%" in rendered
        assert "quota exhausted" in err.getvalue()

    def test_format_delta(self):
        """Test deltas are signed with two decimals."""
        delta = CoverageDelta(lines=1.5, branches=-2.0, functions=0.0, statements=1.5)

        assert format_delta(delta) == "lines +1.50%, branches -2.00%, functions +0.00%, statements +1.50%"

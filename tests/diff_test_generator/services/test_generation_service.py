from dataclasses import replace
from unittest.mock import Mock

import pytest

from diff_test_generator.config import Config
from diff_test_generator.exceptions import GenerationError
from diff_test_generator.models.data_models import (
    ChangeType,
    ChangedRange,
    CoverageMetric,
    CoverageMetrics,
    CoverageReport,
    FunctionKind,
    GenerationMode,
    GenerationResult,
    TestFailure,
    TestResult,
    TestTarget,
)
from diff_test_generator.services.test_generation_service import (
    RETENTION_NOTE,
    TestGenerationService,
    generate_tests_from_targets,
)
from diff_test_generator.utils.writer import TestFileWriter


TEST_PATH = "tests/pkg/test_calc.py"
VALID = "class TestAdd:\n    def test_add(self):\n        assert True\n"


def many_tests(count):
    body = "".join(f"    def test_case_{i}(self):\n        assert True\n\n" for i in range(count))
    return "class TestAdd:\n" + body


def make_target(name="add", file_path="pkg/calc.py"):
    return TestTarget(
        file_path=file_path,
        function_name=name,
        function_type=FunctionKind.FUNCTION,
        code=f"def {name}(a, b):\n    return a + b",
        context="",
        start_line=1,
        end_line=2,
        changed_ranges=(ChangedRange(2, 2, ChangeType.MODIFICATION),),
    )


def result(code=VALID):
    return GenerationResult(test_code=code)


def passing(path=TEST_PATH):
    return [TestResult(test_file=path, success=True, total=1, passed=1)]


def failing(path=TEST_PATH, failed=1):
    return [TestResult(test_file=path, success=False, total=failed, failed=failed,
                       failures=[TestFailure(test_name="TestAdd::test_add", message="assert 1 == 2",
                                             stack="E   assert 1 == 2")])]


def coverage(percentage):
    metric = CoverageMetric(total=100, covered=int(percentage), percentage=percentage)
    return CoverageReport(total=CoverageMetrics(lines=metric, branches=metric, functions=metric, statements=metric))


@pytest.fixture
def generator():
    mock = Mock()
    mock.generate_test.return_value = result()
    mock.generate_test_scaffold.return_value = result()
    mock.fix_test.return_value = result()
    return mock


@pytest.fixture
def runner():
    mock = Mock()
    mock.run_tests.return_value = passing()
    return mock


def make_service(tmp_path, generator, runner, sleep=None, **overrides):
    settings = {
        'test_generation': {'code_style': {'format_generated_code': False}},
    }
    for key, value in overrides.items():
        section, _, option = key.partition('__')
        settings.setdefault(section, {})[option] = value
    config = Config.from_dict(settings)
    return TestGenerationService(
        tmp_path, config, generator, runner=runner, writer=TestFileWriter(tmp_path),
        coverage_reader=Mock(), sleep=sleep or Mock(),
    )


class TestGenerateTestsFromTargets:
    """Test the batch pipeline in generation-only modes."""

    def test_empty_targets_give_empty_summary(self, tmp_path, generator, runner):
        """Test no targets means no calls and an empty summary."""
        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([], GenerationMode.FULL)

        # Assert
        assert summary.targets_processed == 0
        assert summary.tests_generated == 0
        assert summary.test_files == []
        generator.generate_test.assert_not_called()
        runner.run_tests.assert_not_called()

    def test_target_cap(self, tmp_path, generator, runner):
        """Test only the first max_tests_per_pr targets are processed."""
        # Arrange
        targets = [make_target(f"fn_{i}") for i in range(100)]
        service = make_service(tmp_path, generator, runner, test_generation__max_tests_per_pr=50)

        # Act
        summary = service.generate_tests_from_targets(targets, "pr")

        # Assert
        assert summary.targets_processed == 50
        assert generator.generate_test.call_count == 50
        assert generator.generate_test.call_args_list[-1].args[0].function_name == "fn_49"

    def test_unlimited_cap(self, tmp_path, generator, runner):
        """Test -1 processes every target."""
        # Arrange
        targets = [make_target(f"fn_{i}") for i in range(60)]
        service = make_service(tmp_path, generator, runner, test_generation__max_tests_per_pr=-1)

        # Act
        summary = service.generate_tests_from_targets(targets, GenerationMode.PR)

        # Assert
        assert summary.targets_processed == 60

    def test_pr_mode_writes_but_does_not_run(self, tmp_path, generator, runner):
        """Test pr mode writes merged files without executing them."""
        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets(
            [make_target("add"), make_target("sub")], GenerationMode.PR)

        # Assert
        assert summary.tests_generated == 2
        assert [f.path for f in summary.test_files] == [TEST_PATH]
        assert summary.test_files[0].targets == ["add", "sub"]
        assert (tmp_path / TEST_PATH).read_text() == VALID
        assert summary.final_contents[TEST_PATH] == VALID
        runner.run_tests.assert_not_called()
        assert not summary.has_failures

    def test_related_functions_from_the_same_file(self, tmp_path, generator, runner):
        """Test other targets of the same file are passed as related functions."""
        # Arrange
        add, sub, other = make_target("add"), make_target("sub"), make_target("mul", "pkg/other.py")

        # Act
        make_service(tmp_path, generator, runner).generate_tests_from_targets([add, sub, other], "pr")

        # Assert
        related = generator.generate_test.call_args_list[0].args[2]
        assert related == [sub]

    def test_class_methods_share_one_request_when_consolidated(self, tmp_path, generator, runner):
        """Test consolidate_class_targets sends the methods of a class as one target."""
        # Arrange
        deposit = replace(make_target("deposit"), function_type=FunctionKind.METHOD, class_name="Calc")
        withdraw = replace(make_target("withdraw"), function_type=FunctionKind.METHOD, class_name="Calc")
        service = make_service(tmp_path, generator, runner, test_generation__consolidate_class_targets=True)

        # Act
        summary = service.generate_tests_from_targets([deposit, make_target("add"), withdraw], "pr")

        # Assert
        assert summary.targets_processed == 3
        assert summary.tests_generated == 2
        names = [c.args[0].function_name for c in generator.generate_test.call_args_list]
        assert names == ["deposit, withdraw", "add"]

    def test_class_methods_are_separate_by_default(self, tmp_path, generator, runner):
        """Test each method is its own request unless consolidation is enabled."""
        # Arrange
        deposit = replace(make_target("deposit"), function_type=FunctionKind.METHOD, class_name="Calc")
        withdraw = replace(make_target("withdraw"), function_type=FunctionKind.METHOD, class_name="Calc")

        # Act
        make_service(tmp_path, generator, runner).generate_tests_from_targets([deposit, withdraw], "pr")

        # Assert
        assert generator.generate_test.call_count == 2

    def test_scaffold_mode(self, tmp_path, generator, runner):
        """Test scaffold mode asks for scaffolds only."""
        # Act
        make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "scaffold")

        # Assert
        generator.generate_test_scaffold.assert_called_once()
        generator.generate_test.assert_not_called()
        runner.run_tests.assert_not_called()

    def test_existing_test_file_is_extended(self, tmp_path, generator, runner):
        """Test generated tests are merged into the test file already on disk."""
        # Arrange
        existing = "import os\n\n\nclass TestAdd:\n    def test_existing(self):\n        assert os\n"
        (tmp_path / "tests" / "pkg").mkdir(parents=True)
        (tmp_path / TEST_PATH).write_text(existing)

        # Act
        make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "pr")

        # Assert
        written = (tmp_path / TEST_PATH).read_text()
        assert "def test_existing" in written
        assert "def test_add" in written
        assert generator.generate_test.call_args.args[1] == existing

    def test_quota_error_aborts_batch(self, tmp_path, generator, runner):
        """Test a quota error stops the batch but keeps finished work."""
        # Arrange
        generator.generate_test.side_effect = [
            result(), GenerationError.quota("no credits", provider="claude"), result()]
        targets = [make_target("add"), make_target("sub"), make_target("mul")]

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets(targets, "full")

        # Assert
        assert summary.aborted
        assert generator.generate_test.call_count == 2
        assert summary.tests_generated == 1
        assert summary.tests_failed == 1
        assert summary.errors[0].target == "pkg/calc.py::sub"
        assert (tmp_path / TEST_PATH).exists()
        runner.run_tests.assert_not_called()

    def test_per_target_errors_continue(self, tmp_path, generator, runner):
        """Test a non-retryable error for one target does not stop the others."""
        # Arrange
        generator.generate_test.side_effect = [GenerationError.non_retryable("bad request"), result()]

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets(
            [make_target("add"), make_target("sub")], "pr")

        # Assert
        assert not summary.aborted
        assert summary.tests_generated == 1
        assert len(summary.errors) == 1
        assert summary.has_failures

    def test_invalid_code_is_retried_through_fix(self, tmp_path, generator, runner):
        """Test invalid generated code consumes a fix attempt and then succeeds."""
        # Arrange
        generator.generate_test.return_value = result("oops")

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "pr")

        # Assert
        assert summary.tests_generated == 1
        generator.fix_test.assert_called_once()
        context, attempt, max_attempts = generator.fix_test.call_args.args
        assert "failed validation" in context.error_message
        assert (attempt, max_attempts) == (1, 3)

    def test_validation_gives_up_after_max_attempts(self, tmp_path, generator, runner):
        """Test persistent invalid code is recorded as a validation failure."""
        # Arrange
        generator.generate_test.return_value = result("oops")
        generator.fix_test.return_value = result("still oops")
        service = make_service(tmp_path, generator, runner, test_generation__max_fix_attempts=2)

        # Act
        summary = service.generate_tests_from_targets([make_target()], "pr")

        # Assert
        assert generator.fix_test.call_count == 2
        assert summary.tests_generated == 0
        assert "failed validation" in summary.errors[0].error
        assert summary.test_files == []

    def test_rate_limit_waits_and_retries(self, tmp_path, generator, runner):
        """Test rate limits sleep for the hinted delay before retrying."""
        # Arrange
        sleep = Mock()
        generator.generate_test.side_effect = [GenerationError.rate_limit("slow", retry_after=2.0), result()]

        # Act
        summary = make_service(tmp_path, generator, runner, sleep=sleep).generate_tests_from_targets(
            [make_target()], "pr")

        # Assert
        sleep.assert_called_once_with(2.0)
        assert summary.tests_generated == 1

    def test_rate_limit_retries_are_bounded(self, tmp_path, generator, runner):
        """Test repeated rate limits eventually fail the target."""
        # Arrange
        sleep = Mock()
        generator.generate_test.side_effect = GenerationError.rate_limit("slow")
        service = make_service(tmp_path, generator, runner, sleep=sleep, llm__max_rate_limit_retries=2)

        # Act
        summary = service.generate_tests_from_targets([make_target()], "pr")

        # Assert
        assert generator.generate_test.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [1.0, 2.0]
        assert len(summary.errors) == 1
        assert not summary.aborted

    def test_request_delay_between_targets(self, tmp_path, generator, runner):
        """Test the configured delay is applied between targets only."""
        # Arrange
        sleep = Mock()
        service = make_service(tmp_path, generator, runner, sleep=sleep, llm__request_delay=0.5)

        # Act
        service.generate_tests_from_targets([make_target("add"), make_target("sub")], "pr")

        # Assert
        sleep.assert_called_once_with(0.5)


class TestRunAndRepair:
    """Test full mode execution and repair."""

    def test_failing_file_is_repaired(self, tmp_path, generator, runner):
        """Test a failing file is fixed, rewritten and rerun."""
        # Arrange
        fixed = "class TestAdd:\n    def test_add(self):\n        assert 1 + 1 == 2\n"
        generator.fix_test.return_value = result(fixed)
        runner.run_tests.side_effect = [failing(), passing()]

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "full")

        # Assert
        assert runner.run_tests.call_count == 2
        assert summary.tests_failed == 0
        assert summary.test_results[0].success
        assert (tmp_path / TEST_PATH).read_text() == fixed
        assert summary.final_contents[TEST_PATH] == fixed
        context = generator.fix_test.call_args.args[0]
        assert context.test_code == VALID
        assert context.test_file == TEST_PATH
        assert "assert 1 == 2" in context.error_message

    def test_repair_loop_is_bounded(self, tmp_path, generator, runner):
        """Test repair stops after max_fix_attempts cycles and counts the failures."""
        # Arrange
        runner.run_tests.return_value = failing(failed=2)
        service = make_service(tmp_path, generator, runner, test_generation__max_fix_attempts=2)

        # Act
        summary = service.generate_tests_from_targets([make_target()], "full")

        # Assert
        assert generator.fix_test.call_count == 2
        assert runner.run_tests.call_count == 3
        assert summary.tests_failed == 2
        assert summary.has_failures

    def test_zero_fix_attempts_only_runs_once(self, tmp_path, generator, runner):
        """Test no repair happens when max_fix_attempts is 0."""
        # Arrange
        runner.run_tests.return_value = failing()
        service = make_service(tmp_path, generator, runner, test_generation__max_fix_attempts=0)

        # Act
        summary = service.generate_tests_from_targets([make_target()], "full")

        # Assert
        generator.fix_test.assert_not_called()
        assert runner.run_tests.call_count == 1
        assert summary.tests_failed == 1

    def test_fix_that_drops_tests_is_rejected(self, tmp_path, generator, runner):
        """Test fixes deleting too many tests are rejected and the next request says so."""
        # Arrange
        generator.generate_test.return_value = result(many_tests(12))
        generator.fix_test.side_effect = [result(many_tests(1)), result(many_tests(12))]
        runner.run_tests.side_effect = [failing(), passing()]

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "full")

        # Assert
        assert generator.fix_test.call_count == 2
        second_context = generator.fix_test.call_args_list[1].args[0]
        assert second_context.error_message.startswith(RETENTION_NOTE)
        assert runner.run_tests.call_count == 2
        assert summary.tests_failed == 0

    def test_aborting_error_during_repair(self, tmp_path, generator, runner):
        """Test a quota error while repairing stops further cycles."""
        # Arrange
        generator.fix_test.side_effect = GenerationError.quota("no credits", provider="openai")
        runner.run_tests.return_value = failing()

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "full")

        # Assert
        assert summary.aborted
        assert generator.fix_test.call_count == 1
        assert summary.tests_failed == 1

    def test_runner_crash_returns_partial_summary(self, tmp_path, generator, runner):
        """Test an interpreter that cannot be started is recorded instead of raised."""
        # Arrange
        runner.run_tests.side_effect = FileNotFoundError(2, "No such file or directory", "/nonexistent/python")

        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "full")

        # Assert
        assert summary.aborted
        assert summary.tests_generated == 1
        assert summary.errors[-1].target == "test execution"
        assert "/nonexistent/python" in summary.errors[-1].error
        assert summary.test_results == []
        assert (tmp_path / TEST_PATH).exists()
        generator.fix_test.assert_not_called()

    def test_missing_interpreter_with_real_runner(self, tmp_path, generator):
        """Test a wrong runner.python ends the run with an execution error."""
        # Arrange
        config = Config.from_dict({'test_generation': {
            'code_style': {'format_generated_code': False},
            'runner': {'python': str(tmp_path / "missing" / "python"), 'environment_manager': 'none'},
        }})
        service = TestGenerationService(tmp_path, config, generator, writer=TestFileWriter(tmp_path),
                                        coverage_reader=Mock(), sleep=Mock())

        # Act
        summary = service.generate_tests_from_targets([make_target()], GenerationMode.FULL)

        # Assert
        assert summary.aborted
        assert "Could not start pytest" in summary.errors[-1].error
        generator.fix_test.assert_not_called()

    def test_dry_run_skips_execution(self, tmp_path, generator, runner):
        """Test nothing is run or repaired when the writer only reports changes."""
        # Arrange
        service = TestGenerationService(tmp_path, Config.from_dict({
            'test_generation': {'code_style': {'format_generated_code': False}}}),
            generator, runner=runner, writer=TestFileWriter(tmp_path, dry_run=True),
            coverage_reader=Mock(), sleep=Mock())

        # Act
        summary = service.generate_tests_from_targets([make_target()], "full")

        # Assert
        assert summary.tests_generated == 1
        assert summary.final_contents[TEST_PATH] == VALID
        assert not (tmp_path / TEST_PATH).exists()
        runner.run_tests.assert_not_called()
        generator.fix_test.assert_not_called()
        assert not summary.has_failures

    def test_coverage_delta(self, tmp_path, generator, runner):
        """Test coverage is measured after the runs and compared with the baseline."""
        # Arrange
        service = make_service(tmp_path, generator, runner, test_generation__enable_coverage=True)
        service.coverage_reader.read_coverage_report.side_effect = [coverage(50.0), coverage(60.0)]

        # Act
        summary = service.generate_tests_from_targets([make_target()], "full")

        # Assert
        assert summary.coverage_delta.lines == 10.0
        assert summary.coverage_report.total.lines.percentage == 60.0
        assert runner.run_tests.call_args.kwargs["coverage"] is True

    def test_no_coverage_without_flag(self, tmp_path, generator, runner):
        """Test coverage stays unset when disabled."""
        # Act
        summary = make_service(tmp_path, generator, runner).generate_tests_from_targets([make_target()], "full")

        # Assert
        assert summary.coverage_delta is None
        assert summary.coverage_report is None


class TestFunctionalEntryPoint:
    """Test the module-level function."""

    def test_empty_targets_need_no_generator(self):
        """Test empty input returns an empty summary without a generator."""
        # Act
        summary = generate_tests_from_targets([], Config.from_dict({}))

        # Assert
        assert summary.targets_processed == 0

    def test_generator_required_for_targets(self):
        """Test a generator must be given when there is work to do."""
        # Act & Assert
        with pytest.raises(ValueError):
            generate_tests_from_targets([make_target()], Config.from_dict({}))

    def test_delegates_to_service(self, tmp_path, generator, runner):
        """Test collaborators are passed through to the service."""
        # Act
        summary = generate_tests_from_targets(
            [make_target()], Config.from_dict({'test_generation': {'code_style': {'format_generated_code': False}}}),
            "pr", generator=generator, project_root=tmp_path, runner=runner)

        # Assert
        assert summary.tests_generated == 1
        assert (tmp_path / TEST_PATH).exists()

"""Message builders for test generation, scaffolding, repair and coverage notes.

All builders are pure: the same inputs always produce the same message list,
ordered ``[system, user]``.
"""

from typing import Dict, List, Optional, Sequence

from diff_test_generator.generation.context_optimizer import FixContext
from diff_test_generator.models.data_models import FunctionKind, TestFramework, TestGenerationSummary, TestTarget
from diff_test_generator.utils.ast_merge import group_name_for

Message = Dict[str, str]

OUTPUT_RULES = """Output format:
- Return ONLY the complete Python test module.
- No explanations, no prose before or after the code.
- Do not wrap the code in markdown fences (no ``` markers)."""

FRAMEWORK_RULES = {
    TestFramework.PYTEST: """Framework: pytest
- Group tests in a top-level class named Test<Subject> (no base class needed).
- Each test is a method named test_<behavior> that takes self (and fixtures when needed).
- Use plain assert statements and pytest.raises for expected exceptions.
- Use unittest.mock (Mock, MagicMock, patch) for collaborators; import pytest only if you use it.""",
    TestFramework.UNITTEST: """Framework: unittest
- Start the module with `import unittest`.
- Group tests in a top-level class named Test<Subject> that subclasses unittest.TestCase.
- Each test is a method named test_<behavior> using self.assert* methods and self.assertRaises.
- Use unittest.mock (Mock, MagicMock, patch) for collaborators.""",
}

KIND_LABELS = {
    FunctionKind.FUNCTION: "function",
    FunctionKind.LAMBDA: "module-level lambda",
    FunctionKind.METHOD: "method",
}


def _framework(framework) -> TestFramework:
    return framework if isinstance(framework, TestFramework) else TestFramework(framework)


def module_path_for(file_path: str) -> str:
    """Dotted import path of a source file (``src/pkg/mod.py`` -> ``pkg.mod``)."""
    parts = file_path.replace('\\', '/').split('/')
    if parts and parts[0] == 'src':
        parts = parts[1:]
    if parts and parts[-1].endswith('.py'):
        parts[-1] = parts[-1][:-3]
    if parts and parts[-1] == '__init__':
        parts = parts[:-1]
    return '.'.join(p for p in parts if p)


def _system_prompt(framework: TestFramework, task: str) -> str:
    return "\n\n".join([
        "You are an expert Python engineer writing unit tests.",
        task,
        FRAMEWORK_RULES[framework],
        OUTPUT_RULES,
    ])


def _describe_target(target: TestTarget) -> List[str]:
    kind = KIND_LABELS[target.function_type]
    lines = [
        f"File: {target.file_path}",
        f"Import path: {module_path_for(target.file_path)}",
        f"Target: {target.qualified_name}",
        f"Kind: {kind}{' (private)' if target.is_private else ''}",
        f"Lines: {target.start_line}-{target.end_line}",
    ]
    if target.class_name:
        lines.append(f"Class: {target.class_name}")
    if target.class_private_properties:
        lines.append("Private attributes of the class: " + ", ".join(target.class_private_properties))
    if target.is_private:
        lines.append("The target is private; test it through its module or class directly, "
                     "without changing its visibility.")
    return lines


def _existing_tests_section(target: TestTarget, existing_test_file: str) -> str:
    group = group_name_for(target.function_name, target.class_name)
    return "\n".join([
        "Existing test file (extend it, do not replace it):",
        existing_test_file,
        "",
        f"Keep every existing test. If a class named {group} already exists, add new test methods "
        f"to a class with that same name rather than creating a different class. Repeat only the "
        f"imports your new tests need.",
    ])


def build_test_generation_prompt(
    target: TestTarget,
    framework,
    existing_test_file: Optional[str] = None,
    related_functions: Optional[Sequence[TestTarget]] = None,
) -> List[Message]:
    """Messages asking for complete tests of one target."""
    fw = _framework(framework)
    system = _system_prompt(
        fw,
        "Write thorough, deterministic unit tests for the code that changed. Cover the normal path, "
        "edge cases and error handling. Never call real network services or touch files outside "
        "temporary directories.",
    )

    sections = ["\n".join(_describe_target(target)), "Source:\n" + target.code]
    if target.context:
        sections.append("Surrounding code:\n" + target.context)
    related = [r for r in (related_functions or []) if r.identity != target.identity]
    if related:
        snippets = [f"# {r.qualified_name}\n{r.code}" for r in related]
        sections.append("Related functions from the same change:\n" + "\n\n".join(snippets))
    if existing_test_file:
        sections.append(_existing_tests_section(target, existing_test_file))
    sections.append(
        f"Write the tests for {target.qualified_name} in a class named "
        f"{group_name_for(target.function_name, target.class_name)}."
    )

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def build_test_scaffold_prompt(
    target: TestTarget,
    framework,
    existing_test_file: Optional[str] = None,
) -> List[Message]:
    """Messages asking for a runnable skeleton that a developer will complete."""
    fw = _framework(framework)
    system = _system_prompt(
        fw,
        "Write a test SCAFFOLD: the test class, fixtures or setUp, and test methods with descriptive "
        "names and docstrings for each scenario worth testing. Bodies contain arrange/act/assert "
        "comments and a TODO instead of real assertions, ending with `pytest.skip(\"TODO\")` for pytest "
        "or `self.skipTest(\"TODO\")` for unittest so the module stays importable.",
    )

    sections = ["\n".join(_describe_target(target)), "Source:\n" + target.code]
    if target.context:
        sections.append("Surrounding code:\n" + target.context)
    if existing_test_file:
        sections.append(_existing_tests_section(target, existing_test_file))
    sections.append(
        f"Scaffold the tests for {target.qualified_name} in a class named "
        f"{group_name_for(target.function_name, target.class_name)}."
    )

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def build_test_fix_prompt(
    context: FixContext,
    framework,
    attempt: int = 1,
    max_attempts: int = 1,
) -> List[Message]:
    """Messages asking to repair a failing test module."""
    fw = _framework(framework)
    system = _system_prompt(
        fw,
        "A generated test module fails. Fix the TESTS so they pass against the source as written; "
        "never assume the source can change. Keep every passing test and every test class name. "
        "Return the whole corrected module, not a diff.",
    )

    sections = []
    if context.test_file:
        sections.append(f"Test file: {context.test_file}")
    sections.append(f"Fix attempt {attempt} of {max_attempts}.")
    sections.append("Source under test:\n" + context.original_code)
    sections.append("Current test module:\n" + context.test_code)
    if context.error_message:
        sections.append("Error:\n" + context.error_message)
    if context.failing_tests:
        described = []
        for failure in context.failing_tests:
            entry = f"- {failure.test_name}: {failure.message}"
            if failure.stack:
                entry += "\n" + failure.stack
            described.append(entry)
        sections.append("Failing tests:\n" + "\n".join(described))
    if context.test_output:
        sections.append("Runner output:\n" + context.test_output)

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n\n".join(sections)},
    ]


def build_coverage_summary_prompt(summary: TestGenerationSummary) -> List[Message]:
    """Messages asking for a short prose reading of a run's coverage, for the PR comment."""
    system = (
        "You write test coverage notes for GitHub pull request comments. Summarise the metrics "
        "below in plain markdown: what was tested, the coverage reached, how it changed and one "
        "or two concrete suggestions. Two short paragraphs at most. Do not repeat the raw numbers as a table."
    )

    total = summary.coverage_report.total
    results = summary.test_results
    sections = ["Coverage:\n" + "\n".join(
        f"- {name}: {metric.percentage:.1f}% ({metric.covered}/{metric.total})"
        for name, metric in (("Lines", total.lines), ("Branches", total.branches),
                             ("Functions", total.functions), ("Statements", total.statements))
    )]
    sections.append(
        f"Test results: {sum(r.total for r in results)} total, "
        f"{sum(r.passed for r in results)} passed, {sum(r.failed for r in results)} failed"
    )
    tested = [name for f in summary.test_files for name in f.targets]
    sections.append("Functions tested:\n" + ("\n".join(f"- {name}" for name in tested) if tested else "None"))
    delta = summary.coverage_delta
    if delta is not None:
        sections.append(
            f"Coverage change: lines {delta.lines:+.1f}%, branches {delta.branches:+.1f}%, "
            f"functions {delta.functions:+.1f}%, statements {delta.statements:+.1f}%"
        )

    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n\n".join(sections)},
    ]

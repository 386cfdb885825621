"""Extract and structurally validate test code from model responses."""

import ast
import re
from dataclasses import dataclass, field
from typing import List, Optional

from diff_test_generator.models.data_models import TestFramework

MIN_TEST_CODE_LENGTH = 20

_FENCED_BLOCK_RE = re.compile(r'```(.*?)```', re.DOTALL)
_LANGUAGE_TAG_RE = re.compile(r'^[A-Za-z0-9_+.#-]*$')
_GROUP_RE = re.compile(r'^class\s+Test\w*\s*[(:]', re.MULTILINE)
_TEST_CASE_RE = re.compile(r'^\s*(?:async\s+)?def\s+test\w*\s*\(', re.MULTILINE)
_UNITTEST_IMPORT_RE = re.compile(r'^\s*(?:import\s+unittest\b|from\s+unittest(?:\.\w+)*\s+import\b)', re.MULTILINE)


def _block_body(block: str) -> str:
    """Drop an opening language tag line (```python) from a fenced block."""
    first_line, newline, rest = block.partition('\n')
    if newline and _LANGUAGE_TAG_RE.match(first_line.strip()):
        return rest
    return block


def parse_test_code(raw_response: Optional[str]) -> str:
    """Pull test code out of a model response.

    The largest fenced block wins; without fences the trimmed response is the
    code. Never raises.
    """
    if not raw_response:
        return ''

    blocks = [_block_body(match.group(1)).strip() for match in _FENCED_BLOCK_RE.finditer(raw_response)]
    blocks = [b for b in blocks if b]
    if blocks:
        return max(blocks, key=len)
    return raw_response.strip()


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def validate_test_code_structure(code: str, framework) -> ValidationResult:
    """Classify generated code as structurally usable or not."""
    fw = framework if isinstance(framework, TestFramework) else TestFramework(framework)
    errors: List[str] = []
    text = code or ''

    if len(text.strip()) < MIN_TEST_CODE_LENGTH:
        errors.append(f"Test code is too short (minimum {MIN_TEST_CODE_LENGTH} characters)")
        return ValidationResult(valid=False, errors=errors)

    if not _GROUP_RE.search(text):
        errors.append("Missing test class (expected a top-level 'class Test...')")
    if not _TEST_CASE_RE.search(text):
        errors.append("Missing test case (expected at least one 'def test_...')")
    if fw is TestFramework.UNITTEST and not _UNITTEST_IMPORT_RE.search(text):
        errors.append("Missing 'import unittest' required by the unittest framework")

    try:
        ast.parse(text)
    except SyntaxError as e:
        errors.append(f"Syntax error at line {e.lineno}: {e.msg}")

    return ValidationResult(valid=not errors, errors=errors)

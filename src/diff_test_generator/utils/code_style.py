"""Formatting and lint fixes for generated test code."""

import logging
import subprocess
from typing import List, Optional

import black

from diff_test_generator.exceptions import CodeStyleError

logger = logging.getLogger(__name__)

DEFAULT_LINE_LENGTH = 100


class CodeStyleProcessor:
    """Apply black formatting and ruff autofixes to a source string."""

    def __init__(self, line_length: int = DEFAULT_LINE_LENGTH, ruff_command: Optional[List[str]] = None,
                 timeout: int = 60):
        self.line_length = line_length
        self.ruff_command = ruff_command or ['ruff']
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "CodeStyleProcessor":
        return cls(line_length=config.get('test_generation.code_style.line_length', DEFAULT_LINE_LENGTH))

    def format_code(self, code: str) -> str:
        try:
            return black.format_str(code, mode=black.Mode(line_length=self.line_length))
        except black.InvalidInput as e:
            raise CodeStyleError(f"black could not parse generated code: {e}", tool='black') from e

    def lint_code(self, code: str, filename: str = 'generated_test.py') -> str:
        """Return ``code`` with ruff's safe fixes applied; remaining findings are ignored."""
        argv = [*self.ruff_command, 'check', '--fix', '--exit-zero', '--quiet',
                '--stdin-filename', filename, '-']
        try:
            completed = subprocess.run(argv, input=code, text=True, capture_output=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise CodeStyleError(f"ruff could not be run: {e}", tool='ruff') from e

        if completed.returncode != 0:
            raise CodeStyleError(f"ruff failed: {completed.stderr.strip()}", tool='ruff')
        return completed.stdout or code

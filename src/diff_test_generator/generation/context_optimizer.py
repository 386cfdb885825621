"""Shrink repair context to a bounded size without touching the failing test code."""

import logging
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

from diff_test_generator.models.data_models import TestFailure

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "# ...truncated..."

FRAME_PATTERNS = [
    re.compile(r'^\s*Traceback \(most recent call last\):\s*$'),
    re.compile(r'^\s*File "[^"]*", line \d+'),
    re.compile(r'^\s*at\s+\S.*:\d+(?::\d+)?\)?\s*$'),
    re.compile(r'^[^\s:]+\.py:\d+:(?:\s|$)'),
]
_PYTHON_FRAME = FRAME_PATTERNS[1]


@dataclass
class ContextLimits:
    """Byte budgets per field; test code has none."""
    max_original_code: int = 24000
    max_error_message: int = 2000
    max_test_output: int = 4000
    max_failure_message: int = 1000
    max_stack: int = 1500

    @classmethod
    def from_config(cls, config) -> 'ContextLimits':
        defaults = cls()
        return cls(
            max_original_code=config.get('context.max_original_code', defaults.max_original_code),
            max_error_message=config.get('context.max_error_message', defaults.max_error_message),
            max_test_output=config.get('context.max_test_output', defaults.max_test_output),
            max_failure_message=config.get('context.max_failure_message', defaults.max_failure_message),
            max_stack=config.get('context.max_stack', defaults.max_stack),
        )


@dataclass
class FixContext:
    """Everything a repair request needs to know about one failing test file."""
    original_code: str
    test_code: str
    error_message: str
    test_output: Optional[str] = None
    failing_tests: List[TestFailure] = field(default_factory=list)
    function_names: List[str] = field(default_factory=list)
    test_file: Optional[str] = None


def _size(text: str) -> int:
    return len(text.encode('utf-8'))


def _cut(text: str, max_bytes: int, suffix: str = '...') -> str:
    if _size(text) <= max_bytes:
        return text
    budget = max(0, max_bytes - _size(suffix))
    return text.encode('utf-8')[:budget].decode('utf-8', 'ignore').rstrip() + suffix


def is_stack_frame(line: str) -> bool:
    return any(pattern.match(line) for pattern in FRAME_PATTERNS)


def strip_stack_frames(text: Optional[str]) -> str:
    """Remove call-frame lines, including the source echo under a Python frame."""
    if not text:
        return ''
    kept: List[str] = []
    frame_indent: Optional[int] = None
    for line in text.splitlines():
        if frame_indent is not None:
            indent = len(line) - len(line.lstrip())
            pending, frame_indent = frame_indent, None
            if line.strip() and indent > pending and not is_stack_frame(line):
                continue
        if is_stack_frame(line):
            if _PYTHON_FRAME.match(line):
                frame_indent = len(line) - len(line.lstrip())
            continue
        kept.append(line)
    return '\n'.join(kept).strip()


def extract_key_error_message(text: Optional[str], max_length: int = 500) -> str:
    """The frame-free part of an error message, capped at ``max_length`` bytes."""
    return _cut(strip_stack_frames(text), max_length)


_DEF_TEMPLATE = r'^(?P<indent>[ \t]*)(?:(?:async[ \t]+)?def|class)[ \t]+{name}\b'
_LAMBDA_TEMPLATE = r'^(?P<indent>[ \t]*){name}[ \t]*(?::[^=\n]*)?=[ \t]*lambda\b'
_CLOSERS = (')', ']', '}')


def slice_definition(code: str, name: str) -> Optional[str]:
    """Cut the block defining ``name`` out of code, based on indentation only."""
    escaped = re.escape(name)
    patterns = [re.compile(_DEF_TEMPLATE.format(name=escaped)), re.compile(_LAMBDA_TEMPLATE.format(name=escaped))]
    lines = code.splitlines()

    for index, line in enumerate(lines):
        match = next((m for m in (p.match(line) for p in patterns) if m), None)
        if not match:
            continue
        indent = len(match.group('indent'))
        start = index
        while start > 0 and lines[start - 1].strip().startswith('@'):
            start -= 1
        end = index + 1
        while end < len(lines):
            current = lines[end]
            stripped = current.strip()
            if stripped and len(current) - len(current.lstrip()) <= indent and not stripped.startswith(_CLOSERS):
                break
            end += 1
        return '\n'.join(lines[start:end]).rstrip()
    return None


def extract_relevant_code(original_code: str, function_names: Sequence[str], max_bytes: int) -> str:
    """Fit source context into ``max_bytes``.

    Prefers the definitions of the named functions; otherwise keeps the head of
    the file and marks the cut.
    """
    if _size(original_code) <= max_bytes:
        return original_code

    slices = []
    for name in function_names:
        block = slice_definition(original_code, name)
        if block and block not in slices:
            slices.append(block)
    candidate = '\n\n'.join(slices) if slices else original_code
    if _size(candidate) <= max_bytes:
        return candidate

    budget = max_bytes - _size(TRUNCATION_MARKER) - 1
    kept: List[str] = []
    used = 0
    for line in candidate.splitlines():
        line_size = _size(line) + 1
        if used + line_size > budget:
            break
        kept.append(line)
        used += line_size
    kept.append(TRUNCATION_MARKER)
    logger.debug(f"Truncated source context from {_size(original_code)} to {used} bytes")
    return '\n'.join(kept)


def optimize_fix_context(ctx: FixContext, limits: Optional[ContextLimits] = None) -> FixContext:
    """Return a bounded copy of ``ctx``; ``test_code`` is carried over unchanged."""
    limits = limits or ContextLimits()

    error_message = extract_key_error_message(ctx.error_message, limits.max_error_message)

    test_output: Optional[str] = None
    if ctx.test_output and ctx.test_output.strip() != (ctx.error_message or '').strip():
        stripped_output = strip_stack_frames(ctx.test_output)
        if stripped_output and stripped_output != error_message:
            test_output = _tail(stripped_output, limits.max_test_output)

    failing_tests = [
        replace(
            failure,
            message=extract_key_error_message(failure.message, limits.max_failure_message),
            stack=extract_key_error_message(failure.stack, limits.max_stack) or None,
        )
        for failure in ctx.failing_tests
    ]

    return replace(
        ctx,
        original_code=extract_relevant_code(ctx.original_code, ctx.function_names, limits.max_original_code),
        error_message=error_message,
        test_output=test_output,
        failing_tests=failing_tests,
    )


def _tail(text: str, max_bytes: int) -> str:
    """Keep the end of runner output, where the summary lines are."""
    if _size(text) <= max_bytes:
        return text
    prefix = '...'
    budget = max(0, max_bytes - _size(prefix))
    return prefix + text.encode('utf-8')[-budget:].decode('utf-8', 'ignore').lstrip()

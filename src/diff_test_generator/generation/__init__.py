"""Test generation components."""

from .context_optimizer import ContextLimits, FixContext, optimize_fix_context
from .response_parser import parse_test_code, validate_test_code_structure
from .test_generator import TestGenerator

__all__ = [
    "ContextLimits",
    "FixContext",
    "optimize_fix_context",
    "parse_test_code",
    "validate_test_code_structure",
    "TestGenerator",
]

"""Utility functions for the diff test generator."""

from .ast_merge import has_existing_tests, merge_test_files
from .writer import TestFileWriter, derive_test_path

__all__ = [
    "has_existing_tests",
    "merge_test_files",
    "TestFileWriter",
    "derive_test_path",
]

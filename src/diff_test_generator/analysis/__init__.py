"""Diff analysis, target extraction, test execution and coverage components."""

from .coverage_reader import CoverageReader, compute_coverage_delta
from .diff_parser import get_changed_ranges, parse_patch, parse_unified_diff
from .target_extractor import analyze_file, extract_test_targets
from .test_runner import PytestRunner

__all__ = [
    "CoverageReader",
    "compute_coverage_delta",
    "get_changed_ranges",
    "parse_patch",
    "parse_unified_diff",
    "analyze_file",
    "extract_test_targets",
    "PytestRunner",
]

"""Data models for diff test generator."""

from .data_models import (
    ChangeType,
    ChangedRange,
    CoverageDelta,
    CoverageMetric,
    CoverageMetrics,
    CoverageReport,
    DiffHunk,
    FileCoverage,
    FileDiff,
    FunctionKind,
    GenerationMode,
    GenerationResult,
    MergedTestFile,
    TargetError,
    TestFailure,
    TestFileSummary,
    TestFramework,
    TestGenerationSummary,
    TestResult,
    TestTarget,
    TokenUsage,
)

__all__ = [
    'ChangeType',
    'ChangedRange',
    'CoverageDelta',
    'CoverageMetric',
    'CoverageMetrics',
    'CoverageReport',
    'DiffHunk',
    'FileCoverage',
    'FileDiff',
    'FunctionKind',
    'GenerationMode',
    'GenerationResult',
    'MergedTestFile',
    'TargetError',
    'TestFailure',
    'TestFileSummary',
    'TestFramework',
    'TestGenerationSummary',
    'TestResult',
    'TestTarget',
    'TokenUsage',
]

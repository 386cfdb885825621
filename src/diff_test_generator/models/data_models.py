"""Data models for diff-driven test generation."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple


class ChangeType(Enum):
    """Kind of change a diff range represents."""
    ADDITION = "addition"
    DELETION = "deletion"
    MODIFICATION = "modification"


class FunctionKind(Enum):
    """Declaration variants a target can be built from."""
    FUNCTION = "function"
    LAMBDA = "arrow-function"
    METHOD = "class-method"


class GenerationMode(Enum):
    """Pipeline modes."""
    SCAFFOLD = "scaffold"
    PR = "pr"
    FULL = "full"


class TestFramework(Enum):
    """Supported test framework conventions."""
    PYTEST = "pytest"
    UNITTEST = "unittest"


@dataclass(frozen=True)
class ChangedRange:
    """Inclusive 1-based line range touched by a diff."""
    start: int
    end: int
    type: ChangeType

    def overlaps(self, start: int, end: int) -> bool:
        return start <= self.end and end >= self.start


@dataclass
class DiffHunk:
    """One ``@@`` hunk of a unified diff."""
    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: List[str] = field(default_factory=list)


@dataclass
class FileDiff:
    """Changes to a single file."""
    filename: str
    status: str  # 'added', 'modified', 'removed', 'renamed'
    hunks: List[DiffHunk] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    previous_filename: Optional[str] = None


@dataclass(frozen=True)
class TestTarget:
    """A function or method selected for test generation."""
    file_path: str
    function_name: str
    function_type: FunctionKind
    code: str
    context: str
    start_line: int
    end_line: int
    changed_ranges: Tuple[ChangedRange, ...]
    class_name: Optional[str] = None
    is_private: bool = False
    class_private_properties: Tuple[str, ...] = ()
    existing_test_file: Optional[str] = None
    existing_test_content: Optional[str] = None

    @property
    def identity(self) -> str:
        """Stable identity used in summaries and merge bookkeeping."""
        if self.class_name:
            return f"{self.file_path}::{self.class_name}.{self.function_name}"
        return f"{self.file_path}::{self.function_name}"

    @property
    def qualified_name(self) -> str:
        if self.class_name:
            return f"{self.class_name}.{self.function_name}"
        return self.function_name


@dataclass
class TokenUsage:
    """Provider-reported counters for one call."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GenerationResult:
    """Parsed output of a generation or fix call."""
    test_code: str
    usage: Optional[TokenUsage] = None


@dataclass
class MergedTestFile:
    """Accumulated content of one output test file."""
    path: str
    content: str
    covered_targets: Set[str] = field(default_factory=set)


@dataclass
class TestFailure:
    """One failing test case."""
    test_name: str
    message: str
    stack: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


@dataclass
class TestResult:
    """Outcome of running one test file."""
    test_file: str
    success: bool
    total: int = 0
    passed: int = 0
    failed: int = 0
    duration: float = 0.0
    failures: List[TestFailure] = field(default_factory=list)


@dataclass
class CoverageMetric:
    total: int = 0
    covered: int = 0
    percentage: float = 0.0


@dataclass
class CoverageMetrics:
    lines: CoverageMetric = field(default_factory=CoverageMetric)
    branches: CoverageMetric = field(default_factory=CoverageMetric)
    functions: CoverageMetric = field(default_factory=CoverageMetric)
    statements: CoverageMetric = field(default_factory=CoverageMetric)


@dataclass
class FileCoverage:
    path: str
    metrics: CoverageMetrics


@dataclass
class CoverageReport:
    """Aggregate and per-file coverage metrics."""
    total: CoverageMetrics
    files: List[FileCoverage] = field(default_factory=list)


@dataclass
class CoverageDelta:
    """Percentage-point change per metric (current minus baseline)."""
    lines: float
    branches: float
    functions: float
    statements: float


@dataclass
class TargetError:
    target: str
    error: str


@dataclass
class TestFileSummary:
    path: str
    targets: List[str] = field(default_factory=list)


@dataclass
class TestGenerationSummary:
    """Terminal result of one pipeline run."""
    targets_processed: int = 0
    tests_generated: int = 0
    tests_failed: int = 0
    test_files: List[TestFileSummary] = field(default_factory=list)
    errors: List[TargetError] = field(default_factory=list)
    coverage_report: Optional[CoverageReport] = None
    coverage_delta: Optional[CoverageDelta] = None
    test_results: List[TestResult] = field(default_factory=list)
    aborted: bool = False
    # path -> final content of every written test file
    final_contents: Dict[str, str] = field(default_factory=dict)

    @property
    def has_failures(self) -> bool:
        return bool(self.errors) or self.tests_failed > 0

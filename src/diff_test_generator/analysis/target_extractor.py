"""Select the functions and methods touched by a diff as test targets."""

import ast
import fnmatch
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from diff_test_generator.analysis.diff_parser import get_changed_ranges
from diff_test_generator.exceptions import DiffTestGeneratorError, TargetExtractionError
from diff_test_generator.models.data_models import (
    ChangeType,
    ChangedRange,
    FileDiff,
    FunctionKind,
    TestTarget,
)
from diff_test_generator.utils.writer import derive_test_path

logger = logging.getLogger(__name__)

CONTEXT_LINES = 5


@dataclass(frozen=True)
class Declaration:
    """A function, module-level lambda or method together with its line span."""
    kind: FunctionKind
    name: str
    start_line: int
    end_line: int
    class_name: Optional[str] = None
    node: Optional[ast.AST] = field(default=None, compare=False, repr=False)


class DeclarationCollector(ast.NodeVisitor):
    """Collect declarations in source order.

    Function bodies are not descended into, so nested helpers never become
    targets of their own. Class bodies are, so nested classes report methods
    under a dotted class name.
    """

    def __init__(self):
        self.declarations: List[Declaration] = []
        self.classes: Dict[str, ast.ClassDef] = {}
        self._class_stack: List[str] = []

    def visit_FunctionDef(self, node):
        class_name = '.'.join(self._class_stack) or None
        kind = FunctionKind.METHOD if class_name else FunctionKind.FUNCTION
        self._add(kind, node.name, node, class_name)

    visit_AsyncFunctionDef = visit_FunctionDef

    def visit_ClassDef(self, node):
        self._class_stack.append(node.name)
        self.classes['.'.join(self._class_stack)] = node
        for stmt in node.body:
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                self.visit(stmt)
        self._class_stack.pop()

    def visit_Assign(self, node):
        if self._class_stack or not isinstance(node.value, ast.Lambda):
            return
        if len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
            self._add(FunctionKind.LAMBDA, node.targets[0].id, node, None)

    def visit_AnnAssign(self, node):
        if self._class_stack or not isinstance(node.value, ast.Lambda):
            return
        if isinstance(node.target, ast.Name):
            self._add(FunctionKind.LAMBDA, node.target.id, node, None)

    def _add(self, kind: FunctionKind, name: str, node: ast.AST, class_name: Optional[str]):
        decorators = getattr(node, 'decorator_list', [])
        start = min([node.lineno] + [d.lineno for d in decorators])
        self.declarations.append(
            Declaration(kind=kind, name=name, start_line=start,
                        end_line=node.end_lineno or node.lineno,
                        class_name=class_name, node=node)
        )


def collect_declarations(source: str, filename: str = '<unknown>') -> Tuple[List[Declaration], Dict[str, ast.ClassDef]]:
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        raise TargetExtractionError(f"Cannot parse {filename}: {e.msg} (line {e.lineno})", filepath=filename) from e
    collector = DeclarationCollector()
    collector.visit(tree)
    return collector.declarations, collector.classes


def is_private_name(name: str) -> bool:
    """Leading underscore marks a name private; dunder names are public protocol."""
    if name.startswith('__') and name.endswith('__'):
        return False
    return name.startswith('_')


def class_private_properties(class_node: ast.ClassDef) -> List[str]:
    """Private attribute names declared on a class, in order of first appearance."""
    found: List[Tuple[int, int, str]] = []

    for stmt in class_node.body:
        targets: List[ast.expr] = []
        if isinstance(stmt, ast.Assign):
            targets = stmt.targets
        elif isinstance(stmt, (ast.AnnAssign, ast.AugAssign)):
            targets = [stmt.target]
        for target in targets:
            if isinstance(target, ast.Name) and is_private_name(target.id):
                found.append((target.lineno, target.col_offset, target.id))

        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)) and stmt.args.args:
            self_name = stmt.args.args[0].arg
            for node in ast.walk(stmt):
                if (isinstance(node, ast.Attribute) and isinstance(node.ctx, ast.Store)
                        and isinstance(node.value, ast.Name) and node.value.id == self_name
                        and is_private_name(node.attr)):
                    found.append((node.lineno, node.col_offset, node.attr))

    ordered: List[str] = []
    for _, _, name in sorted(found):
        if name not in ordered:
            ordered.append(name)
    return ordered


def analyze_file(
    file_path: str,
    source: str,
    changed_ranges: Sequence[ChangedRange],
    ref: Optional[str] = None,
    file_source=None,
    config=None,
) -> List[TestTarget]:
    """Return the targets of one file whose line span overlaps a changed range.

    ``file_source`` provides ``exists(path, ref)`` and ``read(path, ref)`` and is
    used to attach an existing test file when one sits at the derived path.
    """
    matchable = [r for r in changed_ranges if r.type is not ChangeType.DELETION]
    if not matchable:
        return []

    declarations, classes = collect_declarations(source, file_path)
    lines = source.splitlines()

    existing_path: Optional[str] = None
    existing_content: Optional[str] = None
    private_props_cache: Dict[str, Tuple[str, ...]] = {}
    targets: List[TestTarget] = []

    for decl in declarations:
        overlapping = tuple(r for r in matchable if r.overlaps(decl.start_line, decl.end_line))
        if not overlapping:
            continue

        if existing_path is None and file_source is not None and config is not None:
            existing_path, existing_content = _lookup_existing_test(file_path, ref, file_source, config)

        props: Tuple[str, ...] = ()
        if decl.kind is FunctionKind.METHOD and decl.class_name in classes:
            if decl.class_name not in private_props_cache:
                private_props_cache[decl.class_name] = tuple(class_private_properties(classes[decl.class_name]))
            props = private_props_cache[decl.class_name]

        targets.append(
            TestTarget(
                file_path=file_path,
                function_name=decl.name,
                function_type=decl.kind,
                code='\n'.join(lines[decl.start_line - 1:decl.end_line]),
                context=_surrounding_context(lines, decl.start_line, decl.end_line),
                start_line=decl.start_line,
                end_line=decl.end_line,
                changed_ranges=overlapping,
                class_name=decl.class_name,
                is_private=is_private_name(decl.name),
                class_private_properties=props,
                existing_test_file=existing_path or None,
                existing_test_content=existing_content,
            )
        )

    logger.debug(f"{file_path}: {len(targets)} target(s) from {len(declarations)} declaration(s)")
    return targets


def _lookup_existing_test(file_path: str, ref: Optional[str], file_source, config) -> Tuple[str, Optional[str]]:
    test_path = derive_test_path(file_path, config)
    try:
        if file_source.exists(test_path, ref):
            return test_path, file_source.read(test_path, ref)
    except DiffTestGeneratorError as e:
        logger.warning(f"Could not read existing test file {test_path}: {e.message}")
    # empty string marks "looked up, nothing found"
    return '', None


def _surrounding_context(lines: List[str], start: int, end: int) -> str:
    before = lines[max(0, start - 1 - CONTEXT_LINES):start - 1]
    after = lines[end:end + CONTEXT_LINES]
    parts = []
    if before:
        parts.append('\n'.join(before))
    if after:
        parts.append('\n'.join(after))
    return '\n...\n'.join(parts)


def matches_patterns(path: str, include: Iterable[str], exclude: Iterable[str]) -> bool:
    """Exclude patterns win over include patterns."""
    if any(fnmatch.fnmatch(path, pattern) for pattern in exclude):
        return False
    return any(fnmatch.fnmatch(path, pattern) for pattern in include)


def extract_test_targets(file_diffs: Sequence[FileDiff], file_source, ref: Optional[str], config) -> List[TestTarget]:
    """Targets for every eligible file of a change set, in file then declaration order.

    Files that cannot be read or parsed are skipped with a warning.
    """
    include = config.patterns('include')
    exclude = config.patterns('exclude')
    targets: List[TestTarget] = []

    for diff in file_diffs:
        if diff.status == 'removed':
            continue
        if not matches_patterns(diff.filename, include, exclude):
            logger.debug(f"Skipping {diff.filename}: filtered by include/exclude patterns")
            continue

        try:
            source = file_source.read(diff.filename, ref)
            ranges = get_changed_ranges(diff, source)
            if not ranges:
                continue
            targets.extend(analyze_file(diff.filename, source, ranges, ref, file_source, config))
        except DiffTestGeneratorError as e:
            logger.warning(f"Skipping {diff.filename}: {e.message}")

    logger.info(f"Found {len(targets)} test target(s) in {len(file_diffs)} changed file(s)")
    return targets


def consolidate_class_targets(targets: Sequence[TestTarget]) -> List[TestTarget]:
    """Fold the methods of each class into one target so a class costs one request.

    A group takes the place of its first method; functions, lambdas and
    methods that are alone in their class pass through unchanged.
    """
    groups: Dict[Tuple[str, str], List[TestTarget]] = {}
    order: List[object] = []
    for target in targets:
        if target.function_type is FunctionKind.METHOD and target.class_name:
            key = (target.file_path, target.class_name)
            if key not in groups:
                groups[key] = []
                order.append(key)
            groups[key].append(target)
        else:
            order.append(target)

    consolidated: List[TestTarget] = []
    for item in order:
        if isinstance(item, TestTarget):
            consolidated.append(item)
            continue
        methods = groups[item]
        if len(methods) == 1:
            consolidated.append(methods[0])
            continue
        first = methods[0]
        private = dict.fromkeys(name for m in methods for name in m.class_private_properties)
        consolidated.append(replace(
            first,
            function_name=', '.join(m.function_name for m in methods),
            code='\n\n'.join(m.code for m in methods),
            start_line=min(m.start_line for m in methods),
            end_line=max(m.end_line for m in methods),
            changed_ranges=tuple(r for m in methods for r in m.changed_ranges),
            is_private=False,
            class_private_properties=tuple(private),
        ))
    return consolidated

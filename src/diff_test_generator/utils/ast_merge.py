"""Structure-aware merging of generated tests into existing test modules.

The merge works on ``ast`` node spans but copies source text, so existing code
keeps its comments and formatting:

- imports are compared by normalized text and missing ones inserted after the
  last existing import
- ``Test*`` classes with the same name are merged member by member
- everything else in the existing module is left where it is

Merging content that is already present changes nothing, which makes
``merge_test_files(a, merge_test_files(a, b)) == merge_test_files(a, b)``.
"""

from __future__ import annotations

import ast
import copy
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from diff_test_generator.exceptions import MergeError

logger = logging.getLogger(__name__)

GROUP_PREFIX = "Test"
_CLASS_LINE_RE = re.compile(r'^class\s+(\w+)', re.MULTILINE)


def parse_module(source_text: str, label: str = "test module") -> ast.Module:
    try:
        return ast.parse(source_text)
    except SyntaxError as e:
        raise MergeError(f"Cannot merge {label}: {e.msg} (line {e.lineno})") from e


def is_group(node: ast.AST) -> bool:
    return isinstance(node, ast.ClassDef) and node.name.startswith(GROUP_PREFIX)


def is_import(node: ast.AST) -> bool:
    return isinstance(node, (ast.Import, ast.ImportFrom))


def _is_docstring(node: ast.AST) -> bool:
    return (isinstance(node, ast.Expr) and isinstance(node.value, ast.Constant)
            and isinstance(node.value.value, str))


def _member_name(node: ast.AST) -> Optional[str]:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        return node.name
    if isinstance(node, ast.Assign) and len(node.targets) == 1 and isinstance(node.targets[0], ast.Name):
        return node.targets[0].id
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
        return node.target.id
    return None


def _strip_docstrings(node: ast.AST) -> ast.AST:
    """Return a copy of node with docstrings removed from functions/classes."""
    node = copy.deepcopy(node)
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        if node.body and _is_docstring(node.body[0]):
            node.body = node.body[1:]
        for i, stmt in enumerate(node.body):
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                node.body[i] = _strip_docstrings(stmt)  # type: ignore
    return node


def ast_equal(a: ast.AST, b: ast.AST) -> bool:
    """Structural equality ignoring positions, formatting and docstrings."""
    return ast.dump(_strip_docstrings(a), include_attributes=False) == \
        ast.dump(_strip_docstrings(b), include_attributes=False)


def _import_key(node: ast.AST) -> str:
    return ast.unparse(node)


def _is_future_import(node: ast.AST) -> bool:
    return isinstance(node, ast.ImportFrom) and node.module == '__future__'


def _span(node: ast.AST) -> Tuple[int, int]:
    decorators = getattr(node, 'decorator_list', [])
    start = min([node.lineno] + [d.lineno for d in decorators])
    return start, node.end_lineno or node.lineno


def _segment(lines: List[str], node: ast.AST) -> List[str]:
    start, end = _span(node)
    return lines[start - 1:end]


def _leading_ws(line: str) -> int:
    return len(line) - len(line.lstrip())


def _reindent(block: List[str], to_indent: int) -> List[str]:
    """Shift a block so its first line starts at ``to_indent`` columns."""
    if not block:
        return block
    delta = to_indent - _leading_ws(block[0])
    if delta == 0:
        return list(block)
    shifted = []
    for line in block:
        if not line.strip():
            shifted.append('')
        elif delta > 0:
            shifted.append(' ' * delta + line)
        else:
            removable = min(-delta, _leading_ws(line))
            shifted.append(line[removable:])
    return shifted


def _body_indent(cls: ast.ClassDef) -> int:
    return cls.body[0].col_offset if cls.body else cls.col_offset + 4


@dataclass
class _GroupMerge:
    """Members being added to one test class."""
    known_names: Set[str]
    known_nodes: List[ast.AST]
    indent: int
    added: List[List[str]] = field(default_factory=list)

    def offer(self, member: ast.AST, member_lines: List[str]) -> bool:
        if _is_docstring(member) or isinstance(member, ast.Pass):
            return False
        name = _member_name(member)
        if name is not None:
            if name in self.known_names:
                return False
            self.known_names.add(name)
        elif any(ast_equal(member, known) for known in self.known_nodes):
            return False
        self.known_nodes.append(member)
        self.added.append(_reindent(member_lines, self.indent))
        return True


def _new_group_merge(cls: ast.ClassDef) -> _GroupMerge:
    return _GroupMerge(
        known_names={n for n in (_member_name(m) for m in cls.body) if n},
        known_nodes=list(cls.body),
        indent=_body_indent(cls),
    )


def _render_members(members: List[List[str]]) -> List[str]:
    out: List[str] = []
    for member in members:
        out.append('')
        out.extend(member)
    return out


def _separated(block: List[str], lines: List[str], at: int) -> List[str]:
    """Pad an import block inserted into a module that had none."""
    out = list(block)
    if at > 0 and lines[at - 1].strip():
        out.insert(0, '')
    if at < len(lines) and lines[at].strip():
        out += ['', '']
    return out


def merge_modules(existing_src: str, new_src: str) -> Tuple[str, List[str]]:
    """Merge new test module content into an existing one.

    Returns ``(merged_source_text, actions)`` where actions read like
    ``import:add:pytest`` or ``method:add:TestParser.test_empty``.
    """
    if not new_src.strip():
        return existing_src, []
    if not existing_src.strip():
        return new_src.strip('\n') + '\n', ['create']

    existing_mod = parse_module(existing_src, "existing test module")
    new_mod = parse_module(new_src, "generated test code")
    existing_lines = existing_src.splitlines()
    new_lines = new_src.splitlines()
    actions: List[str] = []

    # (line index to insert at, lines)
    insertions: List[Tuple[int, List[str]]] = []

    # 1) Imports
    existing_keys = {_import_key(n) for n in existing_mod.body if is_import(n)}
    missing_future: List[List[str]] = []
    missing_imports: List[List[str]] = []
    for node in new_mod.body:
        if not is_import(node):
            continue
        key = _import_key(node)
        if key in existing_keys:
            continue
        existing_keys.add(key)
        target = missing_future if _is_future_import(node) else missing_imports
        target.append(_reindent(_segment(new_lines, node), 0))
        actions.append(f"import:add:{key}")

    header_end = 0
    body = existing_mod.body
    if body and _is_docstring(body[0]):
        header_end = _span(body[0])[1]
    future_end = header_end
    last_import_end = None
    for node in body:
        if _is_future_import(node):
            future_end = _span(node)[1]
        if is_import(node):
            last_import_end = _span(node)[1]
    future_lines = [line for block in missing_future for line in block]
    import_lines = [line for block in missing_imports for line in block]
    if last_import_end is None:
        if future_lines or import_lines:
            insertions.append((header_end, _separated(future_lines + import_lines, existing_lines, header_end)))
    elif future_lines and future_end == last_import_end:
        # one splice keeps __future__ above the ordinary imports
        insertions.append((future_end, future_lines + import_lines))
    else:
        if future_lines:
            insertions.append((future_end, future_lines))
        if import_lines:
            insertions.append((last_import_end, import_lines))

    # 2) Groups present on both sides, 3) groups only in new content
    existing_groups: Dict[str, Tuple[ast.ClassDef, _GroupMerge]] = {}
    for node in body:
        if not is_group(node):
            continue
        if node.name in existing_groups:
            # a repeated class name: its members count as already present
            known = existing_groups[node.name][1]
            known.known_names.update(n for n in (_member_name(m) for m in node.body) if n)
            known.known_nodes.extend(node.body)
        else:
            existing_groups[node.name] = (node, _new_group_merge(node))

    new_only: "OrderedDict[str, Tuple[List[str], _GroupMerge]]" = OrderedDict()
    for node in new_mod.body:
        if not is_group(node):
            continue
        if node.name in existing_groups:
            merge = existing_groups[node.name][1]
        elif node.name in new_only:
            merge = new_only[node.name][1]
        else:
            new_only[node.name] = (_reindent(_segment(new_lines, node), 0), _new_group_merge(node))
            actions.append(f"class:add:{node.name}")
            continue
        for member in node.body:
            if merge.offer(member, _segment(new_lines, member)):
                actions.append(f"method:add:{node.name}.{_member_name(member) or type(member).__name__}")

    for cls, merge in existing_groups.values():
        if merge.added:
            insertions.append((_span(cls)[1], _render_members(merge.added)))

    # 4) Helpers from the new content that the existing module lacks
    top_names = {n for n in (_member_name(s) for s in body) if n}
    top_nodes = [s for s in body if not is_import(s)]
    new_helpers: List[List[str]] = []
    for node in new_mod.body:
        if is_import(node) or is_group(node) or _is_docstring(node):
            continue
        name = _member_name(node)
        if name is not None:
            if name in top_names:
                continue
            top_names.add(name)
        elif any(ast_equal(node, known) for known in top_nodes):
            continue
        top_nodes.append(node)
        new_helpers.append(_reindent(_segment(new_lines, node), 0))
        actions.append(f"helper:add:{name or type(node).__name__}")

    merged_lines = list(existing_lines)
    for index, lines in sorted(insertions, key=lambda item: item[0], reverse=True):
        merged_lines[index:index] = lines

    appended = new_helpers + [
        group_lines + _render_members(merge.added) for group_lines, merge in new_only.values()
    ]
    merged = '\n'.join(merged_lines).rstrip('\n')
    for block in appended:
        merged += '\n\n\n' + '\n'.join(block)

    return merged + '\n', actions


def merge_test_files(existing_content: str, new_code: str) -> str:
    """Merge ``new_code`` into ``existing_content`` and return the combined module."""
    merged, actions = merge_modules(existing_content or '', new_code or '')
    if actions:
        logger.debug(f"Merge actions: {', '.join(actions)}")
    return merged


def group_name_for(function_name: str, class_name: Optional[str] = None) -> str:
    """Conventional test class name for a target: ``parse_diff`` -> ``TestParseDiff``."""
    subject = class_name.split('.')[-1] if class_name else function_name
    words = [w for w in subject.split('_') if w]
    if not words:
        return GROUP_PREFIX + 'Subject'
    return GROUP_PREFIX + ''.join(w[:1].upper() + w[1:] for w in words)


def _normalized(name: str) -> str:
    return name.replace('_', '').lower()


def has_existing_tests(content: str, function_name: str, class_name: Optional[str] = None) -> bool:
    """Whether the module already has a test class covering the function or its class."""
    if not content:
        return False
    try:
        names = [n.name for n in ast.parse(content).body if isinstance(n, ast.ClassDef)]
    except SyntaxError:
        names = _CLASS_LINE_RE.findall(content)

    wanted = {_normalized(group_name_for(function_name, class_name))}
    if class_name:
        wanted.add(_normalized(GROUP_PREFIX + class_name.split('.')[-1]))
    else:
        wanted.add(_normalized(GROUP_PREFIX + function_name))
    return any(_normalized(name) in wanted for name in names)


_TEST_DEF_RE = re.compile(r'^\s*(?:async\s+)?def\s+test\w*\s*\(', re.MULTILINE)


def count_test_cases(content: str) -> int:
    """Number of ``test*`` functions, top level or inside ``Test*`` classes."""
    try:
        tree = ast.parse(content or '')
    except SyntaxError:
        return len(_TEST_DEF_RE.findall(content or ''))

    count = 0
    for node in tree.body:
        members = node.body if is_group(node) else [node]
        count += sum(1 for member in members
                     if isinstance(member, (ast.FunctionDef, ast.AsyncFunctionDef))
                     and member.name.startswith('test'))
    return count

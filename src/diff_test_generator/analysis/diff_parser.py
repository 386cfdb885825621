"""Turn unified diffs into per-file changed line ranges."""

import logging
import re
from typing import List, Optional

from diff_test_generator.exceptions import DiffParseError
from diff_test_generator.models.data_models import ChangeType, ChangedRange, DiffHunk, FileDiff

logger = logging.getLogger(__name__)

HUNK_HEADER_RE = re.compile(r'^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@')
DIFF_GIT_RE = re.compile(r'^diff --git a/(.+?) b/(.+)$')


def parse_patch(patch: str, filename: Optional[str] = None) -> List[DiffHunk]:
    """Parse the hunks of a single file's patch.

    Lines before the first hunk (``---``/``+++`` headers, index lines) are ignored.
    A line that starts a hunk but does not match the header grammar fails the
    whole file.
    """
    hunks: List[DiffHunk] = []
    current: Optional[DiffHunk] = None

    for line in patch.splitlines():
        if line.startswith('@@'):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                raise DiffParseError(
                    f"Malformed hunk header in {filename or 'patch'}: {line!r}",
                    filename=filename,
                    line=line,
                )
            current = DiffHunk(
                old_start=int(match.group(1)),
                old_lines=int(match.group(2)) if match.group(2) is not None else 1,
                new_start=int(match.group(3)),
                new_lines=int(match.group(4)) if match.group(4) is not None else 1,
            )
            hunks.append(current)
        elif current is not None:
            current.lines.append(line)

    return hunks


def changed_ranges(hunks: List[DiffHunk]) -> List[ChangedRange]:
    """Classify the lines of each hunk into addition, modification and deletion ranges.

    Additions and modifications use new-file line numbers. Deletions are
    anchored at old-file line numbers and never take part in target matching.
    """
    ranges: List[ChangedRange] = []

    for hunk in hunks:
        old_line = hunk.old_start
        new_line = hunk.new_start
        removed_start: Optional[int] = None
        removed_count = 0
        added_start: Optional[int] = None
        added_count = 0

        def flush():
            nonlocal removed_start, removed_count, added_start, added_count
            if added_start is not None:
                kind = ChangeType.MODIFICATION if removed_count else ChangeType.ADDITION
                ranges.append(ChangedRange(added_start, added_start + added_count - 1, kind))
            elif removed_start is not None:
                ranges.append(ChangedRange(removed_start, removed_start + removed_count - 1,
                                           ChangeType.DELETION))
            removed_start, removed_count = None, 0
            added_start, added_count = None, 0

        for line in hunk.lines:
            if line.startswith('\\'):
                # "\ No newline at end of file"
                continue
            if line.startswith('-'):
                if added_start is not None:
                    flush()
                if removed_start is None:
                    removed_start = old_line
                removed_count += 1
                old_line += 1
            elif line.startswith('+'):
                if added_start is None:
                    added_start = new_line
                added_count += 1
                new_line += 1
            else:
                flush()
                old_line += 1
                new_line += 1
        flush()

    return sorted(ranges, key=lambda r: (r.start, r.end))


def get_changed_ranges(file_diff: FileDiff, file_content: Optional[str] = None) -> List[ChangedRange]:
    """Changed ranges for one file, treating added files as changed throughout."""
    if file_diff.status == 'removed':
        return []

    if file_diff.status == 'added' and file_content is not None:
        line_count = len(file_content.splitlines())
        if line_count == 0:
            return []
        return [ChangedRange(1, line_count, ChangeType.ADDITION)]

    return changed_ranges(file_diff.hunks)


def parse_unified_diff(diff_text: str) -> List[FileDiff]:
    """Split a multi-file ``git diff`` output into FileDiff records."""
    files: List[FileDiff] = []
    current: Optional[FileDiff] = None
    patch_lines: List[str] = []
    in_hunks = False

    def finish():
        if current is None:
            return
        current.hunks = parse_patch('\n'.join(patch_lines), current.filename)
        current.additions, current.deletions = _count_changes(current.hunks)
        files.append(current)

    for line in diff_text.splitlines():
        header = DIFF_GIT_RE.match(line)
        if header:
            finish()
            current = FileDiff(filename=header.group(2), status='modified')
            patch_lines = []
            in_hunks = False
            if header.group(1) != header.group(2):
                current.status = 'renamed'
                current.previous_filename = header.group(1)
            continue
        if current is None:
            continue

        if line.startswith('@@'):
            in_hunks = True

        if in_hunks:
            patch_lines.append(line)
        elif line.startswith('new file mode'):
            current.status = 'added'
        elif line.startswith('deleted file mode'):
            current.status = 'removed'
        elif line.startswith('+++ '):
            target = line[4:].strip()
            if target.startswith('b/'):
                current.filename = target[2:]
        elif line.startswith('--- ') and line[4:].strip() == '/dev/null' and current.status == 'modified':
            current.status = 'added'

    finish()
    logger.debug(f"Parsed {len(files)} file diff(s)")
    return files


def file_diff_from_patch(filename: str, status: str, patch: Optional[str]) -> FileDiff:
    """Build a FileDiff from a hosting API file entry (filename, status, patch)."""
    hunks = parse_patch(patch, filename) if patch else []
    additions, deletions = _count_changes(hunks)
    return FileDiff(filename=filename, status=status, hunks=hunks,
                    additions=additions, deletions=deletions)


def _count_changes(hunks: List[DiffHunk]):
    additions = deletions = 0
    for hunk in hunks:
        for line in hunk.lines:
            if line.startswith('+'):
                additions += 1
            elif line.startswith('-'):
                deletions += 1
    return additions, deletions

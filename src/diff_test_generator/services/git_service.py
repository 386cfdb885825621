"""Git service for reading working-tree changes as file diffs."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from diff_test_generator.analysis.diff_parser import parse_unified_diff
from diff_test_generator.exceptions import FileOperationError
from diff_test_generator.models.data_models import DiffHunk, FileDiff

logger = logging.getLogger(__name__)


class GitService:
    """Service for the git operations the local flow needs."""

    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)

    def _git(self, *args: str) -> str:
        cmd = ["git", *args]
        try:
            result = subprocess.run(cmd, cwd=self.project_root, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise FileOperationError("git executable not found",
                                     suggestion="Install git or run from an environment where it is on PATH.") from e
        except subprocess.CalledProcessError as e:
            raise FileOperationError(
                f"git {' '.join(args)} failed: {(e.stderr or '').strip()}",
                suggestion="Run inside a git repository and check that the ref exists.",
            ) from e
        return result.stdout

    def diff_against(self, ref: str = 'HEAD') -> str:
        """Unified diff of the working tree (staged and unstaged) against ``ref``."""
        return self._git("diff", "--no-color", "--no-ext-diff", "-M", ref, "--")

    def untracked_files(self) -> List[str]:
        output = self._git("ls-files", "--others", "--exclude-standard")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def changed_files(self, ref: str = 'HEAD') -> List[FileDiff]:
        """Parsed diff against ``ref``; untracked files count as wholly added."""
        diffs = parse_unified_diff(self.diff_against(ref))
        known = {diff.filename for diff in diffs}
        for path in self.untracked_files():
            if path not in known:
                diffs.append(self._untracked_diff(path))
        logger.debug(f"{len(diffs)} changed file(s) against {ref}")
        return diffs

    def _untracked_diff(self, path: str) -> FileDiff:
        content = self._read(path) or ""
        lines = content.splitlines()
        hunk = DiffHunk(old_start=0, old_lines=0, new_start=1, new_lines=len(lines),
                        lines=[f"+{line}" for line in lines])
        return FileDiff(filename=path, status='added', hunks=[hunk] if lines else [], additions=len(lines))

    def _read(self, path: str) -> Optional[str]:
        try:
            return (self.project_root / path).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping unreadable untracked file {path}: {e}")
            return None

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD").strip()

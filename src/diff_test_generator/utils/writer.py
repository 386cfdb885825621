"""Test file locations and writing utilities."""

import difflib
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

from diff_test_generator.exceptions import FileOperationError

logger = logging.getLogger(__name__)


def is_test_path(path: str, pattern: str = 'test_*.py') -> bool:
    return PurePosixPath(path).match(pattern)


def derive_test_path(source_path: str, config) -> str:
    """Derive the conventional test file path for a source file.

    ``separate`` mirrors the source tree under the test directory, dropping a
    leading ``src`` component; ``co-located`` keeps the test next to the source.
    """
    pattern = config.get('test_generation.test_file_pattern', 'test_*.py')
    location = config.get('test_generation.test_location', 'separate')
    test_directory = config.get('test_generation.test_directory', 'tests')

    source = PurePosixPath(source_path.replace('\\', '/'))
    if is_test_path(str(source), pattern):
        return str(source)

    test_name = pattern.replace('*', source.stem, 1)

    if location == 'co-located':
        return str(source.parent / test_name)

    parts = list(source.parent.parts)
    if parts and parts[0] == 'src':
        parts = parts[1:]
    return str(PurePosixPath(test_directory, *parts, test_name))


@dataclass
class WriteResult:
    path: str
    changed: bool
    diff: Optional[str] = None


class TestFileWriter:
    """Read and write test files relative to the project root."""

    def __init__(self, root_dir, dry_run: bool = False):
        self.root_dir = Path(root_dir).resolve()
        self.dry_run = dry_run

    def exists(self, path: str, ref: Optional[str] = None) -> bool:
        return (self.root_dir / path).is_file()

    def read(self, path: str, ref: Optional[str] = None) -> str:
        full_path = self.root_dir / path
        try:
            return full_path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise FileOperationError(f"Cannot read {path}: {e}", filepath=path) from e

    def write_test_file(self, test_path: str, content: str) -> WriteResult:
        """Write content atomically, or only report the diff in dry-run mode."""
        full_test_path = self.root_dir / test_path
        existing_text = self.read(test_path) if full_test_path.is_file() else ''
        changed = existing_text != content

        if self.dry_run:
            diff_text = "".join(
                difflib.unified_diff(
                    existing_text.splitlines(keepends=True),
                    content.splitlines(keepends=True),
                    fromfile=test_path,
                    tofile=test_path,
                )
            )
            logger.info(f"[dry-run] {'Would update' if changed else 'No changes'} {test_path}")
            return WriteResult(path=test_path, changed=changed, diff=diff_text)

        if not changed:
            logger.info(f"No changes for {test_path}")
            return WriteResult(path=test_path, changed=False)

        try:
            full_test_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile('w', delete=False, dir=str(full_test_path.parent), prefix='.tmp_',
                                             suffix=full_test_path.suffix, encoding='utf-8') as tmp:
                tmp.write(content)
                tmp_path = tmp.name
            os.replace(tmp_path, full_test_path)
        except OSError as e:
            logger.error(f"Failed to write {test_path} atomically: {e}")
            raise FileOperationError(f"Cannot write {test_path}: {e}", filepath=test_path) from e

        logger.info(f"Written test file: {test_path} ({len(content):,} characters)")
        return WriteResult(path=test_path, changed=True)

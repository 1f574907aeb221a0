"""
Recursive folder scanner for directory inputs.

Walks a directory tree in a stable (sorted) order, honours an ignore file,
and yields the record files a row provider can read.
"""

import logging
import os
from pathlib import Path
from typing import Generator, List, NamedTuple, Optional

logger = logging.getLogger(__name__)

# Record file extensions, mapped to the provider format that reads them
RECORD_EXTENSIONS = {
    '.csv': 'csv',
    '.tsv': 'csv',
    '.json': 'json',
    '.jsonl': 'jsonl',
    '.ndjson': 'jsonl',
}


class RecordFile(NamedTuple):
    path: str
    relative_path: str
    format: str


def record_format(path: Path) -> Optional[str]:
    """Provider format for a file from its extension, None when it holds no records."""
    return RECORD_EXTENSIONS.get(path.suffix.lower())


class FolderScanner:
    """
    Discovers record files below a folder.

    An ``.importignore`` file at the scan root lists one substring pattern
    per line (``#`` starts a comment); matching directories are pruned and
    matching files skipped. Hidden files are never yielded.
    """

    def __init__(self, ignore_file: str = '.importignore'):
        self.ignore_file = ignore_file
        self.ignore_patterns: List[str] = []

    def load_ignore_patterns(self, root: Path) -> None:
        self.ignore_patterns = []
        ignore_path = root / self.ignore_file
        if not ignore_path.is_file():
            return

        with open(ignore_path, 'r', encoding='utf-8') as f:
            for line in f:
                pattern = line.strip()
                if pattern and not pattern.startswith('#'):
                    self.ignore_patterns.append(pattern)
        logger.debug(f"Loaded {len(self.ignore_patterns)} ignore patterns from {ignore_path}")

    def should_ignore(self, path: Path) -> bool:
        path_str = str(path)
        return any(pattern in path_str for pattern in self.ignore_patterns)

    def scan_folder(self, folder_path: str) -> Generator[RecordFile, None, None]:
        """
        Yield the record files below ``folder_path``.

        Directories and files are visited in sorted order, so two scans of
        the same tree yield the same sequence.

        Raises:
            ValueError: If the folder doesn't exist or is not a directory
        """
        root = Path(folder_path).resolve()
        if not root.exists():
            raise ValueError(f"Folder not found: {folder_path}")
        if not root.is_dir():
            raise ValueError(f"Not a directory: {folder_path}")

        self.load_ignore_patterns(root)
        found = skipped = 0

        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            # prune in place so os.walk never descends into ignored trees
            dirnames[:] = sorted(d for d in dirnames if not self.should_ignore(current / d))

            for filename in sorted(filenames):
                if filename.startswith('.'):
                    continue
                file_path = current / filename
                fmt = record_format(file_path)
                if fmt is None:
                    continue
                if self.should_ignore(file_path):
                    skipped += 1
                    continue

                found += 1
                yield RecordFile(str(file_path), file_path.relative_to(root).as_posix(), fmt)

        logger.info(f"Scanned {root}: {found} record files, {skipped} ignored")

import os
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple
from folderize.domain.errors import DiscoveryError
from folderize.domain.models import FileStats, MediaFile, FilingDateSource

logger = logging.getLogger(__name__)

Resolver = Callable[[Path, FileStats], Tuple[datetime, FilingDateSource, List[str]]]


def file_stats(path: Path) -> FileStats:
    """Reads size and timestamps; birth time degrades to mtime where the platform lacks it."""
    st = path.stat()
    birth = getattr(st, "st_birthtime", None)
    return FileStats(
        size_bytes=st.st_size,
        created_at=datetime.fromtimestamp(birth if birth is not None else st.st_mtime),
        modified_at=datetime.fromtimestamp(st.st_mtime),
        accessed_at=datetime.fromtimestamp(st.st_atime),
    )


class FileScanner:
    """Recursively enumerates regular files under a root."""

    def __init__(self, extensions: Optional[Iterable[str]] = None, ignored_names: Iterable[str] = ()):
        self.extensions = (
            [(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions]
            if extensions
            else None
        )
        self.ignored_names = set(ignored_names)

    def walk(self, root_dir: Path) -> Iterator[Path]:
        """Yields regular files depth-first in sorted order. Symlinks are not followed or yielded."""
        root_dir = Path(root_dir)
        try:
            with os.scandir(root_dir) as it:
                root_entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise DiscoveryError(f"Cannot enumerate {root_dir}: {e}") from e

        stack = [root_entries]
        while stack:
            entries = stack.pop()
            subdirs = []
            for entry in entries:
                try:
                    if entry.is_symlink():
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        subdirs.append(entry)
                    elif entry.is_file(follow_symlinks=False):
                        yield Path(entry.path)
                except OSError as e:
                    logger.warning(f"Skipping unreadable entry {entry.path}: {e}")
            # Push in reverse so the lowest name is visited first
            for entry in reversed(subdirs):
                try:
                    with os.scandir(entry.path) as it:
                        stack.append(sorted(it, key=lambda e: e.name))
                except OSError as e:
                    logger.warning(f"Skipping unreadable directory {entry.path}: {e}")

    def matches(self, path: Path) -> bool:
        """Ignore list first, then the extension allow-list (if any)."""
        if path.name in self.ignored_names:
            return False
        if self.extensions is None:
            return True
        return path.suffix.lower() in self.extensions

    def scan(self, root_dir: Path, resolver: Optional[Resolver] = None) -> List[MediaFile]:
        """Discovers files under root_dir and builds MediaFile records.

        When a resolver is given its filing date and provenance replace the
        filesystem default.
        """
        files: List[MediaFile] = []
        for path in self.walk(root_dir):
            if not self.matches(path):
                continue
            try:
                stats = file_stats(path)
            except OSError as e:
                logger.warning(f"Cannot stat {path}, skipping: {e}")
                continue

            if resolver is None:
                files.append(MediaFile(path=path.absolute(), stats=stats, filing_date=stats.created_at))
                continue

            filing_date, source, warnings = resolver(path, stats)
            for warning in warnings:
                logger.warning(warning)
            files.append(
                MediaFile(
                    path=path.absolute(),
                    stats=stats,
                    filing_date=filing_date,
                    filing_date_source=source,
                    warnings=warnings,
                )
            )
        return files

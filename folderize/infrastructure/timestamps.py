import os
import sys
import logging
from pathlib import Path
from typing import Optional, TYPE_CHECKING
from folderize.domain.models import FileStats

if TYPE_CHECKING:
    from folderize.infrastructure.exif_tool import ExifToolAdapter

logger = logging.getLogger(__name__)

# Platforms where a file's birth time can be written
_BIRTHTIME_WRITABLE = ("darwin", "win32")


def restore_timestamps(path: Path, stats: FileStats, exif: Optional["ExifToolAdapter"] = None):
    """Applies original access/modification times to path.

    Birth time is only restored when an ExifTool adapter is given and the
    platform supports writing it; failing that part is logged, not raised.
    """
    os.utime(path, (stats.accessed_at.timestamp(), stats.modified_at.timestamp()))

    if exif is None or sys.platform not in _BIRTHTIME_WRITABLE:
        return
    try:
        exif.set_file_create_date(path, stats.created_at)
    except Exception as e:
        logger.warning(f"Could not restore creation time for {path.name}: {e}")
    # Writing FileCreateDate can touch mtime on some filesystems
    os.utime(path, (stats.accessed_at.timestamp(), stats.modified_at.timestamp()))

import os
import logging
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

# Encoder output in progress is named <name>.mp4.tmp
TEMP_SUFFIX = ".mp4.tmp"


class HousekeepingService:
    """Service for cleaning up encoder leftovers and empty folders."""

    def cleanup_temp_files(self, directory: Path) -> List[Path]:
        """Recursively removes partial encoder outputs left by an interrupted run."""
        removed = []
        for root, dirs, files in os.walk(directory):
            for file in files:
                if file.endswith(TEMP_SUFFIX):
                    path = Path(root) / file
                    try:
                        path.unlink()
                        removed.append(path)
                        logger.info(f"Removed stale partial output: {path}")
                    except OSError as e:
                        logger.warning(f"Could not remove stale partial output {path}: {e}")
        return removed

    def prune_empty_dirs(self, directory: Path) -> List[Path]:
        """Removes empty sub-folders bottom-up; the root itself is kept."""
        logger.info("Checking for empty folders...")
        removed = []
        directory = Path(directory)
        for root, dirs, files in os.walk(directory, topdown=False):
            path = Path(root)
            if path == directory:
                continue
            try:
                if any(path.iterdir()):
                    continue
                path.rmdir()
                removed.append(path)
                logger.info(f"Removing empty folder: {path}")
            except OSError as e:
                logger.warning(f"Could not remove folder {path}: {e}")
        return removed

import exiftool
from datetime import datetime
from pathlib import Path
from typing import Any, Dict


class ExifToolAdapter:
    """Wrapper around pyexiftool for metadata extraction and timestamp writes."""

    def __init__(self):
        self.et = exiftool.ExifTool()

    def _ensure_running(self):
        if not self.et.running:
            self.et.run()

    def extract_tags(self, file_path: Path) -> Dict[str, Any]:
        """Extract raw ExifTool tags (group-prefixed keys) as a dictionary."""
        self._ensure_running()
        metadata_list = self.et.execute_json(str(file_path))
        if not metadata_list:
            raise ValueError(f"Could not extract metadata for {file_path}")
        return metadata_list[0]

    def set_file_create_date(self, file_path: Path, created_at: datetime):
        """Sets the filesystem creation date (macOS/Windows only; ExifTool ignores it elsewhere)."""
        self._ensure_running()
        stamp = created_at.strftime("%Y:%m:%d %H:%M:%S")
        self.et.execute(f"-FileCreateDate={stamp}", str(file_path))

    def terminate(self):
        if self.et.running:
            self.et.terminate()

import subprocess
import logging
from pathlib import Path
from typing import List, Optional


class FFprobeAdapter:
    """Wrapper around ffprobe for the two read-only queries the pipeline needs.

    Both queries return None instead of raising: an unknown codec or duration
    is a normal state the callers handle with their own fallback.
    """

    def __init__(self, binary: str = "ffprobe"):
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def _query(self, args: List[str], file_path: Path) -> Optional[str]:
        cmd = [
            self.binary,
            "-v", "error",
            *args,
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(file_path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            self.logger.warning(f"ffprobe failed for {file_path}: {e}")
            return None
        if result.returncode != 0:
            self.logger.warning(f"ffprobe failed for {file_path}: {result.stderr.strip()}")
            return None
        token = result.stdout.strip()
        # Multiple streams/entries: the first line is the one asked for
        return token.splitlines()[0].strip() if token else None

    def get_codec(self, file_path: Path) -> Optional[str]:
        """Codec name of the first video stream, e.g. "h264", "hevc", "prores"."""
        codec = self._query(["-select_streams", "v:0", "-show_entries", "stream=codec_name"], file_path)
        return codec.lower() if codec else None

    def get_duration(self, file_path: Path) -> Optional[float]:
        """Container duration in seconds."""
        value = self._query(["-show_entries", "format=duration"], file_path)
        if value is None:
            return None
        try:
            duration = float(value)
        except ValueError:
            self.logger.warning(f"ffprobe returned no usable duration for {file_path}: {value!r}")
            return None
        if duration != duration:  # NaN
            return None
        return duration

import shutil
from typing import Iterable
from folderize.domain.errors import MissingDependencyError

INSTALL_HINTS = {
    "ffmpeg": "Install with: brew install ffmpeg (macOS), apt install ffmpeg, or see https://ffmpeg.org/download.html",
    "ffprobe": "ffprobe ships with ffmpeg: https://ffmpeg.org/download.html",
    "exiftool": "Install with: brew install exiftool (macOS), apt install libimage-exiftool-perl, or see https://exiftool.org",
}


def require_binaries(names: Iterable[str]) -> None:
    """Checked once before any file work; a missing tool aborts the run."""
    missing = [name for name in names if shutil.which(name) is None]
    if missing:
        hints = "\n".join(INSTALL_HINTS.get(name, name) for name in missing)
        raise MissingDependencyError(
            f"{', '.join(missing)} required but not installed.\n{hints}"
        )

import time
from pathlib import Path
from typing import Iterable, List, Optional

DEFAULT_THRESHOLD_S = 5.0


def is_file_stable(path: Path, threshold_s: float = DEFAULT_THRESHOLD_S, now: Optional[float] = None) -> bool:
    """True if path has not been modified for at least threshold_s seconds.

    A file that can no longer be stat'ed counts as unstable; the caller
    defers it to the next run.
    """
    current = time.time() if now is None else now
    try:
        mtime = Path(path).stat().st_mtime
    except OSError:
        return False
    return current - mtime >= threshold_s


def find_unstable(paths: Iterable[Path], threshold_s: float = DEFAULT_THRESHOLD_S, now: Optional[float] = None) -> List[Path]:
    current = time.time() if now is None else now
    return [p for p in paths if not is_file_stable(p, threshold_s, now=current)]

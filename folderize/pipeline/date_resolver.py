"""Filing-date resolution from embedded metadata with filesystem fallback."""

import re
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from folderize.domain.models import FileStats, FilingDateSource
from folderize.infrastructure.exif_tool import ExifToolAdapter

logger = logging.getLogger(__name__)

# Precedence: capture time, digitized time, image modify time, image create time.
DATE_TAG_GROUPS: List[List[str]] = [
    ["EXIF:DateTimeOriginal", "QuickTime:CreationDate"],
    ["EXIF:CreateDate", "XMP:DateCreated"],
    ["EXIF:ModifyDate"],
    ["QuickTime:CreateDate", "QuickTime:MediaCreateDate", "XMP:CreateDate"],
]

# QuickTime movie/media headers store UTC without an offset.
UTC_TAGS = {"QuickTime:CreateDate", "QuickTime:MediaCreateDate"}

_dt_re = re.compile(
    r"^(?P<y>\d{4}):(?P<m>\d{2}):(?P<d>\d{2})[ T]"
    r"(?P<H>\d{2}):(?P<M>\d{2}):(?P<S>\d{2})"
    r"(?:\.(?P<sub>\d+))?(?P<tz>Z|[+\-]\d{2}:?\d{2})?$"
)


def parse_exif_datetime(value: Any, assume_utc: bool = False) -> Optional[datetime]:
    """Parses ExifTool date strings ("YYYY:MM:DD HH:MM:SS[.sss][tz]").

    Zero/blank sentinels yield None. Timezone-aware values are converted to
    local naive time so they compare with filesystem times. With assume_utc,
    values without an offset are read as UTC.
    """
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.startswith("0000:00:00"):
        return None

    m = _dt_re.match(s)
    if m:
        try:
            dt = datetime.strptime(s[:19], "%Y:%m:%d %H:%M:%S")
        except ValueError:
            return None
        tz = m.group("tz") or ("Z" if assume_utc else None)
        if not tz:
            return dt
        if tz == "Z":
            tz = "+00:00"
        elif ":" not in tz:
            tz = tz[:3] + ":" + tz[3:]
        try:
            aware = datetime.fromisoformat(dt.strftime("%Y-%m-%dT%H:%M:%S") + tz)
        except ValueError:
            return None
        return aware.astimezone().replace(tzinfo=None)

    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None and assume_utc:
        dt = dt.replace(tzinfo=timezone.utc)
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def pick_metadata_date(tags: Dict[str, Any]) -> Optional[datetime]:
    """First non-empty, parseable tag in precedence order."""
    for group in DATE_TAG_GROUPS:
        for tag in group:
            dt = parse_exif_datetime(tags.get(tag), assume_utc=tag in UTC_TAGS)
            if dt is not None:
                return dt
    return None


class MetadataResolver:
    """Resolves the filing date of a file.

    Embedded metadata wins; any extraction problem falls back to the
    filesystem birth time with a warning instead of an error.
    """

    def __init__(self, exif_adapter: ExifToolAdapter):
        self.exif_adapter = exif_adapter

    def resolve(self, path: Path, stats: FileStats) -> Tuple[datetime, FilingDateSource, List[str]]:
        warnings: List[str] = []
        try:
            tags = self.exif_adapter.extract_tags(path)
        except Exception as e:
            warnings.append(
                f'Error reading metadata for "{path}". Using file date instead - {e}'
            )
            return stats.created_at, FilingDateSource.FILESYSTEM, warnings

        dt = pick_metadata_date(tags)
        if dt is None:
            logger.debug(f"No embedded date in {path.name}; using file creation time")
            return stats.created_at, FilingDateSource.FILESYSTEM, warnings
        return dt, FilingDateSource.METADATA, warnings

    __call__ = resolve

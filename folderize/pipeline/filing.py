"""Archive placement: pure planning plus the copy-verify-delete mover."""

import shutil
import logging
from pathlib import Path
from typing import Iterable, List, Optional, TYPE_CHECKING
from folderize.domain.models import FilingPlan, ItemResult, MediaFile, Outcome
from folderize.domain.events import ItemProcessed
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.timestamps import restore_timestamps

if TYPE_CHECKING:
    from folderize.infrastructure.exif_tool import ExifToolAdapter


def plan_filing(media_file: MediaFile, archive_root: Path) -> FilingPlan:
    """{archive_root}/{YYYY}/{YYYY}-{MM}/{name}. Pure; never fails."""
    date = media_file.filing_date
    directory = Path(archive_root) / f"{date.year}" / f"{date.year}-{date.month:02d}"
    return FilingPlan(destination_directory=directory, destination_path=directory / media_file.name)


class FileMover:
    """Relocates planned files into the archive one at a time.

    Copy, verify, then delete (the archive may be on another volume). An
    existing destination is never overwritten and the source is only
    removed once its copy is confirmed.
    """

    def __init__(
        self,
        allowed_extensions: Iterable[str],
        ignored_names: Iterable[str] = (),
        event_bus: Optional[EventBus] = None,
        exif_adapter: Optional["ExifToolAdapter"] = None,
    ):
        self.allowed_extensions = {ext.lower() for ext in allowed_extensions}
        self.ignored_names = set(ignored_names)
        self.event_bus = event_bus
        self.exif_adapter = exif_adapter
        self.logger = logging.getLogger(__name__)

    def _report(self, result: ItemResult, index: int, total: int) -> ItemResult:
        prefix = f"({index}/{total})"
        if result.outcome == Outcome.SUCCESS:
            self.logger.info(f'{prefix} Moved "{result.path}" to "{result.destination}"')
        elif result.outcome == Outcome.SKIPPED:
            self.logger.info(f'{prefix} Skipped "{result.path}" - {result.reason}')
        else:
            self.logger.error(f'{prefix} Error moving "{result.path}" to "{result.destination}" - {result.reason}')
        if self.event_bus:
            self.event_bus.publish(ItemProcessed(stage="filing", result=result))
        return result

    def move(self, media_file: MediaFile, archive_root: Path) -> ItemResult:
        plan = plan_filing(media_file, archive_root)
        src = media_file.path
        dst = plan.destination_path

        try:
            plan.destination_directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return ItemResult(
                outcome=Outcome.FAILED,
                reason=f'Error creating "{plan.destination_directory}" - {e}',
                path=src,
                destination=dst,
            )

        if media_file.name in self.ignored_names:
            return ItemResult(outcome=Outcome.SKIPPED, reason="file is in the ignored files list", path=src, destination=dst)
        if media_file.extension not in self.allowed_extensions:
            return ItemResult(
                outcome=Outcome.SKIPPED,
                reason=f"file extension {media_file.extension or '(none)'} is ignored",
                path=src,
                destination=dst,
            )
        if dst.exists():
            return ItemResult(outcome=Outcome.SKIPPED, reason="destination already exists", path=src, destination=dst)

        try:
            shutil.copyfile(src, dst)
            copied_size = dst.stat().st_size
            if copied_size != media_file.stats.size_bytes:
                raise OSError(
                    f"size mismatch after copy (src={media_file.stats.size_bytes}, dest={copied_size})"
                )
            restore_timestamps(dst, media_file.stats, exif=self.exif_adapter)
        except OSError as e:
            self._discard_copy(dst)
            return ItemResult(outcome=Outcome.FAILED, reason=str(e), path=src, destination=dst)

        try:
            src.unlink()
        except OSError as e:
            return ItemResult(
                outcome=Outcome.FAILED,
                reason=f"copied but could not remove source: {e}",
                path=src,
                destination=dst,
            )
        return ItemResult(outcome=Outcome.SUCCESS, reason="moved", path=src, destination=dst)

    def _discard_copy(self, dst: Path):
        try:
            if dst.exists():
                dst.unlink()
        except OSError as e:
            self.logger.error(f"Could not remove incomplete copy {dst}: {e}")

    def move_all(self, files: List[MediaFile], archive_root: Path) -> List[ItemResult]:
        results = []
        if files:
            self.logger.info("Moving files...")
        total = len(files)
        for index, media_file in enumerate(files, start=1):
            results.append(self._report(self.move(media_file, archive_root), index, total))
        return results

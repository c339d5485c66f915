"""Video normalization: decide per file whether to copy, re-encode or skip.

Target format is one codec/container pair (H.264 in .mp4 by default). No job
record is kept: re-running over the same tree finds the outputs on disk and
skips them.
"""

import os
import shutil
import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union, TYPE_CHECKING
from folderize.config.models import AppConfig
from folderize.domain.errors import ConversionAborted
from folderize.domain.events import ItemProcessed, JobCompleted, JobStarted
from folderize.domain.models import (
    ConversionAction,
    ConversionJob,
    FileStats,
    ItemResult,
    JobStatus,
    MediaFile,
    Outcome,
)
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.ffmpeg import FFmpegAdapter
from folderize.infrastructure.ffprobe import FFprobeAdapter
from folderize.infrastructure.file_scanner import file_stats
from folderize.infrastructure.timestamps import restore_timestamps

if TYPE_CHECKING:
    from folderize.infrastructure.exif_tool import ExifToolAdapter


def output_path_for(input_path: Path, source_root: Path, output_root: Path, target_extension: str = ".mp4") -> Path:
    """Mirrors input's position under source_root beneath output_root, with the target extension."""
    try:
        rel_path = input_path.relative_to(source_root)
    except ValueError:
        rel_path = Path(input_path.name)
    return output_root / rel_path.with_suffix(target_extension)


class NormalizationEngine:
    """Per-file decision matrix driving the external encoder."""

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        ffprobe_adapter: FFprobeAdapter,
        ffmpeg_adapter: FFmpegAdapter,
        exif_adapter: Optional["ExifToolAdapter"] = None,
    ):
        self.config = config
        self.event_bus = event_bus
        self.ffprobe_adapter = ffprobe_adapter
        self.ffmpeg_adapter = ffmpeg_adapter
        self.exif_adapter = exif_adapter
        self.logger = logging.getLogger(__name__)

    def decide(self, input_path: Path, output_path: Path) -> Tuple[ConversionAction, Optional[str], str]:
        """Returns (action, probed codec, human-readable reason)."""
        video = self.config.video
        ext = input_path.suffix.lower()
        in_place = input_path == output_path

        if output_path.exists() and not in_place:
            return ConversionAction.SKIP, None, "output already exists"

        if ext in video.normalize_extensions:
            return ConversionAction.ENCODE, None, f"Converting {ext.lstrip('.').upper()} to MP4"

        if ext == video.target_extension:
            codec = self.ffprobe_adapter.get_codec(input_path)
            if codec is None:
                return ConversionAction.ENCODE, None, "Could not determine codec; converting to be safe"
            if codec == video.target_codec:
                if in_place:
                    return ConversionAction.SKIP, codec, f"already {codec.upper()} MP4"
                return ConversionAction.COPY, codec, f"Already {codec.upper()} MP4 - copying to output"
            return ConversionAction.ENCODE, codec, f"Converting MP4 ({codec}) -> {video.target_codec.upper()} MP4"

        return ConversionAction.ENCODE, None, "Converting file to MP4"

    def _remove_original(self, input_path: Path, output_path: Path) -> Optional[ItemResult]:
        if not self.config.general.delete_originals or input_path == output_path:
            return None
        try:
            input_path.unlink()
        except OSError as e:
            self.logger.error(f"Failed to delete original file {input_path.name}: {e}")
            return ItemResult(
                outcome=Outcome.FAILED,
                reason=f"converted, but failed to delete original: {e}",
                path=input_path,
                destination=output_path,
            )
        self.logger.info(f"Deleted original file: {input_path.name}")
        return None

    def _restore_times(self, input_path: Path, output_path: Path, originals: Optional[FileStats]) -> Optional[ItemResult]:
        if originals is None:
            return None
        try:
            restore_timestamps(output_path, originals, exif=self.exif_adapter)
        except OSError as e:
            self.logger.warning(f"Could not restore timestamps for {output_path.name}: {e}")
            return ItemResult(
                outcome=Outcome.FAILED,
                reason=f"converted, but failed to restore timestamps: {e}",
                path=input_path,
                destination=output_path,
            )
        self.logger.info(f"Restored timestamps for: {output_path.name}")
        return None

    def _finish(self, input_path: Path, output_path: Path, originals: Optional[FileStats], reason: str) -> List[ItemResult]:
        """Timestamps first, then (optionally) the original; sub-failures never undo the output."""
        results = [ItemResult(outcome=Outcome.SUCCESS, reason=reason, path=input_path, destination=output_path)]
        for sub_failure in (
            self._restore_times(input_path, output_path, originals),
            self._remove_original(input_path, output_path),
        ):
            if sub_failure:
                results.append(sub_failure)
        return results

    def _copy(self, job: ConversionJob) -> List[ItemResult]:
        try:
            shutil.copyfile(job.input_path, job.temp_path)
            os.replace(job.temp_path, job.output_path)
        except OSError as e:
            if job.temp_path.exists():
                job.temp_path.unlink()
            self.logger.error(f"Failed to copy {job.input_path} -> {job.output_path}: {e}")
            return [ItemResult(outcome=Outcome.FAILED, reason=f"copy failed: {e}", path=job.input_path, destination=job.output_path)]
        self.logger.info(f"Copied: {job.output_path}")
        return self._finish(job.input_path, job.output_path, job.original_timestamps, "copied (already target format)")

    def _encode(self, job: ConversionJob) -> List[ItemResult]:
        job.duration_seconds = self.ffprobe_adapter.get_duration(job.input_path)
        self.event_bus.publish(JobStarted(job=job))
        job.status = JobStatus.PROCESSING
        self.ffmpeg_adapter.encode(job)

        if job.status != JobStatus.COMPLETED:
            self.logger.error(f"ffmpeg failed for {job.input_path}: {job.error_message}")
            return [ItemResult(
                outcome=Outcome.FAILED,
                reason=job.error_message or "conversion failed",
                path=job.input_path,
                destination=job.output_path,
            )]

        self.logger.info(f"Conversion complete: {job.output_path.name}")
        self.event_bus.publish(JobCompleted(job=job))
        return self._finish(job.input_path, job.output_path, job.original_timestamps, "converted")

    def convert_file(self, input_path: Path, output_path: Path) -> List[ItemResult]:
        """Normalizes one file. The first result is the file's outcome; any
        following FAILED entries are partial-success sub-steps."""
        action, codec, reason = self.decide(input_path, output_path)
        if action == ConversionAction.SKIP:
            self.logger.info(f"Skipping {input_path.name}: {reason}")
            return [ItemResult(outcome=Outcome.SKIPPED, reason=reason, path=input_path, destination=output_path)]

        self.logger.info(f"{reason}: {input_path.name}")
        originals = None
        try:
            originals = file_stats(input_path)
        except OSError as e:
            self.logger.warning(f"Could not get file stats for {input_path}: {e}")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        job = ConversionJob(
            input_path=input_path,
            output_path=output_path,
            action=action,
            detected_codec=codec,
            original_timestamps=originals,
        )
        if action == ConversionAction.COPY:
            return self._copy(job)
        return self._encode(job)

    def convert_all(
        self,
        files: Sequence[Union[MediaFile, Path]],
        source_root: Path,
        output_root: Path,
    ) -> List[ItemResult]:
        """Converts a pre-enumerated recursive file list, mirroring folders under output_root.

        Raises ConversionAborted on the first failure when stop_on_error is set.
        """
        results: List[ItemResult] = []
        paths = [f.path if isinstance(f, MediaFile) else Path(f) for f in files]
        total = len(paths)
        for index, input_path in enumerate(paths, start=1):
            output_path = output_path_for(input_path, source_root, output_root, self.config.video.target_extension)
            self.logger.info(f"({index}/{total}) {input_path}")
            try:
                file_results = self.convert_file(input_path, output_path)
            except OSError as e:
                file_results = [ItemResult(outcome=Outcome.FAILED, reason=str(e), path=input_path, destination=output_path)]

            for result in file_results:
                self.event_bus.publish(ItemProcessed(stage="conversion", result=result))
            results.extend(file_results)

            if file_results[0].outcome == Outcome.FAILED and self.config.general.stop_on_error:
                raise ConversionAborted(f"Conversion failed for {input_path}: {file_results[0].reason}")
        return results

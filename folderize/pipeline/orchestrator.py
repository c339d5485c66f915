"""Run sequencing for the filing pipeline.

One run: housekeeping → optional in-place normalization and its verification
gate → filing → (single-run only) empty-folder pruning. Continuous mode repeats runs
on a fixed interval; runs never overlap because everything is sequential.
"""

import time
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple
from folderize.config.models import AppConfig
from folderize.domain.events import ItemProcessed, StageStarted
from folderize.domain.models import ItemResult, MediaFile, Outcome, RunReport
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.file_scanner import FileScanner, Resolver
from folderize.infrastructure.housekeeping import HousekeepingService
from folderize.pipeline.dedupe import DuplicateDetector
from folderize.pipeline.filing import FileMover
from folderize.pipeline.normalizer import NormalizationEngine
from folderize.pipeline.stability import find_unstable


class Orchestrator:
    """Sequences one filing run over a source tree into an archive tree.

    Args:
        config: AppConfig (general + video sections).
        event_bus: EventBus for stage and per-item events.
        source: Folder to drain.
        destination: Archive root.
        mover: FileMover used by the filing pass.
        resolver: Filing-date resolver applied during discovery (filesystem dates if None).
        normalizer: NormalizationEngine; required for convert_videos and run_convert.
        detector: DuplicateDetector; required for run_dedupe.
        housekeeper: HousekeepingService for temp cleanup and pruning.
        continuous: Continuous mode disables empty-folder pruning.
    """

    def __init__(
        self,
        config: AppConfig,
        event_bus: EventBus,
        source: Path,
        destination: Optional[Path] = None,
        mover: Optional[FileMover] = None,
        resolver: Optional[Resolver] = None,
        normalizer: Optional[NormalizationEngine] = None,
        detector: Optional[DuplicateDetector] = None,
        housekeeper: Optional[HousekeepingService] = None,
        continuous: bool = False,
    ):
        self.config = config
        self.event_bus = event_bus
        self.source = Path(source)
        self.destination = Path(destination) if destination else None
        self.mover = mover
        self.resolver = resolver
        self.normalizer = normalizer
        self.detector = detector
        self.housekeeper = housekeeper or HousekeepingService()
        self.continuous = continuous
        self.logger = logging.getLogger(__name__)

        general = config.general
        self.filing_scanner = FileScanner(extensions=general.allowed_extensions, ignored_names=general.ignored_files)
        self.video_scanner = FileScanner(extensions=general.video_extensions, ignored_names=general.ignored_files)
        self.run_count = 0

    def _stage(self, stage: str, directory: Path):
        self.event_bus.publish(StageStarted(stage=stage, directory=directory))

    def verify_all_converted(self, videos: List[Path]) -> List[Path]:
        """Returns the videos blocking filing: unstable ones and non-target
        videos without a sibling target-extension file."""
        target_ext = self.config.video.target_extension
        blocking = find_unstable(videos, self.config.general.stability_threshold_s)
        for video in videos:
            if video.suffix.lower() == target_ext or video in blocking:
                continue
            if not video.with_suffix(target_ext).exists():
                blocking.append(video)
        return blocking

    def _defer_unstable(self, videos: List[MediaFile]) -> Tuple[List[MediaFile], List[ItemResult]]:
        """Splits off videos still being written; they are picked up by a later run."""
        unstable = set(find_unstable([v.path for v in videos], self.config.general.stability_threshold_s))
        deferred = []
        for path in sorted(unstable):
            self.logger.info(f"Skipping {path}: still being written, deferred to a later run")
            result = ItemResult(outcome=Outcome.SKIPPED, reason="unstable, deferred", path=path)
            self.event_bus.publish(ItemProcessed(stage="conversion", result=result))
            deferred.append(result)
        return [v for v in videos if v.path not in unstable], deferred

    def _convert(self, output_root: Path) -> List[ItemResult]:
        self._stage("conversion", self.source)
        videos, deferred = self._defer_unstable(self.video_scanner.scan(self.source))
        if not videos and not deferred:
            self.logger.info("No video files found.")
        return deferred + self.normalizer.convert_all(videos, self.source, output_root)

    def _verify(self, report: RunReport) -> bool:
        """Verification gate; False (and report updated) when filing must wait."""
        self._stage("verification", self.source)
        videos = [p for p in self.video_scanner.walk(self.source) if self.video_scanner.matches(p)]
        blocking = self.verify_all_converted(videos)
        if not blocking:
            return True
        self.logger.warning(
            f"{len(blocking)} video file(s) are not converted or still being written; "
            "skipping file moving for this run."
        )
        for path in blocking:
            self.logger.info(f"Waiting on: {path}")
        report.filing_skipped = True
        report.blocked_by = blocking
        return False

    def run_once(self) -> RunReport:
        if self.mover is None or self.destination is None:
            raise ValueError("A filing run needs a FileMover and a destination")
        report = RunReport()
        self.housekeeper.cleanup_temp_files(self.source)

        ready = True
        if self.config.general.convert_videos:
            if self.normalizer is None:
                raise ValueError("convert_videos requires a NormalizationEngine")
            self.logger.info("Converting video files...")
            report.conversion = self._convert(self.source)
            ready = self._verify(report)

        if ready:
            self._stage("filing", self.source)
            files = self.filing_scanner.scan(self.source, resolver=self.resolver)
            if not files:
                self.logger.info("No files to move.")
            report.filing = self.mover.move_all(files, self.destination)

        if not self.continuous:
            self.housekeeper.prune_empty_dirs(self.source)
        return report

    def run_continuous(
        self,
        interval_s: Optional[float] = None,
        max_runs: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> List[RunReport]:
        """Repeats run_once every interval_s seconds until max_runs (forever if None)."""
        interval = interval_s if interval_s is not None else self.config.general.continuous_interval_s
        heartbeat_every = self.config.general.heartbeat_every
        reports = []
        self.logger.info(f"Running in continuous mode, checking every {interval:g}s")
        while max_runs is None or self.run_count < max_runs:
            report = self.run_once()
            self.run_count += 1
            if max_runs is not None:
                reports.append(report)
            if self.run_count % heartbeat_every == 0:
                self.logger.info(f"Still running ({self.run_count} checks so far)")
            if max_runs is None or self.run_count < max_runs:
                sleep(interval)
        return reports

    def run_convert(self, output_root: Optional[Path] = None) -> RunReport:
        """Standalone conversion of the source tree (in place unless output_root is given)."""
        if self.normalizer is None:
            raise ValueError("run_convert requires a NormalizationEngine")
        report = RunReport()
        self.housekeeper.cleanup_temp_files(self.source)
        report.conversion = self._convert(Path(output_root) if output_root else self.source)
        return report

    def run_dedupe(self, dry_run: bool = False) -> RunReport:
        if self.detector is None:
            raise ValueError("run_dedupe requires a DuplicateDetector")
        self._stage("dedupe", self.source)
        report = RunReport()
        report.dedupe = self.detector.run(
            self.source, dry_run=dry_run, stop_on_error=self.config.general.stop_on_error
        )
        return report

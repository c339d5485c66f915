import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
from folderize.domain.errors import DuplicateProbeError
from folderize.domain.events import ItemProcessed
from folderize.domain.models import DuplicateGroup, DuplicateMatch, ItemResult, MediaFile, Outcome
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.ffprobe import FFprobeAdapter
from folderize.infrastructure.file_scanner import FileScanner

DEFAULT_TOLERANCE_S = 1.0

GroupKey = Tuple[Path, str]


def group_videos(files: Iterable[Union[MediaFile, Path]], target_extension: str = ".mp4") -> Dict[GroupKey, DuplicateGroup]:
    """Buckets files by (directory, lower-cased stem).

    The target-extension member becomes the group's target; a second one
    goes to extra_targets and disqualifies the group.
    """
    groups: Dict[GroupKey, DuplicateGroup] = {}
    for f in files:
        path = f.path if isinstance(f, MediaFile) else Path(f)
        key = (path.parent, path.stem.lower())
        group = groups.get(key)
        if group is None:
            group = groups[key] = DuplicateGroup(directory=path.parent, key=path.stem.lower())
        if path.suffix.lower() == target_extension:
            if group.target is None:
                group.target = path
            else:
                group.extra_targets.append(path)
        else:
            group.others.append(path)
    return groups


class DuplicateDetector:
    """Finds non-target videos whose duration matches a same-named target within tolerance."""

    def __init__(
        self,
        ffprobe_adapter: FFprobeAdapter,
        tolerance_s: float = DEFAULT_TOLERANCE_S,
        target_extension: str = ".mp4",
        video_extensions: Optional[Iterable[str]] = None,
        ignored_names: Iterable[str] = (),
        event_bus: Optional[EventBus] = None,
    ):
        self.ffprobe_adapter = ffprobe_adapter
        self.tolerance_s = tolerance_s
        self.target_extension = target_extension
        self.scanner = FileScanner(extensions=video_extensions, ignored_names=ignored_names)
        self.event_bus = event_bus
        self.logger = logging.getLogger(__name__)

    def _emit(self, result: ItemResult) -> ItemResult:
        if self.event_bus:
            self.event_bus.publish(ItemProcessed(stage="dedupe", result=result))
        return result

    def _probe_failed(self, path: Path, stop_on_error: bool) -> ItemResult:
        message = f"Failed to read duration for {path}"
        self.logger.error(message)
        if stop_on_error:
            raise DuplicateProbeError(message)
        return self._emit(ItemResult(outcome=Outcome.FAILED, reason="could not read duration", path=path))

    def find_duplicates(
        self, groups: Dict[GroupKey, DuplicateGroup], stop_on_error: bool = False
    ) -> Tuple[List[DuplicateMatch], List[ItemResult]]:
        """Returns (deletion candidates, results for everything kept or skipped)."""
        matches: List[DuplicateMatch] = []
        results: List[ItemResult] = []

        for group in groups.values():
            if group.extra_targets:
                self.logger.warning(
                    f"Multiple {self.target_extension} files for '{group.key}' in {group.directory}; skipping group"
                )
                for path in group.others:
                    results.append(self._emit(ItemResult(
                        outcome=Outcome.SKIPPED,
                        reason=f"ambiguous: more than one {self.target_extension} with this name",
                        path=path,
                    )))
                continue
            if not group.is_candidate:
                continue

            target_duration = self.ffprobe_adapter.get_duration(group.target)
            if target_duration is None:
                results.append(self._probe_failed(group.target, stop_on_error))
                continue

            for path in group.others:
                duration = self.ffprobe_adapter.get_duration(path)
                if duration is None:
                    results.append(self._probe_failed(path, stop_on_error))
                    continue

                match = DuplicateMatch(
                    path=path,
                    target_path=group.target,
                    duration=duration,
                    target_duration=target_duration,
                )
                if match.delta <= self.tolerance_s:
                    self.logger.info(
                        f"DUPLICATE: {path} (dur={duration:.3f}s) ~= {group.target} "
                        f"(dur={target_duration:.3f}s) delta={match.delta:.3f}s"
                    )
                    matches.append(match)
                else:
                    self.logger.info(
                        f"KEPT: {path} (dur={duration:.3f}s) vs {group.target} "
                        f"(dur={target_duration:.3f}s) delta={match.delta:.3f}s"
                    )
                    results.append(self._emit(ItemResult(
                        outcome=Outcome.SKIPPED,
                        reason=f"duration differs by {match.delta:.3f}s",
                        path=path,
                    )))
        return matches, results

    def delete_duplicates(self, matches: List[DuplicateMatch], dry_run: bool = False) -> List[ItemResult]:
        results = []
        for match in matches:
            if dry_run:
                self.logger.info(f"[dry-run] Would delete: {match.path}")
                result = ItemResult(
                    outcome=Outcome.SKIPPED,
                    reason="dry run",
                    path=match.path,
                    destination=match.target_path,
                )
            else:
                try:
                    match.path.unlink()
                except OSError as e:
                    self.logger.error(f"Failed to delete {match.path}: {e}")
                    result = ItemResult(outcome=Outcome.FAILED, reason=str(e), path=match.path, destination=match.target_path)
                else:
                    self.logger.info(f"Deleted: {match.path}")
                    result = ItemResult(
                        outcome=Outcome.SUCCESS,
                        reason="duplicate deleted",
                        path=match.path,
                        destination=match.target_path,
                    )
            results.append(self._emit(result))
        return results

    def run(self, root: Path, dry_run: bool = False, stop_on_error: bool = False) -> List[ItemResult]:
        """Scans root for duplicate groups and deletes (or reports) the matches."""
        self.logger.info(f"Scanning for duplicate videos in {root}")
        videos = (p for p in self.scanner.walk(root) if self.scanner.matches(p))
        groups = group_videos(videos, self.target_extension)
        matches, results = self.find_duplicates(groups, stop_on_error=stop_on_error)
        if not matches:
            self.logger.info("No duplicates found.")
        results.extend(self.delete_duplicates(matches, dry_run=dry_run))
        return results

import typer
import warnings
from pathlib import Path
from typing import Callable, List, Optional
from pydantic import ValidationError
from rich.console import Console

# pyexiftool warns on every call when the exiftool version is unexpected
warnings.filterwarnings("ignore", module="exiftool")
from folderize.config.loader import load_config
from folderize.config.models import AppConfig
from folderize.domain.errors import FolderizeError, InvalidPathError
from folderize.domain.models import RunReport
from folderize.infrastructure.binaries import require_binaries
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.exif_tool import ExifToolAdapter
from folderize.infrastructure.ffmpeg import FFmpegAdapter
from folderize.infrastructure.ffprobe import FFprobeAdapter
from folderize.infrastructure.housekeeping import HousekeepingService
from folderize.infrastructure.logging import LoggingSession
from folderize.pipeline.date_resolver import MetadataResolver
from folderize.pipeline.dedupe import DuplicateDetector
from folderize.pipeline.filing import FileMover
from folderize.pipeline.normalizer import NormalizationEngine
from folderize.pipeline.orchestrator import Orchestrator
from folderize.ui.console import ConsoleReporter, print_summary

app = typer.Typer(help="folderize - file photos and videos into a YYYY/YYYY-MM archive")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to YAML config (default: conf/folderize.yaml if present)")
DebugOption = typer.Option(None, "--debug/--no-debug", help="Enable verbose debug logging")
LogPathOption = typer.Option(None, "--log-path", help="Log file path (default: logs/<command>_<timestamp>.log)")
StopOnErrorOption = typer.Option(None, "--stop-on-error/--keep-going", help="Abort on the first failed file")
DeleteOriginalsOption = typer.Option(
    None, "--delete-originals/--keep-originals", help="Delete source videos after successful conversion"
)
YesOption = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt")


def _fail(message: str):
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load_config(config_path: Optional[Path], **overrides) -> AppConfig:
    """Loads config, then applies CLI flags that were given explicitly (None means unset)."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValidationError) as exc:
        _fail(str(exc))
    for key, value in overrides.items():
        if value is not None:
            setattr(config.general, key, value)
    return config


def _require_dir(path: Path, label: str) -> Path:
    if not path.exists():
        raise InvalidPathError(f"{label} path does not exist: {path}")
    if not path.is_dir():
        raise InvalidPathError(f"{label} path is not a directory: {path}")
    return path.resolve()


def _preflight(dirs: List[tuple], binaries: List[str]) -> List[Path]:
    try:
        resolved = [_require_dir(Path(path), label) for path, label in dirs]
        require_binaries(binaries)
    except FolderizeError as exc:
        _fail(str(exc))
    return resolved


def _confirm(prompt: str, yes: bool):
    if yes:
        return
    if not typer.confirm(prompt, default=False):
        typer.echo("Aborted.")
        raise typer.Exit(code=0)


def _run_session(
    config: AppConfig,
    script_name: str,
    log_path: Optional[Path],
    body: Callable[[EventBus, Console, ExifToolAdapter], Optional[RunReport]],
):
    """Runs body inside one logging session and maps failures to exit codes."""
    console = Console(stderr=True)
    try:
        with LoggingSession(
            Path(config.general.log_dir),
            debug=config.general.debug,
            log_path=log_path,
            script_name=script_name,
        ) as logger:
            bus = EventBus()
            reporter = ConsoleReporter(bus, console)
            exif = ExifToolAdapter()
            try:
                report = body(bus, console, exif)
                if report is not None:
                    print_summary(console, report)
            except FolderizeError as e:
                logger.error(str(e))
                _fail(str(e))
            finally:
                reporter.stop()
                if exif.et.running:
                    exif.terminate()
                    logger.info("ExifTool terminated")

    except KeyboardInterrupt:
        typer.secho("\nStopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except Exception as e:
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _build_normalizer(config: AppConfig, bus: EventBus, exif: ExifToolAdapter, ffprobe: FFprobeAdapter) -> NormalizationEngine:
    return NormalizationEngine(
        config=config,
        event_bus=bus,
        ffprobe_adapter=ffprobe,
        ffmpeg_adapter=FFmpegAdapter(event_bus=bus, config=config.video),
        exif_adapter=exif,
    )


@app.command()
def run(
    source: Path = typer.Argument(..., help="Folder to drain (e.g. a camera import folder)"),
    destination: Path = typer.Argument(..., help="Archive root; files land in YYYY/YYYY-MM/"),
    continuous: bool = typer.Option(False, "--continuous", help="Repeat every continuous_interval_s (default: hourly)"),
    convert_videos: Optional[bool] = typer.Option(
        None, "--convert-videos/--no-convert-videos", help="Normalize videos to H.264 MP4 in place before filing"
    ),
    delete_originals: Optional[bool] = DeleteOriginalsOption,
    stop_on_error: Optional[bool] = StopOnErrorOption,
    yes: bool = YesOption,
    config_path: Optional[Path] = ConfigOption,
    debug: Optional[bool] = DebugOption,
    log_path: Optional[Path] = LogPathOption,
):
    """Files everything under SOURCE into DESTINATION by capture date."""
    config = _load_config(
        config_path,
        convert_videos=convert_videos,
        delete_originals=delete_originals,
        stop_on_error=stop_on_error,
        debug=debug,
    )
    binaries = ["exiftool"]
    if config.general.convert_videos:
        binaries += ["ffmpeg", "ffprobe"]
    source, destination = _preflight([(source, "Source"), (destination, "Destination")], binaries)

    if not continuous:
        _confirm(f"Move files from {source} to {destination}?", yes)

    def body(bus: EventBus, console: Console, exif: ExifToolAdapter) -> Optional[RunReport]:
        general = config.general
        exif.et.run()  # Start ExifTool ONCE before processing
        ffprobe = FFprobeAdapter()
        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            source=source,
            destination=destination,
            mover=FileMover(
                allowed_extensions=general.allowed_extensions,
                ignored_names=general.ignored_files,
                event_bus=bus,
                exif_adapter=exif,
            ),
            resolver=MetadataResolver(exif),
            normalizer=_build_normalizer(config, bus, exif, ffprobe) if general.convert_videos else None,
            housekeeper=HousekeepingService(),
            continuous=continuous,
        )
        if continuous:
            orchestrator.run_continuous()
            return None
        return orchestrator.run_once()

    _run_session(config, "folderize", log_path, body)


@app.command()
def convert(
    source: Path = typer.Argument(..., help="Folder whose videos are normalized"),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Mirror converted files under this folder instead of converting in place"
    ),
    delete_originals: Optional[bool] = DeleteOriginalsOption,
    stop_on_error: Optional[bool] = StopOnErrorOption,
    yes: bool = YesOption,
    config_path: Optional[Path] = ConfigOption,
    debug: Optional[bool] = DebugOption,
    log_path: Optional[Path] = LogPathOption,
):
    """Normalizes every video under SOURCE to H.264 MP4."""
    config = _load_config(config_path, delete_originals=delete_originals, stop_on_error=stop_on_error, debug=debug)
    (source,) = _preflight([(source, "Source")], ["ffmpeg", "ffprobe"])
    if output is not None:
        if output.exists() and not output.is_dir():
            _fail(f"Output path is not a directory: {output}")
        output = output.resolve()

    _confirm(f"Convert videos in {source}{f' into {output}' if output else ' in place'}?", yes)
    if output is not None:
        output.mkdir(parents=True, exist_ok=True)

    def body(bus: EventBus, console: Console, exif: ExifToolAdapter) -> Optional[RunReport]:
        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            source=source,
            normalizer=_build_normalizer(config, bus, exif, FFprobeAdapter()),
        )
        return orchestrator.run_convert(output_root=output)

    _run_session(config, "convert", log_path, body)


@app.command()
def dedupe(
    source: Path = typer.Argument(..., help="Folder to scan for converted-video leftovers"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report duplicates without deleting"),
    stop_on_error: Optional[bool] = StopOnErrorOption,
    yes: bool = YesOption,
    config_path: Optional[Path] = ConfigOption,
    debug: Optional[bool] = DebugOption,
    log_path: Optional[Path] = LogPathOption,
):
    """Deletes non-MP4 videos whose same-named MP4 has the same duration."""
    config = _load_config(config_path, stop_on_error=stop_on_error, debug=debug)
    (source,) = _preflight([(source, "Source")], ["ffprobe"])

    if not dry_run:
        _confirm(f"Delete duplicate videos under {source}?", yes)

    def body(bus: EventBus, console: Console, exif: ExifToolAdapter) -> Optional[RunReport]:
        general = config.general
        detector = DuplicateDetector(
            FFprobeAdapter(),
            tolerance_s=config.video.duration_tolerance_s,
            target_extension=config.video.target_extension,
            video_extensions=general.video_extensions,
            ignored_names=general.ignored_files,
            event_bus=bus,
        )
        orchestrator = Orchestrator(config=config, event_bus=bus, source=source, detector=detector)
        return orchestrator.run_dedupe(dry_run=dry_run)

    _run_session(config, "dedupe", log_path, body)


if __name__ == "__main__":
    app()

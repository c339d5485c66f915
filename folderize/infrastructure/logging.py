import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from rich.logging import RichHandler

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def log_file_name(log_dir: Path, script_name: str, now: Optional[datetime] = None) -> Path:
    """One log file per run: logs/<script>_<YYYY-MM-DD HH-MM-SS>.log"""
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H-%M-%S")
    return log_dir / f"{script_name}_{stamp}.log"


def setup_logging(
    log_dir: Path,
    debug: bool = False,
    log_path: Optional[Path] = None,
    script_name: str = "folderize",
    console: bool = True,
) -> logging.Logger:
    """
    Setup logging configuration for folderize.

    Creates the log directory and a per-run log file, and mirrors messages
    to the terminal through rich. Returns configured logger instance.

    Args:
        log_dir: Directory where run logs are written
        debug: If True, enable DEBUG level logging
        log_path: Optional path to log file (overrides log_dir)
        script_name: Prefix of the generated log file name
        console: If False, only the file handler is installed
    """
    log_file = Path(log_path) if log_path else log_file_name(Path(log_dir), script_name)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = logging.DEBUG if debug else logging.INFO

    file_handler = logging.FileHandler(log_file)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers: List[logging.Handler] = [file_handler]
    if console:
        handlers.append(RichHandler(show_path=False, markup=False, rich_tracebacks=False))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging to file: {log_file} (debug={'ON' if debug else 'OFF'})")

    return logger


class LoggingSession:
    """Logging lifecycle for one CLI invocation.

    Created at run start, closed at run end; closing flushes and detaches the
    handlers installed by ``setup_logging`` so no file handle outlives the run.
    """

    def __init__(
        self,
        log_dir: Path,
        debug: bool = False,
        log_path: Optional[Path] = None,
        script_name: str = "folderize",
        console: bool = True,
    ):
        self.log_dir = Path(log_dir)
        self.debug = debug
        self.log_path = log_path
        self.script_name = script_name
        self.console = console
        self.logger: Optional[logging.Logger] = None

    def __enter__(self) -> logging.Logger:
        self.logger = setup_logging(
            self.log_dir,
            debug=self.debug,
            log_path=self.log_path,
            script_name=self.script_name,
            console=self.console,
        )
        return self.logger

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        root = logging.getLogger()
        for handler in list(root.handlers):
            handler.flush()
            handler.close()
            root.removeHandler(handler)

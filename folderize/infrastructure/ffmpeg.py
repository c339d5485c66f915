import os
import re
import shutil
import subprocess
import logging
from collections import deque
from pathlib import Path
from typing import Iterable, Iterator, List, NamedTuple, Optional
from folderize.config.models import VideoConfig
from folderize.domain.models import ConversionJob, JobStatus
from folderize.domain.events import JobProgressUpdated, JobFailed
from folderize.infrastructure.event_bus import EventBus

# key=value lines emitted by `-progress pipe:1`
_PROGRESS_LINE = re.compile(r"^(\w+)=(.*)$")


class ProgressSample(NamedTuple):
    elapsed_s: float
    percent: Optional[float]
    remaining_s: Optional[float]


def iter_progress(lines: Iterable[str], duration: Optional[float]) -> Iterator[ProgressSample]:
    """Turns an ffmpeg -progress stream into progress samples.

    Only out_time_us/out_time_ms carry position (both are microseconds).
    Percent and remaining time are None when the duration is unknown.
    """
    for line in lines:
        match = _PROGRESS_LINE.match(line.strip())
        if not match:
            continue
        key, value = match.groups()
        if key not in ("out_time_us", "out_time_ms"):
            continue
        try:
            elapsed = int(value) / 1_000_000
        except ValueError:
            continue  # "N/A" before the first frame
        if duration and duration > 0:
            percent = min(100.0, max(0.0, elapsed / duration * 100.0))
            remaining = max(0.0, duration - elapsed)
            yield ProgressSample(elapsed, percent, remaining)
        else:
            yield ProgressSample(elapsed, None, None)


def format_remaining(seconds: Optional[float]) -> str:
    if seconds is None:
        return "?"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


class FFmpegAdapter:
    """Wrapper around ffmpeg for H.264/AAC normalization."""

    def __init__(self, event_bus: EventBus, config: Optional[VideoConfig] = None, binary: str = "ffmpeg"):
        self.event_bus = event_bus
        self.config = config or VideoConfig()
        self.binary = binary
        self.logger = logging.getLogger(__name__)

    def _build_command(self, job: ConversionJob) -> List[str]:
        """Constructs the ffmpeg command line arguments."""
        cfg = self.config
        cmd: List[str] = []
        if cfg.nice is not None and shutil.which("nice"):
            cmd.extend(["nice", "-n", str(cfg.nice)])
        cmd.extend([
            self.binary,
            "-y",
            "-i", str(job.input_path),
            "-map", "0:v:0",   # first video stream only
            "-map", "0:a:0?",  # first audio stream, optional
            "-c:v", cfg.video_encoder,
            "-crf", str(cfg.crf),
            "-preset", cfg.preset,
            "-c:a", cfg.audio_codec,
            "-b:a", cfg.audio_bitrate,
            "-map_metadata", "0",
            "-movflags", "+faststart",
            "-loglevel", "warning",
            "-progress", "pipe:1",
            "-nostats",
        ])
        # Write to a temp name during encoding (renamed on success)
        # Force mp4 format since .tmp extension doesn't indicate format
        cmd.extend(["-f", "mp4", str(job.temp_path)])
        return cmd

    def _cleanup_temp(self, job: ConversionJob):
        if job.temp_path.exists():
            try:
                job.temp_path.unlink()
            except OSError as e:
                self.logger.error(f"Could not remove partial output {job.temp_path}: {e}")

    def _stop(self, process: subprocess.Popen):
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def encode(self, job: ConversionJob):
        """Runs the encoder for job; sets job.status to COMPLETED, FAILED or INTERRUPTED."""
        filename = job.input_path.name
        cmd = self._build_command(job)
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1
            )
        except OSError as e:
            job.status = JobStatus.FAILED
            job.error_message = f"Could not start ffmpeg: {e}"
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return

        diagnostics: deque = deque(maxlen=5)

        def _lines():
            for line in process.stdout or []:
                if not _PROGRESS_LINE.match(line.strip()) and line.strip():
                    diagnostics.append(line.strip())
                    self.logger.debug(f"FFMPEG: {filename}: {line.strip()}")
                yield line

        try:
            for sample in iter_progress(_lines(), job.duration_seconds):
                if sample.percent is None:
                    continue
                job.progress_percent = sample.percent
                self.event_bus.publish(
                    JobProgressUpdated(
                        job=job,
                        progress_percent=sample.percent,
                        remaining_seconds=sample.remaining_s,
                    )
                )
            process.wait()
        except KeyboardInterrupt:
            self.logger.info(f"FFMPEG_INTERRUPTED: {filename}")
            self._stop(process)
            self._cleanup_temp(job)
            job.status = JobStatus.INTERRUPTED
            job.error_message = "Interrupted by user (Ctrl+C)"
            raise

        if process.returncode != 0:
            job.status = JobStatus.FAILED
            detail = f": {diagnostics[-1]}" if diagnostics else ""
            job.error_message = f"ffmpeg exited with code {process.returncode}{detail}"
            self._cleanup_temp(job)
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return

        if not job.temp_path.exists():
            job.status = JobStatus.FAILED
            job.error_message = "ffmpeg finished but produced no output"
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return

        try:
            os.replace(job.temp_path, job.output_path)
        except OSError as e:
            job.status = JobStatus.FAILED
            job.error_message = f"Could not move encoded output into place: {e}"
            self._cleanup_temp(job)
            self.event_bus.publish(JobFailed(job=job, error_message=job.error_message))
            return
        job.progress_percent = 100.0
        job.status = JobStatus.COMPLETED

from typing import Optional
from rich.console import Console
from rich.status import Status
from rich.table import Table
from folderize.domain.events import JobFinished, JobProgressUpdated, JobStarted, StageStarted
from folderize.domain.models import Outcome, RunReport
from folderize.infrastructure.event_bus import EventBus
from folderize.infrastructure.ffmpeg import format_remaining


def format_progress(percent: float, remaining_seconds: Optional[float]) -> str:
    return f"Progress: {percent:.0f}% | Remaining: {format_remaining(remaining_seconds)}"


class ConsoleReporter:
    """Subscribes to EventBus and renders encoder progress on a transient status line.

    Progress goes to the terminal only; it is never written to the log file.
    """

    def __init__(self, bus: EventBus, console: Optional[Console] = None):
        self.bus = bus
        self.console = console or Console(stderr=True)
        self.status: Optional[Status] = None
        self.current_name: Optional[str] = None
        self.last_line: Optional[str] = None
        self._setup_subscriptions()

    def _setup_subscriptions(self):
        self.bus.subscribe(StageStarted, self.on_stage_started)
        self.bus.subscribe(JobStarted, self.on_job_started)
        self.bus.subscribe(JobProgressUpdated, self.on_job_progress)
        self.bus.subscribe(JobFinished, self.on_job_finished)

    def on_stage_started(self, event: StageStarted):
        self.console.rule(f"[bold]{event.stage}[/bold] {event.directory}", style="dim")

    def on_job_started(self, event: JobStarted):
        self.current_name = event.job.input_path.name
        self.last_line = f"{self.current_name}: starting"
        if self.status is None:
            self.status = Status(self.last_line, console=self.console)
            self.status.start()
        else:
            self.status.update(self.last_line)

    def on_job_progress(self, event: JobProgressUpdated):
        self.last_line = f"{event.job.input_path.name}: {format_progress(event.progress_percent, event.remaining_seconds)}"
        if self.status is not None:
            self.status.update(self.last_line)

    def on_job_finished(self, event: JobFinished):
        self.stop()
        self.current_name = None

    def stop(self):
        if self.status is not None:
            self.status.stop()
            self.status = None


def print_summary(console: Console, report: RunReport):
    """Per-stage outcome counts for one run."""
    table = Table(title="Run summary", show_header=True, header_style="bold")
    table.add_column("Stage")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    for stage in ("conversion", "filing", "dedupe"):
        if not getattr(report, stage):
            continue
        table.add_row(
            stage,
            str(report.count(Outcome.SUCCESS, stage)),
            str(report.count(Outcome.SKIPPED, stage)),
            str(report.count(Outcome.FAILED, stage)),
        )
    if table.row_count:
        console.print(table)
    if report.filing_skipped:
        console.print(
            f"[yellow]Filing skipped: {len(report.blocked_by)} video(s) not yet converted or still being written.[/yellow]"
        )

"""Domain events for the conversion and filing pipeline.

Events flow through the EventBus so progress and per-file decisions can be
rendered on the console status line without going through the persistent log.

See `infrastructure/event_bus.py` for the pub/sub mechanism.
"""

from pathlib import Path
from typing import Optional
from pydantic import BaseModel
from .models import ConversionJob, ItemResult


class Event(BaseModel):
    """Base class for all domain events."""

    pass


class JobEvent(Event):
    """Base class for events related to a specific conversion job."""

    job: ConversionJob


class JobStarted(JobEvent):
    """Emitted when the encoder is launched for a job."""

    pass


class JobProgressUpdated(JobEvent):
    """Emitted as the encoder reports elapsed output time."""

    progress_percent: float
    remaining_seconds: Optional[float] = None


class JobFinished(JobEvent):
    """Base class for the terminal events of a job, successful or not."""

    pass


class JobCompleted(JobFinished):
    """Emitted when a job's output is in place."""

    pass


class JobFailed(JobFinished):
    """Emitted when the encoder exits non-zero or is interrupted."""

    error_message: str


class StageStarted(Event):
    """Emitted when a pipeline stage begins scanning a root."""

    stage: str
    directory: Path


class ItemProcessed(Event):
    """Emitted for every per-file decision (moved, skipped, converted, deleted)."""

    stage: str
    result: ItemResult

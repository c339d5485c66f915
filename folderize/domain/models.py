from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class FilingDateSource(str, Enum):
    METADATA = "metadata"
    FILESYSTEM = "filesystem"


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class ConversionAction(str, Enum):
    ENCODE = "ENCODE"
    COPY = "COPY"
    SKIP = "SKIP"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"  # Ctrl+C during encoding


class FileStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    size_bytes: int
    created_at: datetime
    modified_at: datetime
    accessed_at: datetime


class MediaFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: Path
    stats: FileStats
    filing_date: datetime
    filing_date_source: FilingDateSource = FilingDateSource.FILESYSTEM
    warnings: List[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return self.path.stem

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


class FilingPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    destination_directory: Path
    destination_path: Path


class ConversionJob(BaseModel):
    input_path: Path
    output_path: Path
    action: ConversionAction = ConversionAction.ENCODE
    status: JobStatus = JobStatus.PENDING
    detected_codec: Optional[str] = None
    duration_seconds: Optional[float] = None
    original_timestamps: Optional[FileStats] = None
    error_message: Optional[str] = None
    progress_percent: float = 0.0

    @property
    def temp_path(self) -> Path:
        """Encoder writes here; renamed to output_path only on success."""
        return self.output_path.with_name(f"{self.output_path.name}.tmp")


class DuplicateGroup(BaseModel):
    directory: Path
    key: str
    target: Optional[Path] = None
    others: List[Path] = Field(default_factory=list)
    extra_targets: List[Path] = Field(default_factory=list)

    @property
    def is_candidate(self) -> bool:
        return self.target is not None and not self.extra_targets and len(self.others) > 0


class DuplicateMatch(BaseModel):
    path: Path
    target_path: Path
    duration: float
    target_duration: float

    @property
    def delta(self) -> float:
        return abs(self.target_duration - self.duration)


class ItemResult(BaseModel):
    """Per-file outcome reported by every pipeline stage."""

    outcome: Outcome
    reason: str
    path: Path
    destination: Optional[Path] = None


class RunReport(BaseModel):
    conversion: List[ItemResult] = Field(default_factory=list)
    filing: List[ItemResult] = Field(default_factory=list)
    dedupe: List[ItemResult] = Field(default_factory=list)
    filing_skipped: bool = False
    blocked_by: List[Path] = Field(default_factory=list)

    def count(self, outcome: Outcome, stage: Optional[str] = None) -> int:
        stages = [stage] if stage else ["conversion", "filing", "dedupe"]
        return sum(
            1 for name in stages for item in getattr(self, name) if item.outcome == outcome
        )

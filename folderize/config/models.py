from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


def _normalize_extensions(values: List[str]) -> List[str]:
    return [(ext if ext.startswith(".") else f".{ext}").lower() for ext in values]


class GeneralConfig(BaseModel):
    ignored_files: List[str] = Field(default_factory=lambda: [".DS_Store", "Thumbs.db"])
    # .png left out on purpose: mostly phone screenshots
    image_extensions: List[str] = Field(
        default_factory=lambda: [".jpg", ".jpeg", ".gif", ".heic", ".raw", ".cr2", ".nef"]
    )
    video_extensions: List[str] = Field(
        default_factory=lambda: [
            ".mov", ".mp2", ".mpg", ".mpeg", ".mp4", ".m4v",
            ".avi", ".wmv", ".flv", ".mkv", ".webm",
        ]
    )
    stability_threshold_s: float = Field(default=5.0, ge=0.0)
    continuous_interval_s: float = Field(default=3600.0, gt=0.0)
    heartbeat_every: int = Field(default=10, ge=1)
    convert_videos: bool = False
    delete_originals: bool = False
    stop_on_error: bool = False
    debug: bool = False
    log_dir: str = "logs"

    @field_validator("image_extensions", "video_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        return _normalize_extensions(v)

    @property
    def allowed_extensions(self) -> List[str]:
        """Extensions eligible for filing: images plus videos."""
        return self.image_extensions + [e for e in self.video_extensions if e not in self.image_extensions]


class VideoConfig(BaseModel):
    target_codec: str = "h264"
    target_extension: str = ".mp4"
    normalize_extensions: List[str] = Field(default_factory=lambda: [".mov"])
    video_encoder: str = "libx264"
    crf: int = Field(default=18, ge=0, le=51)
    preset: str = "medium"
    audio_codec: str = "aac"
    audio_bitrate: str = "160k"
    nice: Optional[int] = Field(default=0, ge=-20, le=19)
    duration_tolerance_s: float = Field(default=1.0, ge=0.0)

    @field_validator("target_extension")
    @classmethod
    def normalize_target_extension(cls, v: str) -> str:
        return _normalize_extensions([v])[0]

    @field_validator("normalize_extensions")
    @classmethod
    def normalize_normalize_extensions(cls, v: List[str]) -> List[str]:
        return _normalize_extensions(v)

    @field_validator("target_codec")
    @classmethod
    def lower_codec(cls, v: str) -> str:
        return v.strip().lower()


class AppConfig(BaseModel):
    general: GeneralConfig = Field(default_factory=GeneralConfig)
    video: VideoConfig = Field(default_factory=VideoConfig)

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Mapping


TimeValue = str | int | float


@dataclass(frozen=True)
class EncodingProfile:
    name: str
    crf: int
    audio_bitrate: str
    log_stderr: bool = False


STANDARD_PROFILE = EncodingProfile(name="standard", crf=23, audio_bitrate="128k")
HIGH_PROFILE = EncodingProfile(name="high", crf=18, audio_bitrate="192k", log_stderr=True)

PROFILES = {profile.name: profile for profile in (STANDARD_PROFILE, HIGH_PROFILE)}


@dataclass(frozen=True)
class Config:
    ffmpeg_path: str = "ffmpeg"
    profile: EncodingProfile = STANDARD_PROFILE


@dataclass(frozen=True)
class CodecData:
    format: str
    duration: str
    duration_sec: float | None
    video: str
    video_details: str
    audio: str
    audio_details: str


@dataclass(frozen=True)
class ProgressInfo:
    frames: int
    current_fps: float
    current_kbps: float
    target_size_kb: int
    timemark: str
    percent: float | None


@dataclass(frozen=True)
class ConversionResult:
    output_path: Path
    command_line: str
    duration_sec: float


@dataclass
class JobCallbacks:
    """One optional handler per job event; unset handlers keep the default."""

    on_start: Callable[[str], Any] | None = None
    on_end: Callable[[ConversionResult], Any] | None = None
    on_error: Callable[[Exception], Any] | None = None
    on_progress: Callable[[ProgressInfo], Any] | None = None
    on_stderr: Callable[[str], Any] | None = None
    on_codec_data: Callable[[CodecData], Any] | None = None

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> JobCallbacks:
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise TypeError(f"未知回调: {', '.join(unknown)}")
        return cls(**values)

    def merged_over(self, defaults: JobCallbacks) -> JobCallbacks:
        return JobCallbacks(
            **{
                item.name: getattr(self, item.name) or getattr(defaults, item.name)
                for item in fields(self)
            }
        )


from .artifact import build_codec_rows, build_download_artifact, build_log_csv
from .config import load_config, validate_runtime
from .converter import (
    InvalidArgumentError,
    M3u8ToMp4Converter,
    MissingConfigurationError,
    default_callbacks,
)
from .ffmpeg_pipeline import ConversionError, FFmpegError, build_command, parse_timemark
from .models import (
    HIGH_PROFILE,
    PROFILES,
    STANDARD_PROFILE,
    CodecData,
    Config,
    ConversionResult,
    EncodingProfile,
    JobCallbacks,
    ProgressInfo,
)

__all__ = [
    "CodecData",
    "Config",
    "ConversionError",
    "ConversionResult",
    "EncodingProfile",
    "FFmpegError",
    "HIGH_PROFILE",
    "InvalidArgumentError",
    "JobCallbacks",
    "M3u8ToMp4Converter",
    "MissingConfigurationError",
    "PROFILES",
    "ProgressInfo",
    "STANDARD_PROFILE",
    "build_codec_rows",
    "build_command",
    "build_download_artifact",
    "build_log_csv",
    "default_callbacks",
    "load_config",
    "parse_timemark",
    "validate_runtime",
]

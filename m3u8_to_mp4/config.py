from __future__ import annotations

import os
import shutil

from .models import PROFILES, STANDARD_PROFILE, Config, EncodingProfile


def _read_str(env_name: str, default: str) -> str:
    raw = os.getenv(env_name)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _read_profile(env_name: str, default: EncodingProfile) -> EncodingProfile:
    name = _read_str(env_name, default.name).lower()
    return PROFILES.get(name, default)


def load_config() -> Config:
    return Config(
        ffmpeg_path=_read_str("M2M_FFMPEG_PATH", "ffmpeg"),
        profile=_read_profile("M2M_PROFILE", STANDARD_PROFILE),
    )


def validate_runtime(config: Config) -> list[str]:
    errors: list[str] = []
    if shutil.which(config.ffmpeg_path) is None:
        errors.append(f"未找到 ffmpeg 可执行文件: {config.ffmpeg_path}")
    return errors

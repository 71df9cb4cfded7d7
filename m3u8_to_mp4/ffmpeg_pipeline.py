from __future__ import annotations

import re
from collections import deque
from typing import IO, Any, Callable, Iterable

from .models import CodecData, EncodingProfile, ProgressInfo, TimeValue


class ConversionError(RuntimeError):
    pass


class FFmpegError(ConversionError):
    def __init__(self, message: str, returncode: int | None = None, command: list[str] | None = None):
        super().__init__(message)
        self.returncode = returncode
        self.command = command


STDERR_TAIL_LINES = 20

_RE_INPUT = re.compile(r"^Input #\d+, (.+?), from ")
_RE_DURATION = re.compile(r"^\s*Duration: ([^,]+),")
_RE_STREAM = re.compile(r"^\s*Stream #\d+:\d+.*?: (Video|Audio): (.*)$")
_RE_KEY_VALUE = re.compile(r"(\w+)=\s*(\S+)")
_RE_LEADING_NUMBER = re.compile(r"^\d+(?:\.\d+)?")


def build_output_options(profile: EncodingProfile) -> list[str]:
    return [
        "-c:v",
        "libx264",
        "-preset",
        "medium",
        "-crf",
        str(profile.crf),
        # 每帧都是关键帧，-ss 裁剪点才能精确
        "-g",
        "1",
        "-c:a",
        "aac",
        "-b:a",
        profile.audio_bitrate,
        "-bsf:a",
        "aac_adtstoasc",
        "-map",
        "0",
        "-f",
        "mp4",
    ]


def build_command(
    ffmpeg_path: str,
    input_source: str,
    output_path: str,
    profile: EncodingProfile,
    start_time: TimeValue | None = None,
    duration: TimeValue | None = None,
) -> list[str]:
    cmd = [ffmpeg_path, "-y", "-hide_banner", "-i", input_source]
    if start_time is not None:
        cmd.extend(["-ss", str(start_time)])
    if duration is not None:
        cmd.extend(["-t", str(duration)])
    cmd.extend(build_output_options(profile))
    cmd.append(output_path)
    return cmd


def parse_timemark(value: TimeValue | None) -> float | None:
    """Convert seconds or an ``[HH:]MM:SS[.ms]`` string to seconds.

    Returns None for anything ffmpeg would not report as a position,
    including ``N/A``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    sign = 1.0
    if text.startswith("-"):
        sign = -1.0
        text = text[1:]
    if not text:
        return None
    parts = text.split(":")
    if len(parts) > 3:
        return None
    try:
        numbers = [float(part) for part in parts]
    except ValueError:
        return None

    seconds = 0.0
    for number in numbers:
        seconds = seconds * 60 + number
    return sign * seconds


def _leading_float(raw: str | None) -> float:
    if not raw:
        return 0.0
    match = _RE_LEADING_NUMBER.match(raw)
    return float(match.group(0)) if match else 0.0


class StderrParser:
    """Turns ffmpeg's stderr lines into codec-data and progress events.

    ``length_sec`` is the expected output length when the caller already knows
    it (an explicit ``-t``); otherwise it is taken from the input duration
    minus ``start_offset_sec`` once ffmpeg reports it.
    """

    def __init__(self, length_sec: float | None = None, start_offset_sec: float = 0.0):
        self.length_sec = length_sec
        self.start_offset_sec = start_offset_sec
        self.codec_data: CodecData | None = None
        self._in_input = False
        self._input_fields = {
            "format": "",
            "duration": "",
            "video": "",
            "video_details": "",
            "audio": "",
            "audio_details": "",
        }

    def feed(self, line: str) -> CodecData | ProgressInfo | None:
        if self.codec_data is None:
            codec_data = self._feed_input_section(line)
            if codec_data is not None:
                return codec_data

        if "time=" in line and "size=" in line:
            return self._parse_progress(line)
        return None

    def _feed_input_section(self, line: str) -> CodecData | None:
        match = _RE_INPUT.match(line)
        if match:
            self._in_input = True
            self._input_fields["format"] = match.group(1)
            return None

        if not self._in_input:
            return None

        if line.startswith("Output #") or line.startswith("Stream mapping:"):
            return self._emit_codec_data()

        match = _RE_DURATION.match(line)
        if match:
            self._input_fields["duration"] = match.group(1).strip()
            return None

        match = _RE_STREAM.match(line)
        if match:
            kind = match.group(1).lower()
            if not self._input_fields[kind]:
                codec, _, details = match.group(2).partition(" ")
                self._input_fields[kind] = codec.rstrip(",")
                self._input_fields[f"{kind}_details"] = details.strip()
        return None

    def _emit_codec_data(self) -> CodecData:
        self._in_input = False
        duration = self._input_fields["duration"]
        duration_sec = parse_timemark(duration)
        self.codec_data = CodecData(duration_sec=duration_sec, **self._input_fields)

        if self.length_sec is None and duration_sec is not None:
            self.length_sec = max(duration_sec - self.start_offset_sec, 0.0)
        return self.codec_data

    def _parse_progress(self, line: str) -> ProgressInfo | None:
        values = dict(_RE_KEY_VALUE.findall(line))
        timemark = values.get("time", "")
        position = parse_timemark(timemark)

        percent = None
        if position is not None and self.length_sec:
            percent = round(min(max(position / self.length_sec * 100, 0.0), 100.0), 2)

        return ProgressInfo(
            frames=int(_leading_float(values.get("frame"))),
            current_fps=_leading_float(values.get("fps")),
            current_kbps=_leading_float(values.get("bitrate")),
            target_size_kb=int(_leading_float(values.get("size") or values.get("Lsize"))),
            timemark=timemark,
            percent=percent,
        )


def stream_stderr(
    stderr: IO[str] | Iterable[str],
    parser: StderrParser,
    on_stderr: Callable[[str], Any],
    on_codec_data: Callable[[CodecData], Any],
    on_progress: Callable[[ProgressInfo], Any],
) -> list[str]:
    """Relay every stderr line to the handlers and return the last few lines."""
    tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    for raw_line in stderr:
        line = raw_line.rstrip("\r\n")
        if not line.strip():
            continue
        tail.append(line)
        on_stderr(line)

        event = parser.feed(line)
        if isinstance(event, CodecData):
            on_codec_data(event)
        elif isinstance(event, ProgressInfo):
            on_progress(event)

    return list(tail)


def failure_message(tail: list[str], returncode: int) -> str:
    for line in reversed(tail):
        if line.strip():
            return line.strip()
    return f"ffmpeg 执行失败 (退出码 {returncode})"

from __future__ import annotations

import codecs
from pathlib import Path

import pytest

from m3u8_to_mp4.artifact import build_codec_rows, build_download_artifact, build_log_csv
from m3u8_to_mp4.models import CodecData, ConversionResult


def test_download_artifact_returns_mp4_bytes(tmp_path: Path) -> None:
    output_path = tmp_path / "clip.mp4"
    output_path.write_bytes(b"video-bytes")
    result = ConversionResult(output_path=output_path, command_line="ffmpeg", duration_sec=1.0)

    assert build_download_artifact(result) == ("video/mp4", "clip.mp4", b"video-bytes")


def test_download_artifact_requires_output_file(tmp_path: Path) -> None:
    result = ConversionResult(output_path=tmp_path / "missing.mp4", command_line="ffmpeg", duration_sec=0.0)

    with pytest.raises(FileNotFoundError):
        build_download_artifact(result)


def test_codec_rows_skip_missing_streams() -> None:
    data = CodecData(
        format="hls",
        duration="00:00:10.00",
        duration_sec=10.0,
        video="h264",
        video_details="(Main), yuv420p",
        audio="",
        audio_details="",
    )

    rows = build_codec_rows(data)

    assert [row["field"] for row in rows] == ["format", "duration", "video"]
    assert rows[2]["value"] == "h264 (Main), yuv420p"


def test_log_csv_uses_utf8_bom() -> None:
    payload = build_log_csv(["a", "b,c"])

    assert payload.startswith(codecs.BOM_UTF8)
    assert payload.decode("utf-8-sig").splitlines() == ["line", "a", '"b,c"']

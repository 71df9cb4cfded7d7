from __future__ import annotations

import csv
import io

from .models import CodecData, ConversionResult


def build_download_artifact(result: ConversionResult) -> tuple[str, str, bytes]:
    output_path = result.output_path
    if not output_path.is_file():
        raise FileNotFoundError(f"输出文件不存在: {output_path}")
    return "video/mp4", output_path.name, output_path.read_bytes()


def build_codec_rows(codec_data: CodecData) -> list[dict[str, str]]:
    rows = [
        {"field": "format", "value": codec_data.format},
        {"field": "duration", "value": codec_data.duration},
    ]
    if codec_data.video:
        rows.append({"field": "video", "value": f"{codec_data.video} {codec_data.video_details}".strip()})
    if codec_data.audio:
        rows.append({"field": "audio", "value": f"{codec_data.audio} {codec_data.audio_details}".strip()})
    return rows


def build_log_csv(lines: list[str]) -> bytes:
    sio = io.StringIO(newline="")
    writer = csv.writer(sio)
    writer.writerow(["line"])
    for line in lines:
        writer.writerow([line])
    return sio.getvalue().encode("utf-8-sig")

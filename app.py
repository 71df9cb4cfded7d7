from __future__ import annotations

import queue
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

import pandas as pd
import streamlit as st

from m3u8_to_mp4.artifact import build_codec_rows, build_download_artifact, build_log_csv
from m3u8_to_mp4.config import load_config, validate_runtime
from m3u8_to_mp4.converter import InvalidArgumentError, M3u8ToMp4Converter
from m3u8_to_mp4.ffmpeg_pipeline import ConversionError
from m3u8_to_mp4.models import PROFILES, CodecData, Config, ProgressInfo


POLL_INTERVAL_SEC = 0.2


def _optional_time(raw: str) -> str | None:
    value = raw.strip()
    return value if value else None


def _output_name(raw: str) -> str:
    name = raw.strip() or "output.mp4"
    return name if name.lower().endswith(".mp4") else f"{name}.mp4"


st.set_page_config(page_title="M3U8 转 MP4", layout="wide")
st.title("M3U8 转 MP4 工具")

env_config = load_config()

profile_name = st.selectbox(
    "编码档位",
    options=list(PROFILES),
    index=list(PROFILES).index(env_config.profile.name),
)
config = Config(
    ffmpeg_path=env_config.ffmpeg_path,
    profile=PROFILES[profile_name],
)

st.caption(
    "当前配置: "
    f"ffmpeg={config.ffmpeg_path} | "
    f"profile={config.profile.name} | "
    f"crf={config.profile.crf} | "
    f"audio_bitrate={config.profile.audio_bitrate}"
)

runtime_errors = validate_runtime(config)
if runtime_errors:
    st.error("运行前置检查未通过：\n- " + "\n- ".join(runtime_errors))

with st.expander("输入说明", expanded=False):
    st.markdown(
        "\n".join(
            [
                "- 输入可以是本地 `.m3u8` 路径，也可以是远程 `http/https` 地址",
                "- 开始时间支持秒数或 `HH:MM:SS`，留空表示从头开始",
                "- 时长为秒数或 `HH:MM:SS`，留空表示直到结尾",
            ]
        )
    )

input_source = st.text_input("M3U8 地址", placeholder="https://example.com/live/index.m3u8")
time_col, duration_col, name_col = st.columns(3)
with time_col:
    start_time_input = st.text_input("开始时间（可选）", placeholder="00:01:30")
with duration_col:
    duration_input = st.text_input("时长（可选）", placeholder="30")
with name_col:
    output_name_input = st.text_input("输出文件名", value="output.mp4")

if "m2m_download" not in st.session_state:
    st.session_state["m2m_download"] = None
if "m2m_logs" not in st.session_state:
    st.session_state["m2m_logs"] = []
if "m2m_codec" not in st.session_state:
    st.session_state["m2m_codec"] = None

start_clicked = st.button("开始转换", type="primary", disabled=bool(runtime_errors))

if start_clicked:
    st.session_state["m2m_download"] = None
    st.session_state["m2m_logs"] = []
    st.session_state["m2m_codec"] = None

    progress_box = st.progress(0)
    status_box = st.empty()
    log_box = st.empty()
    logs: list[str] = []
    events: queue.Queue[tuple[str, object]] = queue.Queue()

    def log_cb(message: str) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        logs.append(f"[{ts}] {message}")
        log_box.code("\n".join(logs[-200:]))

    work_dir = Path(tempfile.mkdtemp(prefix="m3u8_to_mp4_"))
    output_path = work_dir / _output_name(output_name_input)

    try:
        converter = M3u8ToMp4Converter(config=config).set_input_file(input_source.strip())
        converter.set_output_file(output_path)
        start_time = _optional_time(start_time_input)
        if start_time is not None:
            converter.set_start_time(start_time)
        duration = _optional_time(duration_input)
        if duration is not None:
            converter.set_duration(duration)
    except InvalidArgumentError as exc:
        st.warning(str(exc))
        shutil.rmtree(work_dir, ignore_errors=True)
        st.stop()

    # 回调运行在转换线程里，界面只能在脚本线程里更新
    future = converter.start(
        on_start=lambda command_line: events.put(("start", command_line)),
        on_codec_data=lambda data: events.put(("codec", data)),
        on_progress=lambda progress: events.put(("progress", progress)),
        on_stderr=lambda line: events.put(("stderr", line)),
    )

    while True:
        try:
            kind, payload = events.get(timeout=POLL_INTERVAL_SEC)
        except queue.Empty:
            if future.done() and events.empty():
                break
            continue

        if kind == "start":
            log_cb(f"ffmpeg 命令: {payload}")
        elif kind == "codec" and isinstance(payload, CodecData):
            st.session_state["m2m_codec"] = build_codec_rows(payload)
            log_cb(f"输入格式: {payload.format}，时长: {payload.duration}")
        elif kind == "progress" and isinstance(payload, ProgressInfo):
            if payload.percent is not None:
                progress_box.progress(min(max(payload.percent / 100, 0.0), 1.0))
            status_box.text(f"已处理 {payload.timemark}，{payload.current_fps:g} fps")
        elif kind == "stderr":
            logs.append(str(payload))

    try:
        result = future.result()
    except ConversionError as exc:
        st.error(f"转换失败: {exc}")
    else:
        progress_box.progress(1.0)
        log_cb(f"转换完成，用时 {result.duration_sec:.1f} 秒")
        mime, file_name, data = build_download_artifact(result)
        st.session_state["m2m_download"] = {
            "mime": mime,
            "file_name": file_name,
            "data": data,
        }
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)

    st.session_state["m2m_logs"] = logs

if st.session_state.get("m2m_codec"):
    st.subheader("输入信息")
    st.dataframe(pd.DataFrame(st.session_state["m2m_codec"]), use_container_width=True)

if st.session_state.get("m2m_logs"):
    logs = st.session_state["m2m_logs"]
    st.subheader("ffmpeg 日志")
    st.code("\n".join(logs[-500:]))
    st.download_button(
        label="下载日志",
        data=build_log_csv(logs),
        file_name="ffmpeg-log.csv",
        mime="text/csv",
    )

download_obj = st.session_state.get("m2m_download")
if download_obj:
    st.download_button(
        label=f"下载结果：{download_obj['file_name']}",
        data=download_obj["data"],
        file_name=download_obj["file_name"],
        mime=download_obj["mime"],
    )

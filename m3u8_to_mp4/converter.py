from __future__ import annotations

import logging
import shlex
import subprocess
import threading
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Mapping

from .config import load_config
from .ffmpeg_pipeline import (
    ConversionError,
    FFmpegError,
    StderrParser,
    build_command,
    failure_message,
    parse_timemark,
    stream_stderr,
)
from .models import (
    CodecData,
    Config,
    ConversionResult,
    JobCallbacks,
    ProgressInfo,
    TimeValue,
)


logger = logging.getLogger(__name__)

PopenFactory = Callable[..., Any]


class InvalidArgumentError(ValueError):
    pass


class MissingConfigurationError(ConversionError):
    pass


def _log_start(command_line: str) -> None:
    logger.info("ffmpeg 命令: %s", command_line)


def _log_codec_data(data: CodecData) -> None:
    logger.info("输入编码信息: %s", data)


def _log_progress(progress: ProgressInfo) -> None:
    if progress.percent is None:
        logger.info("进度: %s", progress.timemark)
    else:
        logger.info("进度: %s%%", progress.percent)


def _log_stderr(line: str) -> None:
    logger.debug("ffmpeg 输出: %s", line)


def _ignore(*_args: Any) -> None:
    return None


def default_callbacks(log_stderr: bool = False) -> JobCallbacks:
    return JobCallbacks(
        on_start=_log_start,
        on_end=_ignore,
        on_error=_ignore,
        on_progress=_log_progress,
        on_stderr=_log_stderr if log_stderr else _ignore,
        on_codec_data=_log_codec_data,
    )


class M3u8ToMp4Converter:
    """Builds and runs one ffmpeg job turning an HLS playlist into an MP4 file.

    Usage::

        future = (
            M3u8ToMp4Converter()
            .set_input_file("https://example.com/live/index.m3u8")
            .set_output_file("out.mp4")
            .set_start_time("00:01:30")
            .set_duration(30)
            .start(on_progress=print)
        )
        result = future.result()

    ``start`` never blocks: ffmpeg runs on its own thread and the returned
    future is settled exactly once, after ``on_end`` or ``on_error`` ran.
    """

    def __init__(self, config: Config | None = None, popen: PopenFactory = subprocess.Popen):
        self.config = config or load_config()
        self._popen = popen
        self.input_source: str | None = None
        self.output_path: str | None = None
        self.start_time: TimeValue | None = None
        self.duration: TimeValue | None = None

    def set_input_file(self, source: str | Path) -> M3u8ToMp4Converter:
        if source is None or str(source) == "":
            raise InvalidArgumentError("必须指定 M3U8 文件地址")
        self.input_source = str(source)
        return self

    def set_output_file(self, path: str | Path) -> M3u8ToMp4Converter:
        if path is None or str(path) == "":
            raise InvalidArgumentError("必须指定输出文件路径")
        self.output_path = str(path)
        return self

    def set_start_time(self, time_value: TimeValue) -> M3u8ToMp4Converter:
        if time_value is None:
            raise InvalidArgumentError("必须指定有效的开始时间")
        self.start_time = time_value
        return self

    def set_duration(self, time_value: TimeValue) -> M3u8ToMp4Converter:
        if time_value is None:
            raise InvalidArgumentError("必须指定有效的时长")
        self.duration = time_value
        return self

    def build_command(self) -> list[str]:
        if not self.input_source or not self.output_path:
            raise MissingConfigurationError("必须同时指定输入和输出文件")
        return build_command(
            ffmpeg_path=self.config.ffmpeg_path,
            input_source=self.input_source,
            output_path=self.output_path,
            profile=self.config.profile,
            start_time=self.start_time,
            duration=self.duration,
        )

    def start(
        self,
        callbacks: JobCallbacks | Mapping[str, Any] | None = None,
        **handlers: Any,
    ) -> Future[ConversionResult]:
        future: Future[ConversionResult] = Future()
        future.set_running_or_notify_cancel()

        if callbacks is None:
            callbacks = JobCallbacks()
        elif not isinstance(callbacks, JobCallbacks):
            callbacks = JobCallbacks.from_mapping(callbacks)
        if handlers:
            overrides = JobCallbacks.from_mapping(handlers)
            callbacks = overrides.merged_over(callbacks)
        resolved = callbacks.merged_over(default_callbacks(self.config.profile.log_stderr))

        try:
            command = self.build_command()
        except MissingConfigurationError as exc:
            future.set_exception(exc)
            return future

        parser = StderrParser(
            length_sec=parse_timemark(self.duration),
            start_offset_sec=parse_timemark(self.start_time) or 0.0,
        )
        output_path = Path(command[-1])
        worker = threading.Thread(
            target=self._run,
            args=(command, output_path, parser, resolved, future),
            name=f"m3u8-to-mp4:{output_path.name}",
        )
        worker.start()
        return future

    def _run(
        self,
        command: list[str],
        output_path: Path,
        parser: StderrParser,
        callbacks: JobCallbacks,
        future: Future[ConversionResult],
    ) -> None:
        started_at = time.monotonic()
        command_line = shlex.join(command)

        try:
            self._execute(command, command_line, parser, callbacks)
        except FFmpegError as exc:
            logger.warning("转换失败: %s", exc)
            self._fail(callbacks, future, exc)
            return
        except Exception as exc:  # noqa: BLE001
            logger.exception("转换中止")
            future.set_exception(exc)
            return

        result = ConversionResult(
            output_path=output_path,
            command_line=command_line,
            duration_sec=time.monotonic() - started_at,
        )
        try:
            callbacks.on_end(result)
        except Exception as exc:  # noqa: BLE001
            logger.exception("on_end 回调出错")
            future.set_exception(exc)
            return
        future.set_result(result)

    def _execute(
        self,
        command: list[str],
        command_line: str,
        parser: StderrParser,
        callbacks: JobCallbacks,
    ) -> None:
        try:
            process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise FFmpegError(f"无法启动 ffmpeg: {exc}", command=command) from exc

        try:
            logger.debug("ffmpeg 已启动 pid=%s", getattr(process, "pid", None))
            callbacks.on_start(command_line)
            tail = stream_stderr(
                process.stderr,
                parser,
                on_stderr=callbacks.on_stderr,
                on_codec_data=callbacks.on_codec_data,
                on_progress=callbacks.on_progress,
            )
            returncode = process.wait()
        except BaseException:
            # 回调自身抛错：先结束进程再向上抛
            if process.poll() is None:
                process.kill()
                process.wait()
            raise
        finally:
            if process.stderr is not None:
                process.stderr.close()

        if returncode != 0:
            raise FFmpegError(
                failure_message(tail, returncode),
                returncode=returncode,
                command=command,
            )

    @staticmethod
    def _fail(callbacks: JobCallbacks, future: Future[ConversionResult], error: FFmpegError) -> None:
        try:
            callbacks.on_error(error)
        except Exception:  # noqa: BLE001
            logger.exception("on_error 回调出错")
        future.set_exception(error)

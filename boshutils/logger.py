"""Levelled, tagged logging to a text stream, with a non-blocking variant."""

from __future__ import annotations

import contextlib
import enum
import queue
import sys
import threading
import time
import traceback
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator, Protocol, Sequence

_LEVEL_NAMES = ("DEBUG", "INFO", "WARN", "ERROR", "NONE")
_DETAILS_SUFFIX = "\n********************\n%s\n********************"
_QUEUE_CAPACITY = 512


class LogLevel(enum.IntEnum):
    """Severity threshold for a logger or a tag."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    NONE = 99


def levelify(level_string: str) -> LogLevel:
    """Parse a level name, case-insensitively."""
    try:
        return LogLevel[level_string.upper()]
    except KeyError:
        expected = ", ".join(_LEVEL_NAMES)
        raise ValueError(
            f"Unknown LogLevel string '{level_string}', expected one of [{expected}]"
        ) from None


def as_string(level: int) -> str:
    """Return the name of a level, or "DEBUG" for an unknown one."""
    try:
        return LogLevel(level).name
    except ValueError:
        return "DEBUG"


@dataclass(frozen=True)
class LogTag:
    """A per-tag override of the logger's level."""

    name: str
    log_level: int


class _Writer(Protocol):
    def write(self, text: str) -> Any: ...


def _format(msg: str, args: Sequence[Any]) -> str:
    try:
        return msg % tuple(args)
    except (TypeError, ValueError):
        if not args:
            return msg
        return msg + " " + " ".join(str(arg) for arg in args)


class Logger:
    """Writes one line per message: "[tag] timestamp LEVEL - message"."""

    def __init__(self, level: int, writer: _Writer) -> None:
        self.level = level
        self._writer = writer
        self._lock = threading.Lock()
        self._forced_debug = False
        self._rfc3339 = False
        self._tags: list[LogTag] = []

    def use_rfc3339_timestamps(self) -> None:
        self._rfc3339 = True

    def use_tags(self, tags: Sequence[LogTag]) -> None:
        self._tags = list(tags)

    def toggle_forced_debug(self) -> None:
        self._forced_debug = not self._forced_debug

    def flush(self) -> None:
        """Nothing is buffered; present for interface compatibility."""

    def flush_timeout(self, timeout: float) -> None:
        """Nothing is buffered; present for interface compatibility."""

    def debug(self, tag: str, msg: str, *args: Any) -> None:
        self._log(LogLevel.DEBUG, tag, msg, args)

    def debug_with_details(self, tag: str, msg: str, *args: Any) -> None:
        self.debug(tag, msg + _DETAILS_SUFFIX, *args)

    def info(self, tag: str, msg: str, *args: Any) -> None:
        self._log(LogLevel.INFO, tag, msg, args)

    def warn(self, tag: str, msg: str, *args: Any) -> None:
        self._log(LogLevel.WARN, tag, msg, args)

    def error(self, tag: str, msg: str, *args: Any) -> None:
        self._log(LogLevel.ERROR, tag, msg, args)

    def error_with_details(self, tag: str, msg: str, *args: Any) -> None:
        self.error(tag, msg + _DETAILS_SUFFIX, *args)

    @contextlib.contextmanager
    def handle_panic(self, tag: str) -> Iterator[None]:
        """Log an escaping exception with its traceback and exit with status 2."""
        try:
            yield
        except Exception as exc:
            self._report_panic(tag, exc)
            raise SystemExit(2) from exc

    def _report_panic(self, tag: str, exc: BaseException) -> None:
        self.error_with_details(tag, "Panic: %s", str(exc), traceback.format_exc())

    def _level_for(self, tag: str) -> int:
        for log_tag in self._tags:
            if log_tag.name == tag:
                return log_tag.log_level
        return self.level

    def _log(self, threshold: LogLevel, tag: str, msg: str, args: Sequence[Any]) -> None:
        if self._level_for(tag) > threshold and not self._forced_debug:
            return
        self._print(tag, f"{threshold.name} - {msg}", args)

    def _timestamp(self) -> str:
        ns = time.time_ns()
        moment = datetime.fromtimestamp(ns // 1_000_000_000)
        if self._rfc3339:
            return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{ns % 1_000_000_000:09d}Z"
        return moment.strftime("%Y/%m/%d %H:%M:%S")

    def _print(self, tag: str, msg: str, args: Sequence[Any]) -> None:
        text = _format(msg, args)
        with self._lock:
            line = f"[{tag}] {self._timestamp()} {text}"
            if not line.endswith("\n"):
                line += "\n"
            self._writer.write(line)
            flush = getattr(self._writer, "flush", None)
            if callable(flush):
                flush()


class _AsyncWriter:
    """Queues text and writes it to the target from a background thread."""

    def __init__(self, target: _Writer) -> None:
        self._target = target
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=_QUEUE_CAPACITY)
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def write(self, text: str) -> int:
        self._queue.put(text)
        return len(text)

    def request_drain(self) -> threading.Event:
        done = threading.Event()
        self._queue.put(done)
        return done

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if isinstance(item, threading.Event):
                item.set()
                continue
            try:
                self._target.write(item)
                flush = getattr(self._target, "flush", None)
                if callable(flush):
                    flush()
            except Exception:
                pass


class AsyncLogger(Logger):
    """A logger whose writes never wait for the underlying stream."""

    def __init__(self, level: int, writer: _Writer) -> None:
        self._async_writer = _AsyncWriter(writer)
        super().__init__(level, self._async_writer)

    def flush(self) -> None:
        """Wait until everything queued so far has been written."""
        self._async_writer.request_drain().wait()

    def flush_timeout(self, timeout: float) -> None:
        """Like flush, but raise TimeoutError after timeout seconds."""
        if not self._async_writer.request_drain().wait(timeout):
            raise TimeoutError(f"logger: flush timed out after {timeout}s")

    @contextlib.contextmanager
    def handle_panic(self, tag: str) -> Iterator[None]:
        """Log an escaping exception, flush pending output and exit with status 2."""
        try:
            yield
        except Exception as exc:
            self._report_panic(tag, exc)
            with contextlib.suppress(TimeoutError):
                self.flush_timeout(30)
            raise SystemExit(2) from exc


def new_logger(level: int) -> Logger:
    """A logger writing to standard error."""
    return Logger(level, sys.stderr)


def new_writer_logger(level: int, writer: _Writer) -> Logger:
    return Logger(level, writer)


def new_async_writer_logger(level: int, writer: _Writer) -> AsyncLogger:
    return AsyncLogger(level, writer)
"""Leveled logger writing to standard output and a dated log file."""

from __future__ import annotations

import os
import sys
import threading
from datetime import date, datetime
from enum import IntEnum
from pathlib import Path
from typing import Any, TextIO


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4


def parse_log_level(level: str) -> LogLevel:
    """Map a level name to a LogLevel; unknown names give INFO."""
    name = level.upper()
    if name == "WARNING":
        return LogLevel.WARN
    return LogLevel.__members__.get(name, LogLevel.INFO)


class Logger:
    """Writes ``[time] LEVEL [file:line] message`` lines to ``stream`` and,
    when ``log_dir`` is given, to ``app_YYYY-MM-DD.log`` inside it."""

    def __init__(
        self,
        level: str = "info",
        log_dir: str | os.PathLike[str] | None = "logs",
        stream: TextIO | None = None,
    ) -> None:
        self._level = parse_log_level(level)
        self._enabled = True
        self._stream = stream
        self._lock = threading.Lock()
        self._file: TextIO | None = None
        if log_dir is not None:
            directory = Path(log_dir)
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                print(f"Failed to create logs directory: {exc}", file=sys.stderr)
            try:
                self._file = (directory / f"app_{date.today():%Y-%m-%d}.log").open(
                    "a", encoding="utf-8"
                )
            except OSError as exc:
                print(f"Failed to open log file: {exc}", file=sys.stderr)

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _log(self, level: LogLevel, message: str, args: tuple[Any, ...]) -> None:
        if not self._enabled or level < self._level:
            return
        try:
            frame = sys._getframe(2)
            caller = f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"
        except ValueError:
            caller = "unknown"
        text = message % args if args else message
        line = f"[{datetime.now():%Y-%m-%d %H:%M:%S}] {level.name} [{caller}] {text}\n"

        with self._lock:
            for out in (self._stream or sys.stdout, self._file):
                if out is not None:
                    out.write(line)
                    out.flush()

        if level is LogLevel.FATAL:
            self.close()
            raise SystemExit(1)

    def debug(self, message: str, *args: Any) -> None:
        self._log(LogLevel.DEBUG, message, args)

    def info(self, message: str, *args: Any) -> None:
        self._log(LogLevel.INFO, message, args)

    def warn(self, message: str, *args: Any) -> None:
        self._log(LogLevel.WARN, message, args)

    def error(self, message: str, *args: Any) -> None:
        self._log(LogLevel.ERROR, message, args)

    def fatal(self, message: str, *args: Any) -> None:
        """Log the message, close the log file and exit with status 1."""
        self._log(LogLevel.FATAL, message, args)

    def set_level(self, level: str) -> None:
        self._level = parse_log_level(level)

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> Logger:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
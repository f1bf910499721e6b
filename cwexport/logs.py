"""Structured key/value logging in logfmt or JSON."""

from __future__ import annotations

import json
import os
import sys
import threading
from datetime import datetime, timezone
from typing import Any, TextIO


def _caller() -> str:
    frame = sys._getframe(1)
    while frame is not None and frame.f_code.co_filename == __file__:
        frame = frame.f_back
    if frame is None:
        return ""
    return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


def _timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.%f") + "Z"


def _logfmt_value(value: Any) -> str:
    if value is None:
        return "null"
    text = str(value)
    if text == "" or any(ch in text for ch in ' ="\\') or not text.isprintable():
        return json.dumps(text, ensure_ascii=False)
    return text


class Logger:
    """A leveled logger carrying bound key/value fields."""

    def __init__(
        self,
        stream: TextIO | None = None,
        log_format: str = "logfmt",
        debug_enabled: bool = False,
        fields: dict[str, Any] | None = None,
        lock: threading.Lock | None = None,
    ) -> None:
        self._stream = stream
        self._format = log_format
        self._debug_enabled = debug_enabled
        self._fields = dict(fields or {})
        self._lock = lock or threading.Lock()

    def _log(self, level: str, message: str, extra: dict[str, Any]) -> None:
        if self._stream is None:
            return
        record: dict[str, Any] = {"level": level, "ts": _timestamp(), "caller": _caller()}
        record.update(self._fields)
        record["msg"] = message
        record.update(extra)
        if self._format == "json":
            line = json.dumps(record, default=str)
        else:
            line = " ".join(f"{key}={_logfmt_value(value)}" for key, value in record.items())
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log at debug level, only when debug output is enabled."""
        if self._debug_enabled:
            self._log("debug", message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """Log at info level."""
        self._log("info", message, kwargs)

    def warn(self, message: str, **kwargs: Any) -> None:
        """Log at warn level."""
        self._log("warn", message, kwargs)

    def error(self, err: BaseException | str | None, message: str, **kwargs: Any) -> None:
        """Log an error at error level."""
        self._log("error", message, {"err": err, **kwargs})

    def with_fields(self, **kwargs: Any) -> Logger:
        """Return a logger that adds the given fields to every record."""
        return Logger(
            stream=self._stream,
            log_format=self._format,
            debug_enabled=self._debug_enabled,
            fields={**self._fields, **kwargs},
            lock=self._lock,
        )

    def is_debug_enabled(self) -> bool:
        return self._debug_enabled


def new_logger(
    log_format: str, debug_enabled: bool, stream: TextIO | None = None, **kwargs: Any
) -> Logger:
    """Create a logger writing "json" or logfmt records, to stderr by default."""
    return Logger(
        stream=sys.stderr if stream is None else stream,
        log_format="json" if log_format == "json" else "logfmt",
        debug_enabled=debug_enabled,
        fields=kwargs,
    )


def new_nop_logger() -> Logger:
    """Create a logger that discards everything."""
    return Logger()
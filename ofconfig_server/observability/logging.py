"""Process-wide logging sink.

All diagnostic output goes through the standard-library root logger, set up
once by the lifecycle and re-targeted after daemonization:

- foreground: syslog (facility daemon, tagged ``ident[pid]``) plus JSON lines
  on stderr
- daemon: syslog only

The verbosity scale is the four-level one operators pass with ``-v`` and
``OFC_VERBOSE``; it maps onto stdlib levels.
"""

from __future__ import annotations

import enum
import json
import logging
import logging.handlers
import os
import sys
from typing import Any

from .context import snapshot


class Verbosity(enum.IntEnum):
    ERROR = 0
    WARNING = 1
    VERBOSE = 2
    DEBUG = 3

    @classmethod
    def clamp(cls, value: int) -> "Verbosity":
        if value < cls.ERROR:
            return cls.ERROR
        if value > cls.DEBUG:
            return cls.DEBUG
        return cls(value)

    @property
    def log_level(self) -> int:
        return _LOG_LEVELS[self]


_LOG_LEVELS = {
    Verbosity.ERROR: logging.ERROR,
    Verbosity.WARNING: logging.WARNING,
    Verbosity.VERBOSE: logging.INFO,
    Verbosity.DEBUG: logging.DEBUG,
}

_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON line formatter for the terminal sink."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        payload: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }
        payload.update(snapshot())

        # Convention: extra fields are carried in record.__dict__.
        for k, v in record.__dict__.items():
            if k in _RESERVED_ATTRS or k.startswith("_"):
                continue
            try:
                json.dumps(v)
                payload[k] = v
            except TypeError:
                payload[k] = repr(v)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


class _ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        ctx = snapshot()
        record.state = ctx.get("state", "-")
        return True


_installed: list[logging.Handler] = []


def _syslog_handler(ident: str, address: str | tuple[str, int], facility: int) -> logging.Handler | None:
    # SysLogHandler does not raise for a missing unix socket.
    if isinstance(address, str) and not os.path.exists(address):
        return None
    try:
        handler = logging.handlers.SysLogHandler(address=address, facility=facility)
    except OSError:
        return None
    handler.addFilter(_ContextFilter())
    handler.setFormatter(
        logging.Formatter(fmt=f"{ident}[%(process)d]: %(levelname)s state=%(state)s %(name)s: %(message)s")
    )
    return handler


def configure_logging(
    verbosity: Verbosity,
    *,
    foreground: bool,
    ident: str = "ofconfig-server",
    syslog_address: str | tuple[str, int] = "/dev/log",
    syslog_facility: int = logging.handlers.SysLogHandler.LOG_DAEMON,
) -> None:
    """(Re)configure the root logger.

    Safe to call more than once; handlers installed by a previous call are
    closed and replaced, handlers installed by anyone else are left alone.
    """

    root = logging.getLogger()
    while _installed:
        old = _installed.pop()
        root.removeHandler(old)
        old.close()

    root.setLevel(verbosity.log_level)

    syslog = _syslog_handler(ident, syslog_address, syslog_facility)
    if syslog is not None:
        _installed.append(syslog)

    if foreground:
        stream = logging.StreamHandler(stream=sys.stderr)
        stream.setFormatter(JsonFormatter())
        _installed.append(stream)

    for handler in _installed:
        root.addHandler(handler)

    if syslog is None:
        logging.getLogger(__name__).warning(
            "syslog_unavailable", extra={"syslog_address": str(syslog_address)}
        )


def flush_logging() -> None:
    for handler in _installed:
        try:
            handler.flush()
        except (OSError, ValueError):
            pass

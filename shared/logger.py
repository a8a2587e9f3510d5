"""
fldd Structured Logger
=======================

:class:`FlddLogger` wraps a stdlib logger for the resolver.  Diagnostics
go to stderr through Rich; a rotating log file, plain or JSON lines, can
be added from the ``[global]`` configuration table.

Every record carries the component name and the binary being scanned
when it was emitted, so a warning deep in the dependency tree can be
traced back to the file that named the missing library.

Nothing here writes to stdout: that stream belongs to the library list.

References:
    - Python logging HOWTO. https://docs.python.org/3/howto/logging.html
    - Rich library. https://github.com/Textualize/rich
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

_LOG_THEME = Theme(
    {
        "log.level.debug": "dim cyan",
        "log.level.info": "bright_blue",
        "log.level.warning": "yellow",
        "log.level.error": "bold red",
    }
)

_PLAIN_FORMAT = "%(asctime)s | %(levelname)-8s | %(scope)s | %(message)s"

# Keyword arguments the stdlib logging methods understand themselves
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.WARNING


# ========================== Record context =================================


class _ScanContextFilter(logging.Filter):
    """Stamp ``tool_name``, ``binary`` and ``scope`` on every record."""

    def __init__(self, owner: FlddLogger) -> None:
        super().__init__()
        self._owner = owner

    def filter(self, record: logging.LogRecord) -> bool:
        binary = self._owner.current_binary
        record.tool_name = self._owner.tool_name
        record.binary = binary
        record.scope = binary or self._owner.tool_name
        return True


class _JSONFormatter(logging.Formatter):
    """One JSON object per line.

    Example::

        {"timestamp": "2026-01-01T10:00:00+00:00", "level": "WARNING",
         "logger": "fldd.resolver", "message": "cannot find libfoo.so.1, skipping...",
         "tool_name": "resolver", "binary": "/usr/bin/app"}

    ``binary`` is omitted outside a scan; keyword arguments passed to the
    log call appear under ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "tool_name": getattr(record, "tool_name", None),
        }
        binary = getattr(record, "binary", None)
        if binary is not None:
            entry["binary"] = binary
        fields = getattr(record, "fldd_extra", None)
        if fields:
            entry["extra"] = fields
        if record.exc_info and record.exc_info[1] is not None:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


def _stderr_handler(level: int) -> RichHandler:
    # markup off: library names may contain square brackets
    return RichHandler(
        level=level,
        console=Console(theme=_LOG_THEME, stderr=True),
        show_path=False,
        show_time=False,
        markup=False,
        rich_tracebacks=True,
    )


def _file_handler(
    path: Path, level: int, json_logs: bool, max_bytes: int, backup_count: int
) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
        errors="backslashreplace",
    )
    handler.setLevel(level)
    if json_logs:
        handler.setFormatter(_JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(fmt=_PLAIN_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z")
        )
    return handler


# ========================== FlddLogger =====================================


class FlddLogger:
    """Logger bound to one fldd component.

    Usage::

        log = FlddLogger("resolver", log_level="DEBUG")
        with log.binary("/usr/bin/ls"):
            log.warning("cannot find %s, skipping...", name)

    Args:
        tool_name:       Component name; the stdlib logger is ``fldd.<tool_name>``.
        log_level:       Minimum severity name.  Unknown names mean WARNING.
        log_file:        Rotating log file.  ``None`` disables file logging.
        json_logs:       Write JSON lines instead of plain text to *log_file*.
        max_bytes:       Size at which the log file is rotated.
        backup_count:    Rotated files to keep.
        console_output:  Attach the Rich handler on stderr.
    """

    def __init__(
        self,
        tool_name: str,
        *,
        log_level: str = "WARNING",
        log_file: str | Path | None = None,
        json_logs: bool = False,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
        console_output: bool = True,
    ) -> None:
        self._tool_name = tool_name
        self._binaries: list[str] = []
        level = _parse_level(log_level)

        self._logger = logging.getLogger(f"fldd.{tool_name}")
        self._logger.setLevel(level)
        self._logger.propagate = False
        # A second instance for the same component takes over the logger
        self._logger.handlers.clear()
        self._logger.filters.clear()
        self._logger.addFilter(_ScanContextFilter(self))

        if console_output:
            self._logger.addHandler(_stderr_handler(level))
        if log_file:
            self._logger.addHandler(
                _file_handler(Path(log_file), level, json_logs, max_bytes, backup_count)
            )
        if not self._logger.handlers:
            self._logger.addHandler(logging.NullHandler())

    # ------------------------------------------------------------------ #
    #  Scan scope
    # ------------------------------------------------------------------ #

    @contextmanager
    def binary(self, path: str) -> Iterator[FlddLogger]:
        """Attribute records emitted inside the block to *path*.

        Scopes nest with the recursion; leaving one restores the
        enclosing binary.
        """
        self._binaries.append(path)
        try:
            yield self
        finally:
            self._binaries.pop()

    @property
    def current_binary(self) -> str | None:
        return self._binaries[-1] if self._binaries else None

    # ------------------------------------------------------------------ #
    #  Log methods
    # ------------------------------------------------------------------ #

    def _log(self, level: int, msg: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOGGING_KWARGS}
        if fields:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "fldd_extra": fields}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    # ------------------------------------------------------------------ #
    #  Timing
    # ------------------------------------------------------------------ #

    class _Stopwatch:
        """Measures the time spent in a :meth:`FlddLogger.timed` block."""

        def __init__(self, owner: FlddLogger, label: str) -> None:
            self._owner = owner
            self._label = label
            self._start = 0.0
            self._stop: float | None = None

        def __enter__(self) -> FlddLogger._Stopwatch:
            self._start = time.perf_counter()
            self._owner.debug("Started: %s", self._label)
            return self

        def __exit__(self, *exc: Any) -> None:
            self._stop = time.perf_counter()
            self._owner.info("Completed: %s (%.3f sec)", self._label, self.elapsed)

        @property
        def elapsed(self) -> float:
            end = self._stop if self._stop is not None else time.perf_counter()
            return end - self._start

    def timed(self, label: str) -> _Stopwatch:
        """Log the start of a block at DEBUG and its duration at INFO."""
        return self._Stopwatch(self, label)

    # ------------------------------------------------------------------ #
    #  Properties
    # ------------------------------------------------------------------ #

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def underlying(self) -> logging.Logger:
        """The stdlib :class:`logging.Logger` behind this facade."""
        return self._logger

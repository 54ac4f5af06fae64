"""Структурированный logger сервера: консоль плюс файл."""

import asyncio
import sys
import traceback
from datetime import datetime
from pathlib import Path
from types import FrameType
from typing import Any

from xi_login.logger.file_writer import FileWriter
from xi_login.logger.types import Category, Field, Level, LogEntry

# Уровни, для которых в запись попадает traceback
_TRACEBACK_LEVELS = (Level.ERROR, Level.FATAL)


class Logger:
    """
    Logger for the login server.

    Entries go to the console right away and to the FileWriter (if any) in
    batches. Derived loggers (``with_category``, ``with_fields``...) share
    the writer and keep their own context.
    """

    def __init__(
        self,
        service_name: str,
        environment: str,
        writer: FileWriter | None = None,
        min_level: Level = Level.INFO,
        category: Category | None = None,
        fields: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize Logger.

        Args:
            service_name: Имя сервиса
            environment: Окружение (dev, stage, prod)
            writer: FileWriter, куда уходят записи
            min_level: Entries below this level are dropped
            category: Category attached to every entry
            fields: Context fields attached to every entry
        """
        self.service_name = service_name
        self.environment = environment
        self.writer = writer
        self.min_level = min_level
        self.category = category
        self.fields = dict(fields or {})

    def trace(self, msg: str, *fields: Field) -> None:
        self._log(Level.TRACE, msg, None, fields)

    def debug(self, msg: str, *fields: Field) -> None:
        self._log(Level.DEBUG, msg, None, fields)

    def info(self, msg: str, *fields: Field) -> None:
        self._log(Level.INFO, msg, None, fields)

    def warn(self, msg: str, *fields: Field) -> None:
        self._log(Level.WARN, msg, None, fields)

    def error(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        self._log(Level.ERROR, msg, err, fields)

    def fatal(self, msg: str, err: Exception | None = None, *fields: Field) -> None:
        """Log at fatal level, then stop the process."""
        self._log(Level.FATAL, msg, err, fields)
        raise SystemExit(1)

    def is_enabled(self, level: Level) -> bool:
        return level.severity >= self.min_level.severity

    def _log(
        self,
        level: Level,
        msg: str,
        err: Exception | None,
        fields: tuple[Field, ...],
    ) -> None:
        if not self.is_enabled(level):
            return

        entry = self._make_entry(level, msg, fields)
        # _log <- trace/info/... <- вызывающий код
        entry.source = _source(sys._getframe(2))

        if err is not None:
            entry.error_message = str(err)
            if level in _TRACEBACK_LEVELS and err.__traceback__ is not None:
                entry.stack_trace = "".join(traceback.format_exception(err))

        _to_console(entry)
        self._to_file(entry)

    def _make_entry(self, level: Level, msg: str, fields: tuple[Field, ...]) -> LogEntry:
        context = dict(self.fields)
        entry_category = self.category

        for field in fields:
            if field.key == "_category":
                if isinstance(field.value, Category):
                    entry_category = field.value
            else:
                context[field.key] = field.value

        took = context.pop("duration_ms", None)

        return LogEntry(
            timestamp=datetime.now(),
            service_name=self.service_name,
            level=level,
            message=msg,
            category=entry_category,
            context=context or None,
            duration_ms=None if took is None else int(took),
        )

    def _to_file(self, entry: LogEntry) -> None:
        if self.writer is None:
            return
        try:
            asyncio.get_running_loop().create_task(self.writer.write(entry))
        except RuntimeError:
            # Вне event loop: запись уйдёт в файл при следующем flush
            self.writer.buffer.append(entry)

    def _derive(self, **changes: Any) -> "Logger":
        options: dict[str, Any] = {
            "service_name": self.service_name,
            "environment": self.environment,
            "writer": self.writer,
            "min_level": self.min_level,
            "category": self.category,
            "fields": self.fields,
        }
        options.update(changes)
        return Logger(**options)

    def with_category(self, category: Category) -> "Logger":
        return self._derive(category=category)

    def with_fields(self, *fields: Field) -> "Logger":
        merged = dict(self.fields)
        merged.update((field.key, field.value) for field in fields)
        return self._derive(fields=merged)

    def with_min_level(self, min_level: Level) -> "Logger":
        return self._derive(min_level=min_level)

    def silenced(self) -> "Logger":
        """Logger that drops every entry (e.g. socket log without TCP_DEBUG)."""
        return self._derive(min_level=_OFF)


def _source(frame: FrameType | None) -> str | None:
    """``xi_login/net/access.py:42`` style location of the caller."""
    if frame is None:
        return None

    parts = Path(frame.f_code.co_filename).parts
    if "xi_login" in parts:
        path = "/".join(parts[parts.index("xi_login") :])
    else:
        path = parts[-1]
    return f"{path}:{frame.f_lineno}"


def _to_console(entry: LogEntry) -> None:
    # warn и выше в stderr, остальное в stdout
    stream = sys.stderr if entry.level.severity >= Level.WARN.severity else sys.stdout
    print(entry.format(), file=stream)


class _Off:
    """Level stand-in that is more severe than every real level."""

    severity = len(Level)


_OFF: Any = _Off()

_global_logger: Logger | None = None


def get_logger() -> Logger:
    if _global_logger is None:
        raise RuntimeError("Logger not initialized. Call init_logger() first.")
    return _global_logger


def init_logger(
    service_name: str,
    environment: str,
    writer: FileWriter | None = None,
    min_level: Level = Level.INFO,
) -> Logger:
    """
    Set up the process-wide logger returned by ``get_logger``.

    Args:
        service_name: Имя сервиса
        environment: Окружение (dev, stage, prod)
        writer: FileWriter для записи логов
        min_level: Minimum level written to console and file
    """
    global _global_logger
    _global_logger = Logger(service_name, environment, writer, min_level)
    return _global_logger

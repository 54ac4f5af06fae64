"""Types and constants for structured logging."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class Level(str, Enum):
    """Log level определяет уровень важности лога."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"

    @property
    def severity(self) -> int:
        """Numeric rank of the level, higher is more severe."""
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: str | None, default: "Level | None" = None) -> "Level":
        """Parse level name (case-insensitive, accepts 'warning')."""
        if value:
            name = value.strip().lower()
            if name == "warning":
                name = "warn"
            for level in cls:
                if level.value == name:
                    return level
        return default or cls.INFO


_SEVERITY = {
    Level.TRACE: 0,
    Level.DEBUG: 1,
    Level.INFO: 2,
    Level.WARN: 3,
    Level.ERROR: 4,
    Level.FATAL: 5,
}


class Category(str, Enum):
    """Category определяет категорию события для группировки логов."""

    SERVER = "server"  # Lifecycle: startup, shutdown
    LOGIN = "login"  # Login requests
    SOCKET = "socket"  # TCP, access rules
    DATABASE = "database"  # MySQL
    SETTINGS = "settings"  # xi.settings loading
    LUA = "lua"  # Output of Lua scripts
    AUCTION = "auction"  # Auction house expiry
    DEVENV = "devenv"  # Development environment descriptor


@dataclass
class LogEntry:
    """LogEntry представляет одну запись лога."""

    timestamp: datetime
    service_name: str
    level: Level
    message: str
    category: Category | None = None
    source: str | None = None  # "path.py:line" вызывающего кода
    error_message: str | None = None
    stack_trace: str | None = None
    context: dict[str, Any] | None = None
    duration_ms: int | None = None

    def format(self) -> str:
        """Render entry as a single text line (plus stack trace if any)."""
        ts = self.timestamp.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        name = self.category.value if self.category else self.service_name
        line = f"[{ts}] [{name}] [{self.level.value}] {self.message}"

        if self.context:
            line += " " + " ".join(f"{k}={v}" for k, v in self.context.items())
        if self.duration_ms is not None:
            line += f" duration_ms={self.duration_ms}"
        if self.error_message:
            line += f" error={self.error_message}"
        if self.source and self.level.severity >= Level.ERROR.severity:
            line += f" at={self.source}"
        if self.stack_trace:
            line += "\n" + self.stack_trace.rstrip("\n")
        return line


@dataclass
class Field:
    """Field для структурированных данных в логах."""

    key: str
    value: Any


# Helper функции для создания полей


def category(cat: Category) -> Field:
    """Создаёт поле для категории лога."""
    return Field(key="_category", value=cat)


def param(key: str, value: Any) -> Field:
    """Универсальная функция для добавления параметра."""
    return Field(key=key, value=value)


def duration_ms(value: int) -> Field:
    """Создаёт поле для duration в миллисекундах."""
    return Field(key="duration_ms", value=value)

"""Settings errors."""

from pathlib import Path
from typing import Any


class SettingsError(Exception):
    """Base class for settings failures."""


class MissingKeyError(SettingsError, KeyError):
    """Requested key is absent from ``xi.settings``."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"could not find key: {key!r}")

    def __str__(self) -> str:
        return self.args[0]


class ParseValueError(SettingsError, ValueError):
    """Value exists but cannot be used as the requested type."""

    def __init__(self, key: str, expected: str, value: Any) -> None:
        self.key = key
        self.expected = expected
        self.value = value
        super().__init__(
            f"could not parse key: {key!r} (expected {expected}, got {value!r})"
        )


class LuaScriptError(SettingsError):
    """A settings script failed to load or run."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"failed to execute {self.path}: {reason}")

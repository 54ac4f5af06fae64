"""Settings module for the xi login server.

Server settings live in Lua scripts that populate the global ``xi.settings``
table. Process-level options (service name, log level) come from environment
variables.
"""

import os
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from xi_login.config.errors import MissingKeyError, ParseValueError, SettingsError
from xi_login.config.lua import Lua
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param

T = TypeVar("T")

DEFAULT_DIR = Path("settings") / "default"
USER_DIR = Path("settings")
ENV_PREFIX = "XI"

# Целые в диапазоне i64, без пробелов и "_"
_ENV_INT = re.compile(r"[+-]?[0-9]+")
_I64_MIN, _I64_MAX = -(2**63), 2**63 - 1


class ServiceConfig:
    """Process-level configuration read from the environment."""

    def __init__(self) -> None:
        self.environment = os.getenv("ENVIRONMENT", "dev")
        self.service_name = os.getenv("SERVICE_NAME", "xi-login")
        self.service_version = os.getenv("SERVICE_VERSION", "0.1.0")
        self.log_level = os.getenv("LOG_LEVEL", "info")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeError


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError
    if isinstance(value, int):
        return value
    # LuaJIT хранит все числа как double
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise TypeError


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError
    return float(value)


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    raise TypeError


_COERCIONS: dict[type, Callable[[Any], Any]] = {
    bool: _as_bool,
    int: _as_int,
    float: _as_float,
    str: _as_str,
}


def parse_env_value(raw: str) -> bool | int | float | str:
    """
    Interpret an environment value as int, float, bool or string, in that order.

    Numbers are parsed strictly: surrounding whitespace or digit separators
    (``" 5 "``, ``"1_000"``) leave the value a string.
    """
    if _ENV_INT.fullmatch(raw) and _I64_MIN <= int(raw) <= _I64_MAX:
        return int(raw)
    if raw == raw.strip() and "_" not in raw:
        try:
            return float(raw)
        except ValueError:
            pass
    if raw in ("true", "false"):
        return raw == "true"
    return raw


class Settings:
    """Flat, read-only view of ``xi.settings``.

    ``xi.settings.login.ACCOUNT_CREATION`` is available under the key
    ``"login.ACCOUNT_CREATION"``.
    """

    def __init__(self, values: Mapping[str, Any], lua: Lua | None = None) -> None:
        self._values = dict(values)
        self.lua = lua

    @classmethod
    def load(
        cls,
        root: Path | str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "Settings":
        """
        Load settings the way the server does at startup.

        Order: ``settings/default/*.lua``, then ``settings/*.lua``, then
        ``XI_<SECTION>_<KEY>`` environment variables. Later sources win.

        Args:
            root: Directory containing ``settings/`` (defaults to cwd)
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Loaded Settings

        Raises:
            LuaScriptError: If a settings script fails
            SettingsError: If the scripts do not define ``xi.settings``
        """
        logger = get_logger().with_category(Category.SETTINGS)
        root = Path(root) if root is not None else Path.cwd()
        environ = os.environ if environ is None else environ

        lua = Lua()
        default_count = load_lua_from_dir(lua, root / DEFAULT_DIR)
        user_count = load_lua_from_dir(lua, root / USER_DIR, required=False)
        env_count = apply_env_variables(lua, environ)

        values = populate_values(lua)

        logger.info(
            "Settings loaded",
            param("root", str(root)),
            param("default_files", default_count),
            param("user_files", user_count),
            param("env_overrides", env_count),
            param("keys", len(values)),
        )
        return cls(values, lua)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return sorted(self._values)

    def raw(self, key: str) -> Any:
        """Return the stored value without coercion."""
        try:
            return self._values[key]
        except KeyError:
            raise MissingKeyError(key) from None

    def try_get(self, key: str, kind: type[T]) -> T:
        """
        Get a value coerced to ``kind``.

        Args:
            key: Dotted key, e.g. ``"network.LOGIN_AUTH_PORT"``
            kind: One of bool, int, float, str

        Returns:
            Coerced value

        Raises:
            MissingKeyError: If the key is not set
            ParseValueError: If the value cannot be used as ``kind``
        """
        value = self.raw(key)
        coerce = _COERCIONS.get(kind)
        if coerce is None:
            raise ValueError(f"Unsupported settings type: {kind!r}")
        try:
            return coerce(value)
        except TypeError:
            raise ParseValueError(key, kind.__name__, value) from None

    def get(self, key: str, kind: type[T], default: T) -> T:
        """Like try_get, but returns ``default`` for a missing key."""
        if key not in self._values:
            return default
        return self.try_get(key, kind)


def load_lua_from_dir(lua: Lua, path: Path, required: bool = True) -> int:
    """
    Execute every ``*.lua`` file in ``path``, sorted by name.

    Non-lua files and subdirectories are ignored.

    Returns:
        Number of executed files
    """
    if not path.is_dir():
        if required:
            raise SettingsError(f"Settings directory not found: {path}")
        return 0

    scripts = sorted(p for p in path.iterdir() if p.is_file() and p.suffix == ".lua")
    for script in scripts:
        lua.execute_file(script)
    return len(scripts)


def apply_env_variables(lua: Lua, environ: Mapping[str, str]) -> int:
    """
    Apply ``XI_<SECTION>_<KEY>`` variables to ``xi.settings.<section>.<KEY>``.

    Section is lowercased, KEY keeps its case (``XI_MAIN_FOO_BAR`` sets
    ``xi.settings.main.FOO_BAR``). Missing section tables are created.

    Returns:
        Number of applied overrides
    """
    logger = get_logger().with_category(Category.SETTINGS)
    settings_table = _settings_table(lua, create=True)
    applied = 0

    for name in sorted(environ):
        parts = name.split("_")
        if len(parts) < 3 or parts[0] != ENV_PREFIX:
            continue

        section = parts[1].lower()
        key = "_".join(parts[2:])
        if not section or not key:
            continue

        table = settings_table[section]
        if not Lua.is_table(table):
            table = lua.table()
            settings_table[section] = table

        table[key] = parse_env_value(environ[name])
        applied += 1
        logger.debug(
            "Applied settings override from environment",
            param("variable", name),
            param("key", f"{section}.{key}"),
        )

    return applied


def populate_values(lua: Lua) -> dict[str, Any]:
    """
    Flatten the two-level ``xi.settings`` table.

    ``xi.settings.foo.bar = 5`` becomes ``{"foo.bar": 5}``. Non-table sections
    and non-scalar values are skipped.
    """
    settings_table = _settings_table(lua, create=False)
    values: dict[str, Any] = {}

    for section, table in settings_table.items():
        if not isinstance(section, str) or not Lua.is_table(table):
            continue
        for key, value in table.items():
            if isinstance(key, str) and isinstance(value, (bool, int, float, str)):
                values[f"{section}.{key}"] = value

    return values


def _settings_table(lua: Lua, create: bool) -> Any:
    xi = lua.globals().xi
    if not Lua.is_table(xi):
        if not create:
            raise SettingsError("xi.settings is not defined")
        xi = lua.table()
        lua.globals().xi = xi

    table = xi.settings
    if not Lua.is_table(table):
        if not create:
            raise SettingsError("xi.settings is not defined")
        table = lua.table()
        xi.settings = table

    return table


def _positive(settings: Settings, key: str) -> int:
    value = settings.try_get(key, int)
    if value <= 0:
        raise ParseValueError(key, "positive int", value)
    return value


@dataclass(frozen=True)
class SearchSettings:
    """Auction house expiry settings (``xi.settings.search``)."""

    expire_auctions: bool
    expire_days: int
    expire_interval: int  # seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SearchSettings":
        return cls(
            expire_auctions=settings.try_get("search.EXPIRE_AUCTIONS", bool),
            expire_days=_positive(settings, "search.EXPIRE_DAYS"),
            expire_interval=_positive(settings, "search.EXPIRE_INTERVAL"),
        )


@dataclass(frozen=True)
class LoginSettings:
    """Login server behaviour (``xi.settings.login``)."""

    account_creation: bool
    character_deletion: bool
    login_limit: int

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoginSettings":
        return cls(
            account_creation=settings.try_get("login.ACCOUNT_CREATION", bool),
            character_deletion=settings.try_get("login.CHARACTER_DELETION", bool),
            login_limit=settings.get("login.LOGIN_LIMIT", int, 0),
        )


@dataclass(frozen=True)
class NetworkSettings:
    """Listener and TCP access settings (``xi.settings.network``)."""

    login_auth_ip: str
    login_auth_port: int
    tcp_debug: bool
    tcp_stall_time: int  # seconds
    tcp_enable_ip_rules: bool
    tcp_order: str
    tcp_allow: str
    tcp_deny: str
    tcp_connect_count: int
    tcp_connect_interval: int  # milliseconds
    tcp_connect_lockout: int  # milliseconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "NetworkSettings":
        return cls(
            login_auth_ip=settings.try_get("network.LOGIN_AUTH_IP", str),
            login_auth_port=settings.try_get("network.LOGIN_AUTH_PORT", int),
            tcp_debug=settings.try_get("network.TCP_DEBUG", bool),
            tcp_stall_time=_positive(settings, "network.TCP_STALL_TIME"),
            tcp_enable_ip_rules=settings.try_get("network.TCP_ENABLE_IP_RULES", bool),
            tcp_order=settings.try_get("network.TCP_ORDER", str),
            tcp_allow=settings.try_get("network.TCP_ALLOW", str),
            tcp_deny=settings.try_get("network.TCP_DENY", str),
            tcp_connect_count=_positive(settings, "network.TCP_CONNECT_COUNT"),
            tcp_connect_interval=_positive(settings, "network.TCP_CONNECT_INTERVAL"),
            tcp_connect_lockout=settings.try_get("network.TCP_CONNECT_LOCKOUT", int),
        )


@dataclass(frozen=True)
class LoggingSettings:
    debug_sockets: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "LoggingSettings":
        return cls(debug_sockets=settings.get("logging.DEBUG_SOCKETS", bool, False))

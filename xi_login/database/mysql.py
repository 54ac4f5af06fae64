"""MySQL client for the xi login server.

Accounts, characters and the auction house live in the game's MySQL/MariaDB
database. Connection parameters come from ``xi.settings.network.SQL_*``.
"""

import dataclasses
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import pymysql
from pymysql.connections import Connection
from pymysql.cursors import DictCursor

from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param

if TYPE_CHECKING:
    from xi_login.config.settings import Settings

# Docker secret, перекрывает network.SQL_PASSWORD
PASSWORD_SECRET = Path("/run/secrets/sql_password")

Params = tuple[Any, ...] | None
R = TypeVar("R")


@dataclass
class MySQLConfig:
    """MySQL connection configuration."""

    host: str = "127.0.0.1"
    port: int = 3306
    database: str = "xidb"
    user: str = "xiadmin"
    password: str = ""
    connect_timeout: int = 10
    read_timeout: int = 30
    write_timeout: int = 30
    charset: str = "utf8mb4"

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MySQLConfig":
        """Build config from ``network.SQL_*`` settings."""
        return cls(
            host=settings.try_get("network.SQL_HOST", str),
            port=settings.try_get("network.SQL_PORT", int),
            database=settings.try_get("network.SQL_DATABASE", str),
            user=settings.try_get("network.SQL_LOGIN", str),
            password=cls._read_password(settings.try_get("network.SQL_PASSWORD", str)),
        )

    @staticmethod
    def _read_password(default: str) -> str:
        if PASSWORD_SECRET.exists():
            return PASSWORD_SECRET.read_text().strip()
        return default

    def to_dict(self) -> dict[str, Any]:
        """PyMySQL ``connect()`` keyword arguments."""
        kwargs = dataclasses.asdict(self)
        kwargs.update(cursorclass=DictCursor, autocommit=True)
        return kwargs


class MySQLClient:
    """
    Blocking PyMySQL connection shared by the repositories.

    Queries run in autocommit mode; ``transaction()`` groups statements that
    must succeed together.
    """

    def __init__(self, config: MySQLConfig | None = None) -> None:
        self.config = config or MySQLConfig()
        self._connection: Connection | None = None
        self.logger = get_logger().with_category(Category.DATABASE)

    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            ConnectionError: If the server cannot be reached or refuses login
        """
        target = (
            param("host", self.config.host),
            param("port", self.config.port),
            param("database", self.config.database),
        )
        try:
            self._connection = pymysql.connect(**self.config.to_dict())
        except pymysql.Error as e:
            self.logger.error("Failed to connect to MySQL", e, *target)
            raise ConnectionError(f"Failed to connect to MySQL: {e}") from e

        self.logger.info("Connected to MySQL", *target)

    async def close(self) -> None:
        if self._connection is None:
            return

        connection, self._connection = self._connection, None
        try:
            connection.close()
        except pymysql.Error as e:
            self.logger.warn("Error while closing MySQL connection", param("error", str(e)))
        else:
            self.logger.info("MySQL connection closed")

    def _live_connection(self) -> Connection:
        """Current connection, reconnected if the server dropped it."""
        if self._connection is None:
            raise RuntimeError("MySQL not connected. Call connect() first.")

        try:
            self._connection.ping(reconnect=True)
        except pymysql.Error as e:
            self.logger.warn("MySQL connection lost, reconnecting...", param("error", str(e)))
            self._connection = pymysql.connect(**self.config.to_dict())

        return self._connection

    @contextmanager
    def cursor(self) -> Iterator[DictCursor]:
        with self._live_connection().cursor() as cur:
            yield cur

    @contextmanager
    def transaction(self) -> Iterator[DictCursor]:
        """
        Cursor inside an explicit transaction.

        Commits when the block finishes, rolls back and re-raises on error.
        """
        connection = self._live_connection()
        connection.begin()
        try:
            with connection.cursor() as cur:
                yield cur
        except Exception:
            connection.rollback()
            raise
        connection.commit()

    def _run(self, query: str, params: Params, result: Callable[[DictCursor], R]) -> R:
        with self.cursor() as cur:
            cur.execute(query, params)
            return result(cur)

    def execute(self, query: str, params: Params = None) -> int:
        """Run a statement; returns the number of affected rows."""
        return self._run(query, params, lambda cur: cur.rowcount)

    def fetch_one(self, query: str, params: Params = None) -> dict[str, Any] | None:
        """First row as a dict keyed by column name, or None."""
        return self._run(query, params, lambda cur: cur.fetchone())

    def fetch_all(self, query: str, params: Params = None) -> list[dict[str, Any]]:
        return self._run(query, params, lambda cur: list(cur.fetchall()))

    def ping(self) -> bool:
        try:
            self._live_connection()
        except (pymysql.Error, RuntimeError):
            return False
        return True

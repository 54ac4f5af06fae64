from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any

import pytest

from xi_login.logger.logger import init_logger

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture(autouse=True)
def logger():
    return init_logger(service_name="xi-login-test", environment="test")


@pytest.fixture
def repo_root() -> Path:
    return REPO_ROOT


class FakeCursor:
    def __init__(self, db: FakeMySQL) -> None:
        self.db = db
        self.rowcount = 0
        self._result: list[dict[str, Any]] = []

    def execute(self, query: str, params: tuple[Any, ...] | None = None) -> None:
        self.db.queries.append((" ".join(query.split()), params))
        self._result, self.rowcount = self.db.respond(query, params)

    def fetchone(self) -> dict[str, Any] | None:
        return self._result[0] if self._result else None

    def fetchall(self) -> list[dict[str, Any]]:
        return list(self._result)


class FakeMySQL:
    """In-memory stand-in for MySQLClient.

    ``responder(query, params)`` returns ``(rows, rowcount)``.
    """

    def __init__(self, responder=None) -> None:
        self.queries: list[tuple[str, tuple[Any, ...] | None]] = []
        self.commits = 0
        self.rollbacks = 0
        self._responder = responder or (lambda query, params: ([], 0))

    def respond(self, query: str, params: tuple[Any, ...] | None):
        return self._responder(" ".join(query.split()), params)

    @contextmanager
    def cursor(self):
        yield FakeCursor(self)

    @contextmanager
    def transaction(self):
        try:
            yield FakeCursor(self)
            self.commits += 1
        except Exception:
            self.rollbacks += 1
            raise

    def execute(self, query: str, params: tuple[Any, ...] | None = None) -> int:
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def fetch_one(self, query: str, params: tuple[Any, ...] | None = None):
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: str, params: tuple[Any, ...] | None = None):
        with self.cursor() as cur:
            cur.execute(query, params)
            return cur.fetchall()


@pytest.fixture
def fake_mysql_factory():
    return FakeMySQL

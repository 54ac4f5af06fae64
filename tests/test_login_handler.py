from __future__ import annotations

import asyncio

from xi_login.config.settings import LoginSettings
from xi_login.domain.account import Account, AccountStatus
from xi_login.domain.session import LoginSession, LoginSessions
from xi_login.handlers.login_handler import LoginHandler
from xi_login.net.protocol import LoginCode, LoginRequest, LoginResult, encode_response


class FakeAccounts:
    def __init__(self) -> None:
        self.accounts: dict[str, tuple[str, Account]] = {}
        self.fail = False

    def add(self, login: str, password: str, account_id: int, status=AccountStatus.NORMAL):
        self.accounts[login] = (password, Account(id=account_id, login=login, status=status))

    def authenticate(self, login: str, password: str) -> Account | None:
        if self.fail:
            raise ConnectionError("database is gone")
        stored = self.accounts.get(login)
        if stored is None or stored[0] != password:
            return None
        return stored[1]

    def exists(self, login: str) -> bool:
        return login in self.accounts

    def create(self, login: str, password: str) -> Account:
        if self.fail:
            raise ConnectionError("database is gone")
        account_id = max([1000 - 1] + [a.id for _, a in self.accounts.values()]) + 1
        self.add(login, password, account_id)
        return self.accounts[login][1]

    def change_password(self, login: str, password: str, new_password: str) -> bool:
        stored = self.accounts.get(login)
        if stored is None or stored[0] != password:
            return False
        self.accounts[login] = (new_password, stored[1])
        return True


def _handler(account_creation: bool = True, login_limit: int = 0):
    accounts = FakeAccounts()
    sessions = LoginSessions()
    settings = LoginSettings(
        account_creation=account_creation, character_deletion=True, login_limit=login_limit
    )
    return LoginHandler(accounts, sessions, settings), accounts, sessions


def _handle(handler: LoginHandler, request: LoginRequest) -> bytes:
    return asyncio.run(handler.handle(request, "127.0.0.1", 50000))


def test_successful_login_registers_session() -> None:
    handler, accounts, sessions = _handler()
    accounts.add("alice", "secret", 1001)

    response = _handle(handler, LoginRequest("alice", "secret", LoginCode.ATTEMPT))

    assert response == encode_response(LoginResult.SUCCESS, 1001)
    assert 1001 in sessions
    assert sessions.get(1001).client_addr == "127.0.0.1"


def test_wrong_password_fails() -> None:
    handler, accounts, sessions = _handler()
    accounts.add("alice", "secret", 1001)

    response = _handle(handler, LoginRequest("alice", "nope", LoginCode.ATTEMPT))

    assert response == bytes([LoginResult.ERROR])
    assert len(sessions) == 0


def test_banned_account_cannot_log_in() -> None:
    handler, accounts, sessions = _handler()
    accounts.add("mallory", "pw", 1002, status=AccountStatus.NORMAL | AccountStatus.BANNED)

    response = _handle(handler, LoginRequest("mallory", "pw", LoginCode.ATTEMPT))

    assert response == bytes([LoginResult.ERROR])
    assert 1002 not in sessions


def test_database_error_during_login_returns_error() -> None:
    handler, accounts, _ = _handler()
    accounts.fail = True

    response = _handle(handler, LoginRequest("alice", "secret", LoginCode.ATTEMPT))
    assert response == bytes([LoginResult.ERROR])


def test_create_account() -> None:
    handler, accounts, _ = _handler()

    response = _handle(handler, LoginRequest("bob", "hunter2", LoginCode.CREATE))

    assert response == encode_response(LoginResult.SUCCESS_CREATE, 1000)
    assert accounts.exists("bob")


def test_create_account_name_taken() -> None:
    handler, accounts, _ = _handler()
    accounts.add("bob", "pw", 1000)

    response = _handle(handler, LoginRequest("bob", "other", LoginCode.CREATE))
    assert response == bytes([LoginResult.ERROR_CREATE_TAKEN])


def test_create_account_disabled() -> None:
    handler, accounts, _ = _handler(account_creation=False)

    response = _handle(handler, LoginRequest("bob", "hunter2", LoginCode.CREATE))

    assert response == bytes([LoginResult.ERROR_CREATE_DISABLED])
    assert not accounts.exists("bob")


def test_create_account_requires_name_and_password() -> None:
    handler, _, _ = _handler()
    assert _handle(handler, LoginRequest("", "pw", LoginCode.CREATE)) == bytes(
        [LoginResult.ERROR_CREATE]
    )
    assert _handle(handler, LoginRequest("bob", "", LoginCode.CREATE)) == bytes(
        [LoginResult.ERROR_CREATE]
    )


def test_change_password() -> None:
    handler, accounts, _ = _handler()
    accounts.add("alice", "old", 1001)

    response = _handle(handler, LoginRequest("alice", "old", LoginCode.CHANGE_PASSWORD, "new"))

    assert response == bytes([LoginResult.SUCCESS_CHANGE_PASSWORD])
    assert accounts.authenticate("alice", "new") is not None


def test_change_password_with_wrong_credentials() -> None:
    handler, accounts, _ = _handler()
    accounts.add("alice", "old", 1001)

    response = _handle(handler, LoginRequest("alice", "bad", LoginCode.CHANGE_PASSWORD, "new"))
    assert response == bytes([LoginResult.ERROR_CHANGE_PASSWORD])

    response = _handle(handler, LoginRequest("alice", "old", LoginCode.CHANGE_PASSWORD, ""))
    assert response == bytes([LoginResult.ERROR_CHANGE_PASSWORD])


def test_unknown_code_returns_error() -> None:
    handler, _, _ = _handler()
    assert _handle(handler, LoginRequest("alice", "pw", 0x42)) == bytes([LoginResult.ERROR])


def test_sessions_replace_previous_login() -> None:
    sessions = LoginSessions()
    first = LoginSession(account_id=1, login="a", client_addr="10.0.0.1", client_port=1)
    second = LoginSession(account_id=1, login="a", client_addr="10.0.0.2", client_port=2)

    assert sessions.add(first) is None
    assert sessions.add(second) is first
    assert len(sessions) == 1
    assert sessions.by_address("10.0.0.2") == [second]
    assert sessions.remove(1) is second
    assert sessions.remove(1) is None


def test_login_limit_caps_sessions_per_address() -> None:
    handler, accounts, sessions = _handler(login_limit=2)
    for number in range(3):
        accounts.add(f"user{number}", "pw", 1000 + number)

    assert _handle(handler, LoginRequest("user0", "pw", LoginCode.ATTEMPT))[0] == LoginResult.SUCCESS
    assert _handle(handler, LoginRequest("user1", "pw", LoginCode.ATTEMPT))[0] == LoginResult.SUCCESS
    assert _handle(handler, LoginRequest("user2", "pw", LoginCode.ATTEMPT)) == bytes(
        [LoginResult.ERROR]
    )
    assert 1002 not in sessions

    # повторный вход того же аккаунта не упирается в лимит
    assert _handle(handler, LoginRequest("user1", "pw", LoginCode.ATTEMPT))[0] == LoginResult.SUCCESS

    response = asyncio.run(
        handler.handle(LoginRequest("user2", "pw", LoginCode.ATTEMPT), "10.0.0.9", 50001)
    )
    assert response == encode_response(LoginResult.SUCCESS, 1002)


def test_zero_login_limit_is_unlimited() -> None:
    handler, accounts, sessions = _handler(login_limit=0)
    for number in range(5):
        accounts.add(f"user{number}", "pw", 1000 + number)
        _handle(handler, LoginRequest(f"user{number}", "pw", LoginCode.ATTEMPT))
    assert len(sessions) == 5

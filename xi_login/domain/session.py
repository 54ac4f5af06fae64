"""Login session registry."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class LoginSession:
    """A client that passed authentication."""

    account_id: int
    login: str
    client_addr: str
    client_port: int
    created_at: datetime = field(default_factory=datetime.now)


class LoginSessions:
    """
    In-memory registry of logged in accounts.

    One session per account: logging in again replaces the previous entry.
    """

    def __init__(self) -> None:
        self._sessions: dict[int, LoginSession] = {}

    def add(self, session: LoginSession) -> LoginSession | None:
        """Register ``session``; returns the session it replaced, if any."""
        previous = self._sessions.get(session.account_id)
        self._sessions[session.account_id] = session
        return previous

    def get(self, account_id: int) -> LoginSession | None:
        return self._sessions.get(account_id)

    def remove(self, account_id: int) -> LoginSession | None:
        return self._sessions.pop(account_id, None)

    def by_address(self, client_addr: str) -> list[LoginSession]:
        return [s for s in self._sessions.values() if s.client_addr == client_addr]

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._sessions

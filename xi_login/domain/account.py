"""Account domain model."""

from dataclasses import dataclass
from datetime import datetime
from enum import IntFlag
from typing import Any

# Первый id, выдаваемый новым аккаунтам
FIRST_ACCOUNT_ID = 1000


class AccountStatus(IntFlag):
    """Bit flags stored in ``accounts.status``."""

    NORMAL = 0x01
    BANNED = 0x02


@dataclass
class Account:
    """Login account row."""

    id: int
    login: str
    status: AccountStatus = AccountStatus.NORMAL
    priv: int = 1
    time_created: datetime | None = None

    @property
    def is_banned(self) -> bool:
        return bool(self.status & AccountStatus.BANNED)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Account":
        return cls(
            id=int(row["id"]),
            login=row.get("login", ""),
            status=AccountStatus(int(row.get("status") or AccountStatus.NORMAL)),
            priv=int(row.get("priv") or 1),
            time_created=row.get("timecreate"),
        )

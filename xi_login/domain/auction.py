"""Auction house domain model."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

# Имя отправителя в delivery box для возвращённых лотов
AUCTION_SENDER = "AH-Jeuno"


@dataclass
class AuctionListing:
    """
    Unsold auction house listing.

    ``stack`` marks a listing of a full stack; the returned quantity is then
    the item's stack size.
    """

    id: int
    item_id: int
    seller_id: int
    seller_name: str
    stack: bool
    stack_size: int
    listed_at: datetime

    @property
    def quantity(self) -> int:
        return self.stack_size if self.stack else 1

    def age_days(self, now: datetime | None = None) -> int:
        """Whole days since the listing was posted."""
        now = now or datetime.now()
        return (now.date() - self.listed_at.date()).days

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AuctionListing":
        listed_at = row["date"]
        if not isinstance(listed_at, datetime):
            # auction_house.date хранит unix timestamp
            listed_at = datetime.fromtimestamp(int(listed_at))

        return cls(
            id=int(row["id"]),
            item_id=int(row["itemid"]),
            seller_id=int(row["seller"]),
            seller_name=row.get("seller_name") or "",
            stack=bool(row["stack"]),
            stack_size=int(row.get("stacksize") or 1),
            listed_at=listed_at,
        )

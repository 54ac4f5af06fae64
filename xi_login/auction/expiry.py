"""Periodic auction house expiry.

Every ``EXPIRE_INTERVAL`` seconds, unsold listings older than ``EXPIRE_DAYS``
are returned to their sellers when ``EXPIRE_AUCTIONS`` is enabled.
"""

import asyncio
import contextlib
import time

from xi_login.config.settings import SearchSettings
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, duration_ms, param
from xi_login.repository.auction_repository import AuctionRepository


class AuctionExpiryTask:
    """Returns expired auction listings to their sellers."""

    def __init__(
        self,
        repository: AuctionRepository,
        settings: SearchSettings,
    ) -> None:
        self.repository = repository
        self.settings = settings
        self.logger = get_logger().with_category(Category.AUCTION)

    def run_once(self) -> int:
        """
        Run a single expiry pass.

        Returns:
            Number of listings returned to sellers
        """
        if not self.settings.expire_auctions:
            return 0

        started = time.monotonic()
        expired = self.repository.find_expired(self.settings.expire_days)
        returned = 0

        for listing in expired:
            if self.repository.return_to_seller(listing):
                returned += 1
                self.logger.debug(
                    "Listing returned to seller",
                    param("listing_id", listing.id),
                    param("item_id", listing.item_id),
                    param("seller_id", listing.seller_id),
                    param("quantity", listing.quantity),
                )

        self.logger.info(
            "Auction expiry pass finished",
            param("expired", len(expired)),
            param("returned", returned),
            param("expire_days", self.settings.expire_days),
            duration_ms(int((time.monotonic() - started) * 1000)),
        )
        return returned

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run expiry passes every ``expire_interval`` seconds until stopped."""
        if not self.settings.expire_auctions:
            self.logger.info("Auction expiry is disabled")
            return

        self.logger.info(
            "Auction expiry started",
            param("expire_days", self.settings.expire_days),
            param("interval_seconds", self.settings.expire_interval),
        )

        while not stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                self.logger.error("Auction expiry pass failed", e)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    stop_event.wait(), timeout=self.settings.expire_interval
                )

        self.logger.info("Auction expiry stopped")

"""Auction house repository for MySQL."""

from xi_login.database.mysql import MySQLClient
from xi_login.domain.auction import AUCTION_SENDER, AuctionListing
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param

# Delivery box, в который возвращаются предметы
RETURN_BOX = 1


class AuctionRepository:
    """Repository for auction house listings in MySQL."""

    def __init__(self, mysql_client: MySQLClient) -> None:
        """
        Initialize AuctionRepository.

        Args:
            mysql_client: MySQL client instance
        """
        self.mysql = mysql_client
        self.logger = get_logger().with_category(Category.AUCTION)

    def find_expired(self, days: int) -> list[AuctionListing]:
        """
        Get unsold listings posted at least ``days`` days ago.

        Args:
            days: Listing age threshold in days

        Returns:
            Expired listings, oldest first
        """
        rows = self.mysql.fetch_all(
            """
            SELECT ah.id, ah.itemid, ah.stack, ah.seller, ah.seller_name,
                   ah.date, ib.stacksize
            FROM auction_house ah
            INNER JOIN item_basic ib ON ah.itemid = ib.itemid
            WHERE DATEDIFF(NOW(), FROM_UNIXTIME(ah.date)) >= %s
              AND ah.buyer_name IS NULL
            ORDER BY ah.date
            """,
            (days,),
        )
        return [AuctionListing.from_row(row) for row in rows]

    def return_to_seller(self, listing: AuctionListing) -> bool:
        """
        Move an expired listing back to the seller's delivery box.

        Delete and insert happen in one transaction. A listing that was sold
        or removed in the meantime is left alone.

        Returns:
            True if the item was returned
        """
        try:
            with self.mysql.transaction() as cur:
                cur.execute(
                    "DELETE FROM auction_house WHERE id = %s AND buyer_name IS NULL",
                    (listing.id,),
                )
                if cur.rowcount != 1:
                    return False

                cur.execute(
                    """
                    INSERT INTO delivery_box (
                        charid, charname, box, itemid, itemsubid,
                        quantity, senderid, sender
                    ) VALUES (%s, %s, %s, %s, 0, %s, 0, %s)
                    """,
                    (
                        listing.seller_id,
                        listing.seller_name,
                        RETURN_BOX,
                        listing.item_id,
                        listing.quantity,
                        AUCTION_SENDER,
                    ),
                )
        except Exception as e:
            self.logger.error(
                "Failed to return expired listing",
                e,
                param("listing_id", listing.id),
                param("seller_id", listing.seller_id),
            )
            raise

        return True

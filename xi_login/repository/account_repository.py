"""Account repository for MySQL."""

from xi_login.database.mysql import MySQLClient
from xi_login.domain.account import FIRST_ACCOUNT_ID, Account, AccountStatus
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param

# Таблицы, которые сервер оптимизирует при старте
MAINTENANCE_TABLES = (
    "accounts",
    "accounts_banned",
    "accounts_sessions",
    "chars",
    "char_equip",
    "char_inventory",
    "char_jobs",
    "char_look",
    "char_stats",
    "char_vars",
    "char_bazaar_msg",
    "char_skills",
    "char_titles",
    "char_effects",
    "char_exp",
)


class AccountRepository:
    """Repository for login accounts in MySQL."""

    def __init__(self, mysql_client: MySQLClient) -> None:
        """
        Initialize AccountRepository.

        Args:
            mysql_client: MySQL client instance
        """
        self.mysql = mysql_client
        self.logger = get_logger().with_category(Category.DATABASE)

    def authenticate(self, login: str, password: str) -> Account | None:
        """
        Find the account matching ``login`` and ``password``.

        Args:
            login: Account name
            password: Plain text password, hashed by MySQL ``PASSWORD()``

        Returns:
            Account or None if credentials do not match
        """
        row = self.mysql.fetch_one(
            """
            SELECT accounts.id, accounts.login, accounts.status, accounts.priv
            FROM accounts
            WHERE accounts.login = %s
              AND accounts.password = PASSWORD(%s)
            """,
            (login, password),
        )
        if row is None:
            return None
        return Account.from_row(row)

    def exists(self, login: str) -> bool:
        row = self.mysql.fetch_one(
            "SELECT id FROM accounts WHERE login = %s",
            (login,),
        )
        return row is not None

    def create(self, login: str, password: str) -> Account:
        """
        Create a new account.

        New ids continue after the current maximum, starting at 1000.

        Args:
            login: Account name
            password: Plain text password

        Returns:
            Created Account
        """
        try:
            with self.mysql.transaction() as cur:
                cur.execute("SELECT MAX(id) AS max_id FROM accounts FOR UPDATE")
                row = cur.fetchone()
                max_id = row["max_id"] if row else None
                account_id = max(int(max_id or 0) + 1, FIRST_ACCOUNT_ID)

                cur.execute(
                    """
                    INSERT INTO accounts (
                        id, login, password, timecreate, timelastmodify, status, priv
                    ) VALUES (
                        %s, %s, PASSWORD(%s), NOW(), NOW(), %s, %s
                    )
                    """,
                    (account_id, login, password, int(AccountStatus.NORMAL), 1),
                )
        except Exception as e:
            self.logger.error(
                "Failed to create account",
                e,
                param("login", login),
            )
            raise

        self.logger.info(
            "Account created",
            param("account_id", account_id),
            param("login", login),
        )
        return Account(id=account_id, login=login)

    def change_password(self, login: str, password: str, new_password: str) -> bool:
        """
        Replace the password of an account.

        Returns:
            True if the old credentials matched and the password was updated
        """
        updated = self.mysql.execute(
            """
            UPDATE accounts
            SET password = PASSWORD(%s), timelastmodify = NOW()
            WHERE login = %s
              AND password = PASSWORD(%s)
            """,
            (new_password, login, password),
        )

        if updated:
            self.logger.info("Account password changed", param("login", login))
        return updated == 1

    def optimize_tables(self) -> None:
        """Run OPTIMIZE TABLE on account and character tables."""
        tables = ",".join(f"`{name}`" for name in MAINTENANCE_TABLES)
        self.mysql.execute(f"OPTIMIZE TABLE {tables}")
        self.logger.info("Tables optimized", param("tables", len(MAINTENANCE_TABLES)))

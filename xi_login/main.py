"""
xi login server.

Loads ``xi.settings`` from Lua, authenticates clients over TCP and runs the
auction house expiry job driven by the search settings.
"""

import argparse
import asyncio
import contextlib
import signal
from functools import partial
from pathlib import Path

from xi_login.auction.expiry import AuctionExpiryTask
from xi_login.config.settings import (
    LoggingSettings,
    LoginSettings,
    NetworkSettings,
    SearchSettings,
    ServiceConfig,
    Settings,
)
from xi_login.database.mysql import MySQLClient, MySQLConfig
from xi_login.domain.session import LoginSessions
from xi_login.handlers.login_handler import LoginHandler
from xi_login.logger.file_writer import FileWriter
from xi_login.logger.logger import get_logger, init_logger
from xi_login.logger.types import Category, Level, category, param
from xi_login.repository.account_repository import AccountRepository
from xi_login.repository.auction_repository import AuctionRepository
from xi_login.server.login_server import LoginServer
from xi_login.server.timer import ServerTimer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="xi-login", description="xi login server")
    parser.add_argument(
        "--log",
        type=Path,
        default=Path.cwd() / "log" / "login-server.log",
        help="Log file path (default: ./log/login-server.log)",
    )
    parser.add_argument(
        "--append-date",
        action="store_true",
        help="Append the date to the log file name and rotate daily",
    )
    return parser.parse_args(argv)


async def shutdown(
    mysql_client: MySQLClient,
    log_writer: FileWriter,
    timer: ServerTimer,
) -> None:
    """Graceful shutdown."""
    logger = get_logger()
    logger.info(
        "Shutting down login server...",
        category(Category.SERVER),
        param("uptime", str(timer.uptime())),
    )

    await mysql_client.close()

    logger.info("Shutdown complete", category(Category.SERVER))

    # Закрыть log writer последним (flush оставшихся логов)
    await log_writer.close()


async def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    timer = ServerTimer()
    service = ServiceConfig()

    log_writer = FileWriter(path=args.log, append_date=args.append_date)
    await log_writer.connect()

    init_logger(
        service_name=service.service_name,
        environment=service.environment,
        writer=log_writer,
        min_level=Level.parse(service.log_level),
    )
    logger = get_logger().with_category(Category.SERVER)

    logger.info(
        "Starting login server",
        param("environment", service.environment),
        param("version", service.service_version),
        param("log", str(log_writer.current_path())),
    )

    try:
        settings = Settings.load()
        login_settings = LoginSettings.from_settings(settings)
        network_settings = NetworkSettings.from_settings(settings)
        logging_settings = LoggingSettings.from_settings(settings)
        search_settings = SearchSettings.from_settings(settings)
    except Exception as e:
        logger.error("Failed to load settings", e)
        await log_writer.close()
        raise SystemExit(1) from e

    mysql_client = MySQLClient(MySQLConfig.from_settings(settings))
    try:
        await mysql_client.connect()
    except ConnectionError as e:
        logger.error("Database unavailable", e)
        await log_writer.close()
        raise SystemExit(1) from e

    try:
        account_repository = AccountRepository(mysql_client)
        auction_repository = AuctionRepository(mysql_client)

        account_repository.optimize_tables()

        if not login_settings.account_creation:
            logger.info("New account creation is currently disabled.")

        if not login_settings.character_deletion:
            logger.info("Character deletion is currently disabled.")

        handler = LoginHandler(account_repository, LoginSessions(), login_settings)
        server = LoginServer.from_settings(handler, network_settings, logging_settings)
        expiry = AuctionExpiryTask(auction_repository, search_settings)

        # Setup graceful shutdown
        loop = asyncio.get_running_loop()
        shutdown_event = asyncio.Event()

        def signal_handler(sig: int) -> None:
            logger.info("Received signal", param("signal", sig))
            shutdown_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, partial(signal_handler, sig))

        server_task = asyncio.create_task(server.serve(shutdown_event))
        expiry_task = asyncio.create_task(expiry.run(shutdown_event))

        # Ждём либо сигнала, либо падения одной из задач
        done, pending = await asyncio.wait(
            [server_task, expiry_task, asyncio.create_task(shutdown_event.wait())],
            return_when=asyncio.FIRST_EXCEPTION,
        )
        shutdown_event.set()

        for task in pending:
            with contextlib.suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(task, timeout=5)

        for task in done:
            if not task.cancelled() and task.exception():
                logger.error("Server task failed", task.exception())

    except Exception as e:
        logger.error("Fatal error in login server", e)
    finally:
        await shutdown(mysql_client, log_writer, timer)


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()

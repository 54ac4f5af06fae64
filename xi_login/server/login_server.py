"""Asyncio TCP listener for login requests."""

import asyncio
import contextlib
import dataclasses

from xi_login.config.settings import LoggingSettings, NetworkSettings
from xi_login.handlers.login_handler import LoginHandler
from xi_login.logger.logger import Logger, get_logger
from xi_login.logger.types import Category, param
from xi_login.net.access import AccessRules
from xi_login.net.protocol import (
    FIELD_SIZE,
    REQUEST_SIZE,
    LoginResult,
    ProtocolError,
    decode_field,
    encode_response,
    parse_request,
)


def socket_logger(network: NetworkSettings, logging: LoggingSettings) -> Logger:
    """Socket logger, silent unless TCP_DEBUG or DEBUG_SOCKETS is set."""
    logger = get_logger().with_category(Category.SOCKET)
    if network.tcp_debug or logging.debug_sockets:
        return logger
    return logger.silenced()


class LoginServer:
    """
    Accepts login connections, one request per connection.

    Each connection is checked against the access rules, must deliver its
    request within ``stall_time`` seconds, gets one response and is closed.
    """

    def __init__(
        self,
        handler: LoginHandler,
        rules: AccessRules,
        host: str = "0.0.0.0",
        port: int = 54231,
        stall_time: float = 60.0,
        socket_log: Logger | None = None,
    ) -> None:
        self.handler = handler
        self.rules = rules
        self.host = host
        self.port = port
        self.stall_time = stall_time
        self.logger = get_logger().with_category(Category.LOGIN)
        self.socket_log = socket_log or get_logger().with_category(Category.SOCKET).silenced()
        self._server: asyncio.AbstractServer | None = None

    @classmethod
    def from_settings(
        cls,
        handler: LoginHandler,
        network: NetworkSettings,
        logging: LoggingSettings,
    ) -> "LoginServer":
        tcp_log = socket_logger(network, logging)
        return cls(
            handler=handler,
            rules=AccessRules.from_settings(network, tcp_log),
            host=network.login_auth_ip,
            port=network.login_auth_port,
            stall_time=network.tcp_stall_time,
            socket_log=tcp_log,
        )

    @property
    def bound_port(self) -> int:
        """Actual listening port (useful when started on port 0)."""
        if self._server is None or not self._server.sockets:
            raise RuntimeError("LoginServer not started. Call start() first.")
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._on_connect, self.host, self.port)
        self.logger.info(
            "Login server listening",
            param("host", self.host),
            param("port", self.bound_port),
        )

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            self.logger.info("Login server closed")

    async def serve(self, stop_event: asyncio.Event) -> None:
        """Listen until ``stop_event`` is set."""
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.close()

    async def _on_connect(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        peer = writer.get_extra_info("peername") or ("unknown", 0)
        client_addr, client_port = peer[0], peer[1]

        try:
            if not self.rules.is_allowed(client_addr):
                self.socket_log.info("Connection refused", param("ip", client_addr))
                return

            self.socket_log.debug(
                "Connection accepted",
                param("ip", client_addr),
                param("port", client_port),
            )
            response = await self._process(reader, client_addr, client_port)
            writer.write(response)
            await writer.drain()

        except asyncio.TimeoutError:
            self.socket_log.info("Client stalled, dropping", param("ip", client_addr))
        except asyncio.IncompleteReadError as e:
            self.socket_log.debug(
                "Client disconnected before sending a full request",
                param("ip", client_addr),
                param("received", len(e.partial)),
            )
        except Exception as e:
            self.logger.error(
                "Error while handling login connection",
                e,
                param("client_addr", client_addr),
            )
        finally:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()

    async def _process(
        self, reader: asyncio.StreamReader, client_addr: str, client_port: int
    ) -> bytes:
        buffer = await asyncio.wait_for(reader.readexactly(REQUEST_SIZE), self.stall_time)

        try:
            request = parse_request(buffer)
        except ProtocolError as e:
            self.logger.info(
                "Malformed login request",
                param("client_addr", client_addr),
                param("reason", str(e)),
            )
            return encode_response(LoginResult.ERROR)

        if request.needs_new_password:
            raw = await asyncio.wait_for(reader.readexactly(FIELD_SIZE), self.stall_time)
            try:
                new_password = decode_field(raw)
            except ProtocolError:
                return encode_response(LoginResult.ERROR_CHANGE_PASSWORD)
            request = dataclasses.replace(request, new_password=new_password)

        return await self.handler.handle(request, client_addr, client_port)

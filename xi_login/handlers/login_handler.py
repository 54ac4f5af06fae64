"""Handlers for login server requests."""

from collections.abc import Awaitable, Callable

from xi_login.config.settings import LoginSettings
from xi_login.domain.session import LoginSession, LoginSessions
from xi_login.logger.logger import get_logger
from xi_login.logger.types import Category, param
from xi_login.net.protocol import LoginCode, LoginRequest, LoginResult, encode_response
from xi_login.repository.account_repository import AccountRepository

Handler = Callable[[LoginRequest, str, int], Awaitable[bytes]]


class LoginHandler:
    """
    Handler for login requests.

    Routes requests by command byte to the appropriate handler and returns
    the response bytes.
    """

    def __init__(
        self,
        account_repository: AccountRepository,
        sessions: LoginSessions,
        settings: LoginSettings,
    ) -> None:
        """
        Initialize LoginHandler.

        Args:
            account_repository: Repository for account operations
            sessions: Registry of logged in accounts
            settings: Login behaviour settings
        """
        self.accounts = account_repository
        self.sessions = sessions
        self.settings = settings
        self.logger = get_logger().with_category(Category.LOGIN)

        # Маппинг command byte -> handler method
        self._handlers: dict[int, Handler] = {
            LoginCode.ATTEMPT: self._handle_attempt,
            LoginCode.CREATE: self._handle_create,
            LoginCode.CHANGE_PASSWORD: self._handle_change_password,
        }

    async def handle(self, request: LoginRequest, client_addr: str, client_port: int) -> bytes:
        """
        Handle a decoded request.

        Args:
            request: Parsed login request
            client_addr: Client IP address
            client_port: Client TCP port

        Returns:
            Response bytes to send back
        """
        handler = self._handlers.get(request.code)
        if handler is None:
            self.logger.warn(
                f"Unknown login code: {request.code:#04x}",
                param("client_addr", client_addr),
            )
            return encode_response(LoginResult.ERROR)

        return await handler(request, client_addr, client_port)

    async def _handle_attempt(
        self, request: LoginRequest, client_addr: str, client_port: int
    ) -> bytes:
        try:
            account = self.accounts.authenticate(request.name, request.password)
        except Exception as e:
            self.logger.error("Login lookup failed", e, param("login", request.name))
            return encode_response(LoginResult.ERROR)

        if account is None:
            self.logger.info(
                f"Invalid login attempt for: {request.name}",
                param("client_addr", client_addr),
            )
            return encode_response(LoginResult.ERROR)

        if account.is_banned:
            self.logger.info(
                f"Banned account tried to log in: {request.name}",
                param("account_id", account.id),
                param("client_addr", client_addr),
            )
            return encode_response(LoginResult.ERROR)

        if self._over_login_limit(account.id, client_addr):
            self.logger.info(
                f"Login limit reached for address: {client_addr}",
                param("account_id", account.id),
                param("login_limit", self.settings.login_limit),
            )
            return encode_response(LoginResult.ERROR)

        replaced = self.sessions.add(
            LoginSession(
                account_id=account.id,
                login=account.login or request.name,
                client_addr=client_addr,
                client_port=client_port,
            )
        )
        self.logger.info(
            f"Account logged in: {request.name}",
            param("account_id", account.id),
            param("client_addr", client_addr),
            param("replaced_session", replaced is not None),
        )
        return encode_response(LoginResult.SUCCESS, account.id)

    def _over_login_limit(self, account_id: int, client_addr: str) -> bool:
        """LOGIN_LIMIT caps sessions per address; re-login of the same account is not counted."""
        if self.settings.login_limit <= 0:
            return False
        others = [s for s in self.sessions.by_address(client_addr) if s.account_id != account_id]
        return len(others) >= self.settings.login_limit

    async def _handle_create(
        self, request: LoginRequest, client_addr: str, client_port: int
    ) -> bytes:
        if not self.settings.account_creation:
            self.logger.info(
                "Account creation attempted while disabled",
                param("client_addr", client_addr),
            )
            return encode_response(LoginResult.ERROR_CREATE_DISABLED)

        if not request.name or not request.password:
            return encode_response(LoginResult.ERROR_CREATE)

        try:
            if self.accounts.exists(request.name):
                self.logger.info(
                    f"Account name already taken: {request.name}",
                    param("client_addr", client_addr),
                )
                return encode_response(LoginResult.ERROR_CREATE_TAKEN)

            account = self.accounts.create(request.name, request.password)
        except Exception as e:
            self.logger.error("Account creation failed", e, param("login", request.name))
            return encode_response(LoginResult.ERROR_CREATE)

        return encode_response(LoginResult.SUCCESS_CREATE, account.id)

    async def _handle_change_password(
        self, request: LoginRequest, client_addr: str, client_port: int
    ) -> bytes:
        if not request.new_password:
            return encode_response(LoginResult.ERROR_CHANGE_PASSWORD)

        try:
            account = self.accounts.authenticate(request.name, request.password)
            if account is None or account.is_banned:
                return encode_response(LoginResult.ERROR_CHANGE_PASSWORD)

            changed = self.accounts.change_password(
                request.name, request.password, request.new_password
            )
        except Exception as e:
            self.logger.error("Password change failed", e, param("login", request.name))
            return encode_response(LoginResult.ERROR_CHANGE_PASSWORD)

        if not changed:
            return encode_response(LoginResult.ERROR_CHANGE_PASSWORD)

        self.logger.info(
            f"Password changed for: {request.name}",
            param("account_id", account.id),
            param("client_addr", client_addr),
        )
        return encode_response(LoginResult.SUCCESS_CHANGE_PASSWORD)

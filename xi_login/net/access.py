"""TCP access rules: allow/deny lists and connection flood lockout."""

import time
from collections import deque
from collections.abc import Callable
from enum import Enum
from ipaddress import IPv4Address, IPv4Network

from xi_login.config.settings import NetworkSettings
from xi_login.logger.logger import Logger
from xi_login.logger.types import param

ALL_NETWORKS = IPv4Network("0.0.0.0/0")


class AccessOrder(str, Enum):
    DENY_ALLOW = "deny,allow"
    ALLOW_DENY = "allow,deny"
    MUTUAL_FAILURE = "mutual-failure"

    @classmethod
    def parse(cls, ordering: str) -> "AccessOrder":
        """Unknown orderings fall back to deny,allow."""
        for order in cls:
            if order.value == ordering:
                return order
        return cls.DENY_ALLOW


class AccessKind(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def access_ipmask(entry: str, logger: Logger) -> IPv4Network | None:
    """
    Parse one access list entry.

    Accepts ``all``, a single address, CIDR (``192.168.0.0/16``) or netmask
    (``10.0.0.0/255.0.0.0``) notation.
    """
    if entry == "all":
        return ALL_NETWORKS

    try:
        network = IPv4Network(entry, strict=False)
    except ValueError:
        logger.error(f"get_access_list: Invalid ip or ip range '{entry}'!")
        return None

    logger.info(
        "access_ipmask: Loaded",
        param("ip", str(network.network_address)),
        param("mask", str(network.netmask)),
    )
    return network


def load_access_list(kind: AccessKind, access_list: str, logger: Logger) -> list[IPv4Network]:
    """Parse a comma separated access list, skipping empty and invalid entries."""
    logger.info(f"Loading {kind.value} access list...")

    result = [
        network
        for raw in access_list.split(",")
        if (entry := raw.strip())
        if (network := access_ipmask(entry, logger)) is not None
    ]

    logger.info(f"Size of {kind.value} access list: {len(result)}")
    return result


class AccessRules:
    """Allow/deny decision for client addresses plus connect flood guard."""

    def __init__(
        self,
        enable_ip_rules: bool = True,
        access_order: AccessOrder = AccessOrder.DENY_ALLOW,
        access_allow: list[IPv4Network] | None = None,
        access_deny: list[IPv4Network] | None = None,
        connect_count: int = 10,
        connect_interval: float = 3.0,
        connect_lockout: float = 600.0,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize AccessRules.

        Args:
            enable_ip_rules: Disable to accept every address
            access_order: How allow and deny lists combine
            access_allow: Allowed networks
            access_deny: Denied networks
            connect_count: Connections tolerated per ``connect_interval``
            connect_interval: Flood window in seconds
            connect_lockout: Lockout duration in seconds
            logger: Socket logger
            clock: Monotonic time source
        """
        self.enable_ip_rules = enable_ip_rules
        self.access_order = access_order
        self.access_allow = access_allow or []
        self.access_deny = access_deny or []
        self.connect_count = connect_count
        self.connect_interval = connect_interval
        self.connect_lockout = connect_lockout
        self.logger = logger
        self._clock = clock
        self._history: dict[IPv4Address, deque[float]] = {}
        self._locked_until: dict[IPv4Address, float] = {}
        self._next_purge = 0.0

    @classmethod
    def from_settings(cls, settings: NetworkSettings, logger: Logger) -> "AccessRules":
        return cls(
            enable_ip_rules=settings.tcp_enable_ip_rules,
            access_order=AccessOrder.parse(settings.tcp_order),
            access_allow=load_access_list(AccessKind.ALLOW, settings.tcp_allow, logger),
            access_deny=load_access_list(AccessKind.DENY, settings.tcp_deny, logger),
            connect_count=settings.tcp_connect_count,
            connect_interval=settings.tcp_connect_interval / 1000,
            connect_lockout=settings.tcp_connect_lockout / 1000,
            logger=logger,
        )

    def _in(self, networks: list[IPv4Network], ip: IPv4Address) -> bool:
        return any(ip in network for network in networks)

    def check_ip(self, ip: IPv4Address) -> bool:
        """Apply allow/deny lists according to the access order."""
        if not self.enable_ip_rules:
            return True

        allowed = self._in(self.access_allow, ip)
        denied = self._in(self.access_deny, ip)

        if self.access_order is AccessOrder.ALLOW_DENY:
            return not denied and allowed
        if self.access_order is AccessOrder.MUTUAL_FAILURE:
            return allowed and not denied
        # deny,allow
        return allowed or not denied

    def check_connect(self, ip: IPv4Address) -> bool:
        """Record a connection attempt and apply the flood lockout."""
        if self._in(self.access_allow, ip):
            return True

        now = self._clock()
        self._purge(now)

        locked_until = self._locked_until.get(ip)
        if locked_until is not None:
            if now < locked_until:
                return False
            del self._locked_until[ip]
            self._history.pop(ip, None)

        history = self._history.setdefault(ip, deque())
        history.append(now)
        while now - history[0] > self.connect_interval:
            history.popleft()

        if len(history) > self.connect_count:
            self._locked_until[ip] = now + self.connect_lockout
            del self._history[ip]
            if self.logger:
                self.logger.warn(
                    "Connection flood detected, address locked out",
                    param("ip", str(ip)),
                    param("lockout_seconds", self.connect_lockout),
                )
            return False

        return True

    def _purge(self, now: float) -> None:
        """Forget quiet addresses and expired lockouts, at most once per window."""
        if now < self._next_purge:
            return
        self._next_purge = now + self.connect_interval

        for ip in [ip for ip, until in self._locked_until.items() if until <= now]:
            del self._locked_until[ip]
        quiet = [
            ip for ip, seen in self._history.items() if now - seen[-1] > self.connect_interval
        ]
        for ip in quiet:
            del self._history[ip]

    def is_allowed(self, address: str) -> bool:
        """Decide whether a new connection from ``address`` is accepted."""
        try:
            ip = IPv4Address(address)
        except ValueError:
            # IPv6 и прочее: правила только для IPv4
            return True

        if not self.check_ip(ip):
            if self.logger:
                self.logger.info("Connection rejected by access rules", param("ip", address))
            return False

        return self.check_connect(ip)

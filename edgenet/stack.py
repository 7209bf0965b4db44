"""Factory interfaces for network stacks: DNS, raw, TCP and UDP sockets."""

from __future__ import annotations

import enum
import socket
from abc import ABC, abstractmethod
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Any

from edgenet.nal import (
    MulticastV4,
    MulticastV6,
    RawReceive,
    RawSend,
    Read,
    Readable,
    TcpShutdown,
    UdpReceive,
    UdpSend,
    Write,
)

IpAddress = IPv4Address | IPv6Address


class AddrType(enum.Enum):
    """The kind of host address a DNS lookup should return.

    ``IPV4`` looks for ``A`` records, ``IPV6`` for ``AAAA`` records and
    ``EITHER`` accepts whichever comes first.
    """

    IPV4 = "ipv4"
    IPV6 = "ipv6"
    EITHER = "either"

    @property
    def family(self) -> int:
        """The socket address family matching this address type."""
        if self is AddrType.IPV4:
            return socket.AF_INET
        if self is AddrType.IPV6:
            return socket.AF_INET6
        return socket.AF_UNSPEC

    def matches(self, address: IpAddress | str) -> bool:
        """Whether ``address`` is of this address type."""
        parsed = ip_address(address) if isinstance(address, str) else address
        if self is AddrType.IPV4:
            return isinstance(parsed, IPv4Address)
        if self is AddrType.IPV6:
            return isinstance(parsed, IPv6Address)
        return True


class Dns(ABC):
    """Host name resolution limited to host address records (A and AAAA)."""

    @abstractmethod
    async def get_host_by_name(self, host: str, addr_type: AddrType) -> IpAddress:
        """Resolve the first address of ``host`` of the requested type."""

    @abstractmethod
    async def get_host_by_address(self, addr: IpAddress) -> str:
        """Resolve the host name of ``addr``."""


class RawSplit(ABC):
    """A raw socket that splits into independent receive and send halves."""

    @abstractmethod
    def split(self) -> tuple[Any, Any]:
        """Return a receiving (and readable) half and a sending half."""


class RawBind(ABC):
    """A factory for raw sockets; creating one usually needs admin privileges."""

    @abstractmethod
    async def bind(self) -> Any:
        """Create a raw socket supporting receive, send, split and readable."""


class TcpSplit(ABC):
    """A TCP socket that splits into independent read and write halves."""

    @abstractmethod
    def split(self) -> tuple[Any, Any]:
        """Return a reading (and readable) half and a writing half."""


class TcpConnect(ABC):
    """A factory for TCP connections to remote peers."""

    @abstractmethod
    async def connect(self, remote: Any) -> Any:
        """Connect to ``remote`` and return the connected socket."""


class TcpBind(ABC):
    """A factory for server-side TCP acceptors."""

    @abstractmethod
    async def bind(self, local: Any) -> TcpAccept:
        """Bind to ``local`` and return an acceptor for incoming connections.

        On some stacks this does not bind anything yet and the acceptor
        does the actual binding.
        """


class TcpAccept(ABC):
    """Accepts incoming TCP connections."""

    @abstractmethod
    async def accept(self) -> tuple[Any, Any]:
        """Wait for a connection; return the peer address and the socket."""


class UdpSplit(ABC):
    """A UDP socket that splits into independent receive and send halves."""

    @abstractmethod
    def split(self) -> tuple[Any, Any]:
        """Return a receiving (and readable) half and a sending half."""


class UdpConnect(ABC):
    """A factory for connected UDP sockets."""

    @abstractmethod
    async def connect(self, local: Any, remote: Any) -> Any:
        """Bind to ``local``, connect to ``remote`` and return the socket."""


class UdpBind(ABC):
    """A factory for bound UDP sockets."""

    @abstractmethod
    async def bind(self, local: Any) -> Any:
        """Bind to ``local`` and return the socket."""


TCP_SOCKET_INTERFACES: tuple[type, ...] = (Read, Write, Readable, TcpSplit, TcpShutdown)
"""The interfaces a socket returned by a TCP factory provides."""

UDP_SOCKET_INTERFACES: tuple[type, ...] = (
    UdpReceive,
    UdpSend,
    UdpSplit,
    MulticastV4,
    MulticastV6,
    Readable,
)
"""The interfaces a socket returned by a UDP factory provides."""

RAW_SOCKET_INTERFACES: tuple[type, ...] = (RawReceive, RawSend, RawSplit, Readable)
"""The interfaces a socket returned by a raw factory provides."""
"""Abstract networking interfaces: streams, datagrams, multicast, raw sockets."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from ipaddress import IPv4Address, IPv6Address
from typing import Any

MacAddr = bytes
"""A six-byte MAC address."""

BROADCAST_MAC: MacAddr = b"\xff" * 6
"""Destination MAC address that broadcasts a raw packet."""


class Close(enum.Enum):
    """Which halves of a TCP socket to shut down."""

    READ = "read"
    WRITE = "write"
    BOTH = "both"

    @property
    def closes_read(self) -> bool:
        """True when the read half is affected."""
        return self in (Close.READ, Close.BOTH)

    @property
    def closes_write(self) -> bool:
        """True when the write half is affected."""
        return self in (Close.WRITE, Close.BOTH)


class Read(ABC):
    """An asynchronous byte source."""

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read at most ``size`` bytes; an empty result means end of stream."""


class Write(ABC):
    """An asynchronous byte sink."""

    @abstractmethod
    async def write(self, data: bytes) -> int:
        """Write some of ``data`` and return how many bytes were written."""

    @abstractmethod
    async def flush(self) -> None:
        """Wait until all buffered data has been sent."""


class Readable(ABC):
    """Something that can be awaited until data is available to read."""

    @abstractmethod
    async def readable(self) -> None:
        """Return once a read would not block."""


class MulticastV4(ABC):
    """IPv4 multicast group membership."""

    @abstractmethod
    async def join_v4(self, multicast_addr: IPv4Address, interface: IPv4Address) -> None:
        """Join ``multicast_addr`` on the interface with address ``interface``."""

    @abstractmethod
    async def leave_v4(self, multicast_addr: IPv4Address, interface: IPv4Address) -> None:
        """Leave ``multicast_addr`` on the interface with address ``interface``."""


class MulticastV6(ABC):
    """IPv6 multicast group membership."""

    @abstractmethod
    async def join_v6(self, multicast_addr: IPv6Address, interface: int) -> None:
        """Join ``multicast_addr`` on the interface with index ``interface``."""

    @abstractmethod
    async def leave_v6(self, multicast_addr: IPv6Address, interface: int) -> None:
        """Leave ``multicast_addr`` on the interface with index ``interface``."""


class RawReceive(ABC):
    """Datagram receiving on a raw (link-layer) socket."""

    @abstractmethod
    async def receive(self, size: int) -> tuple[bytes, MacAddr]:
        """Receive one datagram of at most ``size`` bytes and the sender's MAC."""


class RawSend(ABC):
    """Datagram sending on a raw (link-layer) socket."""

    @abstractmethod
    async def send(self, addr: MacAddr, data: bytes) -> None:
        """Send ``data`` to ``addr``; an all-0xff address broadcasts."""


class TcpShutdown(ABC):
    """Graceful and abortive TCP shutdown."""

    @abstractmethod
    async def close(self, what: Close) -> None:
        """Gracefully shut down the read half, the write half, or both."""

    @abstractmethod
    async def abort(self) -> None:
        """Abort the connection, sending a reset to the peer."""


class UdpReceive(ABC):
    """Datagram receiving on a bound or connected UDP socket."""

    @abstractmethod
    async def receive(self, size: int) -> tuple[bytes, Any]:
        """Receive one datagram of at most ``size`` bytes and the sender's address."""


class UdpSend(ABC):
    """Datagram sending on a bound or connected UDP socket."""

    @abstractmethod
    async def send(self, remote: Any, data: bytes) -> None:
        """Send ``data``; ``remote`` is ignored when the socket is connected."""


class UdpSocket(UdpReceive, UdpSend):
    """A UDP socket that can both send and receive."""
"""Network stack backed by the operating system's sockets and asyncio."""

from __future__ import annotations

import asyncio
import errno
import io
import socket
import struct
import sys
from ipaddress import IPv4Address, IPv6Address, ip_address
from typing import Any

from edgenet import nal
from edgenet.nal import (
    Close,
    MacAddr,
    MulticastV4,
    MulticastV6,
    RawReceive,
    RawSend,
    Read,
    Readable,
    TcpShutdown,
    Write,
)
from edgenet.stack import (
    AddrType,
    Dns,
    IpAddress,
    RawBind,
    RawSplit,
    TcpAccept,
    TcpBind,
    TcpConnect,
    TcpSplit,
    UdpSplit,
)

ETH_P_IP = 0x0800
_MAX_RAW_SEND = 0xFFFF
_LISTEN_BACKLOG = 128


def _family(addr: Any) -> int:
    """The address family of a socket address tuple."""
    host = str(addr[0])
    try:
        return socket.AF_INET6 if ip_address(host).version == 6 else socket.AF_INET
    except ValueError:
        return socket.AF_INET6 if len(addr) == 4 else socket.AF_INET


def _normalize(addr: Any) -> tuple[Any, ...]:
    """A socket address tuple whose host part is a string."""
    return (str(addr[0]), *addr[1:])


async def _wait_readable(sock: socket.socket) -> None:
    loop = asyncio.get_running_loop()
    ready = loop.create_future()
    fd = sock.fileno()

    def on_ready() -> None:
        if not ready.done():
            ready.set_result(None)

    loop.add_reader(fd, on_ready)
    try:
        await ready
    finally:
        loop.remove_reader(fd)


class _OwnsSocket:
    """Closes the wrapped socket when used as a context manager."""

    _sock: socket.socket

    def __enter__(self) -> Any:
        return self

    def __exit__(self, *exc: object) -> None:
        self._sock.close()


class Stack(TcpConnect, TcpBind, Dns):
    """TCP, UDP and DNS factories over the host's networking."""

    async def connect(self, remote: Any) -> TcpSocket:
        """Open a TCP connection to ``remote``."""
        sock = socket.socket(_family(remote), socket.SOCK_STREAM)
        sock.setblocking(False)
        try:
            await asyncio.get_running_loop().sock_connect(sock, _normalize(remote))
        except BaseException:
            sock.close()
            raise
        return TcpSocket(sock)

    async def bind(self, local: Any) -> TcpAcceptor:
        """Listen for TCP connections on ``local``."""
        sock = socket.socket(_family(local), socket.SOCK_STREAM)
        try:
            if sys.platform != "win32":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(_normalize(local))
            sock.listen(_LISTEN_BACKLOG)
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return TcpAcceptor(sock)

    async def udp_connect(self, local: Any, remote: Any) -> UdpSocket:
        """Bind a UDP socket to ``local`` and connect it to ``remote``."""
        sock = socket.socket(_family(local), socket.SOCK_DGRAM)
        try:
            sock.bind(_normalize(local))
            sock.connect(_normalize(remote))
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return UdpSocket(sock)

    async def udp_bind(self, local: Any) -> UdpSocket:
        """Bind a broadcast-enabled UDP socket to ``local``."""
        sock = socket.socket(_family(local), socket.SOCK_DGRAM)
        try:
            sock.bind(_normalize(local))
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return UdpSocket(sock)

    async def get_host_by_name(self, host: str, addr_type: AddrType) -> IpAddress:
        """Resolve the first address of ``host`` of the requested type."""
        infos = await asyncio.get_running_loop().getaddrinfo(host, 0)
        for family, _type, _proto, _canon, sockaddr in infos:
            if family not in (socket.AF_INET, socket.AF_INET6):
                continue
            address = ip_address(sockaddr[0])
            if addr_type.matches(address):
                return address
        raise OSError(errno.EADDRNOTAVAIL, f"no matching address for {host!r}")

    async def get_host_by_address(self, addr: IpAddress) -> str:
        """Reverse lookups are not supported by this stack."""
        raise io.UnsupportedOperation("reverse DNS lookup is not supported")


class TcpAcceptor(_OwnsSocket, TcpAccept):
    """Accepts connections on a listening socket."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    async def accept(self) -> tuple[Any, TcpSocket]:
        conn, _ = await asyncio.get_running_loop().sock_accept(self._sock)
        conn.setblocking(False)
        return conn.getpeername(), TcpSocket(conn)

    def release(self) -> socket.socket:
        """Return the underlying listening socket."""
        return self._sock


class TcpSocket(_OwnsSocket, Read, Write, Readable, TcpSplit, TcpShutdown):
    """A connected TCP stream."""

    def __init__(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        self._sock = sock

    def release(self) -> socket.socket:
        """Return the underlying socket."""
        return self._sock

    async def read(self, size: int) -> bytes:
        return await asyncio.get_running_loop().sock_recv(self._sock, size)

    async def write(self, data: bytes) -> int:
        await asyncio.get_running_loop().sock_sendall(self._sock, data)
        return len(data)

    async def flush(self) -> None:
        """Writes go straight to the kernel, so there is nothing to flush."""

    async def readable(self) -> None:
        await _wait_readable(self._sock)

    def split(self) -> tuple[TcpSocket, TcpSocket]:
        return self, self

    async def close(self, what: Close) -> None:
        how = {
            Close.READ: socket.SHUT_RD,
            Close.WRITE: socket.SHUT_WR,
            Close.BOTH: socket.SHUT_RDWR,
        }[what]
        self._sock.shutdown(how)

    async def abort(self) -> None:
        """Closing the socket resets the connection; nothing to do here."""


class UdpSocket(_OwnsSocket, nal.UdpSocket, UdpSplit, MulticastV4, MulticastV6, Readable):
    """A bound or connected UDP socket."""

    def __init__(self, sock: socket.socket) -> None:
        sock.setblocking(False)
        self._sock = sock

    def release(self) -> socket.socket:
        """Return the underlying socket."""
        return self._sock

    def _peer(self) -> Any | None:
        try:
            return self._sock.getpeername()
        except OSError:
            return None

    async def receive(self, size: int) -> tuple[bytes, Any]:
        loop = asyncio.get_running_loop()
        peer = self._peer()
        if peer is not None:
            return await loop.sock_recv(self._sock, size), peer
        return await loop.sock_recvfrom(self._sock, size)

    async def send(self, remote: Any, data: bytes) -> None:
        loop = asyncio.get_running_loop()
        if self._peer() is not None:
            await loop.sock_sendall(self._sock, data)
            return
        target = _normalize(remote)
        offset = 0
        while True:
            offset += await loop.sock_sendto(self._sock, data[offset:], target)
            if offset >= len(data):
                break

    def _mreq_v4(self, multicast_addr: Any, interface: Any) -> bytes:
        return IPv4Address(multicast_addr).packed + IPv4Address(interface).packed

    def _mreq_v6(self, multicast_addr: Any, interface: int) -> bytes:
        return IPv6Address(multicast_addr).packed + struct.pack("@I", interface)

    async def join_v4(self, multicast_addr: Any, interface: Any) -> None:
        mreq = self._mreq_v4(multicast_addr, interface)
        self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)

    async def leave_v4(self, multicast_addr: Any, interface: Any) -> None:
        mreq = self._mreq_v4(multicast_addr, interface)
        self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_DROP_MEMBERSHIP, mreq)

    async def join_v6(self, multicast_addr: Any, interface: int) -> None:
        mreq = self._mreq_v6(multicast_addr, interface)
        self._sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)

    async def leave_v6(self, multicast_addr: Any, interface: int) -> None:
        mreq = self._mreq_v6(multicast_addr, interface)
        self._sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_LEAVE_GROUP, mreq)

    async def readable(self) -> None:
        await _wait_readable(self._sock)

    def split(self) -> tuple[UdpSocket, UdpSocket]:
        return self, self


class Interface(RawBind):
    """A network interface, by index, on which raw IP packet sockets are bound.

    Index 0 means all interfaces. Only Linux and Android provide packet sockets.
    """

    def __init__(self, index: int = 0) -> None:
        self.index = index

    def __repr__(self) -> str:
        return f"Interface(index={self.index!r})"

    async def bind(self) -> RawSocket:
        family = getattr(socket, "AF_PACKET", None)
        if family is None:
            raise OSError(errno.EAFNOSUPPORT, "packet sockets are not available")
        protocol = socket.htons(ETH_P_IP)
        sock = socket.socket(family, socket.SOCK_DGRAM, protocol)
        try:
            if self.index:
                sock.bind((socket.if_indextoname(self.index), ETH_P_IP))
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.setblocking(False)
        except BaseException:
            sock.close()
            raise
        return RawSocket(sock, self.index)


class RawSocket(_OwnsSocket, RawReceive, RawSend, RawSplit, Readable):
    """A link-layer socket carrying IP packets on one interface."""

    def __init__(self, sock: socket.socket, interface: int) -> None:
        self._sock = sock
        self.interface = interface

    def release(self) -> tuple[socket.socket, int]:
        """Return the underlying socket and the interface index."""
        return self._sock, self.interface

    async def receive(self, size: int) -> tuple[bytes, MacAddr]:
        data, addr = await asyncio.get_running_loop().sock_recvfrom(self._sock, size)
        if not isinstance(addr, tuple) or len(addr) < 5:
            raise OSError(errno.EINVAL, "invalid argument")
        return data, bytes(addr[4][:6])

    async def send(self, addr: MacAddr, data: bytes) -> None:
        mac = bytes(addr)
        ifname = socket.if_indextoname(self.interface)
        payload = data[:_MAX_RAW_SEND]
        sent = await asyncio.get_running_loop().sock_sendto(
            self._sock, payload, (ifname, ETH_P_IP, 0, 0, mac)
        )
        if sent != len(data):
            raise OSError(errno.EMSGSIZE, f"sent {sent} of {len(data)} bytes")

    async def readable(self) -> None:
        await _wait_readable(self._sock)

    def split(self) -> tuple[RawSocket, RawSocket]:
        return self, self
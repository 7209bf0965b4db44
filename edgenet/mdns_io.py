"""Running an mDNS responder and querier over UDP sockets."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from ipaddress import IPv4Address, IPv6Address
from typing import Any, Protocol

from edgenet.mdns import MdnsHandler, MdnsRequest
from edgenet.mdns_wire import InvalidMessageError
from edgenet.stack import UdpBind

log = logging.getLogger(__name__)

PORT = 5353
"""The mDNS port."""

IP_BROADCAST_ADDR = IPv4Address("224.0.0.251")
"""The IPv4 mDNS multicast address."""

IPV6_BROADCAST_ADDR = IPv6Address("ff02::fb")
"""The IPv6 mDNS multicast address."""

IPV4_DEFAULT_SOCKET: tuple[str, int] = ("0.0.0.0", PORT)
"""Binds to every IPv4-configured interface."""

IPV6_DEFAULT_SOCKET: tuple[str, int] = ("::", PORT)
"""Binds to every IPv6 interface, or every interface on dual-stack hosts."""

DEFAULT_SOCKET = IPV6_DEFAULT_SOCKET
"""A quick socket address for dual-stack hosts; not meant for production."""


class MdnsIoError(Exception):
    """Base class for errors of the mDNS service itself."""


class NoRecvBufError(MdnsIoError):
    """No receive buffer could be obtained."""

    def __init__(self, message: str = "No recv buf available") -> None:
        super().__init__(message)


class NoSendBufError(MdnsIoError):
    """No send buffer could be obtained."""

    def __init__(self, message: str = "No send buf available") -> None:
        super().__init__(message)


class BufferAccess(Protocol):
    """Hands out a buffer, possibly waiting until one is free.

    ``get()`` returns an async context manager yielding a buffer, or ``None``
    when access is denied.
    """

    def get(self) -> Any: ...


class VecBufAccess:
    """A single buffer of ``size`` bytes shared under a lock."""

    def __init__(self, size: int) -> None:
        self.size = size
        self._lock = asyncio.Lock()
        self._buf = bytearray()

    def __repr__(self) -> str:
        return f"VecBufAccess(size={self.size!r})"

    @asynccontextmanager
    async def get(self) -> AsyncIterator[bytearray]:
        """Lend the zero-filled buffer; it is emptied again on release."""
        async with self._lock:
            self._buf[:] = bytes(self.size)
            try:
                yield self._buf
            finally:
                self._buf.clear()


async def bind(
    stack: Any,
    addr: Any,
    ipv4_interface: IPv4Address | None,
    ipv6_interface: int | None,
) -> Any:
    """Bind a UDP socket for mDNS and join the multicast groups on the given interfaces.

    mDNS needs multicast, so at least one of the interfaces should be given.
    """
    binder = stack.bind if isinstance(stack, UdpBind) else stack.udp_bind
    socket = await binder(addr)
    if ipv4_interface is not None:
        await socket.join_v4(IP_BROADCAST_ADDR, ipv4_interface)
    if ipv6_interface is not None:
        await socket.join_v6(IPV6_BROADCAST_ADDR, ipv6_interface)
    return socket


def _system_rand(buf: bytearray) -> None:
    buf[:] = os.urandom(len(buf))


class Mdns:
    """An mDNS service that answers queries and broadcasts via the given handler.

    ``rand`` fills a bytearray with random bytes; ``broadcast_signal`` is an
    event that, once set, makes the service broadcast the handler's answers again.
    """

    def __init__(
        self,
        ipv4_interface: IPv4Address | None,
        ipv6_interface: int | None,
        recv: Any,
        send: Any,
        recv_buf: BufferAccess,
        send_buf: BufferAccess,
        rand: Callable[[bytearray], None] = _system_rand,
        broadcast_signal: asyncio.Event | None = None,
        wait_readable: bool = False,
    ) -> None:
        self.ipv4_interface = ipv4_interface
        self.ipv6_interface = ipv6_interface
        self.recv = recv
        self.send = send
        self.recv_buf = recv_buf
        self.send_buf = send_buf
        self.rand = rand
        self.broadcast_signal = broadcast_signal if broadcast_signal is not None else asyncio.Event()
        self.wait_readable = wait_readable
        self._recv_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()

    async def run(self, handler: MdnsHandler) -> None:
        """Broadcast and respond until one of the two fails, raising its error."""
        broadcast = asyncio.ensure_future(self._broadcast(handler))
        respond = asyncio.ensure_future(self._respond(handler))
        tasks = (broadcast, respond)
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        first = broadcast if broadcast in done else respond
        return first.result()

    async def query(self, q: Callable[[int], bytes]) -> None:
        """Multicast the query that ``q`` builds within the given size limit.

        Nothing is sent when ``q`` returns empty bytes.
        """
        async with self.send_buf.get() as send_buf:
            if send_buf is None:
                raise NoSendBufError()
            async with self._send_lock:
                data = q(len(send_buf))
                if data:
                    await self._broadcast_once(data)

    async def _broadcast(self, handler: MdnsHandler) -> None:
        while True:
            async with self.send_buf.get() as send_buf:
                if send_buf is None:
                    raise NoSendBufError()
                async with self._send_lock:
                    response = handler.handle(None, len(send_buf))
                    if response is not None:
                        if response.delay:
                            await self._delay()
                        await self._broadcast_once(response.data)
            await self.broadcast_signal.wait()
            self.broadcast_signal.clear()

    async def _respond(self, handler: MdnsHandler) -> None:
        async with self._recv_lock:
            while True:
                if self.wait_readable:
                    await self.recv.readable()
                async with self.recv_buf.get() as recv_buf:
                    if recv_buf is None:
                        raise NoRecvBufError()
                    data, remote = await self.recv.receive(len(recv_buf))
                    log.debug("Got mDNS query from %s", remote)
                    await self._reply(handler, bytes(data), remote)

    async def _reply(self, handler: MdnsHandler, data: bytes, remote: Any) -> None:
        legacy = remote[1] != PORT
        async with self.send_buf.get() as send_buf:
            if send_buf is None:
                raise NoSendBufError()
            async with self._send_lock:
                request = MdnsRequest(data, legacy=legacy, multicast=True)
                try:
                    response = handler.handle(request, len(send_buf))
                except InvalidMessageError:
                    log.warning("Got invalid message from %s, skipping", remote)
                    return
                if response is None:
                    return
                if legacy:
                    # One-shot legacy queries get a private reply.
                    log.debug("Replying privately to a one-shot mDNS query from %s", remote)
                    try:
                        await self.send.send(remote, response.data)
                    except Exception as err:
                        log.warning("Failed to reply privately to %s: %r", remote, err)
                else:
                    if response.delay:
                        await self._delay()
                    log.debug("Re-broadcasting due to mDNS query from %s", remote)
                    await self._broadcast_once(response.data)

    def _targets(self) -> list[tuple[Any, ...]]:
        targets: list[tuple[Any, ...]] = []
        if self.ipv4_interface is not None:
            targets.append((str(IP_BROADCAST_ADDR), PORT))
        if self.ipv6_interface is not None:
            targets.append((str(IPV6_BROADCAST_ADDR), PORT, 0, self.ipv6_interface))
        return targets

    async def _broadcast_once(self, data: bytes) -> None:
        if not data:
            return
        for remote in self._targets():
            log.debug("Broadcasting mDNS entry to %s", remote)
            await self.send.send(remote, data)

    async def _delay(self) -> None:
        b = bytearray(1)
        self.rand(b)
        # Between 20 and 120 ms, as the spec asks.
        delay_ms = 20 + b[0] * 100 // 256
        await asyncio.sleep(delay_ms / 1000)
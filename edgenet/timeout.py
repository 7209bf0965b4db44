"""Timeouts for awaitables and a decorator adding a timeout to every IO operation."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import Any, Generic, TypeVar

from edgenet.nal import Close

T = TypeVar("T")
IO = TypeVar("IO")


class OperationTimeout(TimeoutError):
    """Raised when an operation does not complete within its timeout."""

    def __init__(self, message: str = "Operation timed out") -> None:
        super().__init__(message)


async def with_timeout(timeout_ms: int, awaitable: Awaitable[T]) -> T:
    """Await ``awaitable``, raising ``OperationTimeout`` after ``timeout_ms`` milliseconds.

    Errors raised by the awaitable itself propagate unchanged.
    """
    scope = asyncio.timeout(timeout_ms / 1000)
    try:
        async with scope:
            return await awaitable
    except TimeoutError:
        if scope.expired():
            raise OperationTimeout() from None
        raise


class WithTimeout(Generic[IO]):
    """Wraps an IO object so that each of its operations is bounded by a timeout.

    Accepting a connection waits without a limit, but the accepted socket
    comes back wrapped with the same timeout.
    """

    def __init__(self, timeout_ms: int, io: IO) -> None:
        self.timeout_ms = timeout_ms
        self.io = io

    def __repr__(self) -> str:
        return f"WithTimeout(timeout_ms={self.timeout_ms!r}, io={self.io!r})"

    async def read(self, size: int) -> bytes:
        return await with_timeout(self.timeout_ms, self.io.read(size))

    async def write(self, data: bytes) -> int:
        return await with_timeout(self.timeout_ms, self.io.write(data))

    async def flush(self) -> None:
        await with_timeout(self.timeout_ms, self.io.flush())

    async def connect(self, remote: Any) -> WithTimeout[Any]:
        socket = await with_timeout(self.timeout_ms, self.io.connect(remote))
        return WithTimeout(self.timeout_ms, socket)

    async def readable(self) -> None:
        await with_timeout(self.timeout_ms, self.io.readable())

    def split(self) -> tuple[WithTimeout[Any], WithTimeout[Any]]:
        reader, writer = self.io.split()
        return WithTimeout(self.timeout_ms, reader), WithTimeout(self.timeout_ms, writer)

    async def close(self, what: Close) -> None:
        await with_timeout(self.timeout_ms, self.io.close(what))

    async def abort(self) -> None:
        await with_timeout(self.timeout_ms, self.io.abort())

    async def accept(self) -> tuple[Any, WithTimeout[Any]]:
        addr, socket = await self.io.accept()
        return addr, WithTimeout(self.timeout_ms, socket)
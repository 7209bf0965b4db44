import asyncio

import pytest

from edgenet.nal import Close
from edgenet.timeout import OperationTimeout, WithTimeout, with_timeout

SLOW = 0.5


class FakeSocket:
    def __init__(self, delay=0.0, data=b"payload"):
        self.delay = delay
        self.data = data
        self.written = []
        self.closed = None
        self.aborted = False

    async def _wait(self):
        if self.delay:
            await asyncio.sleep(self.delay)

    async def read(self, size):
        await self._wait()
        return self.data[:size]

    async def write(self, data):
        await self._wait()
        self.written.append(data)
        return len(data)

    async def flush(self):
        await self._wait()

    async def readable(self):
        await self._wait()

    def split(self):
        return FakeSocket(self.delay, self.data), FakeSocket(self.delay, self.data)

    async def close(self, what):
        await self._wait()
        self.closed = what

    async def abort(self):
        await self._wait()
        self.aborted = True


class FakeStack:
    def __init__(self, delay=0.0):
        self.delay = delay

    async def connect(self, remote):
        await asyncio.sleep(self.delay)
        return FakeSocket()

    async def accept(self):
        await asyncio.sleep(self.delay)
        return ("10.0.0.2", 4000), FakeSocket()


def test_operation_timeout_is_timeout_error():
    err = OperationTimeout()
    assert isinstance(err, TimeoutError)
    assert str(err) == "Operation timed out"


@pytest.mark.asyncio
async def test_with_timeout_returns_result():
    async def quick():
        return 42

    assert await with_timeout(1000, quick()) == 42


@pytest.mark.asyncio
async def test_with_timeout_expires():
    with pytest.raises(OperationTimeout):
        await with_timeout(10, asyncio.sleep(SLOW))


@pytest.mark.asyncio
async def test_with_timeout_propagates_inner_error():
    async def failing():
        raise ConnectionResetError("reset")

    with pytest.raises(ConnectionResetError):
        await with_timeout(1000, failing())


@pytest.mark.asyncio
async def test_with_timeout_keeps_inner_timeout_error():
    async def failing():
        raise TimeoutError("inner")

    with pytest.raises(TimeoutError) as info:
        await with_timeout(1000, failing())
    assert not isinstance(info.value, OperationTimeout)
    assert str(info.value) == "inner"


@pytest.mark.asyncio
async def test_read_and_write_pass_through():
    sock = FakeSocket()
    wrapped = WithTimeout(1000, sock)
    assert await wrapped.read(3) == b"pay"
    assert await wrapped.write(b"abc") == 3
    assert sock.written == [b"abc"]


@pytest.mark.asyncio
@pytest.mark.parametrize("op", ["read", "write", "flush", "readable", "close", "abort"])
async def test_slow_operations_time_out(op):
    wrapped = WithTimeout(10, FakeSocket(delay=SLOW))
    calls = {
        "read": lambda: wrapped.read(4),
        "write": lambda: wrapped.write(b"x"),
        "flush": wrapped.flush,
        "readable": wrapped.readable,
        "close": lambda: wrapped.close(Close.BOTH),
        "abort": wrapped.abort,
    }
    with pytest.raises(OperationTimeout):
        await calls[op]()


@pytest.mark.asyncio
async def test_close_and_abort_reach_inner_socket():
    sock = FakeSocket()
    wrapped = WithTimeout(1000, sock)
    await wrapped.close(Close.WRITE)
    await wrapped.abort()
    assert sock.closed is Close.WRITE
    assert sock.aborted


@pytest.mark.asyncio
async def test_connect_wraps_socket_with_same_timeout():
    wrapped = WithTimeout(250, FakeStack())
    socket = await wrapped.connect(("10.0.0.1", 80))
    assert isinstance(socket, WithTimeout)
    assert socket.timeout_ms == 250
    assert await socket.read(7) == b"payload"


@pytest.mark.asyncio
async def test_connect_times_out():
    wrapped = WithTimeout(10, FakeStack(delay=SLOW))
    with pytest.raises(OperationTimeout):
        await wrapped.connect(("10.0.0.1", 80))


@pytest.mark.asyncio
async def test_accept_is_not_bounded_but_socket_is_wrapped():
    wrapped = WithTimeout(1, FakeStack(delay=0.05))
    addr, socket = await wrapped.accept()
    assert addr == ("10.0.0.2", 4000)
    assert isinstance(socket, WithTimeout)
    assert socket.timeout_ms == 1


def test_split_wraps_both_halves():
    wrapped = WithTimeout(77, FakeSocket())
    reader, writer = wrapped.split()
    assert isinstance(reader, WithTimeout) and isinstance(writer, WithTimeout)
    assert reader.timeout_ms == writer.timeout_ms == 77
    assert reader.io is not writer.io


def test_io_is_accessible():
    sock = FakeSocket()
    wrapped = WithTimeout(5, sock)
    assert wrapped.io is sock
    assert wrapped.timeout_ms == 5
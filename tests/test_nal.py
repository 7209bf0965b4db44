import pytest

from edgenet.nal import (
    Close,
    MulticastV4,
    MulticastV6,
    RawReceive,
    RawSend,
    Read,
    Readable,
    TcpShutdown,
    UdpReceive,
    UdpSend,
    UdpSocket,
    Write,
)
from edgenet.timeout import WithTimeout, with_timeout


@pytest.mark.parametrize(
    "base",
    [Read, Write, Readable, MulticastV4, MulticastV6, RawReceive, RawSend,
     TcpShutdown, UdpReceive, UdpSend, UdpSocket],
)
def test_interfaces_cannot_be_instantiated(base):
    with pytest.raises(TypeError):
        base()


class _CompleteWrite(Write):
    def __init__(self):
        self.written = bytearray()

    async def write(self, data):
        self.written.extend(data)
        return len(data)

    async def flush(self):
        return None


@pytest.mark.asyncio
async def test_partial_write_implementation_is_rejected():
    class OnlyWrite(Write):
        async def write(self, data):
            return len(data)

    with pytest.raises(TypeError):
        OnlyWrite()

    wrapped = WithTimeout(1000, _CompleteWrite())
    assert await wrapped.write(b"abc") == 3
    assert wrapped.io.written == b"abc"


@pytest.mark.asyncio
async def test_udp_socket_requires_both_halves():
    class ReceiveOnly(UdpSocket):
        async def receive(self, size):
            return b"", None

    class Both(ReceiveOnly):
        async def send(self, remote, data):
            return None

    with pytest.raises(TypeError):
        ReceiveOnly()

    assert await with_timeout(1000, Both().receive(4)) == (b"", None)


@pytest.mark.asyncio
async def test_complete_udp_socket_is_both_receive_and_send():
    class Loop(UdpSocket):
        def __init__(self):
            self.queue = []

        async def receive(self, size):
            data, remote = self.queue.pop(0)
            return data[:size], remote

        async def send(self, remote, data):
            self.queue.append((data, remote))

    sock = Loop()
    assert isinstance(sock, UdpReceive) and isinstance(sock, UdpSend)
    await with_timeout(1000, sock.send(("127.0.0.1", 5353), b"hello"))
    assert await with_timeout(1000, sock.receive(3)) == (b"hel", ("127.0.0.1", 5353))


@pytest.mark.parametrize(
    "member, reads, writes",
    [
        (Close.BOTH, True, True),
        (Close.READ, True, False),
        (Close.WRITE, False, True),
    ],
)
def test_close_halves(member, reads, writes):
    what = Close(member.value)
    assert what is member
    assert what.closes_read is reads
    assert what.closes_write is writes


def test_close_lookup_by_value():
    assert Close("both") is Close.BOTH
    with pytest.raises(ValueError):
        Close("neither")
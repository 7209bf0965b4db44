# edgenet

Async networking building blocks for Python 3.11+, with no third-party dependencies.

- **`edgenet.nal`** holds abstract interfaces for byte streams (`Read`, `Write`,
  `Readable`), datagrams (`UdpReceive`, `UdpSend`, `UdpSocket`), raw link-layer
  sockets (`RawReceive`, `RawSend`), multicast membership (`MulticastV4`,
  `MulticastV6`) and TCP shutdown (`TcpShutdown`). It also has the `Close` enum
  (`READ`, `WRITE`, `BOTH`).
- **`edgenet.stack`** holds factory interfaces: `Dns`, `TcpConnect`, `TcpBind`,
  `TcpAccept`, `TcpSplit`, `UdpConnect`, `UdpBind`, `UdpSplit`, `RawBind` and
  `RawSplit`. It also has `AddrType` (`IPV4`, `IPV6`, `EITHER`).
- **`edgenet.timeout`** has `with_timeout(timeout_ms, awaitable)` and the
  `WithTimeout` wrapper. The wrapper bounds each `read`, `write`, `flush`,
  `readable`, `connect`, `close` and `abort` call of the object it wraps. `accept`
  waits without a limit, but the socket it returns comes back wrapped. When time
  runs out, both raise `OperationTimeout`, which is a `TimeoutError`.
- **`edgenet.std`** implements these interfaces with `asyncio` and the standard
  `socket` module:
  - `Stack` offers `connect` and `bind` for TCP, `udp_connect` and `udp_bind` for
    UDP, and `get_host_by_name`.
  - `TcpAcceptor`, `TcpSocket` and `UdpSocket` wrap sockets and work as context
    managers that close the socket.
  - `Interface` and `RawSocket` give raw IP packet sockets. They need `AF_PACKET`,
    so they work only on Linux.
- **`edgenet.mdns_wire`** handles the DNS wire format:
  - names (`NameSlice`), questions and records;
  - record data types `A`, `Aaaa`, `Ptr`, `Srv`, `Txt`, `TxtData` and `UnknownData`;
  - `Message.parse` for reading messages, which follows compression pointers;
  - `MessageBuilder` for writing messages, which writes names uncompressed and
    raises `ShortBufError` when a message would exceed its capacity.
- **`edgenet.mdns`** holds the request handlers:
  - `HostAnswersMdnsHandler` is the responder.
  - `PeerAnswersMdnsHandler` hands the answers in peers' responses to your own
    `PeerAnswers`.
  - `HostQuestions.query` builds query messages.
  - `NoHandler`, `NoHostAnswers` and `NoHostQuestions` are the ends of chains.
- **`edgenet.mdns_host`** has `Host`, `Service` and `ServiceAnswers`. They produce
  the A/AAAA, SRV, TXT and PTR records for a host and its DNS-SD services.
- **`edgenet.mdns_io`** has `bind()`, `VecBufAccess` and `Mdns`, which run the
  handlers over UDP sockets.

## Installation

```
pip install edgenet
```

To install with the test dependencies, use `pip install "edgenet[test]"`.

## A TCP client with a timeout

```python
import asyncio

from edgenet.std import Stack
from edgenet.timeout import OperationTimeout, WithTimeout


async def main():
    stack = WithTimeout(5000, Stack())
    try:
        sock = await stack.connect(("127.0.0.1", 8080))  # also wrapped
        await sock.write(b"ping")
        print(await sock.read(1024))
    except OperationTimeout:
        print("timed out")


asyncio.run(main())
```

## Answering mDNS queries for a host and a service

```python
import asyncio
import os
from ipaddress import IPv4Address, IPv6Address

from edgenet.mdns import HostAnswersMdnsHandler
from edgenet.mdns_host import Host, Service, ServiceAnswers
from edgenet.mdns_io import Mdns, VecBufAccess, bind
from edgenet.std import Stack


def fill_random(buf: bytearray) -> None:
    buf[:] = os.urandom(len(buf))


async def main():
    host = Host(
        hostname="mydevice",
        ipv4=IPv4Address("192.168.1.50"),
        ipv6=IPv6Address("::"),  # unspecified: no AAAA answer
        ttl=60,
    )
    service = Service(
        name="mydevice-web",
        priority=1,
        weight=5,
        service="_http",
        protocol="_tcp",
        port=80,
        txt_kvs=[("path", "/")],
    )

    iface = IPv4Address("0.0.0.0")
    sock = await bind(Stack(), ("0.0.0.0", 5353), iface, None)
    with sock:
        mdns = Mdns(
            iface, None,
            sock, sock,
            VecBufAccess(1500), VecBufAccess(1500),
            rand=fill_random,
            broadcast_signal=asyncio.Event(),
        )
        await mdns.run(HostAnswersMdnsHandler(ServiceAnswers(host, service)))


asyncio.run(main())
```

`Mdns.run` starts by broadcasting every answer the handler has. It broadcasts them
again each time `broadcast_signal` is set.

It answers queries as follows:

- A query from the mDNS port gets its answer multicast.
- A query from any other port (a legacy query) gets a private reply. The reply
  echoes the query's questions.
- Malformed messages are logged and skipped.

`run` returns or raises as soon as either its broadcasting loop or its answering
loop stops.

## Sending a query

Subclass `HostQuestions` and yield `Question` objects from `questions()`. Then pass
a builder to `Mdns.query`:

```python
await mdns.query(lambda size: my_questions.query(0, size))
```

Responses are handled by a `PeerAnswersMdnsHandler` running under `Mdns.run`. You can
chain it with a responder:

```python
handler = NoHandler().chain(PeerAnswersMdnsHandler(my_peer_answers)).chain(responder)
```

A chain calls its handlers in turn and stops at the first one that returns a reply.

## What it does not do

- There is no command-line program. Everything runs from your own asyncio code.
- `Stack.get_host_by_address` does not do reverse lookups; it raises
  `io.UnsupportedOperation`.
- No network stack other than the operating system's sockets is provided.

## Running the tests

```
pytest
```
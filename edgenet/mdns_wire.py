"""DNS wire format for mDNS: names, record data, questions, messages and a builder."""

from __future__ import annotations

import enum
import struct
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from functools import cached_property
from ipaddress import IPv4Address, IPv6Address
from typing import ClassVar, Union

HEADER_LEN = 12
MAX_LABEL_LEN = 63
MAX_NAME_LEN = 255
MAX_COUNT = 0xFFFF
_MAX_POINTER_JUMPS = 128


class MdnsError(Exception):
    """Base class for errors raised while building or parsing mDNS messages."""


class ShortBufError(MdnsError):
    """The message does not fit in the available space."""

    def __init__(self, message: str = "ShortBuf") -> None:
        super().__init__(message)


class InvalidMessageError(MdnsError):
    """The message or a name in it is malformed."""

    def __init__(self, message: str = "InvalidMessage") -> None:
        super().__init__(message)


class Rtype(enum.IntEnum):
    """Resource record types."""

    A = 1
    NS = 2
    CNAME = 5
    SOA = 6
    PTR = 12
    HINFO = 13
    MX = 15
    TXT = 16
    AAAA = 28
    SRV = 33
    OPT = 41
    NSEC = 47
    ANY = 255


class RClass(enum.IntEnum):
    """Resource record classes."""

    IN = 1
    CH = 3
    HS = 4
    NONE = 254
    ANY = 255


class Opcode(enum.IntEnum):
    """Message opcodes."""

    QUERY = 0
    IQUERY = 1
    STATUS = 2
    NOTIFY = 4
    UPDATE = 5


class Rcode(enum.IntEnum):
    """Response codes."""

    NOERROR = 0
    FORMERR = 1
    SERVFAIL = 2
    NXDOMAIN = 3
    NOTIMP = 4
    REFUSED = 5


def _coerce(enum_cls: type[enum.IntEnum], value: int) -> int:
    """The enum member for ``value`` if there is one, otherwise ``value`` itself."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _encode_label(label: str) -> bytes:
    return label.encode("utf-8", "surrogateescape")


class NameSlice:
    """A domain name made of text labels, without the root label."""

    __slots__ = ("labels",)

    def __init__(self, labels: Iterable[str]) -> None:
        labels = tuple(labels)
        total = 1
        for label in labels:
            encoded = _encode_label(label)
            if not encoded or len(encoded) > MAX_LABEL_LEN:
                raise InvalidMessageError(f"invalid label {label!r}")
            total += len(encoded) + 1
        if total > MAX_NAME_LEN:
            raise InvalidMessageError("name too long")
        self.labels: tuple[str, ...] = labels

    @classmethod
    def from_str(cls, name: str) -> NameSlice:
        """Build a name from dotted text such as ``"foo.local"``."""
        return cls(label for label in name.rstrip(".").split(".") if name.strip("."))

    def iter_labels(self) -> Iterator[str]:
        """Yield every label, ending with the empty root label."""
        yield from self.labels
        yield ""

    def name_eq(self, other: NameSlice) -> bool:
        """Compare with ``other`` label by label, ignoring ASCII case."""
        return len(self.labels) == len(other.labels) and all(
            _encode_label(a).lower() == _encode_label(b).lower()
            for a, b in zip(self.labels, other.labels)
        )

    def to_wire(self) -> bytes:
        """The uncompressed wire form of the name."""
        out = bytearray()
        for label in self.labels:
            encoded = _encode_label(label)
            out.append(len(encoded))
            out += encoded
        out.append(0)
        return bytes(out)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NameSlice):
            return NotImplemented
        return self.name_eq(other)

    def __hash__(self) -> int:
        return hash(tuple(_encode_label(label).lower() for label in self.labels))

    def __str__(self) -> str:
        return "".join(f"{label}." for label in self.labels)

    def __repr__(self) -> str:
        return f"NameSlice({list(self.labels)!r})"


DNS_SD_OWNER = NameSlice(["_services", "_dns-sd", "_udp", "local"])
"""The DNS-SD service enumeration name."""


@dataclass(frozen=True)
class Txt:
    """TXT record data built from key-value text pairs."""

    kvs: tuple[tuple[str, str], ...] = ()
    rtype: ClassVar[Rtype] = Rtype.TXT

    def __post_init__(self) -> None:
        object.__setattr__(self, "kvs", tuple((str(k), str(v)) for k, v in self.kvs))

    def to_wire(self) -> bytes:
        if not self.kvs:
            return b"\x00"
        out = bytearray()
        for key, value in self.kvs:
            entry = key.encode() + b"=" + value.encode()
            if len(entry) > 0xFF:
                raise InvalidMessageError(f"TXT entry for {key!r} is too long")
            out.append(len(entry))
            out += entry
        return bytes(out)

    def __str__(self) -> str:
        return "Txt [" + ", ".join(f"{k}={v}" for k, v in self.kvs) + "]"


@dataclass(frozen=True)
class A:
    """An IPv4 host address."""

    address: IPv4Address
    rtype: ClassVar[Rtype] = Rtype.A

    def to_wire(self) -> bytes:
        return IPv4Address(self.address).packed

    def __str__(self) -> str:
        return str(self.address)


@dataclass(frozen=True)
class Aaaa:
    """An IPv6 host address."""

    address: IPv6Address
    rtype: ClassVar[Rtype] = Rtype.AAAA

    def to_wire(self) -> bytes:
        return IPv6Address(self.address).packed

    def __str__(self) -> str:
        return str(self.address)


@dataclass(frozen=True)
class Ptr:
    """A pointer to another domain name."""

    name: NameSlice
    rtype: ClassVar[Rtype] = Rtype.PTR

    def to_wire(self) -> bytes:
        return self.name.to_wire()

    def __str__(self) -> str:
        return str(self.name)


@dataclass(frozen=True)
class Srv:
    """The location of a service."""

    priority: int
    weight: int
    port: int
    target: NameSlice
    rtype: ClassVar[Rtype] = Rtype.SRV

    def to_wire(self) -> bytes:
        try:
            fixed = struct.pack(">HHH", self.priority, self.weight, self.port)
        except struct.error as err:
            raise ValueError(f"invalid SRV field: {err}") from None
        return fixed + self.target.to_wire()

    def __str__(self) -> str:
        return f"{self.priority} {self.weight} {self.port} {self.target}"


@dataclass(frozen=True)
class TxtData:
    """TXT record data as parsed from the wire: a sequence of character strings."""

    strings: tuple[bytes, ...] = ()
    rtype: ClassVar[Rtype] = Rtype.TXT

    def to_wire(self) -> bytes:
        out = bytearray()
        for entry in self.strings:
            if len(entry) > 0xFF:
                raise InvalidMessageError("TXT string too long")
            out.append(len(entry))
            out += entry
        return bytes(out)

    def __str__(self) -> str:
        return " ".join(repr(s.decode("utf-8", "replace")) for s in self.strings)


@dataclass(frozen=True)
class UnknownData:
    """Record data of a type this module does not interpret."""

    rtype: int
    data: bytes = b""

    def to_wire(self) -> bytes:
        return bytes(self.data)

    def __str__(self) -> str:
        return f"\\# {len(self.data)} {self.data.hex()}"


RecordData = Union[Txt, A, Aaaa, Ptr, Srv, TxtData, UnknownData]


@dataclass(frozen=True)
class Record:
    """A resource record."""

    owner: NameSlice
    rclass: int
    ttl: int
    data: RecordData

    @property
    def rtype(self) -> int:
        return self.data.rtype

    def to_wire(self) -> bytes:
        rdata = self.data.to_wire()
        if len(rdata) > 0xFFFF:
            raise ShortBufError("record data too long")
        try:
            fixed = struct.pack(">HHIH", int(self.rtype), int(self.rclass), self.ttl, len(rdata))
        except struct.error as err:
            raise ValueError(f"invalid record field: {err}") from None
        return self.owner.to_wire() + fixed + rdata

    def __str__(self) -> str:
        rtype = self.rtype.name if isinstance(self.rtype, Rtype) else f"TYPE{self.rtype}"
        rclass = _coerce(RClass, self.rclass)
        cls_text = rclass.name if isinstance(rclass, RClass) else f"CLASS{rclass}"
        return f"{self.owner} {self.ttl} {cls_text} {rtype} {self.data}"


@dataclass(frozen=True)
class Question:
    """A question: a name with the record type and class asked for."""

    qname: NameSlice
    qtype: int = Rtype.ANY
    qclass: int = RClass.IN

    def to_wire(self) -> bytes:
        try:
            fixed = struct.pack(">HH", int(self.qtype), int(self.qclass))
        except struct.error as err:
            raise ValueError(f"invalid question field: {err}") from None
        return self.qname.to_wire() + fixed

    def __str__(self) -> str:
        qtype = self.qtype.name if isinstance(self.qtype, Rtype) else f"TYPE{self.qtype}"
        return f"{self.qname} {qtype}"


@dataclass
class Header:
    """The message header, without the section counts."""

    id: int = 0
    qr: bool = False
    opcode: int = Opcode.QUERY
    aa: bool = False
    tc: bool = False
    rd: bool = False
    ra: bool = False
    ad: bool = False
    cd: bool = False
    rcode: int = Rcode.NOERROR

    def to_wire(self, counts: tuple[int, int, int, int]) -> bytes:
        flags = (
            (self.qr << 15)
            | ((int(self.opcode) & 0xF) << 11)
            | (self.aa << 10)
            | (self.tc << 9)
            | (self.rd << 8)
            | (self.ra << 7)
            | (self.ad << 5)
            | (self.cd << 4)
            | (int(self.rcode) & 0xF)
        )
        return struct.pack(">HHHHHH", self.id & 0xFFFF, flags, *counts)

    @staticmethod
    def parse(data: bytes) -> tuple[Header, tuple[int, int, int, int]]:
        """Parse a header and its section counts from the start of ``data``."""
        if len(data) < HEADER_LEN:
            raise InvalidMessageError("message shorter than a header")
        ident, flags, *counts = struct.unpack_from(">HHHHHH", data)
        header = Header(
            id=ident,
            qr=bool(flags & 0x8000),
            opcode=_coerce(Opcode, (flags >> 11) & 0xF),
            aa=bool(flags & 0x0400),
            tc=bool(flags & 0x0200),
            rd=bool(flags & 0x0100),
            ra=bool(flags & 0x0080),
            ad=bool(flags & 0x0020),
            cd=bool(flags & 0x0010),
            rcode=_coerce(Rcode, flags & 0xF),
        )
        return header, (counts[0], counts[1], counts[2], counts[3])


class _Parser:
    """Reads names, questions and records from a message."""

    def __init__(self, data: bytes, pos: int) -> None:
        self.data = data
        self.pos = pos

    def unpack(self, fmt: str) -> tuple[int, ...]:
        size = struct.calcsize(fmt)
        if self.pos + size > len(self.data):
            raise InvalidMessageError("unexpected end of message")
        values = struct.unpack_from(fmt, self.data, self.pos)
        self.pos += size
        return values

    def name(self) -> NameSlice:
        data = self.data
        labels: list[str] = []
        pos = self.pos
        end: int | None = None
        jumps = 0
        total = 1
        while True:
            if pos >= len(data):
                raise InvalidMessageError("unexpected end of name")
            length = data[pos]
            if length & 0xC0 == 0xC0:
                if pos + 1 >= len(data):
                    raise InvalidMessageError("truncated name pointer")
                if end is None:
                    end = pos + 2
                jumps += 1
                if jumps > _MAX_POINTER_JUMPS:
                    raise InvalidMessageError("name pointer loop")
                pos = ((length & 0x3F) << 8) | data[pos + 1]
                continue
            if length & 0xC0:
                raise InvalidMessageError("unsupported label type")
            pos += 1
            if length == 0:
                break
            label = data[pos : pos + length]
            if len(label) < length:
                raise InvalidMessageError("unexpected end of label")
            total += length + 1
            if total > MAX_NAME_LEN:
                raise InvalidMessageError("name too long")
            labels.append(label.decode("utf-8", "surrogateescape"))
            pos += length
        self.pos = end if end is not None else pos
        return NameSlice(labels)

    def question(self) -> Question:
        qname = self.name()
        qtype, qclass = self.unpack(">HH")
        return Question(qname, _coerce(Rtype, qtype), _coerce(RClass, qclass))

    def record(self) -> Record:
        owner = self.name()
        rtype, rclass, ttl, rdlen = self.unpack(">HHIH")
        start, end = self.pos, self.pos + rdlen
        if end > len(self.data):
            raise InvalidMessageError("record data runs past the message")
        data = self._rdata(_coerce(Rtype, rtype), start, end)
        self.pos = end
        return Record(owner, _coerce(RClass, rclass), ttl, data)

    def _name_within(self, start: int, end: int) -> NameSlice:
        self.pos = start
        name = self.name()
        if self.pos != end:
            raise InvalidMessageError("record data length mismatch")
        return name

    def _rdata(self, rtype: int, start: int, end: int) -> RecordData:
        raw = self.data[start:end]
        if rtype == Rtype.A:
            if len(raw) != 4:
                raise InvalidMessageError("bad A record length")
            return A(IPv4Address(raw))
        if rtype == Rtype.AAAA:
            if len(raw) != 16:
                raise InvalidMessageError("bad AAAA record length")
            return Aaaa(IPv6Address(raw))
        if rtype == Rtype.PTR:
            return Ptr(self._name_within(start, end))
        if rtype == Rtype.SRV:
            if len(raw) < 7:
                raise InvalidMessageError("bad SRV record length")
            priority, weight, port = struct.unpack_from(">HHH", raw)
            return Srv(priority, weight, port, self._name_within(start + 6, end))
        if rtype == Rtype.TXT:
            strings: list[bytes] = []
            pos = 0
            while pos < len(raw):
                length = raw[pos]
                entry = raw[pos + 1 : pos + 1 + length]
                if len(entry) < length:
                    raise InvalidMessageError("truncated TXT string")
                strings.append(entry)
                pos += 1 + length
            return TxtData(tuple(strings))
        return UnknownData(int(rtype), raw)


class Message:
    """A parsed message; its sections are parsed when first accessed."""

    def __init__(self, data: bytes, header: Header, counts: tuple[int, int, int, int]) -> None:
        self.data = data
        self.header = header
        self.counts = counts

    @staticmethod
    def parse(data: bytes) -> Message:
        """Parse the header of ``data``; raises ``InvalidMessageError`` if it is too short."""
        data = bytes(data)
        header, counts = Header.parse(data)
        return Message(data, header, counts)

    @cached_property
    def _question_section(self) -> tuple[tuple[Question, ...], int]:
        parser = _Parser(self.data, HEADER_LEN)
        questions = tuple(parser.question() for _ in range(self.counts[0]))
        return questions, parser.pos

    def _records(self, pos: int, count: int) -> tuple[tuple[Record, ...], int]:
        parser = _Parser(self.data, pos)
        records = tuple(parser.record() for _ in range(count))
        return records, parser.pos

    @cached_property
    def _answer_section(self) -> tuple[tuple[Record, ...], int]:
        return self._records(self._question_section[1], self.counts[1])

    @cached_property
    def _authority_section(self) -> tuple[tuple[Record, ...], int]:
        return self._records(self._answer_section[1], self.counts[2])

    @cached_property
    def _additional_section(self) -> tuple[tuple[Record, ...], int]:
        return self._records(self._authority_section[1], self.counts[3])

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._question_section[0]

    @property
    def answers(self) -> tuple[Record, ...]:
        return self._answer_section[0]

    @property
    def authority(self) -> tuple[Record, ...]:
        return self._authority_section[0]

    @property
    def additional(self) -> tuple[Record, ...]:
        return self._additional_section[0]


@dataclass
class MessageBuilder:
    """Builds a message of at most ``capacity`` bytes, section by section.

    Sections must be filled in order: questions, answers, authority, additional.
    """

    capacity: int
    header: Header = field(default_factory=Header)
    _body: bytearray = field(default_factory=bytearray, init=False, repr=False)
    _counts: list[int] = field(default_factory=lambda: [0, 0, 0, 0], init=False, repr=False)
    _section: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity < HEADER_LEN:
            raise ShortBufError()

    def __len__(self) -> int:
        return HEADER_LEN + len(self._body)

    def _push(self, section: int, wire: bytes) -> None:
        if section < self._section:
            raise ValueError("message sections must be filled in order")
        if self._counts[section] >= MAX_COUNT:
            raise ShortBufError("section count overflow")
        if len(self) + len(wire) > self.capacity:
            raise ShortBufError()
        self._section = section
        self._body += wire
        self._counts[section] += 1

    def push_question(self, question: Question) -> None:
        self._push(0, question.to_wire())

    def push_answer(self, record: Record) -> None:
        self._push(1, record.to_wire())

    def push_authority(self, record: Record) -> None:
        self._push(2, record.to_wire())

    def push_additional(self, record: Record) -> None:
        self._push(3, record.to_wire())

    @property
    def counts(self) -> tuple[int, int, int, int]:
        c = self._counts
        return (c[0], c[1], c[2], c[3])

    def finish(self) -> bytes:
        """The complete message."""
        return self.header.to_wire(self.counts) + bytes(self._body)


def set_header(builder: MessageBuilder, id: int, response: bool) -> None:
    """Make ``builder``'s header that of an mDNS query, or of a response when ``response``."""
    builder.header = Header(
        id=id,
        qr=response,
        opcode=Opcode.QUERY,
        aa=response,
        rcode=Rcode.NOERROR,
    )
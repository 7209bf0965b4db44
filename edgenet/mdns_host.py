"""Answers describing a host and its DNS-SD services."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address

from edgenet.mdns import HostAnswers
from edgenet.mdns_wire import (
    DNS_SD_OWNER,
    A,
    Aaaa,
    NameSlice,
    Ptr,
    RClass,
    Record,
    Srv,
    Txt,
)


@dataclass(frozen=True)
class Host(HostAnswers):
    """A host answering A and AAAA queries for ``<hostname>.local``.

    An unspecified address (``0.0.0.0`` or ``::``) is not announced.
    """

    hostname: str
    ipv4: IPv4Address
    ipv6: IPv6Address
    ttl: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "ipv4", IPv4Address(self.ipv4))
        object.__setattr__(self, "ipv6", IPv6Address(self.ipv6))

    @property
    def name(self) -> NameSlice:
        """The host's ``.local`` name."""
        return NameSlice([self.hostname, "local"])

    def answers(self) -> Iterator[Record]:
        owner = self.name
        if not self.ipv4.is_unspecified:
            yield Record(owner, RClass.IN, self.ttl, A(self.ipv4))
        if not self.ipv6.is_unspecified:
            yield Record(owner, RClass.IN, self.ttl, Aaaa(self.ipv6))


@dataclass(frozen=True)
class Service:
    """A DNS-SD service such as ``name._http._tcp.local``."""

    name: str
    priority: int
    weight: int
    service: str
    protocol: str
    port: int
    service_subtypes: tuple[str, ...] = ()
    txt_kvs: tuple[tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "service_subtypes", tuple(self.service_subtypes))
        object.__setattr__(
            self, "txt_kvs", tuple((str(k), str(v)) for k, v in self.txt_kvs)
        )

    def answers(self, host: Host) -> Iterator[Record]:
        """Yield the host's answers followed by this service's SRV, TXT and PTR records."""
        yield from host.answers()

        ttl = host.ttl
        owner = NameSlice([self.name, self.service, self.protocol, "local"])
        stype = NameSlice([self.service, self.protocol, "local"])

        yield Record(
            owner,
            RClass.IN,
            ttl,
            Srv(self.priority, self.weight, self.port, host.name),
        )
        yield Record(owner, RClass.IN, ttl, Txt(self.txt_kvs))
        yield Record(DNS_SD_OWNER, RClass.IN, ttl, Ptr(stype))
        yield Record(stype, RClass.IN, ttl, Ptr(owner))

        for subtype in self.service_subtypes:
            subtype_owner = NameSlice(
                [subtype, self.name, self.service, self.protocol, "local"]
            )
            subtype_name = NameSlice(
                [subtype, "_sub", self.service, self.protocol, "local"]
            )
            yield Record(subtype_owner, RClass.IN, ttl, Ptr(owner))
            yield Record(subtype_name, RClass.IN, ttl, Ptr(subtype_owner))
            yield Record(DNS_SD_OWNER, RClass.IN, ttl, Ptr(subtype_name))


class ServiceAnswers(HostAnswers):
    """A service together with the host that provides it."""

    def __init__(self, host: Host, service: Service) -> None:
        self.host = host
        self.service = service

    def __repr__(self) -> str:
        return f"ServiceAnswers(host={self.host!r}, service={self.service!r})"

    def answers(self) -> Iterator[Record]:
        return self.service.answers(self.host)
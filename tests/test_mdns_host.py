from ipaddress import IPv4Address, IPv6Address

from edgenet.mdns_host import Host, Service, ServiceAnswers
from edgenet.mdns_wire import (
    DNS_SD_OWNER,
    A,
    Aaaa,
    NameSlice,
    Ptr,
    RClass,
    Rtype,
    Srv,
    Txt,
)


def make_host(ipv4="192.168.1.10", ipv6="fe80::1"):
    return Host(hostname="foo", ipv4=ipv4, ipv6=ipv6, ttl=120)


def make_service(subtypes=()):
    return Service(
        name="web",
        priority=1,
        weight=2,
        service="_http",
        protocol="_tcp",
        port=8080,
        service_subtypes=subtypes,
        txt_kvs=(("path", "/"),),
    )


def test_host_with_both_addresses():
    answers = list(make_host().answers())
    assert [a.rtype for a in answers] == [Rtype.A, Rtype.AAAA]
    assert all(a.owner == NameSlice(["foo", "local"]) for a in answers)
    assert answers[0].data == A(IPv4Address("192.168.1.10"))
    assert answers[1].data == Aaaa(IPv6Address("fe80::1"))
    assert all(a.ttl == 120 and a.rclass == RClass.IN for a in answers)


def test_unspecified_addresses_are_not_announced():
    assert list(make_host("0.0.0.0", "::").answers()) == []
    only_v4 = list(make_host(ipv6="::").answers())
    assert [a.rtype for a in only_v4] == [Rtype.A]


def test_service_records():
    host = make_host(ipv6="::")
    answers = list(make_service().answers(host))
    assert [a.rtype for a in answers] == [Rtype.A, Rtype.SRV, Rtype.TXT, Rtype.PTR, Rtype.PTR]

    owner = NameSlice(["web", "_http", "_tcp", "local"])
    stype = NameSlice(["_http", "_tcp", "local"])
    srv, txt, sd_ptr, type_ptr = answers[1:]
    assert srv.owner == owner
    assert srv.data == Srv(1, 2, 8080, NameSlice(["foo", "local"]))
    assert txt.owner == owner
    assert txt.data == Txt((("path", "/"),))
    assert sd_ptr.owner == DNS_SD_OWNER
    assert sd_ptr.data == Ptr(stype)
    assert type_ptr.owner == stype
    assert type_ptr.data == Ptr(owner)


def test_service_subtypes_add_three_pointers_each():
    host = make_host()
    plain = list(make_service().answers(host))
    with_subtypes = list(make_service(("_printer", "_scanner")).answers(host))
    assert len(with_subtypes) == len(plain) + 6

    owner = NameSlice(["web", "_http", "_tcp", "local"])
    sub_owner = NameSlice(["_printer", "web", "_http", "_tcp", "local"])
    sub_name = NameSlice(["_printer", "_sub", "_http", "_tcp", "local"])
    first = with_subtypes[len(plain) : len(plain) + 3]
    assert (first[0].owner, first[0].data) == (sub_owner, Ptr(owner))
    assert (first[1].owner, first[1].data) == (sub_name, Ptr(sub_owner))
    assert (first[2].owner, first[2].data) == (DNS_SD_OWNER, Ptr(sub_name))


def test_service_answers_wrapper_matches_service():
    host = make_host()
    service = make_service(("_printer",))
    assert list(ServiceAnswers(host, service).answers()) == list(service.answers(host))
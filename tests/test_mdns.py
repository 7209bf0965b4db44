import pytest

from edgenet.mdns import (
    ChainedHandler,
    ChainedHostAnswers,
    ChainedHostQuestions,
    HostAnswersMdnsHandler,
    HostQuestions,
    MdnsHandler,
    MdnsRequest,
    MdnsResponse,
    NoHandler,
    NoHostAnswers,
    NoHostQuestions,
    PeerAnswers,
    PeerAnswersMdnsHandler,
)
from edgenet.mdns_host import Host, Service, ServiceAnswers
from edgenet.mdns_wire import (
    InvalidMessageError,
    Message,
    NameSlice,
    Question,
    Rtype,
    ShortBufError,
)

HOST = Host(hostname="foo", ipv4="192.168.1.10", ipv6="fe80::1", ttl=120)
SERVICE = Service(
    name="web",
    priority=0,
    weight=0,
    service="_http",
    protocol="_tcp",
    port=80,
    txt_kvs=(("a", "b"),),
)


class FixedHandler(MdnsHandler):
    def __init__(self, response):
        self.response = response
        self.calls = 0

    def handle(self, request, max_size):
        self.calls += 1
        return self.response


class Questions(HostQuestions):
    def __init__(self, *questions):
        self._questions = questions

    def questions(self):
        yield from self._questions


class Collector(PeerAnswers):
    def __init__(self):
        self.received = []

    def answers(self, answers, additional):
        self.received.append((list(answers), list(additional)))


def query_bytes(name, qtype=Rtype.A, id=0):
    return Questions(Question(NameSlice(name), qtype)).query(id, 512)


def test_no_handler_never_replies():
    assert NoHandler().handle(None, 512) is None


def test_chain_stops_at_first_reply():
    reply = MdnsResponse(b"reply", delay=True)
    first = FixedHandler(None)
    second = FixedHandler(reply)
    third = FixedHandler(MdnsResponse(b"other"))
    chain = NoHandler().chain(third).chain(second).chain(first)
    assert chain.handle(None, 512) == reply
    assert (first.calls, second.calls, third.calls) == (1, 1, 0)


def test_chain_falls_through_to_none():
    chain = ChainedHandler(FixedHandler(None), NoHandler())
    assert chain.handle(None, 512) is None


def test_chained_host_answers_order():
    chained = NoHostAnswers().chain(HOST).chain(ServiceAnswers(HOST, SERVICE))
    assert isinstance(chained, ChainedHostAnswers)
    expected = list(SERVICE.answers(HOST)) + list(HOST.answers())
    assert list(chained.answers()) == expected


def test_query_round_trip():
    q1 = Question(NameSlice(["foo", "local"]), Rtype.A)
    q2 = Question(NameSlice(["bar", "local"]), Rtype.AAAA)
    questions = NoHostQuestions().chain(Questions(q2)).chain(Questions(q1))
    assert isinstance(questions, ChainedHostQuestions)
    message = Message.parse(questions.query(7, 512))
    assert message.header.id == 7
    assert not message.header.qr
    assert not message.header.aa
    assert message.questions == (q1, q2)


def test_query_without_questions_is_empty():
    assert NoHostQuestions().query(1, 512) == b""


def test_query_too_small_raises():
    with pytest.raises(ShortBufError):
        Questions(Question(NameSlice(["foo", "local"]))).query(1, 20)


def test_broadcast_contains_all_answers():
    response = HostAnswersMdnsHandler(HOST).handle(None, 512)
    assert response is not None and response.delay is False
    # qr and aa bits set, opcode QUERY, rcode NOERROR
    assert response.data[2:4] == b"\x84\x00"
    message = Message.parse(response.data)
    assert message.header.id == 0
    assert message.answers == tuple(HOST.answers())


def test_broadcast_with_no_answers_is_none():
    assert HostAnswersMdnsHandler(NoHostAnswers()).handle(None, 512) is None


def test_answers_matching_query():
    request = MdnsRequest(query_bytes(["FOO", "local"], id=5))
    response = HostAnswersMdnsHandler(HOST).handle(request, 512)
    message = Message.parse(response.data)
    assert message.header.qr and message.header.aa
    assert message.header.id == 0
    assert message.questions == ()
    assert message.answers == tuple(HOST.answers())
    assert message.additional == ()


def test_legacy_query_echoes_id_and_questions():
    data = query_bytes(["foo", "local"], id=42)
    response = HostAnswersMdnsHandler(HOST).handle(MdnsRequest(data, legacy=True), 512)
    message = Message.parse(response.data)
    assert message.header.id == 42
    assert message.questions == Message.parse(data).questions
    assert len(message.answers) == 2


def test_unmatched_query_has_no_reply():
    request = MdnsRequest(query_bytes(["other", "local"]))
    assert HostAnswersMdnsHandler(HOST).handle(request, 512) is None


def test_response_messages_are_not_answered():
    broadcast = HostAnswersMdnsHandler(HOST).handle(None, 512).data
    assert HostAnswersMdnsHandler(HOST).handle(MdnsRequest(broadcast), 512) is None


def test_service_type_query_fills_additional():
    request = MdnsRequest(query_bytes(["_http", "_tcp", "local"], Rtype.PTR))
    handler = HostAnswersMdnsHandler(ServiceAnswers(HOST, SERVICE))
    message = Message.parse(handler.handle(request, 1024).data)
    assert [a.rtype for a in message.answers] == [Rtype.PTR]
    assert message.answers[0].data.name == NameSlice(["web", "_http", "_tcp", "local"])
    assert [a.rtype for a in message.additional] == [Rtype.A, Rtype.AAAA, Rtype.SRV, Rtype.TXT]


def test_invalid_message_raises():
    with pytest.raises(InvalidMessageError):
        HostAnswersMdnsHandler(HOST).handle(MdnsRequest(b"\x00\x01"), 512)


def test_reply_larger_than_max_size_raises():
    with pytest.raises(ShortBufError):
        HostAnswersMdnsHandler(HOST).handle(None, 8)
    with pytest.raises(ShortBufError):
        HostAnswersMdnsHandler(HOST).handle(None, 20)


def test_peer_handler_collects_answers():
    response = HostAnswersMdnsHandler(ServiceAnswers(HOST, SERVICE)).handle(None, 1024)
    collector = Collector()
    result = PeerAnswersMdnsHandler(collector).handle(MdnsRequest(response.data), 512)
    assert result is None
    assert len(collector.received) == 1
    answers, additional = collector.received[0]
    assert answers == list(Message.parse(response.data).answers)
    assert additional == []


def test_peer_handler_ignores_queries_legacy_and_broadcast():
    collector = Collector()
    handler = PeerAnswersMdnsHandler(collector)
    response = HostAnswersMdnsHandler(HOST).handle(None, 512).data
    assert handler.handle(None, 512) is None
    assert handler.handle(MdnsRequest(response, legacy=True), 512) is None
    assert handler.handle(MdnsRequest(query_bytes(["foo", "local"])), 512) is None
    assert collector.received == []


def test_peer_handler_invalid_message_raises():
    with pytest.raises(InvalidMessageError):
        PeerAnswersMdnsHandler(Collector()).handle(MdnsRequest(b"\x01"), 512)
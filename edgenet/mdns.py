"""mDNS request handling: responding with host answers and collecting peer answers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from dataclasses import dataclass

from edgenet.mdns_wire import (
    DNS_SD_OWNER,
    A,
    Aaaa,
    Message,
    MessageBuilder,
    Opcode,
    Ptr,
    Question,
    Rcode,
    Record,
    Srv,
    Txt,
    TxtData,
    set_header,
)

log = logging.getLogger(__name__)

_ADDITIONAL_TYPES = (A, Aaaa, Srv, TxtData, Txt)


@dataclass(frozen=True)
class MdnsRequest:
    """An incoming mDNS message.

    ``legacy`` is set when the packet's source port is not the mDNS port;
    ``multicast`` when it arrived on the multicast address. A request of
    ``None`` passed to a handler asks it to prepare a broadcast instead.
    """

    data: bytes
    legacy: bool = False
    multicast: bool = True


@dataclass(frozen=True)
class MdnsResponse:
    """A reply to send, and whether to wait a random delay before sending it."""

    data: bytes
    delay: bool = False


class MdnsHandler(ABC):
    """Processes an incoming mDNS message, possibly preparing a reply."""

    @abstractmethod
    def handle(self, request: MdnsRequest | None, max_size: int) -> MdnsResponse | None:
        """Handle ``request`` (or prepare a broadcast when it is ``None``).

        The reply, if any, is at most ``max_size`` bytes long.
        """


class NoHandler(MdnsHandler):
    """A handler that never replies; useful as the end of a chain."""

    def handle(self, request: MdnsRequest | None, max_size: int) -> MdnsResponse | None:
        return None

    def chain(self, handler: MdnsHandler) -> ChainedHandler:
        return ChainedHandler(handler, self)


class ChainedHandler(MdnsHandler):
    """Calls ``first``, then ``second`` if ``first`` had no reply."""

    def __init__(self, first: MdnsHandler, second: MdnsHandler) -> None:
        self.first = first
        self.second = second

    def handle(self, request: MdnsRequest | None, max_size: int) -> MdnsResponse | None:
        response = self.first.handle(request, max_size)
        if response is None:
            return self.second.handle(request, max_size)
        return response

    def chain(self, handler: MdnsHandler) -> ChainedHandler:
        """Put ``handler`` in front of this chain."""
        return ChainedHandler(handler, self)


class HostAnswers(ABC):
    """Something that has answers to mDNS queries.

    It yields all of its answers regardless of the question; filtering is
    done by the caller.
    """

    @abstractmethod
    def answers(self) -> Iterator[Record]:
        """Yield every answer this entity has."""


class NoHostAnswers(HostAnswers):
    """Has no answers; useful as the end of a chain."""

    def answers(self) -> Iterator[Record]:
        return iter(())

    def chain(self, answers: HostAnswers) -> ChainedHostAnswers:
        return ChainedHostAnswers(answers, self)


class ChainedHostAnswers(HostAnswers):
    """The answers of ``first`` followed by those of ``second``."""

    def __init__(self, first: HostAnswers, second: HostAnswers) -> None:
        self.first = first
        self.second = second

    def answers(self) -> Iterator[Record]:
        yield from self.first.answers()
        yield from self.second.answers()

    def chain(self, answers: HostAnswers) -> ChainedHostAnswers:
        return ChainedHostAnswers(answers, self)


class HostQuestions(ABC):
    """Something that has questions to ask in an outgoing mDNS query."""

    @abstractmethod
    def questions(self) -> Iterator[Question]:
        """Yield every question to ask."""

    def query(self, id: int, max_size: int) -> bytes:
        """Build a query message of at most ``max_size`` bytes.

        Returns empty bytes when there are no questions.
        """
        builder = MessageBuilder(max_size)
        set_header(builder, id, False)
        pushed = False
        for question in self.questions():
            builder.push_question(question)
            pushed = True
        return builder.finish() if pushed else b""


class NoHostQuestions(HostQuestions):
    """Has no questions; useful as the end of a chain."""

    def questions(self) -> Iterator[Question]:
        return iter(())

    def chain(self, questions: HostQuestions) -> ChainedHostQuestions:
        return ChainedHostQuestions(questions, self)


class ChainedHostQuestions(HostQuestions):
    """The questions of ``first`` followed by those of ``second``."""

    def __init__(self, first: HostQuestions, second: HostQuestions) -> None:
        self.first = first
        self.second = second

    def questions(self) -> Iterator[Question]:
        yield from self.first.questions()
        yield from self.second.questions()

    def chain(self, questions: HostQuestions) -> ChainedHostQuestions:
        return ChainedHostQuestions(questions, self)


def _is_plain_query(message: Message) -> bool:
    header = message.header
    return header.opcode == Opcode.QUERY and header.rcode == Rcode.NOERROR


class HostAnswersMdnsHandler(MdnsHandler):
    """Answers mDNS queries from peers with the given host answers (the responder)."""

    def __init__(self, answers: HostAnswers) -> None:
        self.answers = answers

    def handle(self, request: MdnsRequest | None, max_size: int) -> MdnsResponse | None:
        builder = MessageBuilder(max_size)
        pushed = False

        if request is None:
            set_header(builder, 0, True)
            for answer in self.answers.answers():
                builder.push_answer(answer)
                pushed = True
        else:
            message = Message.parse(request.data)
            if not _is_plain_query(message) or message.header.qr:
                return None

            if request.legacy:
                set_header(builder, message.header.id, True)
                # Legacy requests get their questions echoed back.
                for question in message.questions:
                    builder.push_question(question)
            else:
                set_header(builder, 0, True)

            additional_a = False
            additional_srv_txt = False

            for question in message.questions:
                for answer in self.answers.answers():
                    if isinstance(answer.data, Srv):
                        additional_a = True
                    if isinstance(answer.data, Ptr) and not answer.owner.name_eq(DNS_SD_OWNER):
                        additional_a = True
                        # All SRV and TXT records go out, not just the relevant ones.
                        additional_srv_txt = True
                    if question.qname.name_eq(answer.owner):
                        log.debug("Answering question [%s] with: [%s]", question, answer)
                        builder.push_answer(answer)
                        pushed = True

            if additional_a or additional_srv_txt:
                for answer in self.answers.answers():
                    if isinstance(answer.data, _ADDITIONAL_TYPES):
                        log.debug("Additional answer: [%s]", answer)
                        builder.push_additional(answer)
                        pushed = True

        if pushed:
            return MdnsResponse(builder.finish(), delay=False)
        return None


class PeerAnswers(ABC):
    """Processes the answers carried by mDNS responses from peers."""

    @abstractmethod
    def answers(self, answers: Sequence[Record], additional: Sequence[Record]) -> None:
        """Process the answer and additional sections of one response."""


class PeerAnswersMdnsHandler(MdnsHandler):
    """Feeds answers from peers' responses to a ``PeerAnswers``; never replies."""

    def __init__(self, answers: PeerAnswers) -> None:
        self.answers = answers

    def handle(self, request: MdnsRequest | None, max_size: int) -> MdnsResponse | None:
        if request is None or request.legacy:
            # Legacy packets carry no mDNS answers.
            return None

        message = Message.parse(request.data)
        if not _is_plain_query(message) or not message.header.qr:
            return None

        self.answers.answers(message.answers, message.additional)
        return None
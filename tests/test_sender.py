# tests/test_sender.py
import random
import socket
import struct

import pytest

from conftest import (
    FakeClock,
    FakeSocket,
    datagram_v4,
    echo_reply_v4,
    echo_reply_v6,
    error_v4,
    error_v6,
    ipv4_header,
)
from ekko.core import raw_socket
from ekko.core.errors import (
    AddressMismatchError,
    EkkoError,
    HopLimitError,
    InvalidAddressError,
    SocketReceiveError,
    SocketSendError,
)
from ekko.core.resolver import DomainResolver
from ekko.core.responses import ResponseKind
from ekko.core.sender import SEQUENCE_MODULUS, Ekko, EkkoConfig

LOCAL = "192.0.2.1"
TARGET = "198.51.100.7"
LOCAL_V6 = "2001:db8::1"
TARGET_V6 = "2001:db8::7"


def path_responder(destination_hop=3, silent=(), target=TARGET):
    """Routers 10.0.0.N answer below ``destination_hop``; the target answers from there on."""
    def respond(request, hops, address):
        if hops in silent:
            return []
        if hops >= destination_hop:
            return [(datagram_v4(echo_reply_v4(request), target), target)]
        router = f"10.0.0.{hops}"
        return [(datagram_v4(error_v4(11, 0, request), router), router)]
    return respond


def _engine(sock, clock=None, **kwargs):
    kwargs.setdefault("rng", random.Random(42))
    return Ekko(LOCAL, TARGET, sock=sock, clock=clock or FakeClock(), **kwargs)


# ==================== CONSTRUCTION ====================

def test_mismatched_families_fail_before_socket_io(monkeypatch):
    def no_socket(family):
        raise AssertionError("socket must not be opened")
    monkeypatch.setattr(raw_socket, "create_icmp_socket", no_socket)

    with pytest.raises(AddressMismatchError) as info:
        Ekko(LOCAL, TARGET_V6)
    assert info.value.source == LOCAL
    assert info.value.target == TARGET_V6

    sock = FakeSocket()
    with pytest.raises(AddressMismatchError):
        Ekko(LOCAL_V6, TARGET, sock=sock)
    assert sock.bound is None
    assert sock.options == {}


def test_non_ip_addresses_are_rejected():
    sock = FakeSocket()
    with pytest.raises(InvalidAddressError) as info:
        Ekko("not-an-ip", TARGET, sock=sock)
    assert info.value.address == "not-an-ip"
    assert isinstance(info.value, EkkoError)
    assert sock.bound is None

    with pytest.raises(InvalidAddressError):
        Ekko(LOCAL, "198.51.100.300", sock=FakeSocket())


def test_socket_is_configured_and_bound():
    sock = FakeSocket()
    engine = _engine(sock, config=EkkoConfig(receive_buffer_size=4096))
    assert sock.blocking is False
    assert sock.options[(socket.SOL_SOCKET, socket.SO_RCVBUF)] == 4096
    assert sock.bound == (LOCAL, 0)
    assert engine.family == socket.AF_INET


def test_identifier_is_drawn_once_from_rng():
    sock = FakeSocket(responder=path_responder())
    engine = _engine(sock, rng=random.Random(42))
    assert engine.identifier == random.Random(42).randrange(SEQUENCE_MODULUS)

    engine.send(5)
    engine.send(6)
    identifiers = {struct.unpack_from('!H', data, 4)[0] for data, _, _ in sock.sent}
    assert identifiers == {engine.identifier}


def test_sequence_numbers_increase_and_wrap():
    sock = FakeSocket(responder=path_responder())
    engine = _engine(sock)
    engine.send(5)
    engine._sequence = SEQUENCE_MODULUS - 1
    engine.send(5)
    engine.send(5)

    sequences = [struct.unpack_from('!H', data, 6)[0] for data, _, _ in sock.sent]
    assert sequences == [0, SEQUENCE_MODULUS - 1, 0]


def test_with_target_binds_unspecified_address():
    sock = FakeSocket()
    engine = Ekko.with_target(TARGET_V6, sock=sock, clock=FakeClock())
    assert engine.family == socket.AF_INET6
    assert sock.bound == ("::", 0, 0, 0)
    assert str(engine.source_address) == "::"


# ==================== SINGLE ATTEMPT ====================

def test_send_reaches_destination():
    sock = FakeSocket(responder=path_responder(destination_hop=1))
    engine = _engine(sock)

    response = engine.send(64)
    assert response.kind == ResponseKind.DESTINATION
    assert response.data.address == TARGET
    assert response.data.hops == 64
    assert response.data.elapsed > 0
    assert sock.sent[0][2] == 64
    assert sock.sent[0][1] == (TARGET, 0)


def test_send_time_exceeded_from_router():
    sock = FakeSocket(responder=path_responder(destination_hop=10))
    response = _engine(sock).send(2)
    assert response.kind == ResponseKind.EXCEEDED
    assert response.data.address == "10.0.0.2"


def test_send_timeout_is_lacking():
    sock = FakeSocket()
    clock = FakeClock(step=0.0625)
    response = _engine(sock, clock=clock).send_with_timeout(3, 0.25)

    assert response.is_lacking
    assert response.data.address is None
    assert response.data.hops == 3
    assert response.data.elapsed >= 0.25


def test_send_ignores_looped_back_request_and_foreign_traffic():
    sock = FakeSocket()
    engine = _engine(sock)
    foreign_request = struct.pack('!BBHHH', 8, 0, 0, engine.identifier ^ 0xFFFF, 0)

    def respond(request, hops, address):
        return [
            (datagram_v4(request, LOCAL), LOCAL),                                   # our own probe
            (b'\x45\x00', "203.0.113.5"),                                           # truncated IPv4
            (datagram_v4(b'\x00\x00', "203.0.113.5"), "203.0.113.5"),              # truncated reply
            (datagram_v4(echo_reply_v4(foreign_request), "203.0.113.5"), "203.0.113.5"),
            (datagram_v4(struct.pack('!BBHI', 11, 0, 0, 0), "203.0.113.6"), "203.0.113.6"),
            (datagram_v4(echo_reply_v4(request), TARGET), TARGET),
        ]
    sock.responder = respond

    response = engine.send(64)
    assert response.kind == ResponseKind.DESTINATION
    assert response.data.address == TARGET
    assert not sock.inbox


def test_send_ignores_stale_sequence():
    sock = FakeSocket()
    engine = _engine(sock)
    stale = []

    def respond(request, hops, address):
        stale.append(request)
        if len(stale) == 1:
            return []
        return [
            (datagram_v4(echo_reply_v4(stale[0]), TARGET), TARGET),
            (datagram_v4(error_v4(11, 0, request), "10.0.0.1"), "10.0.0.1"),
        ]
    sock.responder = respond

    assert engine.send_with_timeout(1, 0.05).is_lacking
    response = engine.send(1)
    assert response.kind == ResponseKind.EXCEEDED
    assert response.data.sequence == 1


def test_send_v6_packet_too_big():
    sock = FakeSocket()
    engine = Ekko(LOCAL_V6, TARGET_V6, sock=sock, clock=FakeClock(), rng=random.Random(1))

    def respond(request, hops, address):
        return [(error_v6(2, 0, request, rest=struct.pack('!I', 1280)), "2001:db8::fe")]
    sock.responder = respond

    response = engine.send(8)
    assert response.kind == ResponseKind.PACKET_TOO_BIG
    assert response.detail == 1280
    assert sock.sent[0][1] == (TARGET_V6, 0, 0, 0)


def test_send_v6_echo_reply():
    sock = FakeSocket(responder=lambda request, hops, address: [(echo_reply_v6(request), TARGET_V6)])
    engine = Ekko(LOCAL_V6, TARGET_V6, sock=sock, clock=FakeClock())
    assert engine.send(64).kind == ResponseKind.DESTINATION
    assert sock.hops == 64


def test_send_attaches_domain():
    resolver = DomainResolver(lookup=lambda address: {"10.0.0.1": "gw.example"}[address])
    sock = FakeSocket(responder=path_responder(destination_hop=5))
    response = _engine(sock, resolver=resolver).send(1)
    assert response.data.domain == "gw.example"


def test_send_rejects_invalid_hop_limit():
    engine = _engine(FakeSocket())
    with pytest.raises(HopLimitError):
        engine.send(256)


def test_send_failure_is_typed():
    class BrokenSocket(FakeSocket):
        def sendto(self, data, address):
            raise PermissionError("Operation not permitted")

    with pytest.raises(SocketSendError):
        _engine(BrokenSocket()).send(1)


class RefusingSocket(FakeSocket):
    def recvfrom(self, bufsize):
        raise ConnectionRefusedError(111, "Connection refused")


def test_receive_failure_is_typed():
    with pytest.raises(SocketReceiveError) as info:
        _engine(RefusingSocket()).send_with_timeout(1, 0.05)
    assert isinstance(info.value, EkkoError)
    assert isinstance(info.value.__cause__, ConnectionRefusedError)

    with pytest.raises(SocketReceiveError):
        _engine(RefusingSocket()).send_range_with_timeout(range(1, 4), 0.05)


# ==================== RANGE ====================

def test_send_range_returns_request_order():
    sock = FakeSocket(responder=path_responder(destination_hop=3), lifo=True)
    responses = _engine(sock).send_range(range(1, 5))

    assert [r.hops for r in responses] == [1, 2, 3, 4]
    assert [r.kind for r in responses] == [
        ResponseKind.EXCEEDED,
        ResponseKind.EXCEEDED,
        ResponseKind.DESTINATION,
        ResponseKind.DESTINATION,
    ]
    assert [r.data.address for r in responses] == ["10.0.0.1", "10.0.0.2", TARGET, TARGET]


def test_send_range_sends_everything_before_receiving():
    sock = FakeSocket(responder=path_responder())
    _engine(sock).send_range([1, 2, 3])
    assert [hops for _, _, hops in sock.sent] == [1, 2, 3]
    assert [struct.unpack_from('!H', data, 6)[0] for data, _, _ in sock.sent] == [0, 1, 2]


def test_send_range_reports_missing_hops_as_lacking():
    sock = FakeSocket(responder=path_responder(destination_hop=4, silent={2}))
    clock = FakeClock(step=0.03125)
    responses = _engine(sock, clock=clock).send_range_with_timeout(range(1, 5), 0.25)

    assert len(responses) == 4
    assert responses[1].is_lacking
    # one deadline counted from the first send
    first, missing = responses[0].data, responses[1].data
    assert missing.elapsed + (missing.timepoint - first.timepoint) >= 0.25
    assert responses[0].kind == ResponseKind.EXCEEDED
    assert responses[3].is_destination


def test_send_range_keeps_first_duplicate():
    def respond(request, hops, address):
        return [
            (datagram_v4(error_v4(11, 0, request), "10.0.0.1"), "10.0.0.1"),
            (datagram_v4(error_v4(11, 0, request), "10.0.0.99"), "10.0.0.99"),
        ]
    responses = _engine(FakeSocket(responder=respond)).send_range([1])
    assert responses[0].data.address == "10.0.0.1"


def test_send_range_empty_and_oversized():
    engine = _engine(FakeSocket())
    assert engine.send_range([]) == []
    with pytest.raises(ValueError):
        engine.send_range(range(SEQUENCE_MODULUS + 1))


# ==================== LIFECYCLE ====================

def test_close_and_context_manager():
    sock = FakeSocket()
    with _engine(sock) as engine:
        assert engine.socket is sock
    assert sock.closed
    assert engine.socket is None

    with pytest.raises(EkkoError):
        engine.send(1)

    # closing twice is harmless
    engine.close()


def test_quoted_header_with_options_still_matches():
    def respond(request, hops, address):
        quoted = ipv4_header(LOCAL, TARGET, len(request), ttl=1, options=b'\x01' * 4) + request
        message = struct.pack('!BBHI', 11, 0, 0, 0) + quoted
        return [(datagram_v4(message, "10.0.0.1"), "10.0.0.1")]

    response = _engine(FakeSocket(responder=respond)).send(1)
    assert response.kind == ResponseKind.EXCEEDED

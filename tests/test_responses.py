# tests/test_responses.py
import random
import socket
import struct

import pytest

from conftest import echo_reply_v4, echo_reply_v6, error_v4, error_v6
from ekko.core.codes import ICMPV4_ORIGINATOR_TYPES, ICMPV6_ORIGINATOR_TYPES, Redirect, Unreachable
from ekko.core.packets import EkkoPacket
from ekko.core.responses import EkkoData, EkkoResponse, ResponseKind, classify, lacking

V4_KINDS = {
    0: ResponseKind.DESTINATION,
    3: ResponseKind.UNREACHABLE,
    4: ResponseKind.SOURCE_QUENCH,
    5: ResponseKind.REDIRECT,
    11: ResponseKind.EXCEEDED,
    12: ResponseKind.PARAMETER_PROBLEM,
}

V6_KINDS = {
    129: ResponseKind.DESTINATION,
    1: ResponseKind.UNREACHABLE,
    2: ResponseKind.PACKET_TOO_BIG,
    3: ResponseKind.EXCEEDED,
    4: ResponseKind.PARAMETER_PROBLEM,
}


def _request(family):
    if family == socket.AF_INET6:
        return EkkoPacket.build(0x2222, 5, family, source="2001:db8::1",
                                destination="2001:db8::7", rng=random.Random(0)).as_bytes()
    return EkkoPacket.build(0x2222, 5, family, rng=random.Random(0)).as_bytes()


def _message(family, icmp_type, code=0, request=None):
    """A well-formed message of ``icmp_type``/``code`` answering the 0x2222/5 probe."""
    request = request or _request(family)
    if family == socket.AF_INET6:
        if icmp_type in ICMPV6_ORIGINATOR_TYPES:
            return error_v6(icmp_type, code, request)
    elif icmp_type in ICMPV4_ORIGINATOR_TYPES:
        return error_v4(icmp_type, code, request)
    return bytes([icmp_type, code]) + request[2:]


@pytest.mark.parametrize("family,kinds", [
    (socket.AF_INET, V4_KINDS),
    (socket.AF_INET6, V6_KINDS),
])
def test_classification_is_total(family, kinds):
    """Every (type, code) pair maps to exactly one outcome, never an exception."""
    request = _request(family)
    for icmp_type in range(256):
        for code in range(256):
            packet = EkkoPacket(_message(family, icmp_type, code, request), family)
            response = classify(packet, "192.0.2.9", 4, 10.0, 0.02)
            assert response.kind == kinds.get(icmp_type, ResponseKind.UNEXPECTED), (icmp_type, code)
            assert response.data.identifier == 0x2222
            assert response.data.sequence == 5
            if response.kind == ResponseKind.UNEXPECTED:
                assert response.detail == (icmp_type, code)


def test_destination_data():
    reply = EkkoPacket(echo_reply_v4(_request(socket.AF_INET)), socket.AF_INET)
    response = classify(reply, "198.51.100.7", 12, 50.0, 0.0125)

    assert response.is_destination
    assert response.detail is None
    assert response.data.address == "198.51.100.7"
    assert response.data.hops == 12
    assert response.data.timepoint == 50.0
    assert response.data.elapsed_ms == pytest.approx(12.5)


def test_destination_v6():
    reply = EkkoPacket(echo_reply_v6(_request(socket.AF_INET6)), socket.AF_INET6)
    assert classify(reply, "2001:db8::7", 64, 0.0, 0.001).kind == ResponseKind.DESTINATION


def test_unreachable_detail_attached():
    message = error_v4(3, 4, _request(socket.AF_INET), rest=struct.pack('!HH', 0, 576))
    response = classify(EkkoPacket(message, socket.AF_INET), "192.0.2.1", 3, 0.0, 0.01)
    assert response.kind == ResponseKind.UNREACHABLE
    assert isinstance(response.detail, Unreachable)
    assert response.detail.mtu == 576


def test_redirect_detail_attached():
    message = error_v4(5, 1, _request(socket.AF_INET), rest=bytes([192, 0, 2, 254]))
    response = classify(EkkoPacket(message, socket.AF_INET), "192.0.2.1", 1, 0.0, 0.01)
    assert isinstance(response.detail, Redirect)
    assert response.to_dict()['detail'] == {'code': 1, 'reason': 'for_host', 'gateway': '192.0.2.254'}


def test_packet_too_big_detail():
    message = error_v6(2, 0, _request(socket.AF_INET6), rest=struct.pack('!I', 1280))
    response = classify(EkkoPacket(message, socket.AF_INET6), "2001:db8::1", 2, 0.0, 0.01)
    assert response.detail == 1280
    assert response.to_dict()['detail'] == {'mtu': 1280}


def test_lacking_has_no_address():
    response = lacking(7, 1.0, 0.3, 0x2222, 6)
    assert response.is_lacking
    assert response.data.address is None
    assert response.hops == 7
    assert response.to_dict()['kind'] == "lacking"


# ==================== ORDERING & EQUALITY ====================

def _data(hops, address="192.0.2.1", elapsed=0.01):
    return EkkoData(timepoint=0.0, elapsed=elapsed, address=address,
                    identifier=1, sequence=hops, hops=hops)


def test_data_equality_ignores_timing():
    assert _data(3, elapsed=0.01) == _data(3, elapsed=0.5)
    assert _data(3) != _data(4)
    assert _data(3, address="192.0.2.1") != _data(3, address="192.0.2.2")


def test_responses_order_by_hops():
    responses = [
        EkkoResponse(ResponseKind.DESTINATION, _data(9)),
        EkkoResponse(ResponseKind.EXCEEDED, _data(1)),
        lacking(4, 0.0, 0.3, 1, 4),
    ]
    assert [r.hops for r in sorted(responses)] == [1, 4, 9]


def test_with_domain_copies():
    response = EkkoResponse(ResponseKind.EXCEEDED, _data(2))
    named = response.with_domain("router.example")
    assert named.data.domain == "router.example"
    assert response.data.domain is None
    assert named == response


def test_to_dict_unexpected():
    response = EkkoResponse(ResponseKind.UNEXPECTED, _data(2), (13, 0))
    assert response.to_dict()['detail'] == {'type': 13, 'code': 0}

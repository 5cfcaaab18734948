# tests/conftest.py
import ipaddress
import socket
import struct
from collections import deque

import pytest

from ekko.core.checksum import OptimizedChecksum


class FakeSocket:
    """
    Stand-in for a raw ICMP socket.

    ``responder(request, hops, address)`` is called on every send and returns
    the (datagram, responder address) pairs that become receivable.
    """

    def __init__(self, responder=None, lifo=False):
        self.responder = responder
        self.lifo = lifo
        self.inbox = deque()
        self.sent = []
        self.options = {}
        self.hops = None
        self.bound = None
        self.blocking = True
        self.closed = False

    def setblocking(self, flag):
        self.blocking = flag

    def setsockopt(self, level, option, value):
        self.options[(level, option)] = value
        if (level, option) in ((socket.IPPROTO_IP, socket.IP_TTL),
                               (socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS)):
            self.hops = value

    def bind(self, address):
        self.bound = address

    def sendto(self, data, address):
        data = bytes(data)
        self.sent.append((data, address, self.hops))
        if self.responder is not None:
            for item in self.responder(data, self.hops, address) or []:
                self.inbox.append(item)
        return len(data)

    def recvfrom(self, bufsize):
        if not self.inbox:
            raise BlockingIOError
        data, address = self.inbox.pop() if self.lifo else self.inbox.popleft()
        return data[:bufsize], (address, 0)

    def push(self, datagram, address):
        self.inbox.append((datagram, address))

    def close(self):
        self.closed = True


class FakeClock:
    """Monotonic clock that advances by ``step`` on every reading."""

    def __init__(self, start=100.0, step=0.01):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


# ==================== DATAGRAM BUILDERS ====================

def with_checksum(message: bytes) -> bytes:
    message = bytearray(message)
    message[2:4] = b'\x00\x00'
    struct.pack_into('!H', message, 2, OptimizedChecksum.icmp_checksum(bytes(message)))
    return bytes(message)


def ipv4_header(src: str, dst: str, payload_length: int, ttl: int = 64, options: bytes = b'') -> bytes:
    ihl = 5 + len(options) // 4
    header = struct.pack(
        '!BBHHHBBH4s4s',
        0x40 | ihl, 0, ihl * 4 + payload_length, 0, 0, ttl, socket.IPPROTO_ICMP, 0,
        ipaddress.IPv4Address(src).packed, ipaddress.IPv4Address(dst).packed
    )
    return header + options


def ipv6_header(src: str, dst: str, payload_length: int, hops: int = 64) -> bytes:
    return struct.pack(
        '!IHBB16s16s',
        0x60000000, payload_length, 58, hops,
        ipaddress.IPv6Address(src).packed, ipaddress.IPv6Address(dst).packed
    )


def echo_reply_v4(request: bytes) -> bytes:
    return with_checksum(b'\x00\x00' + request[2:])


def echo_reply_v6(request: bytes) -> bytes:
    # Checksum is not inspected by the receiver
    return bytes([129, 0]) + request[2:]


def error_v4(icmp_type: int, code: int, request: bytes, rest: bytes = b'\x00' * 4,
             source: str = "192.0.2.1", target: str = "198.51.100.7") -> bytes:
    """ICMPv4 error message quoting ``request`` behind its original IPv4 header."""
    quoted = ipv4_header(source, target, len(request), ttl=1) + request
    return with_checksum(struct.pack('!BBH', icmp_type, code, 0) + rest + quoted)


def error_v6(icmp_type: int, code: int, request: bytes, rest: bytes = b'\x00' * 4,
             source: str = "2001:db8::1", target: str = "2001:db8::7") -> bytes:
    """ICMPv6 error message quoting ``request`` behind a fixed 40-byte IPv6 header."""
    quoted = ipv6_header(source, target, len(request), hops=1) + request
    return struct.pack('!BBH', icmp_type, code, 0) + rest + quoted


def datagram_v4(message: bytes, responder: str, local: str = "192.0.2.1") -> bytes:
    """What a raw ICMPv4 socket delivers: IPv4 header plus message."""
    return ipv4_header(responder, local, len(message)) + message


# ==================== FIXTURES ====================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_socket():
    return FakeSocket()

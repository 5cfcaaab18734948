"""
Echo Packet Codec - ICMPv4/ICMPv6 echo request construction and field access.

Echo Request/Reply Format (RFC 792 / RFC 4443):
+-----------+-----------+-------------------------+
| Type (8)  | Code (8)  |      Checksum (16)      |
+-----------+-----------+-------------------------+
|   Identifier (16)     |   Sequence Number (16)  |
+-----------------------+-------------------------+
|                  Fill payload                   |
+-------------------------------------------------+

Error messages (unreachable, time exceeded, ...) quote the probe that
triggered them. The quoted probe is the "originator"; its identifier and
sequence number are what correlate an error back to the attempt that
caused it.

Features:
- Echo request construction with in-place checksum patching
- Fixed-offset field reads with typed read failures
- Bounded originator lookup through nested error payloads
- Redirect, unreachable, packet-too-big and parameter-problem decoding
"""

import ipaddress
import random
import socket
import struct
from typing import Optional, Union

from .checksum import ICMPV6_NEXT_HEADER, ChecksumError, OptimizedChecksum
from .codes import (
    ICMPv4Type,
    ICMPv6Type,
    ICMPV4_ORIGINATOR_TYPES,
    ICMPV6_ORIGINATOR_TYPES,
    ParameterProblem,
    ParameterProblemCodeV4,
    ParameterProblemCodeV6,
    Redirect,
    RedirectCode,
    Unreachable,
    UnreachableCodeV4,
    UnreachableCodeV6,
    lookup_code,
)
from .errors import ReadFieldError, WriteFieldError

AddressLike = Union[str, bytes, ipaddress.IPv6Address]

# Nested error payloads are never legitimately deeper than one level
MAX_ORIGINATOR_DEPTH = 2


class EkkoPacket:
    """
    Immutable view of one ICMPv4 or ICMPv6 message.

    The packet owns a copy of its bytes so it can outlive the receive
    buffer it came from.

    Attributes:
        family: socket.AF_INET or socket.AF_INET6
    """

    HEADER_SIZE = 8
    DEFAULT_PAYLOAD_SIZE = 56
    MAX_PAYLOAD_SIZE = 1472

    # ICMPv6 error header (8) + quoted IPv6 header (40)
    IPV6_ORIGINATOR_OFFSET = 48

    def __init__(self, data: bytes, family: int) -> None:
        self._data = bytes(data)
        self.family = socket.AddressFamily(family)
        if self.family not in (socket.AF_INET, socket.AF_INET6):
            raise ValueError(f"Unsupported address family: {self.family!r}")

    # ==================== CONSTRUCTION ====================

    @classmethod
    def build(
        cls,
        identifier: int,
        sequence: int,
        family: int,
        source: Optional[AddressLike] = None,
        destination: Optional[AddressLike] = None,
        payload_size: int = DEFAULT_PAYLOAD_SIZE,
        rng: Optional[random.Random] = None
    ) -> 'EkkoPacket':
        """
        Build an echo request.

        The checksum is computed last, over the finished buffer with the
        checksum field zeroed, then patched in at offset 2. ICMPv6 folds
        in the pseudo-header built from ``source`` and ``destination``;
        no IPv6 header is emitted because the kernel frames the datagram.

        Args:
            identifier: 16-bit session identifier
            sequence: 16-bit sequence number
            family: socket.AF_INET or socket.AF_INET6
            source: Source IPv6 address (ICMPv6 only)
            destination: Destination IPv6 address (ICMPv6 only)
            payload_size: Number of fill bytes after the header
            rng: Random source for the fill bytes

        Returns:
            The finished echo request

        Raises:
            WriteFieldError: If a field does not fit its slot
        """
        family = socket.AddressFamily(family)
        if not 0 <= payload_size <= cls.MAX_PAYLOAD_SIZE:
            raise WriteFieldError(
                "payload", f"size {payload_size} outside 0..{cls.MAX_PAYLOAD_SIZE}"
            )
        rng = rng or random.Random()

        if family == socket.AF_INET6:
            request_type = ICMPv6Type.ECHO_REQUEST
        else:
            request_type = ICMPv4Type.ECHO_REQUEST

        buffer = bytearray(cls.HEADER_SIZE + payload_size)
        _write(buffer, '!B', 0, request_type, "type")
        _write(buffer, '!B', 1, 0, "code")
        _write(buffer, '!H', 2, 0, "checksum placeholder")
        _write(buffer, '!H', 4, identifier, "identifier")
        _write(buffer, '!H', 6, sequence, "sequence")

        # Random fill keeps payload-comparing middleboxes from matching probes
        buffer[cls.HEADER_SIZE:] = bytes(
            rng.randint(0, 255) for _ in range(payload_size)  # nosec B311 - not cryptographic
        )

        if family == socket.AF_INET6:
            if source is None or destination is None:
                raise WriteFieldError(
                    "checksum", "ICMPv6 checksum needs source and destination addresses"
                )
            try:
                checksum = OptimizedChecksum.icmpv6_checksum(
                    OptimizedChecksum.segments(_packed(source)),
                    OptimizedChecksum.segments(_packed(destination)),
                    bytes(buffer)
                )
            except (ChecksumError, ValueError) as e:
                raise WriteFieldError("checksum", str(e)) from e
        else:
            checksum = OptimizedChecksum.icmp_checksum(bytes(buffer))

        _write(buffer, '!H', 2, checksum, "checksum")
        return cls(bytes(buffer), family)

    @classmethod
    def from_datagram(cls, datagram: bytes, family: int) -> 'EkkoPacket':
        """
        Wrap bytes read from a raw ICMP socket.

        Raw ICMPv4 sockets deliver the IPv4 header in front of the ICMP
        message; it is skipped using its IHL nibble. Raw ICMPv6 sockets
        deliver the bare ICMPv6 message.

        Raises:
            ReadFieldError: If the IPv4 header is missing or truncated
        """
        family = socket.AddressFamily(family)
        if family == socket.AF_INET6:
            return cls(datagram, family)

        if not datagram:
            raise ReadFieldError("internet protocol header size", "empty datagram")
        version = datagram[0] >> 4
        if version != 4:
            raise ReadFieldError("internet protocol version", f"expected 4, got {version}")
        header_octets = (datagram[0] & 0x0F) * 4
        if header_octets < 20 or len(datagram) < header_octets:
            raise ReadFieldError(
                "internet protocol header size",
                f"header of {header_octets} bytes in a {len(datagram)} byte datagram"
            )
        return cls(datagram[header_octets:], family)

    # ==================== RAW ACCESS ====================

    @property
    def is_ipv6(self) -> bool:
        return self.family == socket.AF_INET6

    def as_bytes(self) -> bytes:
        return self._data

    def __bytes__(self) -> bytes:
        return self._data

    def __len__(self) -> int:
        return len(self._data)

    def _read(self, fmt: str, offset: int, field: str) -> int:
        try:
            return struct.unpack_from(fmt, self._data, offset)[0]
        except struct.error as e:
            raise ReadFieldError(field, f"{e} (packet is {len(self._data)} bytes)") from e

    def type(self) -> int:
        return self._read('!B', 0, "type")

    def code(self) -> int:
        return self._read('!B', 1, "code")

    def checksum(self) -> int:
        return self._read('!H', 2, "checksum")

    def header_identifier(self) -> int:
        """Identifier field of this message's own header (offset 4)."""
        return self._read('!H', 4, "identifier")

    def header_sequence(self) -> int:
        """Sequence field of this message's own header (offset 6)."""
        return self._read('!H', 6, "sequence number")

    # ==================== CLASSIFICATION HELPERS ====================

    def is_echo_request(self) -> bool:
        expected = ICMPv6Type.ECHO_REQUEST if self.is_ipv6 else ICMPv4Type.ECHO_REQUEST
        return self.type() == expected

    def is_echo_reply(self) -> bool:
        expected = ICMPv6Type.ECHO_REPLY if self.is_ipv6 else ICMPv4Type.ECHO_REPLY
        return self.type() == expected

    def is_echo(self) -> bool:
        return self.is_echo_request() or self.is_echo_reply()

    def has_originator(self) -> bool:
        """True for error types that quote the offending datagram."""
        originator_types = ICMPV6_ORIGINATOR_TYPES if self.is_ipv6 else ICMPV4_ORIGINATOR_TYPES
        return self.type() in originator_types

    # ==================== ORIGINATOR ====================

    def originator(self) -> 'EkkoPacket':
        """
        Locate the echo request quoted inside an error message.

        ICMPv4 errors carry, from offset 8, the original IPv4 header
        (length from its IHL nibble) followed by the original ICMP
        header. ICMPv6 errors carry the fixed 40-byte original IPv6
        header, so the quoted ICMPv6 header begins at offset 48.

        Raises:
            ReadFieldError: If this type carries no originator or the
                quoted header is truncated
        """
        kind = self.type()
        if not self.has_originator():
            raise ReadFieldError("originator", f"missing originator for type: {kind}")

        if self.is_ipv6:
            start = self.IPV6_ORIGINATOR_OFFSET
        else:
            header_octets = (self._read('!B', 8, "internet protocol header size") & 0x0F) * 4
            start = self.HEADER_SIZE + header_octets

        if len(self._data) < start + self.HEADER_SIZE:
            raise ReadFieldError(
                "originator",
                f"quoted request at offset {start} truncated (packet is {len(self._data)} bytes)"
            )
        return EkkoPacket(self._data[start:], self.family)

    def _resolve(self, offset: int, field: str, depth: int = 0) -> int:
        if self.is_echo():
            return self._read('!H', offset, field)
        if depth >= MAX_ORIGINATOR_DEPTH:
            raise ReadFieldError(field, f"originator nested deeper than {MAX_ORIGINATOR_DEPTH} levels")
        return self.originator()._resolve(offset, field, depth + 1)

    def identifier(self) -> int:
        """
        Identifier of the echo request this message answers.

        Read directly for echo messages, otherwise taken from the
        originator.
        """
        return self._resolve(4, "identifier")

    def sequence(self) -> int:
        """Sequence number of the echo request this message answers."""
        return self._resolve(6, "sequence number")

    # ==================== ERROR DETAIL ====================

    def redirect(self) -> Redirect:
        """Decode an ICMPv4 Redirect (type 5) and its gateway address."""
        if self.is_ipv6 or self.type() != ICMPv4Type.REDIRECT:
            raise ReadFieldError("redirect", "not a redirect response")

        if len(self._data) < 8:
            raise ReadFieldError("gateway address", f"packet is {len(self._data)} bytes")
        gateway = str(ipaddress.IPv4Address(self._data[4:8]))

        code = self.code()
        return Redirect(code=code, reason=lookup_code(RedirectCode, code), gateway=gateway)

    def unreachable(self) -> Unreachable:
        """Decode Destination Unreachable (ICMPv4 type 3, ICMPv6 type 1)."""
        code = self.code()
        if self.is_ipv6:
            if self.type() != ICMPv6Type.DEST_UNREACHABLE:
                raise ReadFieldError("unreachable", "not an unreachable response")
            return Unreachable(code=code, reason=lookup_code(UnreachableCodeV6, code))

        if self.type() != ICMPv4Type.DEST_UNREACHABLE:
            raise ReadFieldError("unreachable", "not an unreachable response")
        mtu = self._read('!H', 6, "next hop mtu")
        return Unreachable(code=code, reason=lookup_code(UnreachableCodeV4, code), mtu=mtu)

    def packet_too_big_mtu(self) -> int:
        """MTU advertised by an ICMPv6 Packet Too Big (type 2)."""
        if not self.is_ipv6 or self.type() != ICMPv6Type.PACKET_TOO_BIG:
            raise ReadFieldError("mtu", "not a packet too big response")
        return self._read('!I', 4, "mtu")

    def parameter_problem(self) -> ParameterProblem:
        """Decode Parameter Problem (ICMPv4 type 12, ICMPv6 type 4)."""
        code = self.code()
        if self.is_ipv6:
            if self.type() != ICMPv6Type.PARAMETER_PROBLEM:
                raise ReadFieldError("parameter problem", "not a parameter problem response")
            pointer = self._read('!I', 4, "problem pointer")
            return ParameterProblem(code=code, reason=lookup_code(ParameterProblemCodeV6, code), pointer=pointer)

        if self.type() != ICMPv4Type.PARAMETER_PROBLEM:
            raise ReadFieldError("parameter problem", "not a parameter problem response")
        pointer = self._read('!B', 4, "problem pointer")
        return ParameterProblem(code=code, reason=lookup_code(ParameterProblemCodeV4, code), pointer=pointer)

    # ==================== VERIFICATION ====================

    def verify_checksum(
        self,
        source: Optional[AddressLike] = None,
        destination: Optional[AddressLike] = None
    ) -> bool:
        """
        Check the message checksum.

        ICMPv6 verification needs the addresses of the pseudo-header.
        """
        if not self.is_ipv6:
            return OptimizedChecksum.verify(self._data)
        if source is None or destination is None:
            raise ValueError("ICMPv6 checksum verification needs source and destination addresses")
        pseudo = sum(OptimizedChecksum.segments(_packed(source)))
        pseudo += sum(OptimizedChecksum.segments(_packed(destination)))
        pseudo += len(self._data) + ICMPV6_NEXT_HEADER
        return OptimizedChecksum.verify(self._data, start=pseudo)

    def __repr__(self) -> str:
        fields = []
        for name, reader in (('type', self.type), ('code', self.code),
                             ('identifier', self.identifier), ('sequence', self.sequence)):
            try:
                fields.append(f"{name}={reader()}")
            except ReadFieldError:
                fields.append(f"{name}=?")
        family = 'v6' if self.is_ipv6 else 'v4'
        return f"EkkoPacket[{family}]({', '.join(fields)}, length={len(self._data)})"


def _write(buffer: bytearray, fmt: str, offset: int, value: int, field: str) -> None:
    try:
        struct.pack_into(fmt, buffer, offset, value)
    except struct.error as e:
        raise WriteFieldError(field, f"{e} (value {value!r})") from e


def _packed(address: AddressLike) -> bytes:
    if isinstance(address, (bytes, bytearray)):
        return bytes(address)
    return ipaddress.IPv6Address(address).packed


__all__ = [
    'EkkoPacket',
    'MAX_ORIGINATOR_DEPTH',
]

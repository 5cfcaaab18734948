"""
Checksum Module - RFC 1071 compliant checksum calculations for echo probes.

Provides correct ones-complement checksum computation for:
- ICMPv4 messages (RFC 792), no pseudo-header
- ICMPv6 messages (RFC 4443), folded with the IPv6 pseudo-header

Implementation follows RFC 1071 "Computing the Internet Checksum" exactly.

All functions are pure and thread-safe.
"""

import ipaddress
import struct
from typing import Iterable, Tuple, Union

# ICMPv6 next-header value carried in the IPv6 pseudo-header
ICMPV6_NEXT_HEADER = 58

IPv6Like = Union[bytes, str, ipaddress.IPv6Address]


class ChecksumError(Exception):
    """Raised when checksum calculation fails."""
    pass


def icmpv4_checksum(message: bytes) -> int:
    """
    Calculate ICMPv4 checksum.

    Args:
        message: ICMP message bytes with the checksum field zeroed

    Returns:
        16-bit checksum value
    """
    return OptimizedChecksum.icmp_checksum(message)


def icmpv6_checksum(message: bytes, src_ip: IPv6Like, dst_ip: IPv6Like) -> int:
    """
    Calculate ICMPv6 checksum including the IPv6 pseudo-header.

    Args:
        message: ICMPv6 message bytes with the checksum field zeroed
        src_ip: Source IPv6 address
        dst_ip: Destination IPv6 address

    Returns:
        16-bit checksum value
    """
    return OptimizedChecksum.icmpv6_checksum(
        OptimizedChecksum.segments(src_ip),
        OptimizedChecksum.segments(dst_ip),
        message
    )


class OptimizedChecksum:
    """
    RFC 1071 compliant ones-complement checksum calculator for ICMP messages.

    This implementation follows RFC 1071 "Computing the Internet Checksum" exactly:
    1. Sum all 16-bit words with a wide accumulator
    2. Fold the sum to 16 bits (propagate carry)
    3. Return ones-complement (bitwise NOT)

    Example:
        >>> OptimizedChecksum.in_cksum(b'\\x00\\x01\\x00\\x02')
        65532
    """

    @staticmethod
    def _fold_32_to_16(sum32: int) -> int:
        """
        Fold the accumulator to 16 bits with carry propagation per RFC 1071.

        The high bits are added back into the low 16 bits until no
        carry remains.

        Args:
            sum32: Accumulated sum

        Returns:
            16-bit folded sum
        """
        while sum32 >> 16:
            sum32 = (sum32 & 0xFFFF) + (sum32 >> 16)
        return sum32 & 0xFFFF

    @staticmethod
    def _ones_complement_16(value: int) -> int:
        """Return the ones-complement of a 16-bit value."""
        return (~value) & 0xFFFF

    @staticmethod
    def _sum_words(data: bytes) -> int:
        """Sum big-endian 16-bit words, zero padding an odd trailing byte."""
        if len(data) % 2:
            data += b'\x00'

        total = 0
        for i in range(0, len(data), 2):
            total += (data[i] << 8) | data[i + 1]
        return total

    @staticmethod
    def segments(address: IPv6Like) -> Tuple[int, ...]:
        """
        Split an IPv6 address into its eight 16-bit segments.

        Args:
            address: Packed 16-byte address, textual address or IPv6Address

        Returns:
            Tuple of eight integers

        Raises:
            ChecksumError: If the address is not a valid IPv6 address
        """
        try:
            if isinstance(address, (bytes, bytearray)):
                packed = bytes(address)
            else:
                packed = ipaddress.IPv6Address(address).packed
        except (ipaddress.AddressValueError, ValueError) as e:
            raise ChecksumError(f"Invalid IPv6 address: {address!r}") from e

        if len(packed) != 16:
            raise ChecksumError("IPv6 addresses must be 16 bytes each")
        return struct.unpack('!8H', packed)

    @staticmethod
    def in_cksum(data: bytes, start: int = 0) -> int:
        """
        Compute Internet checksum per RFC 1071.

        This is the core checksum function used by all other checksum
        calculations in this module.

        Args:
            data: Bytes to checksum
            start: Initial value to add to the accumulator (default 0)

        Returns:
            16-bit ones-complement checksum

        Raises:
            ChecksumError: If data is not bytes
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise ChecksumError("Data must be bytes")

        total = start + OptimizedChecksum._sum_words(bytes(data))
        total = OptimizedChecksum._fold_32_to_16(total)
        return OptimizedChecksum._ones_complement_16(total)

    @classmethod
    def icmp_checksum(cls, icmp_data: bytes) -> int:
        """
        Calculate ICMPv4 checksum per RFC 792.

        The checksum covers the whole ICMP message and has no
        pseudo-header. The checksum field should be zero before
        calculation.

        Args:
            icmp_data: ICMP message bytes

        Returns:
            16-bit checksum value
        """
        return cls.in_cksum(icmp_data)

    @classmethod
    def icmpv6_checksum(cls,
                        src_segments: Iterable[int],
                        dst_segments: Iterable[int],
                        icmp_data: bytes) -> int:
        """
        Calculate ICMPv6 checksum per RFC 4443.

        The IPv6 pseudo-header contributes, before folding:
            - every 16-bit segment of the source address
            - every 16-bit segment of the destination address
            - the upper-layer (ICMPv6 message) length
            - the next-header value 58

        Args:
            src_segments: Eight 16-bit source address segments
            dst_segments: Eight 16-bit destination address segments
            icmp_data: ICMPv6 message bytes, checksum field zeroed

        Returns:
            16-bit checksum value

        Raises:
            ChecksumError: If either address does not have eight segments
        """
        src_segments = tuple(src_segments)
        dst_segments = tuple(dst_segments)
        if len(src_segments) != 8 or len(dst_segments) != 8:
            raise ChecksumError("IPv6 addresses must have 8 segments each")

        pseudo = sum(src_segments) + sum(dst_segments)
        pseudo += len(icmp_data) + ICMPV6_NEXT_HEADER

        return cls.in_cksum(icmp_data, start=pseudo)

    @classmethod
    def verify(cls, icmp_data: bytes, start: int = 0) -> bool:
        """
        Check a message whose checksum field is already filled in.

        Summing a correctly checksummed message yields 0xFFFF, so its
        ones-complement is zero.
        """
        return cls.in_cksum(icmp_data, start=start) == 0


__all__ = [
    'ICMPV6_NEXT_HEADER',
    'OptimizedChecksum',
    'ChecksumError',
    'icmpv4_checksum',
    'icmpv6_checksum',
]

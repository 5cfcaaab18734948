"""
Raw Socket Module - raw ICMP socket provisioning for Ekko.

Thin wrappers over the operating system socket API. Every OS failure is
re-raised as a typed EkkoError so callers can tell construction failures
from transmission failures.

Features:
- Raw ICMPv4 / ICMPv6 socket creation
- Non-blocking mode and receive buffer sizing
- Per-packet hop limit (IP_TTL / IPV6_UNICAST_HOPS)
- Non-blocking receive that reports "nothing yet" as None
- Root privilege detection
"""

import logging
import os
import socket
from typing import Optional, Tuple

from .errors import (
    HopLimitError,
    SocketBindError,
    SocketCreateError,
    SocketOptionError,
    SocketReceiveError,
    SocketSendError,
)

logger = logging.getLogger(__name__)

MAX_HOP_LIMIT = 255


def icmp_protocol(family: int) -> int:
    """Raw socket protocol number for the address family."""
    if family == socket.AF_INET6:
        return socket.IPPROTO_ICMPV6
    return socket.IPPROTO_ICMP


def create_icmp_socket(family: int) -> socket.socket:
    """
    Create a raw ICMP socket for the given family.

    Args:
        family: socket.AF_INET or socket.AF_INET6

    Returns:
        socket.socket: Unconfigured raw socket

    Raises:
        SocketCreateError: If the socket cannot be opened (usually not root)
    """
    if family == socket.AF_INET6 and not socket.has_ipv6:
        raise SocketCreateError(family, "IPv6 is not supported on this system")

    try:
        sock = socket.socket(family, socket.SOCK_RAW, icmp_protocol(family))
    except OSError as e:
        raise SocketCreateError(family, str(e)) from e

    logger.debug(f"Opened raw ICMP socket fd={sock.fileno()} family={family!r}")
    return sock


def configure_socket(sock: socket.socket, receive_buffer_size: int) -> None:
    """
    Put the socket in non-blocking mode and size its receive buffer.

    Raises:
        SocketOptionError: If an option is rejected
    """
    try:
        sock.setblocking(False)
    except OSError as e:
        raise SocketOptionError("non-blocking", str(e)) from e

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, receive_buffer_size)
    except OSError as e:
        raise SocketOptionError("receive buffer size", str(e)) from e


def bind_socket(sock: socket.socket, address: Tuple) -> None:
    """
    Bind the socket to its local source address.

    Raises:
        SocketBindError: If the address cannot be bound
    """
    try:
        sock.bind(address)
    except OSError as e:
        raise SocketBindError(str(address[0]), str(e)) from e


def set_hop_limit(sock: socket.socket, family: int, hops: int) -> None:
    """
    Set the outgoing hop limit for subsequent sends.

    Args:
        sock: Raw socket
        family: Address family of the socket
        hops: TTL (IPv4) or unicast hop limit (IPv6)

    Raises:
        HopLimitError: If the value is out of range or rejected by the OS
    """
    if not 0 <= hops <= MAX_HOP_LIMIT:
        raise HopLimitError(hops, f"must be between 0 and {MAX_HOP_LIMIT}")

    try:
        if family == socket.AF_INET6:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, hops)
        else:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, hops)
    except OSError as e:
        raise HopLimitError(hops, str(e)) from e


def send_packet(sock: socket.socket, packet_bytes: bytes, address: Tuple) -> int:
    """
    Send one packet to the destination socket address.

    Returns:
        int: Number of bytes sent

    Raises:
        SocketSendError: If the send fails
    """
    try:
        return sock.sendto(packet_bytes, address)
    except OSError as e:
        raise SocketSendError(str(address[0]), str(e)) from e


def receive_packet(sock: socket.socket, bufsize: int) -> Optional[Tuple[bytes, str]]:
    """
    Attempt one non-blocking receive.

    Returns:
        (datagram, responder address) or None when nothing is queued

    Raises:
        SocketReceiveError: If the receive fails for any other reason
    """
    try:
        data, address = sock.recvfrom(bufsize)
    except (BlockingIOError, InterruptedError):
        return None
    except OSError as e:
        raise SocketReceiveError(str(e)) from e
    return data, address[0]


def socket_address(address: str, family: int) -> Tuple:
    """Socket address tuple for a raw ICMP endpoint (port is unused)."""
    if family == socket.AF_INET6:
        return (address, 0, 0, 0)
    return (address, 0)


def is_root() -> bool:
    """
    Check if running as root.

    Returns:
        bool: True if running with root privileges
    """
    geteuid = getattr(os, 'geteuid', None)
    return geteuid is not None and geteuid() == 0


__all__ = [
    'MAX_HOP_LIMIT',
    'icmp_protocol',
    'create_icmp_socket',
    'configure_socket',
    'bind_socket',
    'set_hop_limit',
    'send_packet',
    'receive_packet',
    'socket_address',
    'is_root',
]

"""
Errors Module - Typed failures raised by Ekko.

Four families of failure exist:
- construction errors (bad address, socket creation, binding, options,
  family mismatch)
- transmission errors (send, hop limit, receive)
- decode errors (reading or writing a packet field)
- resolution errors (hostname or reverse lookup)

A timeout is not an error; it is reported as a LACKING response.
"""

from typing import Any


class EkkoError(Exception):
    """Base class for all Ekko failures."""
    pass


# ==================== CONSTRUCTION ====================

class SocketCreateError(EkkoError):
    """Raised when a raw ICMP socket cannot be opened."""

    def __init__(self, family: Any, reason: str):
        self.family = family
        self.reason = reason
        super().__init__(f"Failed to create socket for {family}, reason: {reason}")


class SocketBindError(EkkoError):
    """Raised when the socket cannot be bound to the source address."""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Socket failed binding to address '{address}', reason: {reason}")


class SocketOptionError(EkkoError):
    """Raised when a socket option (buffer size, blocking mode) cannot be set."""

    def __init__(self, option: str, reason: str):
        self.option = option
        self.reason = reason
        super().__init__(f"Could not set socket option '{option}', reason: {reason}")


class InvalidAddressError(EkkoError):
    """Raised when a source or target is not an IP address literal."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address '{address}' is not a valid IPv4 or IPv6 address")


class AddressMismatchError(EkkoError):
    """Raised when source and target addresses belong to different families."""

    def __init__(self, source: str, target: str):
        self.source = source
        self.target = target
        super().__init__(f"Cannot combine address '{source}' (source) with '{target}' (target).")


# ==================== TRANSMISSION ====================

class SocketSendError(EkkoError):
    """Raised when an echo request cannot be transmitted."""

    def __init__(self, target: str, reason: str):
        self.target = target
        self.reason = reason
        super().__init__(f"Socket send to '{target}' failed, reason: {reason}")


class HopLimitError(EkkoError):
    """Raised when the outgoing hop limit (TTL) cannot be applied."""

    def __init__(self, hops: int, reason: str):
        self.hops = hops
        self.reason = reason
        super().__init__(f"Could not set socket max hops to {hops}, reason: {reason}")


class SocketReceiveError(EkkoError):
    """Raised when reading from the socket fails for a reason other than would-block."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Socket receive failed, reason: {reason}")


# ==================== DECODE ====================

class ReadFieldError(EkkoError):
    """Raised when a packet is too short or malformed for the requested field."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Failed to read packet field '{field}', reason: {reason}")


class WriteFieldError(EkkoError):
    """Raised when an echo request field cannot be written."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Failed to write request field '{field}', reason: {reason}")


# ==================== RESOLUTION ====================

class ResolveError(EkkoError):
    """Raised when a hostname resolves to no usable address."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Failed to resolve address for hostname: '{name}'")


class DomainLookupError(EkkoError):
    """Raised when a reverse lookup is requested for an invalid address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Failed to resolve domain for address: '{address}'")


__all__ = [
    'EkkoError',
    'SocketCreateError',
    'SocketBindError',
    'SocketOptionError',
    'InvalidAddressError',
    'AddressMismatchError',
    'SocketSendError',
    'HopLimitError',
    'SocketReceiveError',
    'ReadFieldError',
    'WriteFieldError',
    'ResolveError',
    'DomainLookupError',
]

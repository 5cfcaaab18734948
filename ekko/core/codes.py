"""
ICMP type and code tables for ICMPv4 (RFC 792) and ICMPv6 (RFC 4443),
plus the decoded detail records attached to error responses.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Type


class ICMPv4Type(IntEnum):
    """ICMPv4 message types understood by Ekko."""
    ECHO_REPLY = 0
    DEST_UNREACHABLE = 3
    SOURCE_QUENCH = 4
    REDIRECT = 5
    ECHO_REQUEST = 8
    TIME_EXCEEDED = 11
    PARAMETER_PROBLEM = 12


class ICMPv6Type(IntEnum):
    """ICMPv6 message types understood by Ekko."""
    DEST_UNREACHABLE = 1
    PACKET_TOO_BIG = 2
    TIME_EXCEEDED = 3
    PARAMETER_PROBLEM = 4
    ECHO_REQUEST = 128
    ECHO_REPLY = 129


# Error messages that quote the offending datagram
ICMPV4_ORIGINATOR_TYPES = frozenset({
    ICMPv4Type.DEST_UNREACHABLE,
    ICMPv4Type.SOURCE_QUENCH,
    ICMPv4Type.REDIRECT,
    ICMPv4Type.TIME_EXCEEDED,
    ICMPv4Type.PARAMETER_PROBLEM,
})

ICMPV6_ORIGINATOR_TYPES = frozenset({
    ICMPv6Type.DEST_UNREACHABLE,
    ICMPv6Type.PACKET_TOO_BIG,
    ICMPv6Type.TIME_EXCEEDED,
    ICMPv6Type.PARAMETER_PROBLEM,
})


class UnreachableCodeV4(IntEnum):
    """ICMPv4 Destination Unreachable codes (type 3)."""
    DESTINATION_NETWORK_UNREACHABLE = 0
    DESTINATION_HOST_UNREACHABLE = 1
    DESTINATION_PROTOCOL_UNREACHABLE = 2
    DESTINATION_PORT_UNREACHABLE = 3
    FRAGMENTATION_REQUIRED = 4
    SOURCE_ROUTE_FAILED = 5
    DESTINATION_NETWORK_UNKNOWN = 6
    DESTINATION_HOST_UNKNOWN = 7
    SOURCE_HOST_ISOLATED = 8
    NETWORK_ADMINISTRATIVELY_PROHIBITED = 9
    HOST_ADMINISTRATIVELY_PROHIBITED = 10
    NETWORK_UNREACHABLE_FOR_TOS = 11
    HOST_UNREACHABLE_FOR_TOS = 12
    COMMUNICATION_ADMINISTRATIVELY_PROHIBITED = 13
    HOST_PRECEDENCE_VIOLATION = 14
    PRECEDENCE_CUTOFF = 15


class UnreachableCodeV6(IntEnum):
    """ICMPv6 Destination Unreachable codes (type 1)."""
    NO_ROUTE_TO_DESTINATION = 0
    COMMUNICATION_ADMINISTRATIVELY_PROHIBITED = 1
    BEYOND_SCOPE_OF_SOURCE_ADDRESS = 2
    ADDRESS_UNREACHABLE = 3
    PORT_UNREACHABLE = 4
    SOURCE_ADDRESS_FAILED_POLICY = 5
    REJECT_ROUTE_TO_DESTINATION = 6
    ERROR_IN_SOURCE_ROUTING_HEADER = 7


class RedirectCode(IntEnum):
    """ICMPv4 Redirect codes (type 5)."""
    FOR_NETWORK = 0
    FOR_HOST = 1
    FOR_TYPE_OF_SERVICE_NETWORK = 2
    FOR_TYPE_OF_SERVICE_HOST = 3


class ParameterProblemCodeV4(IntEnum):
    """ICMPv4 Parameter Problem codes (type 12)."""
    POINTER_INDICATES_ERROR = 0
    MISSING_REQUIRED_OPTION = 1
    BAD_LENGTH = 2


class ParameterProblemCodeV6(IntEnum):
    """ICMPv6 Parameter Problem codes (type 4)."""
    ERRONEOUS_HEADER_FIELD = 0
    UNRECOGNIZED_NEXT_HEADER = 1
    UNRECOGNIZED_IPV6_OPTION = 2
    INCOMPLETE_HEADER_CHAIN = 3


def lookup_code(table: Type[IntEnum], code: int) -> Optional[IntEnum]:
    """Map a raw code onto ``table``, or None when the code is unknown."""
    try:
        return table(code)
    except ValueError:
        return None


def _reason_name(reason: Optional[IntEnum]) -> str:
    return reason.name.lower() if reason is not None else "unexpected"


@dataclass(frozen=True)
class Unreachable:
    """
    Decoded Destination Unreachable detail.

    Attributes:
        code: Raw ICMP code
        reason: Known sub-reason, None for an unexpected code
        mtu: Next-hop MTU field (ICMPv4 only)
    """
    code: int
    reason: Optional[IntEnum]
    mtu: Optional[int] = None

    @property
    def unexpected(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'code': self.code, 'reason': _reason_name(self.reason)}
        if self.mtu is not None:
            result['mtu'] = self.mtu
        return result


@dataclass(frozen=True)
class Redirect:
    """Decoded ICMPv4 Redirect detail with the advertised gateway."""
    code: int
    reason: Optional[RedirectCode]
    gateway: str

    @property
    def unexpected(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code, 'reason': _reason_name(self.reason), 'gateway': self.gateway}


@dataclass(frozen=True)
class ParameterProblem:
    """Decoded Parameter Problem detail with the offending byte pointer."""
    code: int
    reason: Optional[IntEnum]
    pointer: int

    @property
    def unexpected(self) -> bool:
        return self.reason is None

    def to_dict(self) -> Dict[str, Any]:
        return {'code': self.code, 'reason': _reason_name(self.reason), 'pointer': self.pointer}


__all__ = [
    'ICMPv4Type',
    'ICMPv6Type',
    'ICMPV4_ORIGINATOR_TYPES',
    'ICMPV6_ORIGINATOR_TYPES',
    'UnreachableCodeV4',
    'UnreachableCodeV6',
    'RedirectCode',
    'ParameterProblemCodeV4',
    'ParameterProblemCodeV6',
    'Unreachable',
    'Redirect',
    'ParameterProblem',
    'lookup_code',
]

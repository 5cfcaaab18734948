"""
Response Classifier - maps decoded ICMP messages onto Ekko outcomes.

Classification is a pure, table-driven mapping per address family:

    ICMPv4                         ICMPv6
    0   -> DESTINATION             129 -> DESTINATION
    3   -> UNREACHABLE             1   -> UNREACHABLE
    4   -> SOURCE_QUENCH           2   -> PACKET_TOO_BIG
    5   -> REDIRECT                3   -> EXCEEDED
    11  -> EXCEEDED                4   -> PARAMETER_PROBLEM
    12  -> PARAMETER_PROBLEM
    any other type -> UNEXPECTED (type, code)

A probe with no matching response within its deadline becomes LACKING.
"""

import dataclasses
import functools
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .codes import ICMPv4Type, ICMPv6Type
from .packets import EkkoPacket


class ResponseKind(Enum):
    """Outcome taxonomy for one echo attempt."""
    DESTINATION = "destination"
    EXCEEDED = "exceeded"
    UNREACHABLE = "unreachable"
    REDIRECT = "redirect"
    PACKET_TOO_BIG = "packet_too_big"
    SOURCE_QUENCH = "source_quench"
    PARAMETER_PROBLEM = "parameter_problem"
    UNEXPECTED = "unexpected"
    LACKING = "lacking"


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class EkkoData:
    """
    Measurement attached to every outcome.

    Attributes:
        timepoint: Monotonic clock reading taken when the probe was sent
        elapsed: Seconds between send and response (or deadline)
        address: Responder address, None when LACKING
        identifier: Echo request identifier
        sequence: Echo request sequence number
        hops: Hop limit the probe was sent with
        domain: Reverse-DNS name of the responder, when looked up
    """
    timepoint: float
    elapsed: float
    address: Optional[str]
    identifier: int
    sequence: int
    hops: int
    domain: Optional[str] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EkkoData):
            return NotImplemented
        return self.address == other.address and self.hops == other.hops

    def __lt__(self, other: 'EkkoData') -> bool:
        if not isinstance(other, EkkoData):
            return NotImplemented
        return self.hops < other.hops

    def __hash__(self) -> int:
        return hash((self.address, self.hops))

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hops': self.hops,
            'address': self.address,
            'domain': self.domain,
            'identifier': self.identifier,
            'sequence': self.sequence,
            'elapsed_ms': round(self.elapsed_ms, 3),
        }


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class EkkoResponse:
    """
    One classified outcome.

    ``detail`` depends on ``kind``:
        UNREACHABLE        -> codes.Unreachable
        REDIRECT           -> codes.Redirect
        PARAMETER_PROBLEM  -> codes.ParameterProblem
        PACKET_TOO_BIG     -> advertised MTU (int)
        UNEXPECTED         -> (type, code)
        anything else      -> None
    """
    kind: ResponseKind
    data: EkkoData
    detail: Any = None

    @property
    def hops(self) -> int:
        return self.data.hops

    @property
    def is_destination(self) -> bool:
        return self.kind == ResponseKind.DESTINATION

    @property
    def is_lacking(self) -> bool:
        return self.kind == ResponseKind.LACKING

    def with_domain(self, domain: Optional[str]) -> 'EkkoResponse':
        """Copy of this response with the responder's domain filled in."""
        return dataclasses.replace(self, data=dataclasses.replace(self.data, domain=domain))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EkkoResponse):
            return NotImplemented
        return (self.kind, self.data, self.detail) == (other.kind, other.data, other.detail)

    def __lt__(self, other: 'EkkoResponse') -> bool:
        if not isinstance(other, EkkoResponse):
            return NotImplemented
        return self.data < other.data

    def __hash__(self) -> int:
        return hash((self.kind, self.data))

    def to_dict(self) -> Dict[str, Any]:
        result = {'kind': self.kind.value}
        result.update(self.data.to_dict())
        if hasattr(self.detail, 'to_dict'):
            result['detail'] = self.detail.to_dict()
        elif self.kind == ResponseKind.UNEXPECTED:
            result['detail'] = {'type': self.detail[0], 'code': self.detail[1]}
        elif self.kind == ResponseKind.PACKET_TOO_BIG:
            result['detail'] = {'mtu': self.detail}
        return result


# (kind, detail decoder) per message type
_Rule = Tuple[ResponseKind, Optional[Callable[[EkkoPacket], Any]]]

_ICMPV4_RULES: Dict[int, _Rule] = {
    ICMPv4Type.ECHO_REPLY: (ResponseKind.DESTINATION, None),
    ICMPv4Type.DEST_UNREACHABLE: (ResponseKind.UNREACHABLE, EkkoPacket.unreachable),
    ICMPv4Type.SOURCE_QUENCH: (ResponseKind.SOURCE_QUENCH, None),
    ICMPv4Type.REDIRECT: (ResponseKind.REDIRECT, EkkoPacket.redirect),
    ICMPv4Type.TIME_EXCEEDED: (ResponseKind.EXCEEDED, None),
    ICMPv4Type.PARAMETER_PROBLEM: (ResponseKind.PARAMETER_PROBLEM, EkkoPacket.parameter_problem),
}

_ICMPV6_RULES: Dict[int, _Rule] = {
    ICMPv6Type.ECHO_REPLY: (ResponseKind.DESTINATION, None),
    ICMPv6Type.DEST_UNREACHABLE: (ResponseKind.UNREACHABLE, EkkoPacket.unreachable),
    ICMPv6Type.PACKET_TOO_BIG: (ResponseKind.PACKET_TOO_BIG, EkkoPacket.packet_too_big_mtu),
    ICMPv6Type.TIME_EXCEEDED: (ResponseKind.EXCEEDED, None),
    ICMPv6Type.PARAMETER_PROBLEM: (ResponseKind.PARAMETER_PROBLEM, EkkoPacket.parameter_problem),
}


def _correlation(packet: EkkoPacket) -> Tuple[int, int]:
    # Types without an originator only have their own header fields
    if packet.is_echo() or packet.has_originator():
        return packet.identifier(), packet.sequence()
    return packet.header_identifier(), packet.header_sequence()


def classify(
    packet: EkkoPacket,
    address: str,
    hops: int,
    timepoint: float,
    elapsed: float
) -> EkkoResponse:
    """
    Classify one response packet.

    Args:
        packet: Decoded ICMP message (IPv4 header already stripped)
        address: Responder address
        hops: Hop limit of the attempt this packet answers
        timepoint: Send time of that attempt
        elapsed: Seconds from send to arrival

    Returns:
        The classified response

    Raises:
        ReadFieldError: If a field needed for classification is missing
    """
    rules = _ICMPV6_RULES if packet.is_ipv6 else _ICMPV4_RULES
    icmp_type = packet.type()
    identifier, sequence = _correlation(packet)

    data = EkkoData(
        timepoint=timepoint,
        elapsed=elapsed,
        address=address,
        identifier=identifier,
        sequence=sequence,
        hops=hops,
    )

    rule = rules.get(icmp_type)
    if rule is None:
        return EkkoResponse(ResponseKind.UNEXPECTED, data, (icmp_type, packet.code()))

    kind, decoder = rule
    detail = decoder(packet) if decoder is not None else None
    return EkkoResponse(kind, data, detail)


def lacking(
    hops: int,
    timepoint: float,
    elapsed: float,
    identifier: int,
    sequence: int
) -> EkkoResponse:
    """Outcome for an attempt whose deadline passed without a match."""
    return EkkoResponse(ResponseKind.LACKING, EkkoData(
        timepoint=timepoint,
        elapsed=elapsed,
        address=None,
        identifier=identifier,
        sequence=sequence,
        hops=hops,
    ))


__all__ = [
    'ResponseKind',
    'EkkoData',
    'EkkoResponse',
    'classify',
    'lacking',
]

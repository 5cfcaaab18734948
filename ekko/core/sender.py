"""
Ekko Sender - echo request correlation engine.

Sends ICMP echo requests with a chosen hop limit over one raw socket and
matches whatever arrives back to the attempt that caused it.

Features:
- Single attempt (ping at a fixed hop limit)
- Batched range (all hops sent up front, one shared deadline)
- Identifier/sequence correlation through quoted error payloads
- Foreign ICMP traffic on the raw socket is skipped, never fatal
- Explicit LACKING outcomes when a deadline passes

The engine is single threaded: a send call occupies the calling thread
with a non-blocking receive loop until it matches or times out. Concurrent
calls on one instance must be serialized by the caller.
"""

import ipaddress
import logging
import random
import socket
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from . import raw_socket
from .errors import AddressMismatchError, EkkoError, InvalidAddressError, ReadFieldError
from .packets import EkkoPacket
from .resolver import DomainResolver, IPAddress, resolve_target
from .responses import EkkoResponse, classify, lacking

logger = logging.getLogger(__name__)

SEQUENCE_MODULUS = 0x10000


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class EkkoConfig:
    """Configuration for the correlation engine."""
    timeout: float = 0.256  # Default per-call deadline in seconds
    receive_buffer_size: int = 65535  # SO_RCVBUF and recvfrom size
    payload_size: int = 56  # Fill bytes after the 8-byte header
    poll_interval: float = 0.0  # Sleep between empty receives (0 = busy poll)
    resolve_domains: bool = False  # Reverse lookup responders


@dataclass(frozen=True)
class Attempt:
    """One outgoing probe, alive only for the duration of a send call."""
    identifier: int
    sequence: int
    hops: int
    timepoint: float


@dataclass(frozen=True)
class _Arrival:
    packet: EkkoPacket
    responder: str
    arrived: float


def _parse_address(address: Union[str, IPAddress]) -> IPAddress:
    try:
        return ipaddress.ip_address(address)
    except ValueError as e:
        raise InvalidAddressError(str(address)) from e


# =============================================================================
# ENGINE
# =============================================================================

class Ekko:
    """
    Echo request sender bound to one (source, target) address pair.

    Usage:
        with Ekko.with_target("8.8.8.8") as ping:
            response = ping.send(64)
            trace = ping.send_range(range(1, 31))

    Attributes:
        source_address: Local address the socket is bound to
        target_address: Destination of every probe
        family: socket.AF_INET or socket.AF_INET6
        identifier: Session identifier carried by every probe
        config: EkkoConfig in effect
    """

    def __init__(
        self,
        source: Union[str, IPAddress],
        target: Union[str, IPAddress],
        sock: Optional[socket.socket] = None,
        rng: Optional[random.Random] = None,
        config: Optional[EkkoConfig] = None,
        clock: Optional[Callable[[], float]] = None,
        resolver: Optional[DomainResolver] = None
    ) -> None:
        """
        Initialize the engine and its raw socket.

        Args:
            source: Local source address (same family as target)
            target: Destination address
            sock: Pre-opened socket to use instead of opening a raw one
            rng: Random source for the identifier and payload fill
            config: Engine configuration (uses defaults if None)
            clock: Monotonic clock returning seconds
            resolver: Reverse-lookup cache for responder domains

        Raises:
            InvalidAddressError: If source or target is not an IP address
            AddressMismatchError: If source and target families differ
            SocketCreateError, SocketOptionError, SocketBindError: On
                socket setup failures
        """
        self.source_address = _parse_address(source)
        self.target_address = _parse_address(target)
        if self.source_address.version != self.target_address.version:
            raise AddressMismatchError(str(self.source_address), str(self.target_address))

        self.family = socket.AF_INET6 if self.target_address.version == 6 else socket.AF_INET
        self.config = config or EkkoConfig()
        self._rng = rng or random.Random()
        self._clock = clock or time.monotonic

        if resolver is None and self.config.resolve_domains:
            resolver = DomainResolver()
        self.resolver = resolver

        self.identifier = self._rng.randrange(SEQUENCE_MODULUS)
        self._sequence = 0

        self._target_socket_address = raw_socket.socket_address(str(self.target_address), self.family)
        source_socket_address = raw_socket.socket_address(str(self.source_address), self.family)

        owned = sock is None
        if sock is None:
            sock = raw_socket.create_icmp_socket(self.family)
        try:
            raw_socket.configure_socket(sock, self.config.receive_buffer_size)
            raw_socket.bind_socket(sock, source_socket_address)
        except EkkoError:
            if owned:
                sock.close()
            raise
        self.socket: Optional[socket.socket] = sock

        logger.info(
            f"Ekko ready: {self.source_address} -> {self.target_address} "
            f"(identifier={self.identifier})"
        )

    @classmethod
    def with_target(cls, target: str, **kwargs) -> 'Ekko':
        """
        Build an engine for a target IP literal or hostname.

        The socket is bound to the unspecified address of the target's
        family.
        """
        address = resolve_target(target)
        source = '::' if address.version == 6 else '0.0.0.0'
        return cls(source, address, **kwargs)

    # ==================== PUBLIC OPERATIONS ====================

    def send(self, hops: int) -> EkkoResponse:
        """Send one echo request with the default timeout."""
        return self.send_with_timeout(hops, self.config.timeout)

    def send_with_timeout(self, hops: int, timeout: float) -> EkkoResponse:
        """
        Send one echo request and wait for its response.

        Args:
            hops: Outgoing hop limit
            timeout: Seconds to wait after sending

        Returns:
            The classified response, or LACKING once ``timeout`` passes

        Raises:
            HopLimitError, SocketSendError: If the probe cannot be sent
            SocketReceiveError: If reading from the socket fails
            ReadFieldError: If a matched response cannot be classified
        """
        self._ensure_open()
        attempt = self._transmit(hops)
        key = (attempt.identifier, attempt.sequence)

        while True:
            arrival = self._receive()
            if arrival is not None and self._match_key(arrival.packet) == key:
                return self._classify(arrival, attempt)

            elapsed = self._clock() - attempt.timepoint
            if elapsed >= timeout:
                logger.debug(f"hop {hops} seq {attempt.sequence}: no response within {timeout}s")
                return lacking(attempt.hops, attempt.timepoint, elapsed,
                               attempt.identifier, attempt.sequence)
            self._pause()

    def send_range(self, hop_range: Sequence[int]) -> List[EkkoResponse]:
        """Send one echo request per hop in ``hop_range`` with the default timeout."""
        return self.send_range_with_timeout(hop_range, self.config.timeout)

    def send_range_with_timeout(self, hop_range: Sequence[int], timeout: float) -> List[EkkoResponse]:
        """
        Send one echo request per hop up front, then collect responses.

        All probes share one deadline counted from the first send.
        Matched responses are kept as owned packets and classified only
        once polling stops, because classification needs the hop of the
        attempt they answer.

        Args:
            hop_range: Hop limits to probe, e.g. range(1, 31)
            timeout: Seconds to wait after the first send

        Returns:
            One response per requested hop, in request order

        Raises:
            ValueError: If more hops are requested than sequence numbers exist
            HopLimitError, SocketSendError: If a probe cannot be sent
            SocketReceiveError: If reading from the socket fails
            ReadFieldError: If a matched response cannot be classified
        """
        self._ensure_open()
        hops_list = list(hop_range)
        if len(hops_list) > SEQUENCE_MODULUS:
            raise ValueError(f"Cannot trace more than {SEQUENCE_MODULUS} hops in one batch")
        if not hops_list:
            return []

        attempts = [self._transmit(hops) for hops in hops_list]
        outstanding: Dict[Tuple[int, int], int] = {
            (attempt.identifier, attempt.sequence): index
            for index, attempt in enumerate(attempts)
        }
        matched: Dict[int, _Arrival] = {}
        started = attempts[0].timepoint

        while len(matched) < len(attempts):
            arrival = self._receive()
            if arrival is not None:
                index = outstanding.get(self._match_key(arrival.packet))
                if index is not None and index not in matched:
                    matched[index] = arrival
                    logger.debug(f"hop {attempts[index].hops} matched from {arrival.responder}")

            if self._clock() - started >= timeout:
                break
            self._pause()

        finished = self._clock()
        logger.debug(f"range of {len(attempts)} hops: {len(matched)} matched")

        results = []
        for index, attempt in enumerate(attempts):
            arrival = matched.get(index)
            if arrival is not None:
                results.append(self._classify(arrival, attempt))
            else:
                results.append(lacking(attempt.hops, attempt.timepoint, finished - attempt.timepoint,
                                       attempt.identifier, attempt.sequence))
        return results

    def close(self) -> None:
        """Close the socket."""
        if self.socket is not None:
            try:
                self.socket.close()
            except OSError:
                pass  # nosec B110 - socket may already be closed
            self.socket = None
            logger.info(f"Ekko closed: {self.target_address}")

    def __enter__(self) -> 'Ekko':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (f"Ekko(source={str(self.source_address)!r}, target={str(self.target_address)!r}, "
                f"identifier={self.identifier})")

    # ==================== INTERNALS ====================

    def _ensure_open(self) -> None:
        if self.socket is None:
            raise EkkoError("Ekko socket is closed")

    def _next_sequence(self) -> int:
        sequence = self._sequence
        self._sequence = (self._sequence + 1) % SEQUENCE_MODULUS
        return sequence

    def _transmit(self, hops: int) -> Attempt:
        sequence = self._next_sequence()
        packet = EkkoPacket.build(
            self.identifier,
            sequence,
            self.family,
            source=self.source_address if self.family == socket.AF_INET6 else None,
            destination=self.target_address if self.family == socket.AF_INET6 else None,
            payload_size=self.config.payload_size,
            rng=self._rng
        )

        raw_socket.set_hop_limit(self.socket, self.family, hops)
        timepoint = self._clock()
        raw_socket.send_packet(self.socket, packet.as_bytes(), self._target_socket_address)

        logger.debug(f"sent hop {hops} identifier {self.identifier} seq {sequence} to {self.target_address}")
        return Attempt(identifier=self.identifier, sequence=sequence, hops=hops, timepoint=timepoint)

    def _receive(self) -> Optional[_Arrival]:
        received = raw_socket.receive_packet(self.socket, self.config.receive_buffer_size)
        if received is None:
            return None
        arrived = self._clock()
        datagram, responder = received

        try:
            packet = EkkoPacket.from_datagram(datagram, self.family)
        except ReadFieldError as e:
            logger.debug(f"skipping undecodable datagram from {responder}: {e}")
            return None
        return _Arrival(packet=packet, responder=responder, arrived=arrived)

    def _match_key(self, packet: EkkoPacket) -> Optional[Tuple[int, int]]:
        """
        (identifier, sequence) a packet answers, or None for foreign traffic.

        Echo requests (including our own probes looped back on the same
        host) never count as responses. A packet whose correlation fields
        cannot be read is not ours and is skipped.
        """
        try:
            if packet.is_echo_request():
                return None
            if not (packet.is_echo_reply() or packet.has_originator()):
                return None
            return packet.identifier(), packet.sequence()
        except ReadFieldError as e:
            logger.debug(f"skipping foreign packet {packet!r}: {e}")
            return None

    def _classify(self, arrival: _Arrival, attempt: Attempt) -> EkkoResponse:
        response = classify(
            arrival.packet,
            arrival.responder,
            attempt.hops,
            attempt.timepoint,
            arrival.arrived - attempt.timepoint
        )
        if self.resolver is not None:
            response = response.with_domain(self.resolver.lookup(arrival.responder))
        return response

    def _pause(self) -> None:
        if self.config.poll_interval > 0:
            time.sleep(self.config.poll_interval)


__all__ = [
    'Ekko',
    'EkkoConfig',
    'Attempt',
    'SEQUENCE_MODULUS',
]

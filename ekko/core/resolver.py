"""
Resolver Module - hostname resolution and cached reverse lookups.

Forward resolution turns a target string into an address before an engine
is built. Reverse lookups are display-only: results (including misses) are
cached per address so a trace never asks twice about the same router.
"""

import ipaddress
import logging
import socket
from typing import Callable, Dict, Optional, Union

from .errors import DomainLookupError, ResolveError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def resolve_target(target: str) -> IPAddress:
    """
    Resolve a target string to an IP address.

    IP literals are returned as-is. Hostnames are looked up and the last
    address returned by the resolver is used.

    Raises:
        ResolveError: If the name does not resolve
    """
    target = target.strip()
    try:
        return ipaddress.ip_address(target)
    except ValueError:
        pass

    try:
        entries = socket.getaddrinfo(target, None)
    except (socket.gaierror, UnicodeError) as e:
        logger.debug(f"Lookup of {target} failed: {e}")
        raise ResolveError(target) from e

    addresses = [entry[4][0] for entry in entries
                 if entry[0] in (socket.AF_INET, socket.AF_INET6)]
    if not addresses:
        raise ResolveError(target)

    # Scope suffixes ("fe80::1%eth0") are not part of the address itself
    return ipaddress.ip_address(addresses[-1].split('%', 1)[0])


class DomainResolver:
    """
    Reverse-lookup cache keyed by address.

    Usage:
        resolver = DomainResolver()
        resolver.lookup("8.8.8.8")   # 'dns.google'
    """

    def __init__(self, lookup: Optional[Callable[[str], str]] = None) -> None:
        self._lookup = lookup or _gethostbyaddr
        self._cache: Dict[str, Optional[str]] = {}

    def lookup(self, address: Optional[str]) -> Optional[str]:
        """
        Domain for ``address``, or None when it has no PTR record.

        Raises:
            DomainLookupError: If ``address`` is not an IP address
        """
        if address is None:
            return None
        if address in self._cache:
            return self._cache[address]

        try:
            ipaddress.ip_address(address.split('%', 1)[0])
        except ValueError as e:
            raise DomainLookupError(address) from e

        try:
            domain: Optional[str] = self._lookup(address)
        except (socket.herror, socket.gaierror, OSError) as e:
            logger.debug(f"No domain for {address}: {e}")
            domain = None

        self._cache[address] = domain
        return domain

    def __len__(self) -> int:
        return len(self._cache)


def _gethostbyaddr(address: str) -> str:
    return socket.gethostbyaddr(address)[0]


__all__ = [
    'resolve_target',
    'DomainResolver',
]

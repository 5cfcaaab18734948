"""
Ekko v1.0.0 - ICMP echo and path tracing over raw sockets
=========================================================

Sends ICMP echo requests with a chosen hop limit over IPv4 or IPv6 and
classifies whatever comes back: echo replies, time exceeded, unreachable,
redirect and the other ICMP error messages, or nothing at all.

Usage:
    from ekko import Ekko, ResponseKind

    with Ekko.with_target("8.8.8.8") as ping:
        for response in ping.send_range(range(1, 31)):
            print(response.hops, response.kind, response.data.address)
            if response.kind == ResponseKind.DESTINATION:
                break

Raw sockets require root (or CAP_NET_RAW).

Version: 1.0.0
"""

__version__ = "1.0.0"
__author__ = "Ekko Team"

from ekko.core.codes import (
    ParameterProblem,
    ParameterProblemCodeV4,
    ParameterProblemCodeV6,
    Redirect,
    RedirectCode,
    Unreachable,
    UnreachableCodeV4,
    UnreachableCodeV6,
)
from ekko.core.errors import EkkoError
from ekko.core.responses import EkkoData, EkkoResponse, ResponseKind
from ekko.core.sender import Ekko, EkkoConfig

__all__ = [
    'Ekko',
    'EkkoConfig',
    'EkkoData',
    'EkkoResponse',
    'EkkoError',
    'ResponseKind',
    'Unreachable',
    'UnreachableCodeV4',
    'UnreachableCodeV6',
    'Redirect',
    'RedirectCode',
    'ParameterProblem',
    'ParameterProblemCodeV4',
    'ParameterProblemCodeV6',
    '__version__',
]

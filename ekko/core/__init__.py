"""
Core module initialization for Ekko.
"""

from .checksum import (
    OptimizedChecksum,
    ChecksumError,
    icmpv4_checksum,
    icmpv6_checksum,
)
from .errors import EkkoError
from .packets import EkkoPacket
from .responses import EkkoData, EkkoResponse, ResponseKind, classify, lacking
from .sender import Ekko, EkkoConfig

__all__ = [
    'OptimizedChecksum',
    'ChecksumError',
    'icmpv4_checksum',
    'icmpv6_checksum',
    'EkkoError',
    'EkkoPacket',
    'EkkoData',
    'EkkoResponse',
    'ResponseKind',
    'classify',
    'lacking',
    'Ekko',
    'EkkoConfig',
]

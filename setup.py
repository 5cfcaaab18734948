#!/usr/bin/env python3
"""
Ekko v1.0.0 - Setup Configuration
=================================

ICMP echo and hop-limited path tracing over raw sockets (IPv4 and IPv6).

Installation:
    python setup.py install

    OR (development mode):
    pip install -e .

    Creates 'ekko' console script globally.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read long description from README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text(encoding="utf-8") if readme_path.exists() else ""

# Core dependencies
REQUIRED_PACKAGES = [
    "jsonschema>=4.0.0",    # Configuration file validation
    "colorama>=0.4.4",      # Cross-platform colored output
]

# Optional development dependencies
EXTRAS_REQUIRE = {
    "dev": [
        "pytest>=7.0.0",    # Testing
        "pytest-cov>=4.0.0", # Coverage reporting
        "scapy>=2.4.5",     # Independent packet builder for checksum cross-checks
        "black>=22.0.0",    # Code formatting
        "pylint>=2.14.0",   # Linting
        "mypy>=0.950",      # Type checking
    ],
}

setup(
    # Package Information
    name="ekko",
    version="1.0.0",
    author="Ekko Team",
    description="ICMP echo and hop-limited path tracing over raw sockets",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Classification
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Natural Language :: English",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet",
        "Topic :: System :: Networking",
        "Topic :: System :: Networking :: Monitoring",
    ],

    # Keywords for searching
    keywords=[
        "network",
        "icmp",
        "icmpv6",
        "ping",
        "traceroute",
        "raw-socket",
    ],

    # Package Configuration
    packages=find_packages(exclude=["tests", "tests.*", "docs"]),

    # Python Version Requirement
    python_requires=">=3.8",

    # Dependencies
    install_requires=REQUIRED_PACKAGES,
    extras_require=EXTRAS_REQUIRE,

    # Entry Points (Console Scripts)
    entry_points={
        "console_scripts": [
            "ekko=ekko.cli:main",
        ],
    },

    zip_safe=False,
)

#!/usr/bin/env python3
"""
Ekko v1.0 - ICMP echo and path tracing
======================================

USAGE:
    ekko [command] TARGET [options]

COMMANDS:
    ping        Send echo requests at a fixed hop limit
    trace       Probe increasing hop limits until the target answers

COMMON OPTIONS:
    --config <file>            JSON configuration file
    -f, --format <fmt>         Output format: text|json|color
    --resolve                  Reverse-resolve responder addresses
    -v, --verbose              Verbose output
    -s, --silent               Silent mode

EXAMPLES:
    ekko ping 8.8.8.8 --count 4
    ekko ping example.com --hops 3 --timeout 1
    ekko trace 2001:4860:4860::8888 --max-hops 20 --batch
    ekko trace example.com -f json

Raw sockets require root (or CAP_NET_RAW).
"""

import argparse
import dataclasses
import logging
import sys
from typing import Iterator, List, Optional

import colorama

from . import __version__
from .config.config_manager import ConfigManager
from .core.errors import EkkoError, SocketCreateError
from .core.raw_socket import MAX_HOP_LIMIT, is_root
from .core.responses import EkkoResponse
from .core.sender import Ekko, EkkoConfig
from .output.console import ConsoleFormatter

logger = logging.getLogger("ekko")

MAX_COUNT = 100000
MAX_TIMEOUT = 60.0
OUTPUT_FORMATS = ('text', 'json', 'color')


# =============================================================================
# PROFESSIONAL ARGUMENT PARSER
# =============================================================================

class ProfessionalParser(argparse.ArgumentParser):
    def __init__(self, *args, **kwargs):
        kwargs.setdefault("prog", "ekko")
        kwargs.setdefault("formatter_class", argparse.RawDescriptionHelpFormatter)
        super().__init__(*args, **kwargs)

    def error(self, message):
        self.exit(2, f"{ConsoleFormatter.error('[ERROR]')} {message}\n")


# =============================================================================
# INPUT VALIDATION FUNCTIONS
# =============================================================================

def validate_positive_int(value: str, field_name: str, min_value: int = 1, max_value: Optional[int] = None) -> int:
    try:
        int_value = int(value)
    except (ValueError, TypeError):
        raise argparse.ArgumentTypeError(f"{field_name} must be an integer, got '{value}'")

    if int_value < min_value:
        raise argparse.ArgumentTypeError(f"{field_name} must be at least {min_value}, got {int_value}")

    if max_value is not None and int_value > max_value:
        raise argparse.ArgumentTypeError(f"{field_name} must be at most {max_value}, got {int_value}")

    return int_value


def validate_hops_value(value: str) -> int:
    return validate_positive_int(value, "Hops", min_value=1, max_value=MAX_HOP_LIMIT)


def validate_count_value(value: str) -> int:
    return validate_positive_int(value, "Count", min_value=1, max_value=MAX_COUNT)


def validate_timeout_value(value: str) -> float:
    try:
        timeout = float(value)
    except (ValueError, TypeError):
        raise argparse.ArgumentTypeError(f"Timeout must be a number, got '{value}'")

    if not 0 < timeout <= MAX_TIMEOUT:
        raise argparse.ArgumentTypeError(f"Timeout must be in (0, {MAX_TIMEOUT}], got {timeout}")

    return timeout


def sanitize_target(target: str) -> str:
    stripped = target.strip() if target else ""
    if not stripped:
        raise argparse.ArgumentTypeError("Target cannot be empty")
    if '\x00' in stripped or any(c.isspace() for c in stripped):
        raise argparse.ArgumentTypeError(f"Target contains invalid characters: {target!r}")
    return stripped


# =============================================================================
# PARSER
# =============================================================================

def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('target',
                        type=sanitize_target,
                        help='Target IP address or hostname')
    parser.add_argument('--config',
                        default=None,
                        help='JSON configuration file')
    parser.add_argument('-f', '--format',
                        choices=OUTPUT_FORMATS,
                        default=None,
                        help='Output format (default from config)')
    parser.add_argument('--resolve',
                        action='store_true',
                        default=None,
                        help='Reverse-resolve responder addresses')
    parser.add_argument('--timeout',
                        type=validate_timeout_value,
                        default=None,
                        help='Seconds to wait for responses (default from config)')

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose',
                           action='store_true',
                           help='Verbose output')
    verbosity.add_argument('-s', '--silent',
                           action='store_true',
                           help='Silent mode (results and errors only)')


def create_parser() -> ProfessionalParser:
    """Create the argument parser."""
    parser = ProfessionalParser(
        description=__doc__,
    )
    parser.add_argument('--version',
                        action='version',
                        version=f"ekko {__version__}")

    subparsers = parser.add_subparsers(dest='command', parser_class=ProfessionalParser)
    subparsers.required = True

    ping = subparsers.add_parser('ping', help='Send echo requests at a fixed hop limit')
    _add_common_arguments(ping)
    ping.add_argument('--hops',
                      type=validate_hops_value,
                      default=64,
                      help='Hop limit of every request (default: 64)')
    ping.add_argument('-c', '--count',
                      type=validate_count_value,
                      default=4,
                      help='Number of requests to send (default: 4)')

    trace = subparsers.add_parser('trace', help='Probe increasing hop limits')
    _add_common_arguments(trace)
    trace.add_argument('--first-hop',
                       type=validate_hops_value,
                       default=None,
                       help='First hop limit to probe (default from config)')
    trace.add_argument('--max-hops',
                       type=validate_hops_value,
                       default=None,
                       help='Last hop limit to probe (default from config)')
    trace.add_argument('--batch',
                       action='store_true',
                       default=None,
                       help='Send every hop up front and wait once')

    return parser


# =============================================================================
# LOGGING & OUTPUT
# =============================================================================

def setup_logging(args, config: ConfigManager) -> None:
    if args.verbose:
        level = logging.DEBUG
    elif args.silent:
        level = logging.ERROR
    else:
        level = getattr(logging, str(config.get("general.log_level", "WARNING")).upper(), logging.WARNING)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.getLogger("ekko").setLevel(level)


def output_error(message: str) -> None:
    print(ConsoleFormatter.error(message), file=sys.stderr)


def output_info(message: str, args) -> None:
    if args.silent or args.format == 'json':
        return
    if args.format == 'color':
        print(ConsoleFormatter.info(message))
    else:
        print(message)


def output_response(response: EkkoResponse, args) -> None:
    print(ConsoleFormatter.format_response(response, args.format), flush=True)


# =============================================================================
# COMMANDS
# =============================================================================

def open_engine(target: str, engine_config: EkkoConfig) -> Ekko:
    """Build an engine for ``target``; replaced in tests."""
    return Ekko.with_target(target, config=engine_config)


def ping_command(engine: Ekko, args) -> List[EkkoResponse]:
    output_info(f"EKKO {args.target} ({engine.target_address}) hops={args.hops}", args)

    responses = []
    for _ in range(args.count):
        response = engine.send(args.hops)
        responses.append(response)
        output_response(response, args)

    output_info(ConsoleFormatter.format_summary(responses), args)
    return responses


def _trace_hops(engine: Ekko, args) -> Iterator[EkkoResponse]:
    hop_range = range(args.first_hop, args.max_hops + 1)
    if args.batch:
        yield from engine.send_range(hop_range)
    else:
        for hops in hop_range:
            yield engine.send(hops)


def trace_command(engine: Ekko, args) -> List[EkkoResponse]:
    output_info(
        f"TRACE {args.target} ({engine.target_address}) hops {args.first_hop}..{args.max_hops}",
        args
    )

    responses = []
    for response in _trace_hops(engine, args):
        responses.append(response)
        output_response(response, args)
        if response.is_destination:
            break
    return responses


COMMANDS = {
    'ping': ping_command,
    'trace': trace_command,
}


# =============================================================================
# MAIN
# =============================================================================

def apply_config_defaults(args, config: ConfigManager) -> EkkoConfig:
    """Fill unset arguments from the configuration and build the engine config."""
    if args.format is None:
        args.format = config.get("general.output_format", "text")
    if args.format == 'color' and not sys.stdout.isatty():
        args.format = 'text'

    engine_config = config.engine_config()
    if args.timeout is not None:
        engine_config = dataclasses.replace(engine_config, timeout=args.timeout)
    if args.resolve:
        engine_config = dataclasses.replace(engine_config, resolve_domains=True)

    if args.command == 'trace':
        if args.first_hop is None:
            args.first_hop = int(config.get("trace.first_hop", 1))
        if args.max_hops is None:
            args.max_hops = int(config.get("trace.max_hops", 30))
        if args.batch is None:
            args.batch = bool(config.get("trace.batch", False))

    return engine_config


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    config = ConfigManager(args.config)
    config.load()
    setup_logging(args, config)

    engine_config = apply_config_defaults(args, config)
    if args.command == 'trace' and args.first_hop > args.max_hops:
        parser.error(f"--first-hop ({args.first_hop}) must not exceed --max-hops ({args.max_hops})")

    if args.format == 'color':
        colorama.init()

    try:
        with open_engine(args.target, engine_config) as engine:
            COMMANDS[args.command](engine, args)
    except SocketCreateError as e:
        output_error(str(e))
        if not is_root():
            output_error("Raw ICMP sockets require root privileges (or CAP_NET_RAW)")
        return 1
    except EkkoError as e:
        logger.debug("command failed", exc_info=True)
        output_error(str(e))
        return 1
    except KeyboardInterrupt:
        output_error("Interrupted by user")
        return 130

    return 0


if __name__ == "__main__":
    sys.exit(main())

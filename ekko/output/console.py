import json
from typing import Iterable

from colorama import Fore, Style

from ..core.responses import EkkoResponse, ResponseKind


class ConsoleColors:
    """Terminal colors for console output"""
    HEADER = Fore.MAGENTA
    BLUE = Fore.BLUE
    CYAN = Fore.CYAN
    GREEN = Fore.GREEN
    YELLOW = Fore.YELLOW
    RED = Fore.RED
    ENDC = Style.RESET_ALL
    BOLD = Style.BRIGHT
    DIM = Style.DIM


KIND_COLORS = {
    ResponseKind.DESTINATION: ConsoleColors.GREEN,
    ResponseKind.EXCEEDED: ConsoleColors.CYAN,
    ResponseKind.UNREACHABLE: ConsoleColors.RED,
    ResponseKind.REDIRECT: ConsoleColors.YELLOW,
    ResponseKind.PACKET_TOO_BIG: ConsoleColors.YELLOW,
    ResponseKind.SOURCE_QUENCH: ConsoleColors.YELLOW,
    ResponseKind.PARAMETER_PROBLEM: ConsoleColors.RED,
    ResponseKind.UNEXPECTED: ConsoleColors.HEADER,
    ResponseKind.LACKING: ConsoleColors.DIM,
}


class ConsoleFormatter:
    """Formatters for console output"""

    @staticmethod
    def error(msg: str) -> str:
        return f"{ConsoleColors.RED}[✗] {msg}{ConsoleColors.ENDC}"

    @staticmethod
    def info(msg: str) -> str:
        return f"{ConsoleColors.BLUE}[i] {msg}{ConsoleColors.ENDC}"

    @staticmethod
    def detail(response: EkkoResponse) -> str:
        """Short description of the response detail, empty when there is none."""
        if response.detail is None:
            return ""
        if response.kind == ResponseKind.UNEXPECTED:
            icmp_type, code = response.detail
            return f"type={icmp_type} code={code}"
        if response.kind == ResponseKind.PACKET_TOO_BIG:
            return f"mtu={response.detail}"
        return " ".join(f"{key}={value}" for key, value in response.detail.to_dict().items())

    @staticmethod
    def response_line(response: EkkoResponse) -> str:
        """One plain text line per response."""
        data = response.data
        if response.is_lacking:
            return f"{data.hops:>3}  *"

        host = data.address
        if data.domain:
            host = f"{data.domain} ({data.address})"
        line = f"{data.hops:>3}  {host}  {data.elapsed_ms:.3f} ms  {response.kind.value}"
        detail = ConsoleFormatter.detail(response)
        if detail:
            line += f"  [{detail}]"
        return line

    @staticmethod
    def colored_response_line(response: EkkoResponse) -> str:
        color = KIND_COLORS.get(response.kind, "")
        return f"{color}{ConsoleFormatter.response_line(response)}{ConsoleColors.ENDC}"

    @staticmethod
    def format_response(response: EkkoResponse, output_format: str = "text") -> str:
        """
        Render one response.

        Args:
            response: Classified response
            output_format: 'text', 'color' or 'json'
        """
        if output_format == "json":
            return json.dumps(response.to_dict())
        if output_format == "color":
            return ConsoleFormatter.colored_response_line(response)
        return ConsoleFormatter.response_line(response)

    @staticmethod
    def format_summary(responses: Iterable[EkkoResponse]) -> str:
        responses = list(responses)
        answered = [r for r in responses if not r.is_lacking]
        loss = 100.0 * (len(responses) - len(answered)) / len(responses) if responses else 0.0
        summary = f"{len(responses)} sent, {len(answered)} answered, {loss:.1f}% loss"
        if answered:
            times = [r.data.elapsed_ms for r in answered]
            summary += f", rtt min/avg/max = {min(times):.3f}/{sum(times) / len(times):.3f}/{max(times):.3f} ms"
        return summary

"""
Rich console output for pathdiag - records are printed as they arrive
"""

from typing import Optional
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .. import __version__
from ..models import (
    EchoReply, EchoStatus, Mode, MtuStatus, PingStatus, ProbeError, ProbeOptions, Target, TraceStatus,
)


STATUS_STYLES = {
    EchoStatus.SUCCESS: 'green',
    EchoStatus.TTL_EXPIRED: 'green',
    EchoStatus.TIMED_OUT: 'yellow',
    EchoStatus.PACKET_TOO_BIG: 'magenta',
    EchoStatus.DESTINATION_UNREACHABLE: 'red',
    EchoStatus.OTHER_FAILURE: 'red',
}

# (title, width) per column
PING_COLUMNS = [('Ping', 5), ('Source', 16), ('Address', 28), ('Latency(ms)', 12),
                ('BufferSize(B)', 14), ('Status', 14)]
TRACE_COLUMNS = [('Hop', 4), ('Hostname', 32), ('Ping', 5), ('Latency(ms)', 12),
                 ('Status', 14), ('Target', 20)]


class ConsoleOutput:
    """
    Rich console output for probe records.

    Features:
    - Per-target header panel
    - One line per record, printed in real time
    - Plain values in quiet mode
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()
        self._table_header_printed = False

    def print_header(self, target: Target, options: ProbeOptions):
        """Print target header"""
        content = Text()
        content.append("pathdiag", style="bold cyan")
        content.append(f" v{__version__}\n", style="dim")
        content.append("Target: ", style="dim")
        content.append(target.name, style="bold")
        if target.display_name != str(target.address):
            content.append(f" [{target.display_name}]", style="dim")
        content.append(f" ({target.address})", style="dim")
        content.append("\n")
        content.append(f"Mode: {options.mode.value}", style="dim")
        if options.mode is Mode.TCP:
            content.append(f"  |  Port: {options.tcp_port}", style="dim")
        elif options.mode is Mode.TRACEROUTE:
            content.append(f"  |  Max hops: {options.max_hops}", style="dim")
        elif options.mode is not Mode.MTU:
            content.append(f"  |  Buffer: {options.buffer_size} bytes", style="dim")

        self.console.print(Panel(content, border_style="cyan", padding=(0, 1)))
        self._table_header_printed = False

    def print_table_header(self, columns: list[tuple[str, int]]):
        """Print the table header row"""
        if self._table_header_printed:
            return

        header = Text()
        for title, width in columns:
            header.append(f"{title:<{width}}  ", style="bold magenta")

        self.console.print(header)
        self._table_header_printed = True

    def print_record(self, record):
        """Print any record yielded by ConnectionTester"""
        if isinstance(record, ProbeError):
            self.print_probe_error(record)
        elif isinstance(record, TraceStatus):
            self.print_trace(record)
        elif isinstance(record, MtuStatus):
            self.print_mtu(record)
        elif isinstance(record, PingStatus):
            self.print_ping(record)
        elif isinstance(record, EchoReply):
            self.print_reply(record)
        else:
            self.console.print(str(record))

    def print_ping(self, status: PingStatus):
        self.print_table_header(PING_COLUMNS)

        line = Text()
        line.append(f"{status.ping:<5}  ", style="dim")
        line.append(f"{self._truncate(status.source, 16):<16}  ")
        line.append(f"{(status.address or status.destination or '*'):<28}  ")
        line.append(f"{self._format_latency(status.latency):<12}  ")
        line.append(f"{status.buffer_size:<14}  ")
        line.append(f"{status.status.value:<14}", style=STATUS_STYLES[status.status])
        self.console.print(line)

    def print_trace(self, status: TraceStatus):
        self.print_table_header(TRACE_COLUMNS)

        line = Text()
        line.append(f"{status.hop:<4}  ", style="dim")
        line.append(f"{self._truncate(status.hostname or '*', 32):<32}  ")
        line.append(f"{status.ping:<5}  ")
        line.append(f"{self._format_latency(status.latency):<12}  ")
        line.append(f"{status.status.value:<14}  ", style=STATUS_STYLES[status.status])
        line.append(f"{self._truncate(status.target, 20):<20}", style="dim")
        self.console.print(line)

    def print_mtu(self, status: MtuStatus):
        line = Text()
        line.append("Path MTU to ", style="dim")
        line.append(status.destination or "-", style="bold")
        line.append(": ")
        line.append(f"{status.mtu_size} bytes", style="bold green")
        line.append(f"  ({self._format_latency(status.latency)} ms)", style="dim")
        self.console.print(line)

    def print_reply(self, reply: EchoReply):
        line = Text()
        line.append("Reply from ", style="dim")
        line.append(reply.address or "*")
        line.append(f": bytes={reply.buffer_size} time={self._format_latency(reply.rtt_ms)}ms ",
                    style="dim")
        line.append(reply.status.value, style=STATUS_STYLES[reply.status])
        self.console.print(line)

    def print_probe_error(self, error: ProbeError):
        where = error.target
        if error.hop is not None:
            where += f" hop {error.hop}"
        if error.ping is not None:
            where += f" ping {error.ping}"
        self.console.print(f"[bold red]Error:[/] [dim]{where}:[/] {error.message}", highlight=False)

    def print_error(self, message: str):
        """Print error message"""
        self.console.print(f"[bold red]Error:[/] {message}")

    def _format_latency(self, latency: Optional[float]) -> str:
        if latency is None:
            return "*"
        return f"{latency:.0f}"

    def _truncate(self, text: str, max_len: int) -> str:
        """Truncate text with ellipsis"""
        if not text:
            return "-"
        if len(text) <= max_len:
            return text
        return text[:max_len - 1] + "…"

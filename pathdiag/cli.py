import logging
import signal
import sys
import traceback
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .config import Config, get_config, set_config
from .exceptions import Cancelled, ValidationError
from .logging_config import configure_logging
from .models import MAX_BUFFER_SIZE, MAX_HOPS, Mode, RunSummary
from .output import ConsoleOutput, JsonExporter
from .tester import ConnectionTester


console = Console()
logger = logging.getLogger(__name__)


def select_mode(repeat: bool, traceroute: bool, mtu_size: bool,
                tcp_port: Optional[int]) -> Mode:
    """Pick the probe mode; at most one mode flag may be given"""
    chosen = [mode for mode, flag in (
        (Mode.REPEAT, repeat),
        (Mode.TRACEROUTE, traceroute),
        (Mode.MTU, mtu_size),
        (Mode.TCP, tcp_port is not None),
    ) if flag]

    if len(chosen) > 1:
        names = ', '.join(mode.value for mode in chosen)
        raise click.UsageError(f"Only one probe mode may be selected (got: {names})")

    return chosen[0] if chosen else Mode.PING


@click.command()
@click.argument('targets', nargs=-1, required=True)
@click.option('--repeat', is_flag=True,
              help='Ping until interrupted with Ctrl-C')
@click.option('--traceroute', is_flag=True,
              help='Trace the route to each target')
@click.option('--mtu-size', is_flag=True,
              help='Discover the path MTU to each target')
@click.option('--tcp-port', type=click.IntRange(0, 65535),
              help='Test a TCP connection to this port')
@click.option('-4', '--ipv4', 'ipv4', is_flag=True,
              help='Use an IPv4 address of the target')
@click.option('-6', '--ipv6', 'ipv6', is_flag=True,
              help='Use an IPv6 address of the target')
@click.option('--resolve-destination/--no-resolve-destination', default=None,
              help='Show resolved host names instead of addresses')
@click.option('-m', '--max-hops', type=click.IntRange(0, MAX_HOPS),
              help=f'Time to live / hop limit (default: {MAX_HOPS})')
@click.option('-n', '--count', type=click.IntRange(min=1),
              help='Number of echo requests (default: 4)')
@click.option('--delay', type=click.FloatRange(min=0),
              help='Seconds between echo requests (default: 1)')
@click.option('-l', '--buffer-size', type=click.IntRange(0, MAX_BUFFER_SIZE),
              help='Echo payload size in bytes (default: 32)')
@click.option('-f', '--dont-fragment', is_flag=True,
              help="Set the don't-fragment flag")
@click.option('-q', '--quiet', is_flag=True,
              help='Print only a single summary value per target')
@click.option('-w', '--timeout', type=click.FloatRange(min=0, min_open=True),
              help='Timeout per attempt in seconds (default: 5)')
@click.option('--json', 'json_path', type=click.Path(),
              help='Export records to JSON file')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON file with default option values')
@click.option('-v', '--verbose', is_flag=True, help='Log progress messages')
@click.option('--debug', is_flag=True, help='Log debug messages')
@click.version_option(version=__version__)
def main(targets: tuple[str, ...], repeat: bool, traceroute: bool, mtu_size: bool,
         tcp_port: Optional[int], ipv4: bool, ipv6: bool,
         resolve_destination: Optional[bool], max_hops: Optional[int],
         count: Optional[int], delay: Optional[float], buffer_size: Optional[int],
         dont_fragment: bool, quiet: bool, timeout: Optional[float],
         json_path: Optional[str], config_path: Optional[str],
         verbose: bool, debug: bool):
    """
    pathdiag - ping, traceroute, path MTU and TCP connection tests.

    Test the connection to each TARGET (IP address or hostname).

    Examples:

        pathdiag 8.8.8.8

        pathdiag example.com --traceroute

        pathdiag example.com --mtu-size -q

        pathdiag example.com --tcp-port 443
    """
    try:
        if config_path:
            set_config(Config.from_file(Path(config_path)))
        config = get_config()
    except ValidationError as e:
        raise click.BadParameter(str(e), param_hint="'--config'")

    configure_logging(verbose=verbose or config.verbose, debug=debug)

    if ipv4 and ipv6:
        raise click.UsageError("--ipv4 and --ipv6 cannot be used together")

    mode = select_mode(repeat, traceroute, mtu_size, tcp_port)

    try:
        options = config.probe_options(
            mode,
            max_hops=max_hops,
            count=count,
            delay=delay,
            buffer_size=buffer_size,
            timeout=timeout,
            resolve_destination=resolve_destination,
            dont_fragment=dont_fragment,
            quiet=quiet,
            force_family=4 if ipv4 else 6 if ipv6 else None,
            tcp_port=tcp_port,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e))

    output = ConsoleOutput(console)
    summary = RunSummary(mode=mode, targets=list(targets), keep_records=bool(json_path))

    def on_target(target):
        if not options.quiet:
            output.print_header(target, options)

    try:
        with ConnectionTester(options) as tester:
            # Ctrl-C cancels the in-flight probe instead of killing the process
            previous = signal.signal(signal.SIGINT, lambda signum, frame: tester.cancel())
            try:
                for record in tester.run(targets, on_target=on_target):
                    summary.add(record)
                    output.print_record(record)
            finally:
                signal.signal(signal.SIGINT, previous)

    except Cancelled:
        console.print("\n[yellow]Interrupted[/]")
        _export(summary, json_path)
        sys.exit(130)
    except PermissionError as e:
        output.print_error(str(e))
        sys.exit(1)
    except Exception as e:
        output.print_error(f"Unexpected error: {e}")
        traceback.print_exc()
        sys.exit(1)

    _export(summary, json_path)

    if summary.error_count:
        sys.exit(1)


def _export(summary: RunSummary, json_path: Optional[str]):
    if not json_path:
        return
    json_file = Path(json_path)
    JsonExporter().export(summary, json_file)
    logger.info("Results exported to %s", json_file.absolute())


if __name__ == '__main__':
    main()

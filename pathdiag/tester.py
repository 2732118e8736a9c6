"""
Connection test orchestrator
"""

import logging
import socket
from typing import Callable, Iterable, Iterator, Optional

from .exceptions import NoPingResult, ResolutionError
from .models import Mode, ProbeError, ProbeOptions, Target
from .probe import (
    CancelToken, EchoProbe, EchoSender, PathMtuDiscovery, PingSeries, TcpProbe,
    TracerouteEngine, create_echo_sender,
)
from .resolver import AddressResolver

logger = logging.getLogger(__name__)


class ConnectionTester:
    """
    Runs one probe mode against a list of targets.

    Every target is resolved first; a target that cannot be resolved is
    reported as a ProbeError and the run moves on. Records are yielded as
    soon as each probe completes. Only cancellation (and missing
    privileges) ends the run early.
    """

    def __init__(
        self,
        options: ProbeOptions,
        sender: Optional[EchoSender] = None,
        resolver: Optional[AddressResolver] = None,
        cancel_token: Optional[CancelToken] = None,
        source: Optional[str] = None,
        tcp_probe: Optional[TcpProbe] = None,
        echo: Optional[EchoProbe] = None
    ):
        self.options = options
        self.cancel_token = cancel_token or CancelToken()
        self.resolver = resolver or AddressResolver(timeout=options.timeout)
        self.source = source or socket.gethostname()
        self.tcp_probe = tcp_probe or TcpProbe(self.cancel_token)
        self._sender = sender
        self._echo = echo

    @property
    def echo(self) -> EchoProbe:
        """Echo probe, created on first use so TCP runs need no raw socket"""
        if self._echo is None:
            sender = self._sender or create_echo_sender()
            self._echo = EchoProbe(sender, self.cancel_token)
        return self._echo

    def run(
        self,
        targets: Iterable[str],
        on_target: Optional[Callable[[Target], None]] = None
    ) -> Iterator:
        """
        Probe each target in turn.

        Args:
            targets: Host names or addresses
            on_target: Optional callback invoked after a target resolves

        Yields:
            PingStatus, EchoReply, TraceStatus, MtuStatus, ProbeError,
            or bool/int values in quiet mode
        """
        for name in targets:
            try:
                target = self.resolver.resolve(
                    name,
                    force_family=self.options.force_family,
                    reverse=self.options.resolve_destination,
                )
            except ResolutionError as e:
                logger.warning("%s", e)
                yield ProbeError(target=name, message=str(e), category="resolution")
                continue

            if on_target:
                on_target(target)

            yield from self.probe(target)

    def probe(self, target: Target) -> Iterator:
        """Run the configured mode against one resolved target"""
        mode = self.options.mode

        if mode in (Mode.PING, Mode.REPEAT):
            yield from PingSeries(self.echo, self.options, self.source).run(target)

        elif mode is Mode.TRACEROUTE:
            engine = TracerouteEngine(self.echo, self.options, self.source, self.resolver)
            yield from engine.run(target)

        elif mode is Mode.MTU:
            discovery = PathMtuDiscovery(self.echo, self.options, self.source)
            try:
                status = discovery.discover(target)
            except NoPingResult as e:
                logger.warning("%s", e)
                yield ProbeError(target=target.display_name, message=str(e), category="no-result")
                return
            yield status.mtu_size if self.options.quiet else status

        elif mode is Mode.TCP:
            yield self.tcp_probe.connect(str(target.address), self.options.tcp_port,
                                         self.options.timeout)

    def cancel(self):
        """Abort the run at the next suspension point"""
        self.cancel_token.cancel()

    def close(self):
        """Release the echo sender, its worker and the resolver"""
        if self._echo is not None:
            self._echo.close()
        elif self._sender is not None:
            self._sender.close()
        self.resolver.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

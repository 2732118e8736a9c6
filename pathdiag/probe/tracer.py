"""
Traceroute engine
"""

import logging
from typing import Iterator, Optional, Union

from ..exceptions import ProbeFailure, ResolutionError
from ..models import (
    EchoOptions, EchoReply, EchoStatus, PingStatus, ProbeError, ProbeOptions, Target, TraceStatus,
)
from ..resolver import AddressResolver
from .echo import EchoProbe
from .payload import get_send_buffer

logger = logging.getLogger(__name__)

# Echoes sent to each hop
HOP_PING_COUNT = 3

# Pause between echoes to one hop
HOP_PAUSE = 0.05

TraceRecord = Union[TraceStatus, ProbeError, bool]


class TracerouteEngine:
    """
    Traceroute over ICMP echo.

    Sends HOP_PING_COUNT echoes per TTL, starting at 1, and keeps going
    while the last reply is a TTL expiry or a timeout.
    """

    def __init__(
        self,
        echo: EchoProbe,
        options: ProbeOptions,
        source: str,
        resolver: Optional[AddressResolver] = None,
        pause: float = HOP_PAUSE
    ):
        self.echo = echo
        self.options = options
        self.source = source
        self.resolver = resolver
        self.pause = pause

    def _router_name(self, reply: EchoReply) -> Optional[str]:
        """
        Name shown for a hop; reverse lookup failures fall back to the address.

        With resolve_destination every reply carrying an address is looked
        up, TTL-expired routers included, not only the destination's own
        Success reply. This costs at most one reverse lookup per hop.
        """
        if reply.address is None:
            return None
        if self.options.resolve_destination and self.resolver is not None:
            try:
                return self.resolver.reverse_name(reply.address)
            except ResolutionError as e:
                logger.debug("No name for hop %s: %s", reply.address, e)
        return reply.address

    def run(self, target: Target) -> Iterator[TraceRecord]:
        """
        Trace the route to a resolved target.

        Yields one TraceStatus per echo as it completes. In quiet mode a
        single boolean is yielded instead: whether the destination itself
        answered within the hop limit.
        """
        options = self.options
        buffer = get_send_buffer(options.buffer_size)
        address = str(target.address)
        reply: Optional[EchoReply] = None
        hop = 1

        while hop <= options.max_hops:
            echo_options = EchoOptions(ttl=hop, dont_fragment=options.dont_fragment)
            # Router name is looked up once per hop
            router_name: Optional[str] = None

            for i in range(1, HOP_PING_COUNT + 1):
                try:
                    reply = self.echo.send(address, options.timeout, buffer, echo_options)
                except ProbeFailure as e:
                    logger.warning("Hop %d ping %d to %s failed: %s",
                                   hop, i, target.display_name, e)
                    if not options.quiet:
                        yield ProbeError(target=target.display_name, message=str(e),
                                         ping=i, hop=hop)
                    continue

                if router_name is None:
                    router_name = self._router_name(reply)

                if reply.status is EchoStatus.SUCCESS or reply.rtt_ms is not None:
                    latency = reply.rtt_ms
                else:
                    latency = reply.elapsed_ms

                status = PingStatus(
                    self.source,
                    router_name,
                    reply,
                    i,
                    latency_override=latency,
                    buffer_size_override=len(buffer),
                    options=echo_options,
                )

                if not options.quiet:
                    yield TraceStatus(hop, status, self.source, target.display_name, address)

                self.echo.cancel_token.sleep(self.pause)

            if reply is None or reply.status not in (EchoStatus.TTL_EXPIRED, EchoStatus.TIMED_OUT):
                break
            hop += 1

        if options.quiet:
            yield reply is not None and reply.status is EchoStatus.SUCCESS

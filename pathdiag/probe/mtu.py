"""
Path MTU discovery

Binary search over the echo payload size with the don't-fragment flag
set. The search keeps ``low`` at the largest size known to pass and
``high`` at the smallest size known to be rejected, so ``low`` only grows
and ``high`` only shrinks until they are adjacent.
"""

import logging
from typing import Optional

from ..exceptions import NoPingResult, ProbeFailure
from ..models import EchoOptions, EchoReply, EchoStatus, MtuStatus, PingStatus, ProbeOptions, Target
from .echo import EchoProbe
from .payload import get_send_buffer

logger = logging.getLogger(__name__)

# Boundary values; the search is sensitive to changes here
HIGH_MTU_SIZE = 10000
START_MTU_SIZE = 1473
IPV4_MIN_MTU = 68
IPV6_MIN_MTU = 1280

PROBE_PAUSE = 0.1


class PathMtuDiscovery:
    """Find the largest payload that reaches the target unfragmented"""

    def __init__(self, echo: EchoProbe, options: ProbeOptions, source: str,
                 pause: float = PROBE_PAUSE):
        self.echo = echo
        self.options = options
        self.source = source
        self.pause = pause

    @staticmethod
    def floor(target: Target) -> int:
        """Smallest MTU allowed for the target's address family"""
        return IPV6_MIN_MTU if target.family == 6 else IPV4_MIN_MTU

    def discover(self, target: Target) -> MtuStatus:
        """
        Run the search against a resolved target.

        A size that neither passes nor is rejected as too big is retried
        up to ``count`` times before giving up.

        Raises:
            NoPingResult: retries exhausted, or no size ever succeeded
            Cancelled: the cancel token was set
        """
        options = self.options
        address = str(target.address)
        echo_options = EchoOptions(ttl=options.max_hops, dont_fragment=True)

        low = self.floor(target)
        high = HIGH_MTU_SIZE
        current = START_MTU_SIZE
        best: Optional[EchoReply] = None
        retry = 1

        logger.info("Discovering path MTU to %s (%s), buffer size %d",
                    target.display_name, address, options.buffer_size)

        while low < high - 1:
            logger.debug("LowMTUSize: %d, CurrentMTUSize: %d, HighMTUSize: %d",
                         low, current, high)

            try:
                reply = self.echo.send(address, options.timeout,
                                       get_send_buffer(current), echo_options)
                status = reply.status
            except ProbeFailure as e:
                reply = None
                status = str(e)

            if reply is not None and status is EchoStatus.PACKET_TOO_BIG:
                high = current
                retry = 1
            elif reply is not None and status is EchoStatus.SUCCESS:
                low = current
                best = reply
                retry = 1
            else:
                # No conclusive answer; try the same size again
                label = status.value if isinstance(status, EchoStatus) else status
                if retry >= options.count:
                    raise NoPingResult(address, label)
                logger.debug("No conclusive reply at size %d (%s), retry %d",
                             current, label, retry)
                retry += 1
                self.echo.cancel_token.sleep(self.pause)
                continue

            current = (low + high) // 2
            self.echo.cancel_token.sleep(self.pause)

        if best is None:
            raise NoPingResult(address, f"no echo passed above the {low} byte floor")

        logger.info("Path MTU to %s is %d", address, low)
        return MtuStatus(PingStatus(self.source, address, best, 1))

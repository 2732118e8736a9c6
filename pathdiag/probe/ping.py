"""
Ping series
"""

import logging
from typing import Iterator, Union

from ..exceptions import ProbeFailure
from ..models import EchoOptions, EchoReply, EchoStatus, PingStatus, ProbeError, ProbeOptions, Target
from .echo import EchoProbe
from .payload import get_send_buffer

logger = logging.getLogger(__name__)

PingRecord = Union[PingStatus, EchoReply, ProbeError, bool]


class PingSeries:
    """
    Repeated echo requests to one target.

    Emits one PingStatus per attempt, the raw EchoReply per attempt in
    repeat mode, or a single boolean in quiet mode.
    """

    def __init__(self, echo: EchoProbe, options: ProbeOptions, source: str):
        self.echo = echo
        self.options = options
        self.source = source

    def run(self, target: Target) -> Iterator[PingRecord]:
        """
        Ping a resolved target.

        Yields records as each attempt completes. In repeat mode the
        series only ends when the cancel token is set.
        """
        options = self.options
        buffer = get_send_buffer(options.buffer_size)
        echo_options = EchoOptions(ttl=options.max_hops, dont_fragment=options.dont_fragment)
        address = str(target.address)
        count = options.effective_count
        quiet_result = True

        for i in range(1, count + 1):
            try:
                reply = self.echo.send(address, options.timeout, buffer, echo_options)
            except ProbeFailure as e:
                logger.warning("Ping %d to %s failed: %s", i, target.display_name, e)
                quiet_result = False
                if not options.quiet:
                    yield ProbeError(target=target.display_name, message=str(e), ping=i)
            else:
                if options.repeat:
                    yield reply
                elif options.quiet:
                    # True only if every ping succeeded
                    quiet_result &= reply.status is EchoStatus.SUCCESS
                else:
                    yield PingStatus(self.source, target.display_name, reply, i)

            # Delay between pings, but not after the last one
            if i < count and options.delay > 0:
                self.echo.cancel_token.sleep(options.delay)

        if options.quiet and not options.repeat:
            yield quiet_result


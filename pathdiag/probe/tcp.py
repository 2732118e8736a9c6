"""
TCP connect probe
"""

import errno
import ipaddress
import logging
import select
import socket
from typing import Optional

from .cancel import CancelToken

logger = logging.getLogger(__name__)

# connect_ex results meaning the connection is still being set up
_IN_PROGRESS = (
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    getattr(errno, "WSAEWOULDBLOCK", 10035),
)


class TcpProbe:
    """
    TCP connection test.

    Starts a non-blocking connect and polls it once per second for up to
    ``timeout`` polls. Cancellation and connect errors both end the probe
    with False rather than an exception.
    """

    POLL_INTERVAL = 1.0

    def __init__(self, cancel_token: Optional[CancelToken] = None,
                 poll_interval: float = POLL_INTERVAL):
        self.cancel_token = cancel_token or CancelToken()
        self.poll_interval = poll_interval

    def connect(self, address: str, port: int, timeout: float) -> bool:
        """
        Try to connect to address:port.

        Args:
            address: Resolved IP address
            port: TCP port
            timeout: Number of one-second polls to wait

        Returns:
            True if the connection was established in time
        """
        family = socket.AF_INET6 if ipaddress.ip_address(address).version == 6 else socket.AF_INET
        sock = None

        try:
            sock = socket.socket(family, socket.SOCK_STREAM)
            sock.setblocking(False)
            err = sock.connect_ex((address, port))
            if err not in (0, *_IN_PROGRESS):
                logger.debug("Connect to %s:%d failed immediately: %s", address, port, err)
                return False

            polls = max(1, int(timeout))
            for i in range(1, polls + 1):
                if self.cancel_token.cancelled:
                    # Waiting was interrupted by the user
                    return False

                _, writable, errored = select.select([], [sock], [sock], self.poll_interval)
                if writable or errored:
                    err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                    if err == 0:
                        logger.debug("Connected to %s:%d on poll %d", address, port, i)
                        return True
                    logger.debug("Connect to %s:%d failed: %s", address, port, err)
                    return False

        except OSError as e:
            # Connection errors are reported as a plain False
            logger.debug("Connect to %s:%d failed: %s", address, port, e)
        finally:
            if sock is not None:
                sock.close()

        return False


"""
Abstract base class for echo senders
"""

from abc import ABC, abstractmethod
from ..models import EchoOptions, EchoReply


class EchoSender(ABC):
    """
    Platform primitive that sends one echo request and waits for one reply.

    A sender is used by one thread at a time; EchoProbe guarantees
    calls are never concurrent.
    """

    @abstractmethod
    def send(self, address: str, timeout: float, payload: bytes,
             options: EchoOptions) -> EchoReply:
        """
        Send one echo request and wait for the matching reply.

        Args:
            address: Destination IP address (already resolved)
            timeout: Seconds to wait for a reply
            payload: Echo data
            options: TTL and don't-fragment flag

        Returns:
            EchoReply; a missing reply is reported as TIMED_OUT

        Raises:
            ProbeFailure: the request could not be sent
        """
        pass

    def interrupt(self):
        """
        Ask an in-flight send to return early.

        Called from another thread; senders whose wait cannot be broken
        keep the default and simply run to their timeout.
        """
        pass

    @abstractmethod
    def close(self):
        """Clean up resources"""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

"""
Cancellable echo requests
"""

import dataclasses
import logging
import threading
import time
from concurrent.futures import Future, TimeoutError as FutureTimeout
from typing import Optional

from ..exceptions import Cancelled, ProbeFailure
from ..models import EchoOptions, EchoReply
from .base import EchoSender
from .cancel import CancelToken

logger = logging.getLogger(__name__)


class EchoProbe:
    """
    Sends echo requests through one sender, one at a time.

    Each send runs on a daemon worker thread that completes a one-shot
    future, which the calling loop awaits while it polls the cancel
    token. A cancelled wait raises Cancelled without waiting for the
    timeout; the sender is interrupted and released once its in-flight
    send has returned, and the worker never holds up interpreter exit.
    """

    # Pause after every completed send before the sender is used again.
    # Back-to-back sends on the same sender can otherwise fail.
    SETTLE_DELAY = 0.002
    POLL_INTERVAL = 0.05

    def __init__(
        self,
        sender: EchoSender,
        cancel_token: Optional[CancelToken] = None,
        settle_delay: float = SETTLE_DELAY,
        poll_interval: float = POLL_INTERVAL
    ):
        self.sender = sender
        self.cancel_token = cancel_token or CancelToken()
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._in_flight: Optional[threading.Thread] = None
        self._closed = False
        self._sender_closed = False

    def _worker(self, future: Future, address: str, timeout: float, payload: bytes,
                options: EchoOptions):
        reply = error = None
        try:
            reply = self.sender.send(address, timeout, payload, options)
        except BaseException as e:
            error = e

        # Free the slot before completing so the caller can send again at once
        with self._lock:
            self._in_flight = None
            release = self._closed
        if release:
            self._close_sender()

        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(reply)

    def _start(self, address: str, timeout: float, payload: bytes,
               options: EchoOptions) -> Future:
        future: Future = Future()
        thread = threading.Thread(
            target=self._worker,
            args=(future, address, timeout, payload, options),
            name="echo",
            daemon=True,
        )
        with self._lock:
            if self._closed:
                raise ProbeFailure("Echo probe is closed")
            if self._in_flight is not None:
                raise ProbeFailure(f"Cannot send echo to {address}",
                                   "previous echo still in flight")
            self._in_flight = thread
        thread.start()
        return future

    def send(self, address: str, timeout: float, payload: bytes,
             options: EchoOptions) -> EchoReply:
        """
        Send one echo and wait for its completion.

        Returns:
            EchoReply with ``elapsed_ms`` set to the measured wait

        Raises:
            Cancelled: the cancel token was set
            ProbeFailure: the sender could not send or receive
        """
        self.cancel_token.raise_if_cancelled()

        start = time.perf_counter()
        future = self._start(address, timeout, payload, options)

        while True:
            try:
                reply = future.result(timeout=self.poll_interval)
                break
            except FutureTimeout as e:
                if future.done() and isinstance(future.exception(), FutureTimeout):
                    # The sender itself raised a timeout error
                    raise ProbeFailure(f"Echo to {address} failed", str(e) or "timed out") from e
                if self.cancel_token.cancelled:
                    self.sender.interrupt()
                    raise Cancelled()
            except (ProbeFailure, PermissionError):
                raise
            except OSError as e:
                raise ProbeFailure(f"Echo to {address} failed", str(e)) from e

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        time.sleep(self.settle_delay)

        return dataclasses.replace(reply, elapsed_ms=elapsed_ms)

    def _close_sender(self):
        with self._lock:
            if self._sender_closed:
                return
            self._sender_closed = True
        self.sender.close()

    def close(self):
        """Stop any in-flight send and release the sender once it has returned"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            busy = self._in_flight is not None

        if busy:
            # The worker closes the sender when its send returns
            self.sender.interrupt()
        else:
            self._close_sender()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

"""
Cooperative cancellation
"""

import threading

from ..exceptions import Cancelled


class CancelToken:
    """
    Cancellation flag shared by every wait in a run.

    Probe loops check it at their suspension points; ``sleep`` doubles as
    an interruptible delay.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self):
        if self._event.is_set():
            raise Cancelled()

    def sleep(self, seconds: float):
        """Wait ``seconds``, raising Cancelled as soon as the token is set"""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        if self._event.wait(seconds):
            raise Cancelled()

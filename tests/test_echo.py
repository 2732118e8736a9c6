"""Tests for the cancellable echo probe"""

import os
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import pytest

from conftest import ScriptedSender
from pathdiag.exceptions import Cancelled, ProbeFailure
from pathdiag.models import EchoOptions, EchoStatus
from pathdiag.probe.echo import EchoProbe

OPTIONS = EchoOptions(ttl=64)


class TestEchoProbe:
    """Test EchoProbe.send"""

    def test_reply_with_elapsed_time(self, make_echo):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        reply = echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)

        assert reply.status is EchoStatus.SUCCESS
        assert reply.address == "192.0.2.10"
        assert reply.elapsed_ms is not None
        assert reply.elapsed_ms >= 0
        echo.close()

    def test_sender_failure_propagates(self, make_echo):
        echo = make_echo(lambda *args: ProbeFailure("send failed"))
        with pytest.raises(ProbeFailure, match="send failed"):
            echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)
        echo.close()

    def test_os_error_wrapped(self, make_echo):
        echo = make_echo(lambda *args: OSError(113, "No route to host"))
        with pytest.raises(ProbeFailure, match="Echo to 192.0.2.10 failed"):
            echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)
        echo.close()

    def test_permission_error_propagates(self, make_echo):
        echo = make_echo(lambda *args: PermissionError("Root privileges required"))
        with pytest.raises(PermissionError):
            echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)
        echo.close()

    def test_cancelled_before_send(self, make_echo, token):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        token.cancel()

        with pytest.raises(Cancelled):
            echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)
        assert echo.sender.calls == []
        echo.close()

    def test_cancel_interrupts_pending_send(self, token):
        release = threading.Event()

        def blocking(*args):
            release.wait(10)
            return EchoStatus.TIMED_OUT

        echo = EchoProbe(ScriptedSender(blocking), token, settle_delay=0, poll_interval=0.01)
        threading.Timer(0.05, token.cancel).start()

        start = time.monotonic()
        try:
            with pytest.raises(Cancelled):
                echo.send("192.0.2.10", 10.0, b"abc", OPTIONS)
            assert time.monotonic() - start < 5
        finally:
            release.set()
            echo.close()

    def test_close(self, make_echo):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        echo.close()
        echo.close()

        assert echo.sender.closed
        with pytest.raises(ProbeFailure):
            echo.send("192.0.2.10", 1.0, b"abc", OPTIONS)

    def test_sender_released_after_in_flight_send(self, token):
        release = threading.Event()

        def blocking(*args):
            release.wait(10)
            return EchoStatus.TIMED_OUT

        sender = ScriptedSender(blocking)
        echo = EchoProbe(sender, token, settle_delay=0, poll_interval=0.01)
        threading.Timer(0.05, token.cancel).start()

        with pytest.raises(Cancelled):
            echo.send("192.0.2.10", 10.0, b"abc", OPTIONS)
        echo.close()

        assert sender.interrupted
        assert not sender.closed

        release.set()
        deadline = time.monotonic() + 5
        while not sender.closed and time.monotonic() < deadline:
            time.sleep(0.01)
        assert sender.closed

    def test_next_send_after_completion(self, make_echo):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        for _ in range(20):
            assert echo.send("192.0.2.10", 1.0, b"abc", OPTIONS).status is EchoStatus.SUCCESS
        echo.close()


EXIT_AFTER_CANCEL = textwrap.dedent("""
    import sys
    import threading
    import time

    from pathdiag.exceptions import Cancelled
    from pathdiag.models import EchoOptions, EchoReply, EchoStatus
    from pathdiag.probe.base import EchoSender
    from pathdiag.probe.cancel import CancelToken
    from pathdiag.probe.echo import EchoProbe


    class SlowSender(EchoSender):
        def send(self, address, timeout, payload, options):
            time.sleep(timeout)
            return EchoReply(status=EchoStatus.TIMED_OUT, buffer_size=len(payload))

        def close(self):
            pass


    token = CancelToken()
    echo = EchoProbe(SlowSender(), token, settle_delay=0, poll_interval=0.01)
    threading.Timer(0.2, token.cancel).start()
    try:
        echo.send("192.0.2.10", 8.0, b"abc", EchoOptions())
    except Cancelled:
        echo.close()
        sys.exit(130)
""")


class TestExitAfterCancel:
    """A cancelled run must not wait for the pending echo at interpreter exit"""

    def test_process_exits_promptly(self):
        root = str(Path(__file__).resolve().parents[1])

        start = time.monotonic()
        result = subprocess.run(
            [sys.executable, "-c", EXIT_AFTER_CANCEL],
            cwd=root,
            env={**os.environ, "PYTHONPATH": root},
            capture_output=True,
            timeout=30,
        )
        wall = time.monotonic() - start

        assert result.returncode == 130, result.stderr
        assert wall < 4

"""Tests for ping series"""

import pytest

from pathdiag.exceptions import Cancelled, ProbeFailure
from pathdiag.models import EchoReply, EchoStatus, Mode, PingStatus, ProbeError, ProbeOptions
from pathdiag.probe.ping import PingSeries


def _sequence(*results):
    """Responder returning the given results in order"""
    remaining = list(results)
    return lambda *args: remaining.pop(0)


class TestPingSeries:
    """Test PingSeries.run"""

    def test_one_status_per_attempt(self, make_echo, target_v4):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        options = ProbeOptions(count=3, delay=0)

        records = list(PingSeries(echo, options, "host").run(target_v4))

        assert [r.ping for r in records] == [1, 2, 3]
        assert all(isinstance(r, PingStatus) for r in records)
        assert all(r.status is EchoStatus.SUCCESS for r in records)
        assert all(r.destination == "example.com" for r in records)
        assert all(r.source == "host" for r in records)

    def test_sends_options(self, make_echo, target_v4):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        options = ProbeOptions(count=1, buffer_size=100, max_hops=30, dont_fragment=True)

        list(PingSeries(echo, options, "host").run(target_v4))

        address, size, echo_options = echo.sender.calls[0]
        assert address == "192.0.2.10"
        assert size == 100
        assert echo_options.ttl == 30
        assert echo_options.dont_fragment

    def test_quiet_all_success(self, make_echo, target_v4):
        echo = make_echo(lambda *args: EchoStatus.SUCCESS)
        options = ProbeOptions(count=3, delay=0, quiet=True)

        assert list(PingSeries(echo, options, "host").run(target_v4)) == [True]

    def test_quiet_one_timeout(self, make_echo, target_v4):
        echo = make_echo(_sequence(EchoStatus.SUCCESS, EchoStatus.TIMED_OUT, EchoStatus.SUCCESS))
        options = ProbeOptions(count=3, delay=0, quiet=True)

        assert list(PingSeries(echo, options, "host").run(target_v4)) == [False]

    def test_failed_attempt_reported_and_series_continues(self, make_echo, target_v4):
        echo = make_echo(_sequence(EchoStatus.SUCCESS, ProbeFailure("network down"),
                                   EchoStatus.SUCCESS))
        options = ProbeOptions(count=3, delay=0)

        records = list(PingSeries(echo, options, "host").run(target_v4))

        assert isinstance(records[1], ProbeError)
        assert records[1].ping == 2
        assert "network down" in records[1].message
        assert records[2].ping == 3

    def test_quiet_failed_attempt(self, make_echo, target_v4):
        echo = make_echo(_sequence(ProbeFailure("network down"), EchoStatus.SUCCESS))
        options = ProbeOptions(count=2, delay=0, quiet=True)

        assert list(PingSeries(echo, options, "host").run(target_v4)) == [False]

    def test_repeat_until_cancelled(self, make_echo, token, target_v4):
        def respond(*args):
            if len(echo.sender.calls) == 5:
                token.cancel()
            return EchoStatus.SUCCESS

        echo = make_echo(respond)
        options = ProbeOptions(mode=Mode.REPEAT, delay=0)

        records = []
        with pytest.raises(Cancelled):
            for record in PingSeries(echo, options, "host").run(target_v4):
                records.append(record)

        assert len(records) == 5
        assert all(isinstance(r, EchoReply) for r in records)

    def test_delay_is_cancellable(self, make_echo, token, target_v4):
        def respond(*args):
            token.cancel()
            return EchoStatus.SUCCESS

        echo = make_echo(respond)
        options = ProbeOptions(count=3, delay=30)

        series = PingSeries(echo, options, "host").run(target_v4)
        assert next(series).ping == 1
        with pytest.raises(Cancelled):
            next(series)

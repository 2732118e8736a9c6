"""Shared fixtures: an in-memory echo sender and resolved targets."""

import ipaddress

import pytest

from pathdiag.config import Config, set_config
from pathdiag.models import EchoReply, EchoStatus, Target
from pathdiag.probe.base import EchoSender
from pathdiag.probe.cancel import CancelToken
from pathdiag.probe.echo import EchoProbe


class ScriptedSender(EchoSender):
    """EchoSender answering from a function instead of the network."""

    def __init__(self, respond):
        self.respond = respond
        self.calls = []
        self.closed = False
        self.interrupted = False

    def send(self, address, timeout, payload, options):
        self.calls.append((address, len(payload), options))
        result = self.respond(address, timeout, payload, options)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, EchoStatus):
            return make_reply(result, payload, options, address=address)
        return result

    def interrupt(self):
        self.interrupted = True

    def close(self):
        self.closed = True


def make_reply(status, payload=b"", options=None, address=None, rtt_ms=1.5):
    has_address = status in (EchoStatus.SUCCESS, EchoStatus.TTL_EXPIRED)
    return EchoReply(
        status=status,
        buffer_size=len(payload),
        address=address if has_address else None,
        rtt_ms=rtt_ms if has_address else None,
        options=options,
    )


@pytest.fixture(autouse=True)
def default_config():
    """Keep tests independent of any .pathdiag.json in the working directory."""
    set_config(Config())
    yield
    set_config(None)


@pytest.fixture
def token():
    return CancelToken()


@pytest.fixture
def make_echo(token):
    def factory(respond):
        sender = ScriptedSender(respond)
        return EchoProbe(sender, token, settle_delay=0, poll_interval=0.01)
    return factory


@pytest.fixture
def target_v4():
    return Target(name="example.com", display_name="example.com",
                  address=ipaddress.ip_address("192.0.2.10"))


@pytest.fixture
def target_v6():
    return Target(name="example.com", display_name="example.com",
                  address=ipaddress.ip_address("2001:db8::10"))

"""Tests for ICMP packet handling"""

import socket
import struct
import threading
import time
from unittest.mock import MagicMock

import pytest

from pathdiag.exceptions import ProbeFailure
from pathdiag.models import EchoOptions, EchoStatus
from pathdiag.probe.icmp import (
    ICMP_ECHO_REQUEST, RECV_SLICE, SocketEchoSender, build_echo_request, checksum,
    classify_response,
)

IDENT = 0x1234
SEQ = 7

IPV4_HEADER = bytes([0x45]) + bytes(19)


def _echo_header(icmp_type, ident=IDENT, seq=SEQ):
    return struct.pack("!BBHHH", icmp_type, 0, 0, ident, seq)


def _v4_error(icmp_type, code, ident=IDENT, seq=SEQ):
    quoted = IPV4_HEADER + _echo_header(ICMP_ECHO_REQUEST, ident, seq)
    return IPV4_HEADER + struct.pack("!BBHI", icmp_type, code, 0, 0) + quoted


def _v6_error(icmp_type, ident=IDENT, seq=SEQ):
    quoted = bytes(40) + _echo_header(128, ident, seq)
    return struct.pack("!BBHI", icmp_type, 0, 0, 1280) + quoted


class TestEchoRequest:
    """Test request construction"""

    def test_ipv4_checksum_valid(self):
        packet = build_echo_request(4, IDENT, SEQ, b"abcdefg")
        assert packet[0] == ICMP_ECHO_REQUEST
        assert checksum(packet) == 0

    def test_ipv6_checksum_left_to_kernel(self):
        packet = build_echo_request(6, IDENT, SEQ, b"abc")
        assert packet[0] == 128
        assert packet[2:4] == b"\x00\x00"
        assert packet.endswith(b"abc")


class TestClassifyResponse:
    """Test mapping ICMP messages to echo statuses"""

    def test_ipv4_echo_reply(self):
        data = IPV4_HEADER + _echo_header(0) + b"payload"
        assert classify_response(data, 4, IDENT, SEQ) is EchoStatus.SUCCESS

    def test_ipv4_foreign_reply_ignored(self):
        data = IPV4_HEADER + _echo_header(0, ident=IDENT + 1)
        assert classify_response(data, 4, IDENT, SEQ) is None

    @pytest.mark.parametrize("icmp_type, code, expected", [
        (11, 0, EchoStatus.TTL_EXPIRED),
        (3, 4, EchoStatus.PACKET_TOO_BIG),
        (3, 1, EchoStatus.DESTINATION_UNREACHABLE),
    ])
    def test_ipv4_errors(self, icmp_type, code, expected):
        assert classify_response(_v4_error(icmp_type, code), 4, IDENT, SEQ) is expected

    def test_ipv4_error_for_other_sequence_ignored(self):
        data = _v4_error(11, 0, seq=SEQ + 1)
        assert classify_response(data, 4, IDENT, SEQ) is None

    def test_ipv6_echo_reply(self):
        data = _echo_header(129) + b"payload"
        assert classify_response(data, 6, IDENT, SEQ) is EchoStatus.SUCCESS

    @pytest.mark.parametrize("icmp_type, expected", [
        (1, EchoStatus.DESTINATION_UNREACHABLE),
        (2, EchoStatus.PACKET_TOO_BIG),
        (3, EchoStatus.TTL_EXPIRED),
    ])
    def test_ipv6_errors(self, icmp_type, expected):
        assert classify_response(_v6_error(icmp_type), 6, IDENT, SEQ) is expected

    def test_truncated_packet_ignored(self):
        assert classify_response(b"\x45\x00", 4, IDENT, SEQ) is None
        assert classify_response(b"\x81\x00", 6, IDENT, SEQ) is None


class TestSocketEchoSender:
    """Test the raw socket receive loop with a mocked socket"""

    @pytest.fixture
    def sender(self):
        sender = SocketEchoSender()
        sock = MagicMock()
        sock.recvfrom.side_effect = socket.timeout
        sender._sockets[4] = sock
        return sender

    def test_waits_in_short_slices(self, sender):
        reply = sender.send("192.0.2.10", 0.3, b"abc", EchoOptions(ttl=5))

        assert reply.status is EchoStatus.TIMED_OUT
        waits = [c.args[0] for c in sender._sockets[4].settimeout.call_args_list]
        assert waits and max(waits) <= RECV_SLICE

    def test_interrupt_ends_wait(self, sender):
        threading.Timer(0.1, sender.interrupt).start()

        start = time.monotonic()
        with pytest.raises(ProbeFailure, match="interrupted"):
            sender.send("192.0.2.10", 10.0, b"abc", EchoOptions(ttl=5))
        assert time.monotonic() - start < 5

    def test_echo_reply(self, sender):
        sock = sender._sockets[4]

        def reply(*args):
            packet = sock.sendto.call_args.args[0]
            ident, seq = struct.unpack("!HH", packet[4:8])
            return IPV4_HEADER + _echo_header(0, ident, seq) + b"abc", ("192.0.2.10", 0)

        sock.recvfrom.side_effect = reply
        result = sender.send("192.0.2.10", 1.0, b"abc", EchoOptions(ttl=5))

        assert result.status is EchoStatus.SUCCESS
        assert result.address == "192.0.2.10"
        assert result.rtt_ms is not None

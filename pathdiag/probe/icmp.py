"""
Cross-platform ICMP echo senders

- Windows: Uses IcmpSendEcho API (IPv4)
- Linux/macOS: Uses raw sockets (IPv4 and IPv6)
"""

import errno
import ipaddress
import logging
import os
import socket
import struct
import sys
import threading
import time
from typing import Optional

from ..exceptions import ProbeFailure
from ..models import EchoOptions, EchoReply, EchoStatus
from .base import EchoSender

logger = logging.getLogger(__name__)

ICMP_ECHO_REPLY = 0
ICMP_DEST_UNREACHABLE = 3
ICMP_ECHO_REQUEST = 8
ICMP_TIME_EXCEEDED = 11
ICMP_FRAG_NEEDED = 4  # code within DEST_UNREACHABLE

ICMP6_DEST_UNREACHABLE = 1
ICMP6_PACKET_TOO_BIG = 2
ICMP6_TIME_EXCEEDED = 3
ICMP6_ECHO_REQUEST = 128
ICMP6_ECHO_REPLY = 129

IPV6_HEADER_LEN = 40

# Longest single wait on a raw socket, so an interrupt is seen promptly
RECV_SLICE = 0.1

# Linux path MTU discovery socket options (not exported by the socket module)
IP_MTU_DISCOVER = getattr(socket, 'IP_MTU_DISCOVER', 10)
IPV6_MTU_DISCOVER = getattr(socket, 'IPV6_MTU_DISCOVER', 23)
PMTUDISC_DONT = 0
PMTUDISC_DO = 2


def create_echo_sender() -> EchoSender:
    """Factory function to create the appropriate sender for the current OS"""
    if sys.platform == 'win32':
        return WindowsEchoSender()
    else:
        return SocketEchoSender()


def checksum(data: bytes) -> int:
    """Calculate ICMP checksum (RFC 1071)"""
    if len(data) % 2:
        data += b'\x00'

    s = 0
    for i in range(0, len(data), 2):
        w = (data[i] << 8) + data[i + 1]
        s += w

    s = (s >> 16) + (s & 0xFFFF)
    s += s >> 16
    return ~s & 0xFFFF


def build_echo_request(family: int, identifier: int, sequence: int, payload: bytes) -> bytes:
    """
    Build an ICMP or ICMPv6 echo request.

    The ICMPv6 checksum is left at zero; the kernel fills it in for raw
    ICMPv6 sockets.
    """
    icmp_type = ICMP6_ECHO_REQUEST if family == 6 else ICMP_ECHO_REQUEST
    header = struct.pack('!BBHHH', icmp_type, 0, 0, identifier, sequence)
    if family == 6:
        return header + payload

    cs = checksum(header + payload)
    header = struct.pack('!BBHHH', icmp_type, 0, cs, identifier, sequence)
    return header + payload


def classify_response(data: bytes, family: int, identifier: int,
                      sequence: int) -> Optional[EchoStatus]:
    """
    Classify a packet read from a raw ICMP socket.

    IPv4 raw sockets deliver the IP header, IPv6 raw sockets do not.

    Returns:
        EchoStatus if the packet answers our request, None if it belongs
        to someone else
    """
    if family == 4:
        if len(data) < 20:
            return None
        ip_header_len = (data[0] & 0x0F) * 4
        icmp = data[ip_header_len:]
    else:
        icmp = data

    if len(icmp) < 8:
        return None

    icmp_type, code = icmp[0], icmp[1]

    if family == 4:
        if icmp_type == ICMP_ECHO_REPLY:
            return EchoStatus.SUCCESS if _matches(icmp, identifier, sequence) else None
        if icmp_type == ICMP_TIME_EXCEEDED:
            return EchoStatus.TTL_EXPIRED if _embedded_v4(icmp, identifier, sequence) else None
        if icmp_type == ICMP_DEST_UNREACHABLE:
            if not _embedded_v4(icmp, identifier, sequence):
                return None
            if code == ICMP_FRAG_NEEDED:
                return EchoStatus.PACKET_TOO_BIG
            return EchoStatus.DESTINATION_UNREACHABLE
        return None

    if icmp_type == ICMP6_ECHO_REPLY:
        return EchoStatus.SUCCESS if _matches(icmp, identifier, sequence) else None
    errors = {
        ICMP6_TIME_EXCEEDED: EchoStatus.TTL_EXPIRED,
        ICMP6_PACKET_TOO_BIG: EchoStatus.PACKET_TOO_BIG,
        ICMP6_DEST_UNREACHABLE: EchoStatus.DESTINATION_UNREACHABLE,
    }
    if icmp_type in errors and _embedded_v6(icmp, identifier, sequence):
        return errors[icmp_type]
    return None


def _matches(icmp: bytes, identifier: int, sequence: int) -> bool:
    ident, seq = struct.unpack('!HH', icmp[4:8])
    return ident == identifier and seq == sequence


def _embedded_v4(icmp: bytes, identifier: int, sequence: int) -> bool:
    """Check if the packet quoted in an ICMP error is our echo request"""
    inner_ip_start = 8
    if len(icmp) < inner_ip_start + 20:
        return False

    inner_ip_header_len = (icmp[inner_ip_start] & 0x0F) * 4
    inner_icmp_start = inner_ip_start + inner_ip_header_len

    if len(icmp) < inner_icmp_start + 8:
        return False

    inner_icmp = icmp[inner_icmp_start:inner_icmp_start + 8]
    return inner_icmp[0] == ICMP_ECHO_REQUEST and _matches(inner_icmp, identifier, sequence)


def _embedded_v6(icmp: bytes, identifier: int, sequence: int) -> bool:
    inner_icmp_start = 8 + IPV6_HEADER_LEN
    if len(icmp) < inner_icmp_start + 8:
        return False

    inner_icmp = icmp[inner_icmp_start:inner_icmp_start + 8]
    return inner_icmp[0] == ICMP6_ECHO_REQUEST and _matches(inner_icmp, identifier, sequence)


class SocketEchoSender(EchoSender):
    """
    ICMP echo using raw sockets for Linux/macOS.

    One raw socket per address family is opened on first use and kept
    for the lifetime of the sender. The don't-fragment flag is applied
    through IP_MTU_DISCOVER, which only Linux supports.
    """

    def __init__(self):
        self.identifier = os.getpid() & 0xFFFF
        self.sequence = 0
        self._sockets: dict[int, socket.socket] = {}
        self._stop = threading.Event()

    def interrupt(self):
        self._stop.set()

    def _socket(self, family: int) -> socket.socket:
        sock = self._sockets.get(family)
        if sock is not None:
            return sock

        try:
            if family == 6:
                sock = socket.socket(socket.AF_INET6, socket.SOCK_RAW, socket.IPPROTO_ICMPV6)
            else:
                sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP)
        except PermissionError:
            raise PermissionError(
                "Root privileges required. Please run with sudo."
            )

        self._sockets[family] = sock
        return sock

    def _apply_options(self, sock: socket.socket, family: int, options: EchoOptions):
        pmtu = PMTUDISC_DO if options.dont_fragment else PMTUDISC_DONT
        if family == 6:
            sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_UNICAST_HOPS, options.ttl)
            if sys.platform.startswith('linux'):
                sock.setsockopt(socket.IPPROTO_IPV6, IPV6_MTU_DISCOVER, pmtu)
        else:
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_TTL, options.ttl)
            if sys.platform.startswith('linux'):
                sock.setsockopt(socket.IPPROTO_IP, IP_MTU_DISCOVER, pmtu)
            elif options.dont_fragment:
                logger.debug("Don't-fragment is not supported on %s", sys.platform)

    def send(self, address: str, timeout: float, payload: bytes,
             options: EchoOptions) -> EchoReply:
        """Send ICMP echo request with given options"""
        family = ipaddress.ip_address(address).version
        sock = self._socket(family)

        try:
            self._apply_options(sock, family, options)
        except OSError as e:
            raise ProbeFailure(f"Cannot set echo options (ttl={options.ttl})", str(e)) from e

        self.sequence = (self.sequence + 1) & 0xFFFF
        current_seq = self.sequence
        packet = build_echo_request(family, self.identifier, current_seq, payload)

        send_time = time.perf_counter()
        try:
            sock.sendto(packet, (address, 0))
        except OSError as e:
            if e.errno == errno.EMSGSIZE:
                # Local interface MTU already exceeded with DF set
                return EchoReply(status=EchoStatus.PACKET_TOO_BIG,
                                 buffer_size=len(payload), options=options)
            raise ProbeFailure(f"Failed to send echo to {address}", str(e)) from e

        deadline = send_time + timeout

        while True:
            remaining = deadline - time.perf_counter()
            if remaining <= 0:
                return EchoReply(status=EchoStatus.TIMED_OUT,
                                 buffer_size=len(payload), options=options)
            if self._stop.is_set():
                raise ProbeFailure(f"Echo to {address} interrupted")

            sock.settimeout(min(remaining, RECV_SLICE))

            try:
                data, addr = sock.recvfrom(65535)
                recv_time = time.perf_counter()
            except socket.timeout:
                continue
            except OSError as e:
                if e.errno == errno.EMSGSIZE:
                    return EchoReply(status=EchoStatus.PACKET_TOO_BIG,
                                     buffer_size=len(payload), options=options)
                raise ProbeFailure(f"Failed to receive echo reply from {address}", str(e)) from e

            status = classify_response(data, family, self.identifier, current_seq)
            if status is None:
                continue

            responder = addr[0].split('%')[0]
            rtt_ms = round((recv_time - send_time) * 1000, 2)
            logger.debug("Echo seq=%d to %s: %s from %s in %.2fms",
                         current_seq, address, status.value, responder, rtt_ms)

            has_address = status in (EchoStatus.SUCCESS, EchoStatus.TTL_EXPIRED)
            return EchoReply(
                status=status,
                buffer_size=len(payload),
                address=responder if has_address else None,
                rtt_ms=rtt_ms,
                options=options,
            )

    def close(self):
        """Close sockets"""
        for sock in self._sockets.values():
            try:
                sock.close()
            except OSError:
                pass
        self._sockets.clear()


class WindowsEchoSender(EchoSender):
    """
    ICMP echo using Windows native IcmpSendEcho API.
    This properly receives ICMP Time Exceeded and Packet Too Big replies.
    """

    IP_FLAG_DF = 0x02

    STATUS_MAP = {
        0: EchoStatus.SUCCESS,              # IP_SUCCESS
        11002: EchoStatus.DESTINATION_UNREACHABLE,  # IP_DEST_NET_UNREACHABLE
        11003: EchoStatus.DESTINATION_UNREACHABLE,  # IP_DEST_HOST_UNREACHABLE
        11004: EchoStatus.DESTINATION_UNREACHABLE,  # IP_DEST_PROT_UNREACHABLE
        11005: EchoStatus.DESTINATION_UNREACHABLE,  # IP_DEST_PORT_UNREACHABLE
        11009: EchoStatus.PACKET_TOO_BIG,   # IP_PACKET_TOO_BIG
        11010: EchoStatus.TIMED_OUT,        # IP_REQ_TIMED_OUT
        11013: EchoStatus.TTL_EXPIRED,      # IP_TTL_EXPIRED_TRANSIT
        11014: EchoStatus.TTL_EXPIRED,      # IP_TTL_EXPIRED_REASSEM
    }

    def __init__(self):
        self._icmp = None
        self._icmp_dll = None
        self._load_api()

    def _load_api(self):
        """Load Windows ICMP API"""
        import ctypes
        import ctypes.wintypes as wintypes

        # IP_OPTION_INFORMATION structure
        class IP_OPTION_INFORMATION(ctypes.Structure):
            _fields_ = [
                ("Ttl", ctypes.c_uint8),
                ("Tos", ctypes.c_uint8),
                ("Flags", ctypes.c_uint8),
                ("OptionsSize", ctypes.c_uint8),
                ("OptionsData", ctypes.c_void_p),
            ]

        # ICMP_ECHO_REPLY structure
        class ICMP_ECHO_REPLY(ctypes.Structure):
            _fields_ = [
                ("Address", ctypes.c_uint32),
                ("Status", ctypes.c_uint32),
                ("RoundTripTime", ctypes.c_uint32),
                ("DataSize", ctypes.c_uint16),
                ("Reserved", ctypes.c_uint16),
                ("Data", ctypes.c_void_p),
                ("Options", IP_OPTION_INFORMATION),
            ]

        self._IP_OPTION_INFORMATION = IP_OPTION_INFORMATION
        self._ICMP_ECHO_REPLY = ICMP_ECHO_REPLY

        try:
            self._icmp_dll = ctypes.WinDLL('iphlpapi', use_last_error=True)

            self._icmp_dll.IcmpCreateFile.restype = wintypes.HANDLE
            self._icmp_dll.IcmpCreateFile.argtypes = []

            self._icmp_dll.IcmpSendEcho.restype = wintypes.DWORD
            self._icmp_dll.IcmpSendEcho.argtypes = [
                wintypes.HANDLE,
                ctypes.c_uint32,
                ctypes.c_void_p,
                wintypes.WORD,
                ctypes.POINTER(IP_OPTION_INFORMATION),
                ctypes.c_void_p,
                wintypes.DWORD,
                wintypes.DWORD,
            ]

            self._icmp_dll.IcmpCloseHandle.restype = wintypes.BOOL
            self._icmp_dll.IcmpCloseHandle.argtypes = [wintypes.HANDLE]

            self._icmp = self._icmp_dll.IcmpCreateFile()
            if self._icmp == -1 or self._icmp == 0xFFFFFFFF:
                raise OSError("Failed to create ICMP handle")

        except OSError as e:
            raise RuntimeError(f"Failed to load Windows ICMP API: {e}")

    def send(self, address: str, timeout: float, payload: bytes,
             options: EchoOptions) -> EchoReply:
        """Send ICMP echo with IcmpSendEcho"""
        import ctypes

        ip = ipaddress.ip_address(address)
        if ip.version != 4:
            raise ProbeFailure(f"Cannot send echo to {address}", "IPv6 is not supported by this sender")

        if not self._icmp:
            raise ProbeFailure(f"Cannot send echo to {address}", "ICMP handle is closed")

        # Address in network byte order, read as a little-endian DWORD
        ip_int = int.from_bytes(ip.packed, 'little')

        request_buffer = ctypes.create_string_buffer(payload, len(payload))

        ip_options = self._IP_OPTION_INFORMATION()
        ip_options.Ttl = options.ttl
        ip_options.Tos = 0
        ip_options.Flags = self.IP_FLAG_DF if options.dont_fragment else 0
        ip_options.OptionsSize = 0
        ip_options.OptionsData = None

        # Room for the reply, the echoed data and an ICMP error quote
        reply_size = ctypes.sizeof(self._ICMP_ECHO_REPLY) + len(payload) + 8 + 16
        reply_buffer = ctypes.create_string_buffer(reply_size)

        result = self._icmp_dll.IcmpSendEcho(
            self._icmp,
            ip_int,
            request_buffer,
            len(payload),
            ctypes.byref(ip_options),
            reply_buffer,
            reply_size,
            int(timeout * 1000)
        )

        if result == 0:
            code = ctypes.get_last_error()
            status = self.STATUS_MAP.get(code)
            if status is None:
                raise ProbeFailure(f"Failed to send echo to {address}", f"IcmpSendEcho error {code}")
            return EchoReply(status=status, buffer_size=len(payload), options=options)

        reply = ctypes.cast(reply_buffer, ctypes.POINTER(self._ICMP_ECHO_REPLY)).contents
        responder = str(ipaddress.IPv4Address(reply.Address.to_bytes(4, 'little')))
        status = self.STATUS_MAP.get(reply.Status, EchoStatus.OTHER_FAILURE)

        has_address = status in (EchoStatus.SUCCESS, EchoStatus.TTL_EXPIRED)
        return EchoReply(
            status=status,
            buffer_size=len(payload),
            address=responder if has_address else None,
            # Only a successful reply carries a meaningful round trip time
            rtt_ms=float(reply.RoundTripTime) if status is EchoStatus.SUCCESS else None,
            options=options,
        )

    def close(self):
        """Close ICMP handle"""
        if self._icmp and self._icmp_dll:
            try:
                self._icmp_dll.IcmpCloseHandle(self._icmp)
            except OSError:
                pass
            self._icmp = None

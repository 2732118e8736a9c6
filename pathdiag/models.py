"""
Data models for pathdiag
"""

import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .exceptions import ValidationError


IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

MAX_HOPS = 128
MAX_BUFFER_SIZE = 65500
MAX_COUNT = 2 ** 31 - 1


class Mode(Enum):
    """Probe mode selected for one invocation"""
    PING = "ping"
    REPEAT = "repeat"
    TRACEROUTE = "traceroute"
    MTU = "mtu"
    TCP = "tcp"


class EchoStatus(Enum):
    """Outcome of a single echo request"""
    SUCCESS = "Success"
    TIMED_OUT = "TimedOut"
    TTL_EXPIRED = "TtlExpired"
    PACKET_TOO_BIG = "PacketTooBig"
    DESTINATION_UNREACHABLE = "DestinationUnreachable"
    OTHER_FAILURE = "OtherFailure"


@dataclass(frozen=True)
class Target:
    """A resolved probe target"""
    name: str
    display_name: str
    address: IPAddress

    @property
    def family(self) -> int:
        return self.address.version


@dataclass(frozen=True)
class ProbeOptions:
    """
    Immutable configuration for one run.

    Values are validated on construction; ``effective_count`` is the
    number of attempts actually made (unbounded for repeat mode).
    """
    mode: Mode = Mode.PING
    max_hops: int = MAX_HOPS
    count: int = 4
    delay: float = 1.0
    buffer_size: int = 32
    dont_fragment: bool = False
    timeout: float = 5.0
    quiet: bool = False
    force_family: Optional[int] = None
    resolve_destination: bool = False
    tcp_port: Optional[int] = None

    def __post_init__(self):
        if not 0 <= self.max_hops <= MAX_HOPS:
            raise ValidationError(f"max_hops must be 0-{MAX_HOPS}", str(self.max_hops))
        if self.count < 1:
            raise ValidationError("count must be positive", str(self.count))
        if self.delay < 0:
            raise ValidationError("delay must not be negative", str(self.delay))
        if not 0 <= self.buffer_size <= MAX_BUFFER_SIZE:
            raise ValidationError(f"buffer_size must be 0-{MAX_BUFFER_SIZE}", str(self.buffer_size))
        if self.timeout <= 0:
            raise ValidationError("timeout must be positive", str(self.timeout))
        if self.force_family not in (None, 4, 6):
            raise ValidationError("force_family must be 4 or 6", str(self.force_family))
        if self.mode is Mode.TCP:
            if self.tcp_port is None:
                raise ValidationError("tcp_port is required for TCP mode")
            if not 0 <= self.tcp_port <= 65535:
                raise ValidationError("tcp_port must be 0-65535", str(self.tcp_port))

    @property
    def repeat(self) -> bool:
        return self.mode is Mode.REPEAT

    @property
    def effective_count(self) -> int:
        return MAX_COUNT if self.repeat else self.count

    @property
    def timeout_ms(self) -> int:
        return int(self.timeout * 1000)


@dataclass(frozen=True)
class EchoOptions:
    """Options sent with an echo request"""
    ttl: int = MAX_HOPS
    dont_fragment: bool = False


@dataclass(frozen=True)
class EchoReply:
    """Result of one echo attempt"""
    status: EchoStatus
    buffer_size: int
    address: Optional[str] = None
    rtt_ms: Optional[float] = None
    options: Optional[EchoOptions] = None
    elapsed_ms: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "address": self.address,
            "rtt_ms": round(self.rtt_ms, 2) if self.rtt_ms is not None else None,
            "buffer_size": self.buffer_size,
            "ttl": self.options.ttl if self.options else None,
            "dont_fragment": self.options.dont_fragment if self.options else None,
        }


@dataclass(frozen=True)
class PingStatus:
    """
    One echo attempt bound to its sequence number.

    ``latency_override`` and ``buffer_size_override`` are only set for
    traceroute attempts, where the reply itself may lack the values.
    """
    source: str
    destination: Optional[str]
    reply: EchoReply
    ping: int
    latency_override: Optional[float] = None
    buffer_size_override: Optional[int] = None
    options: Optional[EchoOptions] = None

    def __post_init__(self):
        if self.destination is None:
            object.__setattr__(self, "destination", self.reply.address)

    @property
    def address(self) -> Optional[str]:
        return self.reply.address

    @property
    def latency(self) -> Optional[float]:
        if self.latency_override is not None:
            return self.latency_override
        return self.reply.rtt_ms

    @property
    def status(self) -> EchoStatus:
        return self.reply.status

    @property
    def buffer_size(self) -> int:
        if self.buffer_size_override is not None:
            return self.buffer_size_override
        return self.reply.buffer_size

    @property
    def echo_options(self) -> Optional[EchoOptions]:
        return self.options or self.reply.options

    def to_dict(self) -> dict:
        return {
            "ping": self.ping,
            "source": self.source,
            "destination": self.destination,
            "address": self.address,
            "latency_ms": round(self.latency, 2) if self.latency is not None else None,
            "status": self.status.value,
            "buffer_size": self.buffer_size,
        }


@dataclass(frozen=True)
class TraceStatus:
    """One echo attempt to one hop of a traceroute"""
    hop: int
    ping_status: PingStatus
    source: str
    target: str
    target_address: str

    @property
    def hostname(self) -> Optional[str]:
        destination = self.ping_status.destination
        if destination and destination != "0.0.0.0":
            return destination
        return None

    @property
    def ping(self) -> int:
        return self.ping_status.ping

    @property
    def hop_address(self) -> Optional[str]:
        return self.ping_status.address

    @property
    def latency(self) -> Optional[float]:
        return self.ping_status.latency

    @property
    def status(self) -> EchoStatus:
        # An intermediate router answering TTL-expired is a successful hop
        if self.ping_status.status is EchoStatus.TTL_EXPIRED:
            return EchoStatus.SUCCESS
        return self.ping_status.status

    @property
    def reply(self) -> EchoReply:
        return self.ping_status.reply

    def to_dict(self) -> dict:
        return {
            "hop": self.hop,
            "ping": self.ping,
            "hostname": self.hostname,
            "hop_address": self.hop_address,
            "latency_ms": round(self.latency, 2) if self.latency is not None else None,
            "status": self.status.value,
            "reply_status": self.reply.status.value,
            "source": self.source,
            "target": self.target,
            "target_address": self.target_address,
        }


@dataclass(frozen=True)
class MtuStatus:
    """Path MTU discovered towards a destination"""
    ping_status: PingStatus

    @property
    def mtu_size(self) -> int:
        return self.ping_status.buffer_size

    @property
    def source(self) -> str:
        return self.ping_status.source

    @property
    def destination(self) -> Optional[str]:
        return self.ping_status.destination

    @property
    def address(self) -> Optional[str]:
        return self.ping_status.address

    @property
    def latency(self) -> Optional[float]:
        return self.ping_status.latency

    @property
    def status(self) -> EchoStatus:
        return self.ping_status.status

    def to_dict(self) -> dict:
        data = self.ping_status.to_dict()
        data["mtu_size"] = self.mtu_size
        return data


@dataclass(frozen=True)
class ProbeError:
    """Non-fatal error reported for a target or a single attempt"""
    target: str
    message: str
    category: str = "probe"
    ping: Optional[int] = None
    hop: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "category": self.category,
            "target": self.target,
            "ping": self.ping,
            "hop": self.hop,
        }


@dataclass
class RunSummary:
    """
    Outcome of one invocation.

    Errors are always counted; records are only kept when they will be
    exported, since a repeat run produces them until interrupted.
    """
    mode: Mode
    targets: list[str]
    keep_records: bool = False
    records: list = field(default_factory=list)
    error_count: int = 0

    def add(self, record):
        if isinstance(record, ProbeError):
            self.error_count += 1
        if self.keep_records:
            self.records.append(record)

"""
Probe engines for pathdiag
"""

from .base import EchoSender
from .cancel import CancelToken
from .echo import EchoProbe
from .icmp import SocketEchoSender, WindowsEchoSender, create_echo_sender
from .mtu import PathMtuDiscovery
from .ping import PingSeries
from .tcp import TcpProbe
from .tracer import TracerouteEngine

__all__ = [
    'EchoSender', 'CancelToken', 'EchoProbe', 'SocketEchoSender', 'WindowsEchoSender',
    'create_echo_sender', 'PathMtuDiscovery', 'PingSeries', 'TcpProbe', 'TracerouteEngine',
]

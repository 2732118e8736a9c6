"""
pathdiag - Network path diagnostics

Ping, traceroute, path MTU discovery and TCP connection tests over
ICMP echo, with results streamed as each probe completes.
"""

__version__ = "1.0.0"

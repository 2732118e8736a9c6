"""
Target name resolution
"""

import ipaddress
import logging
import socket
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional

from .exceptions import ResolutionError, UnresolvableAddress
from .models import IPAddress, Target

logger = logging.getLogger(__name__)

_FAMILIES = {4: socket.AF_INET, 6: socket.AF_INET6}


class AddressResolver:
    """
    Resolves target names to a single address.

    Forward lookups go through the system resolver (getaddrinfo), so
    hosts files and search domains apply. Reverse lookups run on a small
    thread pool so a slow PTR server cannot stall the run past ``timeout``.
    """

    def __init__(self, timeout: float = 2.0, max_workers: int = 2):
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="resolver")

    def resolve(self, target: str, force_family: Optional[int] = None,
                reverse: bool = False) -> Target:
        """
        Resolve a target name or literal address.

        Args:
            target: Host name or IP literal
            force_family: 4 or 6 to restrict the address family
            reverse: Replace the display name with the resolved host name

        Returns:
            Target with the chosen address

        Raises:
            ResolutionError: lookup failed or no address of the requested family
        """
        literal = self._parse_literal(target)
        if literal is not None:
            display_name = self.reverse_name(literal) if reverse else target
            return Target(name=target, display_name=display_name, address=literal)

        addresses, canonical = self._forward(target)
        display_name = target

        if reverse:
            # The canonical name is looked up again and the final address
            # comes from that second lookup.
            display_name = canonical or target
            addresses, _ = self._forward(display_name)

        if force_family:
            for address in addresses:
                if address.version == force_family:
                    break
            else:
                raise UnresolvableAddress(target, force_family)
        else:
            if not addresses:
                raise ResolutionError(target, "no addresses returned")
            address = addresses[0]

        logger.info("Resolved %s to %s (%s)", target, address, display_name)
        return Target(name=target, display_name=display_name, address=address)

    def reverse_name(self, address) -> str:
        """
        Reverse lookup of an address.

        Raises:
            ResolutionError: no PTR record or lookup timed out
        """
        ip = str(address)
        future = self._executor.submit(socket.gethostbyaddr, ip)
        try:
            hostname, _, _ = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            raise ResolutionError(ip, f"reverse lookup timed out after {self.timeout}s")
        except (socket.herror, socket.gaierror, OSError) as e:
            raise ResolutionError(ip, str(e)) from e
        return hostname

    def _forward(self, name: str) -> tuple[list[IPAddress], Optional[str]]:
        """Forward lookup preserving resolver order, without duplicates"""
        try:
            infos = socket.getaddrinfo(name, None, socket.AF_UNSPEC,
                                       socket.SOCK_STREAM, 0, socket.AI_CANONNAME)
        except (socket.gaierror, socket.herror, UnicodeError, OSError) as e:
            raise ResolutionError(name, str(e)) from e

        addresses: list[IPAddress] = []
        canonical = None
        for family, _, _, canonname, sockaddr in infos:
            if canonname and canonical is None:
                canonical = canonname
            if family not in _FAMILIES.values():
                continue
            # Drop any IPv6 scope suffix before parsing
            address = ipaddress.ip_address(sockaddr[0].split('%')[0])
            if address not in addresses:
                addresses.append(address)

        return addresses, canonical

    @staticmethod
    def _parse_literal(target: str) -> Optional[IPAddress]:
        try:
            return ipaddress.ip_address(target)
        except ValueError:
            return None

    def close(self):
        """Shutdown thread pool"""
        self._executor.shutdown(wait=False)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

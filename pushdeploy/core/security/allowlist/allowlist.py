"""Source Address Allow-List - CIDR ranges trusted to send push hooks

Responsibilities:
- Hold the current set of trusted CIDR ranges
- Check whether a source address falls inside any range
- Refresh the ranges from the GitHub meta endpoint (falls back to the
  current list on any failure)
"""

import asyncio
import ipaddress
import logging
from typing import Iterable, List, Optional, Union

import requests

logger = logging.getLogger(__name__)

Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def _parse_networks(ranges: Iterable[str]) -> List[Network]:
    networks = []
    for cidr in ranges:
        try:
            networks.append(ipaddress.ip_network(str(cidr).strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid CIDR range: {cidr}")
    return networks


class AllowList:
    """Trusted source ranges

    Updates replace the whole network list in one assignment, so readers on
    the event loop never see a partial list while a refresh thread writes.
    """

    def __init__(self, ranges: Iterable[str]):
        self._networks: List[Network] = _parse_networks(ranges)

    @property
    def ranges(self) -> List[str]:
        return [str(network) for network in self._networks]

    def update(self, ranges: Iterable[str]) -> bool:
        """Replace the ranges; an update with no valid range is ignored"""
        networks = _parse_networks(ranges)
        if not networks:
            logger.warning("Allow-list update contained no valid ranges, keeping current list")
            return False
        self._networks = networks
        logger.info(f"🔐 Allow-list updated: {self.ranges}")
        return True

    def contains(self, address: Optional[str]) -> bool:
        """Check whether an address is inside any trusted range"""
        if not address:
            return False
        try:
            ip = ipaddress.ip_address(address.strip())
        except ValueError:
            return False

        # ::ffff:a.b.c.d from dual-stack sockets
        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped

        return any(ip.version == network.version and ip in network for network in self._networks)

    def refresh(self, url: str, key: str = "hooks", timeout: float = 10.0) -> bool:
        """Fetch ranges from a metadata endpoint (blocking).

        Returns:
            True when the list was replaced
        """
        logger.debug(f"ENTRY AllowList.refresh: {url}")
        try:
            response = requests.get(url, headers={"User-Agent": "pushdeploy"}, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error retrieving allow-list metadata from {url}: {e}")
            return False

        ranges = data.get(key) if isinstance(data, dict) else None
        if not ranges or not isinstance(ranges, list):
            logger.error(f"Allow-list metadata from {url} has no '{key}' ranges")
            return False

        return self.update(ranges)

    async def refresh_async(self, url: str, key: str = "hooks", timeout: float = 10.0) -> bool:
        """Refresh in a worker thread"""
        return await asyncio.to_thread(self.refresh, url, key, timeout)

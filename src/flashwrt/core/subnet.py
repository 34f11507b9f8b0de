"""CIDR helpers for the subnet sweep and the gateway heuristics."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable

from flashwrt.errors import SubnetRangeError

MIN_PREFIX = 16
MAX_PREFIX = 30


def parse_range(cidr: str) -> ipaddress.IPv4Network:
    """Parse *cidr* and enforce the /16-/30 window.

    Host bits are ignored, so ``192.168.1.7/24`` means ``192.168.1.0/24``.
    """
    try:
        network = ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as exc:
        raise SubnetRangeError(f"Invalid subnet range {cidr!r}: {exc}") from exc
    if not isinstance(network, ipaddress.IPv4Network):
        raise SubnetRangeError(f"Only IPv4 ranges are supported: {cidr!r}")
    if not MIN_PREFIX <= network.prefixlen <= MAX_PREFIX:
        raise SubnetRangeError(
            f"Subnet mask /{network.prefixlen} in {cidr!r} is outside "
            f"/{MIN_PREFIX}-/{MAX_PREFIX}"
        )
    return network


def validate_ranges(ranges: Iterable[str]) -> list[ipaddress.IPv4Network]:
    return [parse_range(cidr) for cidr in ranges]


def expand_subnet(cidr: str) -> list[str]:
    """Every host address of *cidr*, without network and broadcast."""
    network = parse_range(cidr)
    return [str(host) for host in network.hosts()]


def gateway_positions(network: ipaddress.IPv4Network) -> list[str]:
    """First and last usable address of *network*, the usual router spots."""
    if network.prefixlen >= 31:
        return []
    first = network.network_address + 1
    last = network.broadcast_address - 1
    if first == last:
        return [str(first)]
    return [str(first), str(last)]

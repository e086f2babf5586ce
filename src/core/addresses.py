#!/usr/bin/env -S python3 -B -u
"""
IPv4 address codec and port range formatting.

Addresses are kept in memory as 32-bit unsigned integers. Zero is the
"unparseable" sentinel, so 0.0.0.0 is never a stored address.
"""

import ipaddress
from typing import Iterable, List, Tuple, Union

from .models import MAX_PORT, MIN_PORT, PortRange


IPv4Text = Union[str, ipaddress.IPv4Address, ipaddress.IPv4Network]


def parse_ipv4(text: IPv4Text) -> int:
    """
    Parse an IPv4 address or CIDR range into its numeric form.

    For a CIDR range the network address is returned. Anything that is
    not IPv4 yields 0.
    """
    if text is None:
        return 0
    value = str(text).strip()
    if not value:
        return 0
    try:
        if '/' in value:
            return int(ipaddress.IPv4Network(value, strict=False).network_address)
        return int(ipaddress.IPv4Address(value))
    except ValueError:
        return 0


def ipv4_to_string(value: int) -> str:
    """Format a numeric IPv4 address as dotted quad."""
    return str(ipaddress.IPv4Address(value))


def try_firewall_address(text: IPv4Text) -> Tuple[str, bool]:
    """
    Render an address or range the way ipset expects it.

    A /32 collapses to the bare address and other ranges are reduced to
    their canonical network form (``10.1.2.3/24`` -> ``10.1.2.0/24``).

    Returns:
        Tuple of (formatted text, success flag)
    """
    if text is None:
        return '', False
    value = str(text).strip()
    try:
        network = ipaddress.IPv4Network(value, strict=False)
    except ValueError:
        return '', False
    if int(network.network_address) == 0:
        return '', False
    if network.prefixlen == network.max_prefixlen:
        return str(network.network_address), True
    return str(network), True


def _merge_ranges(ranges: Iterable[PortRange]) -> List[PortRange]:
    """Sort ranges and merge overlapping or adjacent ones."""
    merged: List[PortRange] = []
    for current in sorted(ranges, key=lambda r: (r.min_port, r.max_port)):
        if merged and current.min_port <= merged[-1].max_port + 1:
            last = merged.pop()
            current = PortRange(last.min_port, max(last.max_port, current.max_port))
        merged.append(current)
    return merged


def format_allow(ranges: Iterable[PortRange]) -> str:
    """Comma separated list of the given ranges, e.g. ``22,8000-8080``."""
    return ','.join(str(r) for r in _merge_ranges(ranges))


def format_block_except(ranges: Iterable[PortRange]) -> str:
    """
    Comma separated complement of the given ranges over the full port space.

    ``[80, 443]`` becomes ``0-79,81-442,444-65535``. An empty string means
    the ranges already cover every port.
    """
    pieces = []
    next_port = MIN_PORT
    for allowed in _merge_ranges(ranges):
        if allowed.min_port > next_port:
            pieces.append(str(PortRange(next_port, allowed.min_port - 1)))
        next_port = allowed.max_port + 1
    if next_port <= MAX_PORT:
        pieces.append(str(PortRange(next_port, MAX_PORT)))
    return ','.join(pieces)

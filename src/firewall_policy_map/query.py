"""Subnet and host filtering over unified policies."""
from __future__ import annotations

import logging
from ipaddress import IPv4Address, IPv4Network
from typing import Iterable, Optional

from .models import UnifiedPolicy
from .utils import AddressLike, NetworkLike, ParseError, contains, overlap, parse_cidr, parse_ipv4_address, to24


def _overlaps(first: NetworkLike, second: NetworkLike) -> bool:
    try:
        return overlap(first, second)
    except ParseError:
        return False


def _contains(cidr: NetworkLike, ip: AddressLike) -> bool:
    try:
        return contains(cidr, ip)
    except ParseError:
        return False


def policies_for_subnet(policies: Iterable[UnifiedPolicy], subnet: NetworkLike) -> list[UnifiedPolicy]:
    """Return policies whose source or destination touches the subnet."""
    return [
        policy
        for policy in policies
        if any(_overlaps(cidr, subnet) for cidr in policy.all_cidrs())
        or any(_contains(subnet, host) for host in policy.all_hosts())
    ]


def policies_for_host(policies: Iterable[UnifiedPolicy], ip: AddressLike) -> list[UnifiedPolicy]:
    """Return policies naming the host or covering it with a network."""
    try:
        target = parse_ipv4_address(ip)
    except ParseError:
        return []
    return [
        policy
        for policy in policies
        if target in set(policy.all_hosts()) or any(target in cidr for cidr in policy.all_cidrs())
    ]


def hosts_for_subnet(policies: Iterable[UnifiedPolicy], subnet: NetworkLike) -> list[IPv4Address]:
    """Return the hosts mentioned by policies that fall inside the subnet.

    Explicit hosts and /32 networks both count.
    """
    found: set[IPv4Address] = set()
    for policy in policies_for_subnet(policies, subnet):
        candidates = list(policy.all_hosts())
        candidates.extend(cidr.network_address for cidr in policy.all_cidrs() if cidr.prefixlen == 32)
        for host in candidates:
            if _contains(subnet, host):
                found.add(host)
    return sorted(found)


def network_buckets(policies: Iterable[UnifiedPolicy]) -> list[IPv4Network]:
    """Derive the networks to display for a policy set.

    Networks of /24 or longer collapse into their /24 bucket; broader
    networks are kept as they are.
    """
    buckets: dict[IPv4Network, None] = {}
    for policy in policies:
        for cidr in policy.all_cidrs():
            bucket = to24(cidr) if cidr.prefixlen >= 24 else cidr
            buckets.setdefault(bucket)
    return list(buckets)


def locate_subnet(ip: AddressLike, candidates: Iterable[NetworkLike]) -> Optional[IPv4Network]:
    """Pick the first candidate network holding the IP, else its /24 bucket.

    Returns None when the IP itself cannot be parsed.
    """
    logger = logging.getLogger(__name__)
    for candidate in candidates:
        if _contains(candidate, ip):
            return parse_cidr(candidate)
    try:
        bucket = to24(parse_ipv4_address(ip))
    except ParseError:
        logger.warning("Cannot locate subnet for invalid address %s", ip)
        return None
    logger.debug("No known subnet contains %s, using %s", ip, bucket)
    return bucket

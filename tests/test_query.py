"""Tests for subnet and host queries over unified policies."""
from __future__ import annotations

from ipaddress import IPv4Address, IPv4Network

from firewall_policy_map.models import UnifiedPolicy
from firewall_policy_map.query import (
    hosts_for_subnet,
    locate_subnet,
    network_buckets,
    policies_for_host,
    policies_for_subnet,
)


def _policy(name, src=(), dst=(), src_hosts=(), dst_hosts=()) -> UnifiedPolicy:
    return UnifiedPolicy(
        policy_id=name,
        name=name,
        src_cidrs=tuple(IPv4Network(value) for value in src),
        dst_cidrs=tuple(IPv4Network(value) for value in dst),
        src_hosts=tuple(IPv4Address(value) for value in src_hosts),
        dst_hosts=tuple(IPv4Address(value) for value in dst_hosts),
    )


POLICIES = [
    _policy("lan-out", src=["10.0.1.0/24"], dst=["0.0.0.0/0"]),
    _policy("web-in", src=["198.51.100.0/24"], dst=["10.0.2.10/32"], dst_hosts=["10.0.2.10"]),
    _policy("dmz", src=["172.16.0.0/16"], dst=["172.16.5.0/24"]),
]


def test_policies_for_subnet():
    """Any overlapping source or destination network selects the policy."""
    assert [p.name for p in policies_for_subnet(POLICIES, "10.0.2.0/24")] == ["lan-out", "web-in"]
    assert [p.name for p in policies_for_subnet(POLICIES, IPv4Network("172.16.5.0/24"))] == ["lan-out", "dmz"]


def test_policies_for_subnet_invalid_subnet_matches_nothing():
    """A malformed subnet is a miss, not an error."""
    assert policies_for_subnet(POLICIES, "10.0.0.0/99") == []


def test_policies_for_subnet_matches_hosts():
    """Hosts listed without a matching network still select the policy."""
    policy = _policy("hosts-only", dst_hosts=["192.0.2.4"])
    assert policies_for_subnet([policy], "192.0.2.0/24") == [policy]


def test_policies_for_host():
    """Hosts match explicitly or through any covering network."""
    assert [p.name for p in policies_for_host(POLICIES, "10.0.2.10")] == ["lan-out", "web-in"]
    assert [p.name for p in policies_for_host(POLICIES, "198.51.100.7")] == ["lan-out", "web-in"]
    assert policies_for_host(POLICIES, "bogus") == []


def test_hosts_for_subnet():
    """Explicit hosts and /32 networks inside the subnet are listed once, sorted."""
    policies = [
        _policy("a", dst=["10.0.2.10/32", "10.0.2.0/24"], dst_hosts=["10.0.2.10"]),
        _policy("b", src=["10.0.2.3/32", "10.9.9.9/32"]),
    ]
    assert hosts_for_subnet(policies, "10.0.2.0/24") == [IPv4Address("10.0.2.3"), IPv4Address("10.0.2.10")]


def test_network_buckets():
    """Long prefixes fold into /24 buckets, broad networks are kept."""
    policies = [
        _policy("a", src=["10.0.1.5/32", "10.0.1.128/25"], dst=["10.0.0.0/16"]),
        _policy("b", src=["10.0.1.0/24"], dst=["192.168.3.0/24"]),
    ]
    assert network_buckets(policies) == [
        IPv4Network("10.0.1.0/24"),
        IPv4Network("10.0.0.0/16"),
        IPv4Network("192.168.3.0/24"),
    ]


def test_locate_subnet():
    """A known subnet wins; otherwise the /24 bucket is used."""
    candidates = ["10.0.0.0/16", "10.0.1.0/24"]
    assert locate_subnet("10.0.1.9", candidates) == IPv4Network("10.0.0.0/16")
    assert locate_subnet("192.168.4.4", candidates) == IPv4Network("192.168.4.0/24")
    assert locate_subnet("nonsense", candidates) is None

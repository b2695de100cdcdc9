"""Interface and zone lookup tables used during alias resolution."""
from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Network
from typing import Iterable, Optional

from .models import Interface, Zone


@dataclass(frozen=True)
class Domain:
    """Read-only view of a firewall's interfaces, grouped for lookups."""

    interfaces: tuple[Interface, ...] = ()
    cidrs_by_interface: dict[str, tuple[IPv4Network, ...]] = field(default_factory=dict)
    zone_by_interface: dict[str, Zone] = field(default_factory=dict)
    cidrs_by_zone: dict[Zone, tuple[IPv4Network, ...]] = field(default_factory=dict)

    def all_cidrs(self) -> tuple[IPv4Network, ...]:
        """Return every interface's networks in interface order."""
        return tuple(cidr for interface in self.interfaces for cidr in interface.cidrs)

    def interface_cidrs(self, name: str) -> Optional[tuple[IPv4Network, ...]]:
        """Return the networks of an interface, or None if it is unknown."""
        return self.cidrs_by_interface.get(name)

    def zone_cidrs(self, zone: Zone) -> tuple[IPv4Network, ...]:
        return self.cidrs_by_zone.get(zone, ())


def build_domain(interfaces: Optional[Iterable[Interface]]) -> Domain:
    """Group interface networks by interface name and by zone."""
    ordered = tuple(interfaces or ())
    cidrs_by_interface: dict[str, tuple[IPv4Network, ...]] = {}
    zone_by_interface: dict[str, Zone] = {}
    zone_buckets: dict[Zone, list[IPv4Network]] = {}
    for interface in ordered:
        cidrs_by_interface[interface.name] = interface.cidrs
        zone_by_interface[interface.name] = interface.zone
        zone_buckets.setdefault(interface.zone, []).extend(interface.cidrs)
    return Domain(
        interfaces=ordered,
        cidrs_by_interface=cidrs_by_interface,
        zone_by_interface=zone_by_interface,
        cidrs_by_zone={zone: tuple(cidrs) for zone, cidrs in zone_buckets.items()},
    )

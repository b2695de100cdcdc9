"""Core data structures for the firewall policy map."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv4Address, IPv4Network
from typing import Iterable, Optional, Union


class Zone(str, Enum):
    """Coarse trust category assigned to an interface."""

    TRUSTED = "Trusted"
    OPTIONAL = "Optional"
    EXTERNAL = "External"
    CUSTOM = "Custom"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Zone":
        """Map a zone label from an export onto a Zone, defaulting to CUSTOM."""
        normalized = (label or "").strip().lower()
        for zone in cls:
            if zone.value.lower() == normalized:
                return zone
        return cls.CUSTOM


@dataclass(frozen=True)
class Interface:
    """Represents a firewall interface and the networks behind it."""

    name: str
    zone: Zone = Zone.CUSTOM
    cidrs: tuple[IPv4Network, ...] = ()
    vlan_id: Optional[str] = None


@dataclass(frozen=True)
class HostMember:
    """Single host entry of an address group."""

    ip: str


@dataclass(frozen=True)
class NetworkMember:
    """Network entry of an address group, mask kept as exported."""

    ip: str
    mask: str


AddressGroupMember = Union[HostMember, NetworkMember]


@dataclass(frozen=True)
class AddressGroup:
    """Represents a named flat list of hosts and networks."""

    name: str
    members: tuple[AddressGroupMember, ...] = ()


@dataclass(frozen=True)
class AliasRef:
    """Alias member pointing at another alias."""

    alias_name: str


@dataclass(frozen=True)
class AddressRef:
    """Alias member pointing at an address group."""

    address_name: str


@dataclass(frozen=True)
class InterfaceAny:
    """Alias member meaning "any address" bound to an interface or zone."""

    interface: Optional[str] = None
    zone: Optional[Zone] = None


@dataclass(frozen=True)
class BuiltinRef:
    """Alias member naming a builtin such as Any or Firebox."""

    name: str


AliasMember = Union[AliasRef, AddressRef, InterfaceAny, BuiltinRef]


@dataclass(frozen=True)
class Alias:
    """Represents a named, possibly recursive policy endpoint."""

    name: str
    members: tuple[AliasMember, ...] = ()


@dataclass(frozen=True)
class ResolvedAlias:
    """Concrete address space an endpoint name expands to."""

    cidrs: frozenset[IPv4Network] = frozenset()
    hosts: frozenset[IPv4Address] = frozenset()
    notes: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.cidrs and not self.hosts

    @classmethod
    def noted(cls, note: str) -> "ResolvedAlias":
        """Return an empty result carrying a single diagnostic note."""
        return cls(notes=(note,))


@dataclass(frozen=True)
class NatInfo:
    """NAT features attached to a policy."""

    dnat: bool = False
    one_to_one: bool = False


@dataclass(frozen=True)
class PolicyNode:
    """Represents a firewall policy before endpoint resolution."""

    name: str
    policy_id: str = ""
    service: Optional[str] = None
    from_names: tuple[str, ...] = ()
    to_names: tuple[str, ...] = ()
    nat: Optional[NatInfo] = None

    def __post_init__(self) -> None:
        if not self.policy_id:
            object.__setattr__(self, "policy_id", self.name)


@dataclass(frozen=True)
class OverlayNode:
    """Represents an abs-policy that substitutes endpoints onto base policies."""

    name: str
    from_names: tuple[str, ...] = ()
    to_names: tuple[str, ...] = ()
    policy_names: tuple[str, ...] = ()


class PolicyOrigin(str, Enum):
    """Ingestion source a unified policy came from."""

    XML = "XML"
    XLS = "XLS"
    MANUAL = "MANUAL"


@dataclass(frozen=True)
class UnifiedPolicy:
    """Canonical, fully resolved policy record."""

    policy_id: str
    name: str
    service: Optional[str] = None
    from_aliases: tuple[str, ...] = ()
    to_aliases: tuple[str, ...] = ()
    src_cidrs: tuple[IPv4Network, ...] = ()
    dst_cidrs: tuple[IPv4Network, ...] = ()
    src_hosts: tuple[IPv4Address, ...] = ()
    dst_hosts: tuple[IPv4Address, ...] = ()
    origin: PolicyOrigin = PolicyOrigin.XML
    tags: tuple[str, ...] = ()
    nat: Optional[NatInfo] = None
    notes: tuple[str, ...] = ()

    def all_cidrs(self) -> Iterable[IPv4Network]:
        yield from self.src_cidrs
        yield from self.dst_cidrs

    def all_hosts(self) -> Iterable[IPv4Address]:
        yield from self.src_hosts
        yield from self.dst_hosts

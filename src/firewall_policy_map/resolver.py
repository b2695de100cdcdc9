"""Alias resolution: expand named policy endpoints into networks and hosts."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from ipaddress import IPv4Address, IPv4Network
from typing import Iterable, Mapping, Optional

from .domain import Domain, build_domain
from .models import (
    AddressGroup,
    AddressRef,
    Alias,
    AliasMember,
    AliasRef,
    BuiltinRef,
    HostMember,
    Interface,
    InterfaceAny,
    NetworkMember,
    ResolvedAlias,
    Zone,
)
from .utils import ParseError, parse_cidr, parse_ipv4_address, network_of


ANY = "Any"
FIREBOX = "Firebox"
ZONE_BUILTINS: dict[str, Zone] = {
    "Any-Trusted": Zone.TRUSTED,
    "Any-Optional": Zone.OPTIONAL,
    "Any-External": Zone.EXTERNAL,
}
BUILTINS = frozenset({ANY, FIREBOX, *ZONE_BUILTINS})

FIREBOX_NOTE = "Firebox (device) has no address space"


def _prefixed(label: str, notes: Iterable[str]) -> tuple[str, ...]:
    return tuple(f"[{label}] {note}" for note in notes)


@dataclass
class _Expansion:
    """Accumulator for one alias currently being expanded."""

    name: str
    members: tuple[AliasMember, ...]
    position: int = 0
    cidrs: set[IPv4Network] = field(default_factory=set)
    hosts: set[IPv4Address] = field(default_factory=set)
    notes: dict[str, None] = field(default_factory=dict)

    def absorb(self, resolved: ResolvedAlias, label: Optional[str] = None) -> None:
        self.cidrs.update(resolved.cidrs)
        self.hosts.update(resolved.hosts)
        notes = _prefixed(label, resolved.notes) if label else resolved.notes
        for note in notes:
            self.notes.setdefault(note)

    def finish(self) -> ResolvedAlias:
        return ResolvedAlias(
            cidrs=frozenset(self.cidrs),
            hosts=frozenset(self.hosts),
            notes=tuple(self.notes),
        )


class AliasResolver:
    """Resolves alias, address-group and builtin names against one configuration.

    The alias and address-group tables and the domain are treated as a
    read-only snapshot. Every call to :meth:`resolve` keeps its own
    expansion state, so calls never observe each other and nothing is
    cached between them. With ``strict_masks`` set, non-contiguous dotted
    masks in group members and literal names are rejected with a note.
    """

    def __init__(
        self,
        aliases: Mapping[str, Alias],
        address_groups: Mapping[str, AddressGroup],
        domain: Domain,
        strict_masks: bool = False,
    ) -> None:
        self.aliases = aliases
        self.address_groups = address_groups
        self.domain = domain
        self.strict_masks = strict_masks

    @classmethod
    def from_tables(
        cls,
        aliases: Iterable[Alias],
        address_groups: Iterable[AddressGroup],
        interfaces: Iterable[Interface],
        strict_masks: bool = False,
    ) -> "AliasResolver":
        """Build a resolver from plain record lists."""
        return cls(
            aliases={alias.name: alias for alias in aliases},
            address_groups={group.name: group for group in address_groups},
            domain=build_domain(interfaces),
            strict_masks=strict_masks,
        )

    def with_domain(self, domain: Domain) -> "AliasResolver":
        """Return a resolver sharing these tables but using another domain."""
        return AliasResolver(self.aliases, self.address_groups, domain, strict_masks=self.strict_masks)

    def is_builtin(self, name: str) -> bool:
        return name in BUILTINS

    def resolve(self, name: str) -> ResolvedAlias:
        """Resolve a name into concrete networks, hosts and diagnostic notes.

        Aliases are expanded depth first with an explicit stack. A name that
        is reached again while it is still being expanded yields an empty
        result with a cycle note; aliases already expanded during this call
        are reused, so shared sub-aliases are not mistaken for cycles.
        """
        logger = logging.getLogger(__name__)
        completed: dict[str, ResolvedAlias] = {}
        expanding: set[str] = set()
        stack: list[_Expansion] = []

        resolved, _ = self._enter(name, completed, expanding, stack)
        if resolved is not None:
            return resolved

        while stack:
            current = stack[-1]
            if current.position < len(current.members):
                member = current.members[current.position]
                current.position += 1
                if isinstance(member, AliasRef):
                    child, nested = self._enter(member.alias_name, completed, expanding, stack)
                    if child is not None:
                        current.absorb(child, None if nested else member.alias_name)
                elif isinstance(member, AddressRef):
                    current.absorb(
                        self.expand_address_group(member.address_name, missing_note="Address-group not found"),
                        member.address_name,
                    )
                elif isinstance(member, InterfaceAny):
                    current.cidrs.update(self._interface_any_cidrs(member))
                elif isinstance(member, BuiltinRef):
                    current.absorb(self._resolve_builtin(member.name), member.name)
                continue

            stack.pop()
            expanding.discard(current.name)
            resolved = current.finish()
            completed[current.name] = resolved
            logger.debug(
                "Alias %s resolved to %s networks, %s hosts, %s notes",
                current.name,
                len(resolved.cidrs),
                len(resolved.hosts),
                len(resolved.notes),
            )
            if stack:
                stack[-1].absorb(resolved)
        return resolved

    def _enter(
        self,
        name: str,
        completed: dict[str, ResolvedAlias],
        expanding: set[str],
        stack: list[_Expansion],
    ) -> tuple[Optional[ResolvedAlias], bool]:
        """Resolve a leaf name directly, or push a new expansion for an alias.

        Returns ``(result, nested)``; ``result`` is None when an expansion
        was pushed, and ``nested`` is True when the result is a finished
        alias expansion whose notes are already attributed.
        """
        if name in expanding:
            logging.getLogger(__name__).debug("Cycle detected at %s", name)
            return ResolvedAlias.noted(f"Cycle detected at {name}"), False
        if name in completed:
            return completed[name], True
        if self.is_builtin(name):
            return self._resolve_builtin(name), False
        alias = self.aliases.get(name)
        if alias is not None:
            expanding.add(name)
            stack.append(_Expansion(name=name, members=alias.members))
            return None, False
        return self._resolve_unaliased(name), False

    def _resolve_builtin(self, name: str) -> ResolvedAlias:
        if name == ANY:
            return ResolvedAlias(cidrs=frozenset(self.domain.all_cidrs()))
        if name == FIREBOX:
            return ResolvedAlias.noted(FIREBOX_NOTE)
        zone = ZONE_BUILTINS.get(name)
        if zone is None:
            return ResolvedAlias.noted(f"Unknown builtin: {name}")
        return ResolvedAlias(cidrs=frozenset(self.domain.zone_cidrs(zone)))

    def _interface_any_cidrs(self, member: InterfaceAny) -> tuple[IPv4Network, ...]:
        if member.interface:
            cidrs = self.domain.interface_cidrs(member.interface)
            if cidrs is not None:
                return cidrs
        if member.zone is not None:
            return self.domain.zone_cidrs(member.zone)
        # An unbound "Any" member stands for every interface.
        return self.domain.all_cidrs()

    def _resolve_unaliased(self, name: str) -> ResolvedAlias:
        """Resolve a name that is neither a builtin nor an alias."""
        if name in self.address_groups:
            return self.expand_address_group(name)
        interface_cidrs = self.domain.interface_cidrs(name)
        if interface_cidrs is not None:
            return ResolvedAlias(cidrs=frozenset(interface_cidrs))
        try:
            literal = parse_cidr(name, strict=self.strict_masks)
        except ParseError:
            return ResolvedAlias.noted(f"Alias not found: {name}")
        if "/" in name:
            return ResolvedAlias(cidrs=frozenset({literal}))
        return ResolvedAlias(cidrs=frozenset({literal}), hosts=frozenset({literal.network_address}))

    def expand_address_group(self, name: str, missing_note: str = "Alias not found") -> ResolvedAlias:
        """Expand an address group into its networks and hosts.

        Host members contribute both a host entry and a /32 network.
        Malformed members are skipped with a note.
        """
        group = self.address_groups.get(name)
        if group is None:
            return ResolvedAlias.noted(f"{missing_note}: {name}")
        cidrs: set[IPv4Network] = set()
        hosts: set[IPv4Address] = set()
        notes: list[str] = []
        for member in group.members:
            try:
                if isinstance(member, HostMember):
                    host = parse_ipv4_address(member.ip)
                    hosts.add(host)
                    cidrs.add(network_of(host, 32))
                elif isinstance(member, NetworkMember):
                    cidrs.add(network_of(member.ip, member.mask, strict=self.strict_masks))
            except ParseError as exc:
                notes.append(f"Invalid member in address-group {name}: {exc}")
        return ResolvedAlias(cidrs=frozenset(cidrs), hosts=frozenset(hosts), notes=tuple(notes))

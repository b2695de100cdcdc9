"""Parser for WatchGuard Firebox XML configuration exports."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Iterable, Optional
import xml.etree.ElementTree as ET

from ..domain import Domain, build_domain
from ..materializer import materialize_policies
from ..models import (
    AddressGroup,
    AddressGroupMember,
    AddressRef,
    Alias,
    AliasMember,
    AliasRef,
    BuiltinRef,
    HostMember,
    Interface,
    InterfaceAny,
    NatInfo,
    NetworkMember,
    OverlayNode,
    PolicyNode,
    PolicyOrigin,
    UnifiedPolicy,
    Zone,
)
from ..resolver import ANY, AliasResolver
from ..unifier import merge_policies
from ..utils import ParseError, network_of


@dataclass
class WatchGuardData:
    """Parsed WatchGuard configuration payload."""

    aliases: dict[str, Alias] = field(default_factory=dict)
    address_groups: dict[str, AddressGroup] = field(default_factory=dict)
    interfaces: dict[str, Interface] = field(default_factory=dict)
    policies: list[PolicyNode] = field(default_factory=list)
    overlays: list[OverlayNode] = field(default_factory=list)
    strict_masks: bool = False

    def build_domain(self) -> Domain:
        return build_domain(self.interfaces.values())

    def build_resolver(self, domain: Optional[Domain] = None) -> AliasResolver:
        """Create a resolver over this configuration's tables."""
        return AliasResolver(
            self.aliases,
            self.address_groups,
            domain or self.build_domain(),
            strict_masks=self.strict_masks,
        )

    def materialize(self, resolver: Optional[AliasResolver] = None) -> list[UnifiedPolicy]:
        """Resolve every policy and overlay variant, dropping duplicates."""
        unified = materialize_policies(
            self.policies,
            self.overlays,
            resolver or self.build_resolver(),
            origin=PolicyOrigin.XML,
        )
        return merge_policies([unified])


def _first_text(element: ET.Element, tag: str, skip: Iterable[str] = ()) -> Optional[str]:
    """Return the first non-empty text of a descendant tag, in document order."""
    skipped = set(skip)
    for child in element:
        if child.tag in skipped:
            continue
        if child.tag == tag and child.text and child.text.strip():
            return child.text.strip()
        found = _first_text(child, tag, skipped)
        if found:
            return found
    return None


def _texts(element: ET.Element, path: str) -> tuple[str, ...]:
    """Return the stripped, non-empty texts of all elements matching path."""
    return tuple(
        node.text.strip() for node in element.findall(path) if node.text and node.text.strip()
    )


def _parse_interface(element: ET.Element, strict_masks: bool) -> Optional[Interface]:
    logger = logging.getLogger(__name__)
    name = _first_text(element, "name")
    if not name:
        return None
    cidrs = []
    addresses = [
        (
            _first_text(element, "ip-addr", skip=("secondary-ip-list",)),
            _first_text(element, "ip-mask", skip=("secondary-ip-list",)),
        )
    ]
    for secondary in element.findall(".//secondary-ip-list/secondary-ip"):
        addresses.append((_first_text(secondary, "ip-addr"), _first_text(secondary, "ip-mask")))
    for ip, mask in addresses:
        if not ip or not mask:
            continue
        try:
            cidr = network_of(ip, mask, strict=strict_masks)
        except ParseError as exc:
            logger.warning("Skipping address %s/%s on interface %s: %s", ip, mask, name, exc)
            continue
        if cidr not in cidrs:
            cidrs.append(cidr)
    vlan_id = _first_text(element, "vid") or _first_text(element, "vlan-id")
    return Interface(
        name=name,
        zone=Zone.from_label(_first_text(element, "zone")),
        cidrs=tuple(cidrs),
        vlan_id=vlan_id,
    )


def _parse_interfaces(root: ET.Element, strict_masks: bool) -> dict[str, Interface]:
    interfaces: dict[str, Interface] = {}
    for path in (".//interface-list/interface", ".//vlan-interface-list/vlan-interface"):
        for element in root.findall(path):
            interface = _parse_interface(element, strict_masks)
            if interface is not None:
                interfaces[interface.name] = interface
    return interfaces


def _parse_address_groups(root: ET.Element) -> dict[str, AddressGroup]:
    logger = logging.getLogger(__name__)
    groups: dict[str, AddressGroup] = {}
    for element in root.findall(".//address-group-list/address-group"):
        name = _first_text(element, "name", skip=("addr-group-member",)) or ""
        members: list[AddressGroupMember] = []
        for member in element.findall(".//addr-group-member/member"):
            member_type = _first_text(member, "type")
            if member_type == "1":
                ip = _first_text(member, "host-ip-addr")
                if ip:
                    members.append(HostMember(ip=ip))
            elif member_type == "2":
                ip = _first_text(member, "ip-network-addr")
                mask = _first_text(member, "ip-mask")
                if ip and mask:
                    members.append(NetworkMember(ip=ip, mask=mask))
            else:
                logger.debug("Ignoring member type %s in address group %s", member_type, name)
        groups[name] = AddressGroup(name=name, members=tuple(members))
    return groups


def _parse_alias_member(element: ET.Element) -> Optional[AliasMember]:
    member_type = _first_text(element, "type")
    if member_type == "2":
        alias_name = _first_text(element, "alias-name")
        return AliasRef(alias_name=alias_name) if alias_name else None
    if member_type == "1":
        address = _first_text(element, "address")
        if not address:
            return None
        if address.lower() != ANY.lower():
            return AddressRef(address_name=address)
        interface = _first_text(element, "interface")
        zone_label = _first_text(element, "zone")
        if interface or zone_label:
            return InterfaceAny(
                interface=interface,
                zone=Zone.from_label(zone_label) if zone_label else None,
            )
        return BuiltinRef(name=ANY)
    if member_type == "3":
        builtin = _first_text(element, "alias-name") or _first_text(element, "name")
        return BuiltinRef(name=builtin) if builtin else None
    return None


def _parse_aliases(root: ET.Element) -> dict[str, Alias]:
    aliases: dict[str, Alias] = {}
    for element in root.findall(".//alias-list/alias"):
        name = _first_text(element, "name", skip=("alias-member-list",)) or ""
        members = []
        for member_element in element.findall(".//alias-member-list/alias-member"):
            member = _parse_alias_member(member_element)
            if member is not None:
                members.append(member)
        aliases[name] = Alias(name=name, members=tuple(members))
    return aliases


def _parse_nat(element: ET.Element) -> Optional[NatInfo]:
    dnat = element.find(".//dnat") is not None
    one_to_one = element.find(".//one-to-one-nat") is not None
    if dnat or one_to_one:
        return NatInfo(dnat=dnat, one_to_one=one_to_one)
    return None


def _parse_policies(root: ET.Element) -> list[PolicyNode]:
    # Policy lists nested in abs-policies only name their targets.
    overlay_targets = {id(node) for overlay in root.iter("abs-policy") for node in overlay.iter("policy")}
    policies: list[PolicyNode] = []
    for element in root.findall(".//policy-list/policy"):
        if id(element) in overlay_targets:
            continue
        name = _first_text(element, "name", skip=("from-alias-list", "to-alias-list")) or ""
        policies.append(
            PolicyNode(
                name=name,
                policy_id=_first_text(element, "policy-id") or name,
                service=_first_text(element, "service"),
                from_names=_texts(element, ".//from-alias-list/alias"),
                to_names=_texts(element, ".//to-alias-list/alias"),
                nat=_parse_nat(element),
            )
        )
    return policies


def _parse_overlays(root: ET.Element) -> list[OverlayNode]:
    overlays: list[OverlayNode] = []
    for element in root.findall(".//abs-policy-list/abs-policy"):
        overlays.append(
            OverlayNode(
                name=_first_text(element, "name", skip=("policy-list",)) or "",
                from_names=_texts(element, ".//from-alias-list/alias"),
                to_names=_texts(element, ".//to-alias-list/alias"),
                policy_names=_texts(element, ".//policy-list/policy/name"),
            )
        )
    return overlays


def parse_watchguard_xml(text: str | bytes, strict_masks: bool = False) -> WatchGuardData:
    """Parse a WatchGuard XML export into internal models."""
    logger = logging.getLogger(__name__)
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ParseError(f"Invalid XML: {exc}") from exc

    data = WatchGuardData(
        aliases=_parse_aliases(root),
        address_groups=_parse_address_groups(root),
        interfaces=_parse_interfaces(root, strict_masks),
        policies=_parse_policies(root),
        overlays=_parse_overlays(root),
        strict_masks=strict_masks,
    )
    logger.info(
        "Parsed %s interfaces, %s address groups, %s aliases, %s policies, %s overlays",
        len(data.interfaces),
        len(data.address_groups),
        len(data.aliases),
        len(data.policies),
        len(data.overlays),
    )
    return data


def load_watchguard_xml(path: str | Path, strict_masks: bool = False) -> WatchGuardData:
    """Read and parse a WatchGuard XML export from disk."""
    try:
        text = Path(path).read_bytes()
    except OSError as exc:
        raise ParseError(f"Cannot read configuration file {path}: {exc}") from exc
    return parse_watchguard_xml(text, strict_masks=strict_masks)

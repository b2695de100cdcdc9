"""Tests for policy materialization."""
from __future__ import annotations

from ipaddress import IPv4Address, IPv4Network

import pytest

from firewall_policy_map.materializer import materialize_policies, materialize_policy, resolve_endpoints
from firewall_policy_map.models import (
    AddressGroup,
    AddressRef,
    Alias,
    HostMember,
    Interface,
    InterfaceAny,
    NatInfo,
    OverlayNode,
    PolicyNode,
    PolicyOrigin,
    Zone,
)
from firewall_policy_map.resolver import FIREBOX_NOTE, AliasResolver


INSIDE = IPv4Network("10.0.1.0/24")
OUTSIDE = IPv4Network("198.51.100.0/24")
SPECIAL = IPv4Address("10.0.1.50")


@pytest.fixture
def resolver() -> AliasResolver:
    return AliasResolver.from_tables(
        aliases=[
            Alias("InsideAny", (InterfaceAny(interface="Trusted"),)),
            Alias("OutsideAny", (InterfaceAny(interface="External"),)),
            Alias("SpecialHost", (AddressRef("special.grp"),)),
        ],
        address_groups=[AddressGroup("special.grp", (HostMember(str(SPECIAL)),))],
        interfaces=[
            Interface("Trusted", Zone.TRUSTED, (INSIDE,)),
            Interface("External", Zone.EXTERNAL, (OUTSIDE,)),
        ],
    )


def test_resolve_endpoints_prefixes_notes(resolver):
    """Endpoint notes carry the endpoint name; blank names are skipped."""
    result = resolve_endpoints(["InsideAny", "", "  ", "Missing", "Firebox"], resolver)
    assert result.names == ("InsideAny", "Missing", "Firebox")
    assert result.resolved.cidrs == {INSIDE}
    assert result.resolved.notes == (
        "[Missing] Alias not found: Missing",
        f"[Firebox] {FIREBOX_NOTE}",
    )


def test_materialize_policy_copies_identity(resolver):
    """Id, name, service and NAT come straight from the policy node."""
    node = PolicyNode(
        name="Web-In",
        policy_id="17",
        service="HTTPS",
        from_names=("OutsideAny",),
        to_names=("SpecialHost",),
        nat=NatInfo(dnat=True),
    )
    policy = materialize_policy(node, resolver)
    assert policy.policy_id == "17"
    assert policy.name == "Web-In"
    assert policy.service == "HTTPS"
    assert policy.nat == NatInfo(dnat=True)
    assert policy.origin is PolicyOrigin.XML
    assert policy.from_aliases == ("OutsideAny",)
    assert policy.to_aliases == ("SpecialHost",)
    assert policy.src_cidrs == (OUTSIDE,)
    assert policy.dst_cidrs == (IPv4Network("10.0.1.50/32"),)
    assert policy.src_hosts == ()
    assert policy.dst_hosts == (SPECIAL,)
    assert policy.notes == ()


def test_policy_id_falls_back_to_name():
    """A policy without an explicit id uses its name."""
    assert PolicyNode(name="Ping").policy_id == "Ping"


def test_overlay_produces_variant(resolver):
    """An overlay adds a second policy with its from list and the base's to list."""
    policies = [PolicyNode(name="P1", from_names=("InsideAny",), to_names=("OutsideAny",))]
    overlays = [OverlayNode(name="O1", from_names=("SpecialHost",), policy_names=("P1",))]

    unified = materialize_policies(policies, overlays, resolver)

    assert [policy.name for policy in unified] == ["P1", "P1"]
    base, variant = unified
    assert base.src_cidrs == (INSIDE,)
    assert base.dst_cidrs == (OUTSIDE,)
    assert base.tags == ()
    assert variant.from_aliases == ("SpecialHost",)
    assert variant.src_cidrs == (IPv4Network("10.0.1.50/32"),)
    assert variant.src_hosts == (SPECIAL,)
    assert variant.to_aliases == ("OutsideAny",)
    assert variant.dst_cidrs == (OUTSIDE,)
    assert variant.tags == ("overlay:O1",)


def test_overlay_keeps_base_nat_and_identity(resolver):
    """Overlays never change the base policy's id, service or NAT flags."""
    policies = [
        PolicyNode(
            name="P1",
            policy_id="9",
            service="SSH",
            from_names=("InsideAny",),
            to_names=("OutsideAny",),
            nat=NatInfo(one_to_one=True),
        )
    ]
    overlays = [OverlayNode(name="O1", to_names=("SpecialHost",), policy_names=("P1",))]
    _, variant = materialize_policies(policies, overlays, resolver)
    assert variant.policy_id == "9"
    assert variant.service == "SSH"
    assert variant.nat == NatInfo(one_to_one=True)
    assert variant.src_cidrs == (INSIDE,)
    assert variant.dst_hosts == (SPECIAL,)


def test_overlay_missing_target_is_skipped(resolver):
    """Overlays naming unknown policies are ignored without notes."""
    policies = [PolicyNode(name="P1", from_names=("InsideAny",), to_names=("OutsideAny",))]
    overlays = [OverlayNode(name="O1", from_names=("SpecialHost",), policy_names=("ghost", "P1"))]
    unified = materialize_policies(policies, overlays, resolver)
    assert len(unified) == 2
    assert all(not policy.notes for policy in unified)


def test_overlay_targeting_several_policies(resolver):
    """One overlay yields one variant per targeted policy, in target order."""
    policies = [
        PolicyNode(name="A", from_names=("InsideAny",), to_names=("OutsideAny",)),
        PolicyNode(name="B", from_names=("OutsideAny",), to_names=("InsideAny",)),
    ]
    overlays = [OverlayNode(name="O", to_names=("SpecialHost",), policy_names=("B", "A"))]
    unified = materialize_policies(policies, overlays, resolver)
    assert [policy.name for policy in unified] == ["A", "B", "B", "A"]


def test_materialize_collects_notes_from_both_sides(resolver):
    """Notes from the source list come before those from the destination list."""
    policies = [PolicyNode(name="P", from_names=("nope",), to_names=("Firebox",))]
    (policy,) = materialize_policies(policies, [], resolver, origin=PolicyOrigin.MANUAL)
    assert policy.origin is PolicyOrigin.MANUAL
    assert policy.notes == ("[nope] Alias not found: nope", f"[Firebox] {FIREBOX_NOTE}")
    assert policy.src_cidrs == ()
    assert policy.dst_cidrs == ()


def test_materialized_networks_are_sorted(resolver):
    """Resolved networks are emitted in address order for stable output."""
    policies = [PolicyNode(name="P", from_names=("OutsideAny", "InsideAny"))]
    (policy,) = materialize_policies(policies, [], resolver)
    assert policy.src_cidrs == (INSIDE, OUTSIDE)

"""Tests for policy unification and de-duplication."""
from __future__ import annotations

from ipaddress import IPv4Address, IPv4Network

from firewall_policy_map.models import PolicyOrigin, UnifiedPolicy
from firewall_policy_map.unifier import merge_policies, policy_key


def _policy(name: str, src=(), dst=(), service=None, origin=PolicyOrigin.XML, policy_id=None, **kwargs) -> UnifiedPolicy:
    return UnifiedPolicy(
        policy_id=policy_id or name,
        name=name,
        service=service,
        src_cidrs=tuple(IPv4Network(value) for value in src),
        dst_cidrs=tuple(IPv4Network(value) for value in dst),
        origin=origin,
        **kwargs,
    )


def test_merge_with_itself_keeps_one_copy():
    """A single policy merged with itself survives once."""
    source = [_policy("X", src=["10.0.0.0/24"])]
    assert merge_policies([source, source]) == source


def test_merge_is_idempotent():
    """Merging a list with itself keeps its length and keys."""
    policies = [
        _policy("A", src=["10.0.0.0/24"], dst=["10.1.0.0/24"]),
        _policy("A", src=["10.0.0.0/24"], dst=["10.2.0.0/24"]),
        _policy("B", src=["10.0.0.0/24"], service="DNS"),
        _policy("B", src=["10.0.0.0/24"], service="HTTP"),
    ]
    merged = merge_policies([policies, policies])
    assert len(merged) == len(policies)
    assert [policy_key(policy) for policy in merged] == [policy_key(policy) for policy in policies]
    assert merge_policies([merged]) == merged


def test_first_seen_wins_and_origin_of_duplicate_is_lost():
    """The earliest source's copy is kept; later duplicates vanish entirely."""
    xml = _policy("X", src=["10.0.0.0/24"], origin=PolicyOrigin.XML, policy_id="1")
    xls = _policy("X", src=["10.0.0.0/24"], origin=PolicyOrigin.XLS, policy_id="xls-2")
    merged = merge_policies([[xml], [xls]])
    assert merged == [xml]
    assert merged[0].origin is PolicyOrigin.XML


def test_key_ignores_order_duplicates_id_and_origin():
    """Signature compares sorted unique endpoint sets, not ids or tags."""
    first = _policy("X", src=["10.0.1.0/24", "10.0.0.0/24"], policy_id="1", tags=("a",))
    second = _policy(
        "X",
        src=["10.0.0.0/24", "10.0.1.0/24", "10.0.0.0/24"],
        policy_id="2",
        origin=PolicyOrigin.XLS,
    )
    assert policy_key(first) == policy_key(second)


def test_key_distinguishes_service_and_hosts():
    """Service and host sets are part of the signature; a missing service is blank."""
    base = _policy("X", src=["10.0.0.0/24"])
    assert policy_key(base) != policy_key(_policy("X", src=["10.0.0.0/24"], service="DNS"))
    assert policy_key(base)[1] == ""
    with_host = UnifiedPolicy(
        policy_id="X",
        name="X",
        src_cidrs=base.src_cidrs,
        src_hosts=(IPv4Address("10.0.0.9"),),
    )
    assert policy_key(base) != policy_key(with_host)


def test_key_uses_string_order():
    """Sorting uses canonical text, so 10.0.0.0/8 sorts before 9.0.0.0/8."""
    policy = _policy("X", src=["9.0.0.0/8", "10.0.0.0/8"])
    assert policy_key(policy)[2] == ("10.0.0.0/8", "9.0.0.0/8")


def test_merge_preserves_order_and_grouping():
    """Grouping of inputs does not change the merged result."""
    a = [_policy("A", src=["10.0.0.0/24"]), _policy("B", src=["10.0.1.0/24"])]
    b = [_policy("B", src=["10.0.1.0/24"]), _policy("C", src=["10.0.2.0/24"])]
    c = [_policy("A", src=["10.0.0.0/24"]), _policy("D", src=["10.0.3.0/24"])]

    flat = merge_policies([a, b, c])
    grouped_left = merge_policies([merge_policies([a, b]), c])
    grouped_right = merge_policies([a, merge_policies([b, c])])

    assert [policy.name for policy in flat] == ["A", "B", "C", "D"]
    assert flat == grouped_left == grouped_right


def test_merge_empty():
    """No inputs merge to an empty list."""
    assert merge_policies([]) == []
    assert merge_policies([[], []]) == []

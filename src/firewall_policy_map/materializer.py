"""Turn policy and overlay records into resolved UnifiedPolicy values."""
from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Optional

from .models import OverlayNode, PolicyNode, PolicyOrigin, ResolvedAlias, UnifiedPolicy
from .resolver import AliasResolver


@dataclass(frozen=True)
class EndpointResolution:
    """Union of every name on one side of a policy."""

    resolved: ResolvedAlias
    names: tuple[str, ...]


def resolve_endpoints(names: Iterable[str], resolver: AliasResolver) -> EndpointResolution:
    """Resolve each endpoint name and union the results.

    Notes are prefixed with the endpoint name they came from. Blank names are
    ignored.
    """
    cidrs = set()
    hosts = set()
    notes: dict[str, None] = {}
    kept: list[str] = []
    for raw_name in names:
        name = (raw_name or "").strip()
        if not name:
            continue
        kept.append(name)
        resolved = resolver.resolve(name)
        cidrs.update(resolved.cidrs)
        hosts.update(resolved.hosts)
        for note in resolved.notes:
            notes.setdefault(f"[{name}] {note}")
    return EndpointResolution(
        resolved=ResolvedAlias(cidrs=frozenset(cidrs), hosts=frozenset(hosts), notes=tuple(notes)),
        names=tuple(kept),
    )


def materialize_policy(
    node: PolicyNode,
    resolver: AliasResolver,
    origin: PolicyOrigin = PolicyOrigin.XML,
    from_names: Optional[Iterable[str]] = None,
    to_names: Optional[Iterable[str]] = None,
    tags: tuple[str, ...] = (),
) -> UnifiedPolicy:
    """Resolve one policy, optionally with substituted endpoint lists."""
    source = resolve_endpoints(node.from_names if from_names is None else from_names, resolver)
    destination = resolve_endpoints(node.to_names if to_names is None else to_names, resolver)
    return UnifiedPolicy(
        policy_id=node.policy_id,
        name=node.name,
        service=node.service,
        from_aliases=source.names,
        to_aliases=destination.names,
        src_cidrs=tuple(sorted(source.resolved.cidrs)),
        dst_cidrs=tuple(sorted(destination.resolved.cidrs)),
        src_hosts=tuple(sorted(source.resolved.hosts)),
        dst_hosts=tuple(sorted(destination.resolved.hosts)),
        origin=origin,
        tags=tags,
        nat=node.nat,
        notes=source.resolved.notes + destination.resolved.notes,
    )


def materialize_policies(
    policies: Iterable[PolicyNode],
    overlays: Iterable[OverlayNode],
    resolver: AliasResolver,
    origin: PolicyOrigin = PolicyOrigin.XML,
) -> list[UnifiedPolicy]:
    """Materialize every base policy, then one variant per overlay target.

    Overlays naming a policy that does not exist are skipped. An overlay's
    endpoint list replaces the base policy's only when it is non-empty.
    """
    logger = logging.getLogger(__name__)
    base_policies = list(policies)
    # Later policies win when names repeat.
    by_name = {node.name: node for node in base_policies}

    unified = [materialize_policy(node, resolver, origin) for node in base_policies]
    logger.debug("Materialized %s base policies", len(unified))

    for overlay in overlays:
        for target in overlay.policy_names:
            base = by_name.get(target)
            if base is None:
                logger.debug("Overlay %s targets missing policy %s", overlay.name, target)
                continue
            unified.append(
                materialize_policy(
                    base,
                    resolver,
                    origin,
                    from_names=overlay.from_names or base.from_names,
                    to_names=overlay.to_names or base.to_names,
                    tags=(f"overlay:{overlay.name}",),
                )
            )
    logger.debug("Materialized %s policies including overlay variants", len(unified))
    return unified

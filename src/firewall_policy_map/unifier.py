"""Merge policy lists from several sources into one duplicate-free list."""
from __future__ import annotations

import logging
from typing import Iterable

from .models import UnifiedPolicy


PolicyKey = tuple[str, str, tuple[str, ...], tuple[str, ...], tuple[str, ...], tuple[str, ...]]


def _canonical(values: Iterable[object]) -> tuple[str, ...]:
    # Plain string order, not numeric address order.
    return tuple(sorted({str(value) for value in values}))


def policy_key(policy: UnifiedPolicy) -> PolicyKey:
    """Return the content signature used to detect duplicate policies."""
    return (
        policy.name,
        policy.service or "",
        _canonical(policy.src_cidrs),
        _canonical(policy.dst_cidrs),
        _canonical(policy.src_hosts),
        _canonical(policy.dst_hosts),
    )


def merge_policies(policy_sets: Iterable[Iterable[UnifiedPolicy]]) -> list[UnifiedPolicy]:
    """Concatenate policy lists in order, keeping the first policy per key."""
    logger = logging.getLogger(__name__)
    seen: set[PolicyKey] = set()
    merged: list[UnifiedPolicy] = []
    dropped = 0
    for policies in policy_sets:
        for policy in policies:
            key = policy_key(policy)
            if key in seen:
                dropped += 1
                continue
            seen.add(key)
            merged.append(policy)
    logger.debug("Merged %s policies, dropped %s duplicates", len(merged), dropped)
    return merged

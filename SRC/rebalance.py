
"""Rebalancing utilities.

Plan owner changes for keys between two ring states and measure how load spreads over nodes.
"""
from __future__ import annotations

from typing import Iterable, Dict, Tuple, List, Optional, Union
from collections import Counter
import logging

from consistent_hash_ring import ConsistentHasher, RingSnapshot

log = logging.getLogger(__name__)

Ring = Union[ConsistentHasher, RingSnapshot]
MovePlan = Dict[str, Tuple[Optional[str], Optional[str]]]

class RebalancePlanner:
    def plan_moved(self, keys: Iterable[str], ring_before: Ring, ring_after: Ring) -> MovePlan:
        """Return dict key -> (from_owner, to_owner) for keys whose primary owner changed."""
        moved = {}
        for k in keys:
            b = ring_before.get_node(k)
            a = ring_after.get_node(k)
            if b != a:
                moved[k] = (b, a)
        log.debug("planned moves=%d", len(moved))
        return moved

    def plan_replicas(self, keys: Iterable[str], ring_before: Ring, ring_after: Ring, count: int) -> Dict[str, Tuple[List[str], List[str]]]:
        """Return dict key -> (before, after) for keys whose replica set changed."""
        changed = {}
        for k in keys:
            b = ring_before.get_nodes(k, count)
            a = ring_after.get_nodes(k, count)
            if set(b) != set(a):
                changed[k] = (b, a)
        return changed

    def stats(self, plan: MovePlan) -> Dict[str, object]:
        by_to = Counter([to for (_, to) in plan.values() if to is not None])
        by_from = Counter([frm for (frm, _) in plan.values() if frm is not None])
        return {
            "moved_count": len(plan),
            "by_to": dict(by_to),
            "by_from": dict(by_from),
        }

def load_distribution(ring: Ring, keys: Iterable[str]) -> Dict[str, float]:
    """Fraction of ``keys`` owned by each node; empty when the ring is empty."""
    owners = Counter(ring.get_node(k) for k in keys)
    owners.pop(None, None)
    total = sum(owners.values())
    if not total:
        return {}
    return {nid: c / total for nid, c in owners.items()}

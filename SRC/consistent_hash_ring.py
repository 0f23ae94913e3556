"""Weighted consistent hashing ring using xxh32.
- Sorted token array for O(log N) lookups via bisect
- Virtual nodes (replicas * weight) per physical node
- Immutable snapshots, swapped atomically on every membership change
"""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple
import bisect
import functools
import hashlib
import logging
import threading

try:
    import xxhash
except ImportError as e:
    raise RuntimeError("xxhash is required. Install with: pip install xxhash") from e

log = logging.getLogger(__name__)

HashFn = Callable[[str], int]

def h32(data: bytes, seed: int = 0) -> int:
    return xxhash.xxh32_intdigest(data, seed=seed)

def key_hash(key: str, seed: int = 0) -> int:
    return h32(key.encode("utf-8"), seed)

def md5_hash(key: str) -> int:
    """First 32 bits of the MD5 digest, big-endian."""
    return int.from_bytes(hashlib.md5(key.encode("utf-8")).digest()[:4], "big")

def sha256_hash(key: str) -> int:
    """First 32 bits of the SHA-256 digest, big-endian."""
    return int.from_bytes(hashlib.sha256(key.encode("utf-8")).digest()[:4], "big")

def replica_key(node_id: str, replica_idx: int) -> str:
    return f"{node_id}:{replica_idx}"


@dataclass(frozen=True)
class RingSnapshot:
    """Read-only view of the ring at one point in time.

    Every lookup works against a single snapshot, so a reader never sees a
    ring that a concurrent writer has only half updated.
    """
    replicas: int
    hash_fn: HashFn
    weights: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    owners: Mapping[int, str] = field(default_factory=lambda: MappingProxyType({}))
    tokens: Tuple[int, ...] = ()

    def _start(self, key: str) -> int:
        # first token >= hash, wrapping past the largest one
        idx = bisect.bisect_left(self.tokens, self.hash_fn(key))
        return 0 if idx == len(self.tokens) else idx

    def get_node(self, key: str) -> Optional[str]:
        if not self.tokens:
            return None
        return self.owners[self.tokens[self._start(key)]]

    def get_nodes(self, key: str, count: int) -> List[str]:
        """Distinct owners in clockwise order from the key's position.

        Stops after one full revolution, so fewer than ``count`` nodes come
        back when the ring does not hold that many.
        """
        if not self.tokens or count <= 0:
            return []
        n = len(self.tokens)
        start = self._start(key)
        out: List[str] = []
        seen: set[str] = set()
        for step in range(n):
            nid = self.owners[self.tokens[(start + step) % n]]
            if nid not in seen:
                out.append(nid)
                seen.add(nid)
                if len(out) >= count:
                    break
        return out

    def nodes(self) -> List[str]:
        return list(self.weights.keys())

    def weight(self, node_id: str) -> Optional[int]:
        return self.weights.get(node_id)

    def size(self) -> int:
        return len(self.weights)

    def __len__(self) -> int:
        return len(self.tokens)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.weights

    def dump_tokens(self) -> List[Tuple[int, str]]:
        return [(t, self.owners[t]) for t in self.tokens]

    def stats(self) -> Dict[str, int]:
        return {"nodes": len(self.weights), "tokens": len(self.tokens), "replicas": self.replicas}


class ConsistentHasher:
    """Weighted consistent hashing ring.

    Writers serialize on an internal lock and publish a fresh
    :class:`RingSnapshot`; readers use whatever snapshot is current without
    locking.
    """
    def __init__(self, replicas: int = 128, hash_fn: Optional[HashFn] = None, seed: int = 0):
        if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas <= 0:
            raise ValueError(f"replicas must be a positive integer, got {replicas!r}")
        self._seed = seed
        self._replicas = replicas
        self._hash_fn: HashFn = hash_fn if hash_fn is not None else functools.partial(key_hash, seed=seed)
        self._lock = threading.RLock()
        self._snapshot = RingSnapshot(replicas=replicas, hash_fn=self._hash_fn)

    @property
    def replicas(self) -> int:
        return self._replicas

    def _vn_count(self, weight: int) -> int:
        return self._replicas * weight

    def _tokens_for(self, node_id: str, weight: int) -> List[int]:
        return [self._hash_fn(replica_key(node_id, i)) for i in range(self._vn_count(weight))]

    def _publish(self, weights: Dict[str, int], owners: Dict[int, str]) -> None:
        self._snapshot = RingSnapshot(
            replicas=self._replicas,
            hash_fn=self._hash_fn,
            weights=MappingProxyType(weights),
            owners=MappingProxyType(owners),
            tokens=tuple(sorted(owners)),
        )

    def add_node(self, node_id: str, weight: int = 1) -> None:
        """Place ``node_id`` on the ring with ``replicas * weight`` positions.

        Adding a node that is already present replaces its previous
        positions, i.e. it sets the node's weight.
        """
        if isinstance(weight, bool) or not isinstance(weight, int) or weight < 1:
            raise ValueError(f"weight must be a positive integer, got {weight!r}")
        with self._lock:
            snap = self._snapshot
            weights = dict(snap.weights)
            owners = dict(snap.owners)
            if node_id in weights:
                for token in self._tokens_for(node_id, weights[node_id]):
                    if owners.get(token) == node_id:
                        del owners[token]
            tokens = self._tokens_for(node_id, weight)
            for token in tokens:
                prev = owners.get(token)
                if prev is not None and prev != node_id:
                    log.debug("token collision token=%d old=%s new=%s", token, prev, node_id)
                owners[token] = node_id
            weights[node_id] = weight
            self._publish(weights, owners)
        log.debug("added node=%s weight=%d vnodes=%d", node_id, weight, len(tokens))

    def remove_node(self, node_id: str) -> None:
        with self._lock:
            snap = self._snapshot
            if node_id not in snap.weights:
                return
            weights = dict(snap.weights)
            owners = dict(snap.owners)
            weight = weights.pop(node_id, 1)
            for token in self._tokens_for(node_id, weight):
                if owners.get(token) == node_id:
                    del owners[token]
            self._publish(weights, owners)
        log.debug("removed node=%s weight=%d", node_id, weight)

    def snapshot(self) -> RingSnapshot:
        return self._snapshot

    def get_node(self, key: str) -> Optional[str]:
        return self._snapshot.get_node(key)

    def get_nodes(self, key: str, count: int) -> List[str]:
        return self._snapshot.get_nodes(key, count)

    def nodes(self) -> List[str]:
        return self._snapshot.nodes()

    def weight(self, node_id: str) -> Optional[int]:
        return self._snapshot.weight(node_id)

    def size(self) -> int:
        return self._snapshot.size()

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._snapshot

    def dump_tokens(self) -> List[Tuple[int, str]]:
        return self._snapshot.dump_tokens()

    def stats(self) -> Dict[str, int]:
        out = self._snapshot.stats()
        out["seed"] = self._seed
        return out

    def clone(self) -> "ConsistentHasher":
        """Independent ring starting from the current state, for before/after comparison."""
        other = ConsistentHasher(self._replicas, hash_fn=self._hash_fn, seed=self._seed)
        other._snapshot = self._snapshot
        return other

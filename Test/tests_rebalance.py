from consistent_hash_ring import ConsistentHasher
from rebalance import RebalancePlanner, load_distribution

keys = [f'key-{i}' for i in range(1000)]


def four_node_ring():
    ring = ConsistentHasher(replicas=128, seed=2025)
    for nid in ['cache-a', 'cache-b', 'cache-c', 'cache-d']:
        ring.add_node(nid)
    return ring


# elasticity on join: only keys taken over by the new node move
def test_join_moves_bounded_fraction():
    ring = four_node_ring()
    before = ring.clone()
    ring.add_node('cache-e')

    planner = RebalancePlanner()
    plan = planner.plan_moved(keys, before, ring)
    stats = planner.stats(plan)
    print(f"Moved fraction after adding cache-e: {stats['moved_count'] / len(keys):.2%}")
    assert 0 < stats['moved_count'] < 0.35 * len(keys)
    assert set(stats['by_to']) == {'cache-e'}
    assert all(frm != 'cache-e' for frm, _ in plan.values())


def test_leave_moves_only_departed_keys():
    ring = four_node_ring()
    before = ring.snapshot()
    ring.remove_node('cache-b')

    planner = RebalancePlanner()
    plan = planner.plan_moved(keys, before, ring.snapshot())
    owned = [k for k in keys if before.get_node(k) == 'cache-b']
    assert sorted(plan) == sorted(owned)
    assert planner.stats(plan)['by_from'] == {'cache-b': len(owned)}


def test_replica_sets_change_only_to_include_new_node():
    ring = four_node_ring()
    before = ring.clone()
    ring.add_node('cache-e', 2)

    changed = RebalancePlanner().plan_replicas(keys, before, ring, 2)
    assert changed
    for b, a in changed.values():
        assert 'cache-e' in a and 'cache-e' not in b


def test_plan_on_identical_rings_is_empty():
    ring = four_node_ring()
    planner = RebalancePlanner()
    assert planner.plan_moved(keys, ring, ring.clone()) == {}
    assert planner.stats({}) == {'moved_count': 0, 'by_to': {}, 'by_from': {}}


def test_load_distribution():
    ring = ConsistentHasher(replicas=200, seed=9)
    ring.add_node('vs-1', 1)
    ring.add_node('vs-2', 3)
    dist = load_distribution(ring, [f'vec-{i}' for i in range(20_000)])
    assert abs(sum(dist.values()) - 1.0) < 1e-9
    assert abs(dist['vs-1'] - 0.25) < 0.08
    assert abs(dist['vs-2'] - 0.75) < 0.08
    assert load_distribution(ConsistentHasher(replicas=4), keys) == {}

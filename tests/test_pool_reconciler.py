"""Pool reconciler tests"""
import pytest

from conftest import make_claim, make_pool
from ipam_controller.core import ClaimReconciler, PoolReconciler
from ipam_controller.core.pool_reconciler import READY, REASON_INVALID, REASON_VALID
from ipam_controller.schemas import find_condition


@pytest.fixture
def queued():
    return []


@pytest.fixture
def pool_reconciler(store, queued):
    return PoolReconciler(store, enqueue_claim=queued.append)


@pytest.fixture
def claim_reconciler(store):
    return ClaimReconciler(store)


def pool_status(store, name="pool", namespace="default"):
    return store.get("InClusterIPPool", name, namespace).status


class TestPoolStatus:

    def test_valid_pool_counters(self, store, pool_reconciler, claim_reconciler):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5", gateway="10.0.0.1"))
        store.create(make_claim("claim", "pool"))
        claim_reconciler.reconcile(("default", "claim"))

        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        status = pool_status(store)
        assert (status.addresses.total, status.addresses.used, status.addresses.free) == (4, 1, 3)
        ready = find_condition(status.conditions, READY)
        assert ready.status == "True"
        assert ready.reason == REASON_VALID
        assert ready.message == "3 of 4 addresses free"

    def test_invalid_spec_is_reported(self, store, pool_reconciler):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5", addresses=["10.0.0.9"]))
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))

        ready = find_condition(pool_status(store).conditions, READY)
        assert ready.status == "False"
        assert ready.reason == REASON_INVALID

    def test_fixing_spec_clears_invalid(self, store, pool_reconciler):
        store.create(make_pool("pool", first="10.0.0.5", last="10.0.0.1"))
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))

        pool = store.get("InClusterIPPool", "pool", "default")
        pool.spec.first, pool.spec.last = "10.0.0.1", "10.0.0.5"
        store.update(pool)
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        assert find_condition(pool_status(store).conditions, READY).status == "True"

    def test_unchanged_status_is_not_written(self, store, pool_reconciler):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5"))
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        revision = store.revision
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        assert store.revision == revision

    def test_shrunk_pool_keeps_bound_addresses(self, store, pool_reconciler, claim_reconciler):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5"))
        for name in ("a", "b", "c"):
            store.create(make_claim(name, "pool"))
            claim_reconciler.reconcile(("default", name))

        pool = store.get("InClusterIPPool", "pool", "default")
        pool.spec.last = "10.0.0.2"
        store.update(pool)
        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))

        addresses = pool_status(store).addresses
        assert (addresses.total, addresses.used, addresses.free, addresses.out_of_range) == (2, 2, 0, 1)
        assert store.get("IPAddress", "c", "default").spec.address == "10.0.0.3"

    def test_global_pool(self, store, pool_reconciler, claim_reconciler):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5", global_pool=True))
        for namespace in ("a", "b"):
            store.create(make_claim("claim", "pool", namespace=namespace, kind="GlobalInClusterIPPool"))
            claim_reconciler.reconcile((namespace, "claim"))

        pool_reconciler.reconcile(("GlobalInClusterIPPool", None, "pool"))
        status = store.get("GlobalInClusterIPPool", "pool").status
        assert status.addresses.used == 2


class TestClaimRequeue:

    def test_unbound_claims_are_requeued(self, store, pool_reconciler, claim_reconciler, queued):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5"))
        store.create(make_claim("bound", "pool"))
        claim_reconciler.reconcile(("default", "bound"))
        store.create(make_claim("waiting", "pool"))
        store.create(make_claim("elsewhere", "other-pool"))

        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        assert queued == [("default", "waiting")]

    def test_deleted_pool_requeues_bound_claims(self, store, pool_reconciler, claim_reconciler, queued):
        store.create(make_pool("pool", first="10.0.0.1", last="10.0.0.5"))
        store.create(make_claim("bound", "pool"))
        claim_reconciler.reconcile(("default", "bound"))
        store.create(make_claim("waiting", "pool", kind="GlobalInClusterIPPool"))
        store.delete("InClusterIPPool", "pool", "default")

        pool_reconciler.reconcile(("InClusterIPPool", "default", "pool"))
        assert queued == [("default", "bound")]

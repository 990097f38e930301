# ipam_controller/core/pool_reconciler.py
"""
Pool Reconciler
Validates pools, keeps usage counters and requeues claims that may now bind
"""

from typing import Callable, Optional, Tuple
import logging

from ipam_controller.errors import InvalidPoolSpec, NotFoundError
from ipam_controller.schemas import (
    POOL_KINDS,
    Condition,
    InClusterIPPool,
    ObjectMeta,
    set_condition,
)
from ipam_controller.store import ResourceStore
from .allocator import Allocator, allocator as default_allocator
from .claim_state import ClaimState, derive_state
from .controller import ReconcileResult
from .pool_resolver import PoolResolver

logger = logging.getLogger(__name__)

PoolKey = Tuple[str, Optional[str], str]  # (kind, namespace, name)

READY = "Ready"
REASON_VALID = "PoolValid"
REASON_INVALID = "InvalidSpec"


class PoolReconciler:
    """
    Pool Reconciler

    Responsibilities:
    1. Surface an invalid spec on the pool status (permanent until edited)
    2. Maintain status.addresses (total / used / free / outOfRange)
    3. Requeue unbound claims on create/update so an exhausted claim
       can bind once capacity grows
    4. On delete, requeue bound claims so they report Degraded

    The pool is never deleted or edited on behalf of claims; allocation
    state lives only in IPAddress objects.
    """

    def __init__(
        self,
        store: ResourceStore,
        resolver: Optional[PoolResolver] = None,
        enqueue_claim: Optional[Callable[[Tuple[str, str]], None]] = None,
        allocator: Optional[Allocator] = None,
    ):
        self.store = store
        self.resolver = resolver or PoolResolver(store)
        self.enqueue_claim = enqueue_claim or (lambda key: None)
        self.allocator = allocator or default_allocator

    def reconcile(self, key: PoolKey) -> ReconcileResult:
        """
        Reconcile one pool

        Args:
            key: (kind, namespace, name); namespace is None for cluster-scoped pools
        """
        kind, namespace, name = key
        try:
            pool = self.store.get(kind, name, namespace)
        except NotFoundError:
            return self._reconcile_deleted(kind, namespace, name)

        addresses = self.resolver.list_addresses(pool)
        try:
            usage = self.allocator.pool_usage(pool.spec, [a.spec.address for a in addresses])
        except InvalidPoolSpec as e:
            logger.warning(f"{kind} {self._display(namespace, name)} is invalid: {e}")
            self._update_status(
                pool,
                Condition(type=READY, status="False", reason=REASON_INVALID, message=str(e)),
            )
            return ReconcileResult()

        if usage.out_of_range:
            # bound addresses are write-once snapshots and stay valid
            logger.warning(
                f"{kind} {self._display(namespace, name)}: {usage.out_of_range} bound "
                f"address(es) are outside the edited pool and are kept until released"
            )

        self._update_status(
            pool,
            Condition(
                type=READY,
                status="True",
                reason=REASON_VALID,
                message=f"{usage.free} of {usage.total} addresses free",
            ),
            usage=usage,
        )

        requeued = 0
        for claim in self.resolver.list_claims(pool):
            if derive_state(claim, None) == ClaimState.UNBOUND:
                self.enqueue_claim((claim.namespace, claim.name))
                requeued += 1
        if requeued:
            logger.debug(f"Requeued {requeued} unbound claim(s) of {kind} {self._display(namespace, name)}")
        return ReconcileResult()

    def _reconcile_deleted(self, kind: str, namespace: Optional[str], name: str) -> ReconcileResult:
        """Pool is gone: no cascade onto claims, bound ones are requeued to report Degraded"""
        pool_class = POOL_KINDS[kind]
        stub = pool_class(metadata=ObjectMeta(name=name, namespace=namespace if pool_class.NAMESPACED else None))

        for claim in self.resolver.list_claims(stub):
            if derive_state(claim, None) == ClaimState.BOUND:
                self.enqueue_claim((claim.namespace, claim.name))
        logger.info(f"{kind} {self._display(namespace, name)} deleted")
        return ReconcileResult()

    def _update_status(self, pool: InClusterIPPool, condition: Condition, usage=None) -> None:
        changed = set_condition(pool.status.conditions, condition)
        if usage is not None and usage != pool.status.addresses:
            pool.status.addresses = usage
            changed = True
        if changed:
            self.store.update(pool)

    @staticmethod
    def _display(namespace: Optional[str], name: str) -> str:
        return f"{namespace}/{name}" if namespace else name

# ipam_controller/core/claim_reconciler.py
"""
Claim Reconciler
Drives an IPAddressClaim through Unbound -> Bound -> Releasing -> Released
"""

from typing import Optional, Tuple
import logging

from ipam_controller.errors import (
    AlreadyExistsError,
    InvalidPoolSpec,
    NotFoundError,
    PoolExhausted,
    PoolNotFound,
    UnsupportedKind,
)
from ipam_controller.schemas import (
    PROTECT_ADDRESS_FINALIZER,
    RELEASE_ADDRESS_FINALIZER,
    Condition,
    InClusterIPPool,
    IPAddress,
    IPAddressClaim,
    IPAddressSpec,
    LocalObjectReference,
    ObjectMeta,
    TypedObjectReference,
    remove_condition,
    set_condition,
)
from ipam_controller.store import ResourceStore
from .address_space import Address, AddressDomain
from .allocator import Allocator, allocator as default_allocator
from .claim_state import ClaimSnapshot, ClaimState, can_transition, owns_address, snapshot
from .controller import ReconcileResult
from .pool_resolver import PoolResolver

logger = logging.getLogger(__name__)

ClaimKey = Tuple[str, str]  # (namespace, name)

# Condition types
READY = "Ready"
DEGRADED = "Degraded"

# Condition reasons
REASON_ALLOCATED = "AddressAllocated"
REASON_EXHAUSTED = "PoolExhausted"
REASON_POOL_NOT_FOUND = "PoolNotFound"
REASON_ADDRESS_NOT_FOUND = "AddressNotFound"
REASON_ADDRESS_DELETED = "AddressDeleted"
REASON_ADDRESS_CONFLICT = "AddressConflict"


class ClaimReconciler:
    """
    Claim Reconciler

    Responsibilities:
    1. Allocate an address for unbound claims and record it as an IPAddress
    2. Keep bound claims' status in sync, report vanished dependencies as Degraded
    3. Release the address exactly once when the claim is deleted

    No state is kept between reconciles. Everything is re-derived from a
    fresh read, so any reconcile may be repeated or interleaved with
    reconciles of other claims against the same pool.
    """

    def __init__(
        self,
        store: ResourceStore,
        resolver: Optional[PoolResolver] = None,
        allocator: Optional[Allocator] = None,
    ):
        self.store = store
        self.resolver = resolver or PoolResolver(store)
        self.allocator = allocator or default_allocator
        self._handlers = {
            ClaimState.UNBOUND: self._reconcile_unbound,
            ClaimState.BOUND: self._reconcile_bound,
            ClaimState.RELEASING: self._reconcile_releasing,
            ClaimState.RELEASED: self._reconcile_released,
        }

    # === Entry point ===

    def reconcile(self, key: ClaimKey) -> ReconcileResult:
        """
        Reconcile one claim

        Args:
            key: (namespace, name) of the claim
        """
        namespace, name = key
        snap = self.read(namespace, name)
        logger.debug(f"Reconciling claim {namespace}/{name} in state {snap.state.value}")
        return self._handlers[snap.state](snap, namespace, name)

    def read(self, namespace: str, name: str) -> ClaimSnapshot:
        """Fresh read of the claim and the address named after it"""
        claim = self._get_or_none("IPAddressClaim", name, namespace)
        address = self._get_or_none("IPAddress", name, namespace)
        return snapshot(claim, address)

    def _get_or_none(self, kind: str, name: str, namespace: str):
        try:
            return self.store.get(kind, name, namespace)
        except NotFoundError:
            return None

    # === Unbound ===

    def _reconcile_unbound(self, snap: ClaimSnapshot, namespace: str, name: str) -> ReconcileResult:
        claim = snap.claim

        try:
            pool = self.resolver.resolve(claim.spec.pool_ref, namespace)
        except UnsupportedKind:
            # another controller may own this kind, leave the claim untouched
            logger.debug(f"Ignoring claim {namespace}/{name}: pool kind {claim.spec.pool_ref.kind} is not ours")
            return ReconcileResult()
        except PoolNotFound as e:
            # pool creation triggers a new reconcile
            logger.info(f"Claim {namespace}/{name} waits for its pool: {e}")
            return ReconcileResult()

        try:
            AddressDomain.from_spec(pool.spec)
        except InvalidPoolSpec as e:
            # reported on the pool; editing the pool triggers a new reconcile
            logger.warning(f"Claim {namespace}/{name} blocked, pool {pool.name} is invalid: {e}")
            return ReconcileResult()

        if snap.address is not None:
            if snap.address_owned:
                # an earlier attempt gave the value up but did not finish releasing
                self._release_address(snap.address)
            elif self._is_claim_address(snap.address, name):
                # left behind by a deleted claim of the same name
                logger.info(f"Releasing address {namespace}/{name} of a previous claim incarnation")
                self._release_address(snap.address)
            else:
                logger.info(f"Address {namespace}/{name} is not managed by a claim, waiting for it to go away")
            return ReconcileResult(requeue=True)

        if claim.add_finalizer(RELEASE_ADDRESS_FINALIZER):
            claim = self.store.update(claim)

        # used addresses are listed after the pool was resolved, right before allocating
        used = [a.spec.address for a in self.resolver.list_addresses(pool)]
        try:
            value = self.allocator.allocate(pool.spec, used)
        except PoolExhausted as e:
            logger.warning(f"Claim {namespace}/{name}: {e}")
            self._set_conditions(
                claim,
                Condition(type=READY, status="False", reason=REASON_EXHAUSTED, message=str(e)),
            )
            return ReconcileResult(requeue=True)

        address = self._create_address(claim, pool, value)
        if address is None:
            return ReconcileResult(requeue=True)

        self._transition(snap.state, ClaimState.BOUND, claim)
        logger.info(f"Allocated {address.spec.address} from {pool.kind} {pool.name} to claim {namespace}/{name}")
        return self._mark_bound(claim, address)

    def build_address(self, claim: IPAddressClaim, pool: InClusterIPPool, value: Address) -> IPAddress:
        """
        Build the IPAddress for a claim

        The name is the claim's name, never derived from the value, so two
        claims racing for the same value can never collide on name.
        """
        return IPAddress(
            metadata=ObjectMeta(
                name=claim.name,
                namespace=claim.namespace,
                finalizers=[PROTECT_ADDRESS_FINALIZER],
                owner_references=[
                    claim.owner_reference(controller=True),
                    pool.owner_reference(controller=False),
                ],
            ),
            spec=IPAddressSpec(
                claim_ref=LocalObjectReference(name=claim.name),
                pool_ref=TypedObjectReference(
                    api_group=claim.spec.pool_ref.api_group,
                    kind=pool.kind,
                    name=pool.name,
                ),
                address=str(value),
                prefix=pool.spec.prefix,
                gateway=pool.spec.gateway,
            ),
        )

    def _create_address(self, claim: IPAddressClaim, pool: InClusterIPPool, value: Address) -> Optional[IPAddress]:
        """
        Create the address and settle races

        Returns:
            The address now bound to the claim, or None to retry
        """
        try:
            created = self.store.create(self.build_address(claim, pool, value))
        except AlreadyExistsError:
            existing = self._get_or_none("IPAddress", claim.name, claim.namespace)
            if existing is None or existing.is_deleting:
                return None
            if not owns_address(claim, existing):
                logger.info(f"Address {claim.namespace}/{claim.name} belongs to another claim, retrying")
                return None
            # replay of an earlier successful create
            logger.debug(f"Address {claim.namespace}/{claim.name} already exists for this claim")
            created = existing

        if not self._keeps_value(created, pool):
            self._release_address(created)
            return None
        return created

    def _keeps_value(self, created: IPAddress, pool: InClusterIPPool) -> bool:
        """
        Check that no other address of the pool holds the same value

        Concurrent reconciles of different claims may pick the same value
        from the same listing. The address created first (lowest creation
        revision) keeps the value; every other one gives it up and retries.
        """
        holders = [
            a for a in self.resolver.list_addresses(pool)
            if a.spec.address == created.spec.address and not a.is_deleting
        ]
        if not any(a.metadata.uid == created.metadata.uid for a in holders):
            holders.append(created)
        winner = min(holders, key=lambda a: a.metadata.creation_revision)
        if winner.metadata.uid == created.metadata.uid:
            return True

        logger.info(
            f"Address {created.spec.address} was taken by {winner.namespace}/{winner.name} "
            f"first, releasing {created.namespace}/{created.name} and retrying"
        )
        return False

    # === Bound ===

    def _reconcile_bound(self, snap: ClaimSnapshot, namespace: str, name: str) -> ReconcileResult:
        claim = snap.claim
        address = snap.address

        if address is None or not snap.address_owned:
            return self._degrade(
                claim, REASON_ADDRESS_NOT_FOUND,
                f"Address {namespace}/{name} was removed; delete and recreate the claim to allocate again",
            )
        if address.is_deleting:
            return self._degrade(
                claim, REASON_ADDRESS_DELETED,
                f"Address {namespace}/{name} is being deleted while the claim still exists",
            )

        try:
            pool = self.resolver.resolve(claim.spec.pool_ref, namespace)
        except UnsupportedKind:
            return ReconcileResult()
        except PoolNotFound as e:
            return self._degrade(claim, REASON_POOL_NOT_FOUND, str(e))

        earlier = [
            a for a in self.resolver.list_addresses(pool)
            if a.spec.address == address.spec.address
            and a.metadata.uid != address.metadata.uid
            and a.metadata.creation_revision < address.metadata.creation_revision
            and not a.is_deleting
        ]
        if earlier:
            logger.error(
                f"Double allocation: {address.spec.address} is bound to {namespace}/{name} "
                f"and to {earlier[0].namespace}/{earlier[0].name}"
            )
            return self._degrade(
                claim, REASON_ADDRESS_CONFLICT,
                f"Address {address.spec.address} is also allocated to {earlier[0].namespace}/{earlier[0].name}",
            )

        if claim.add_finalizer(RELEASE_ADDRESS_FINALIZER):
            claim = self.store.update(claim)
        return self._mark_bound(claim, address)

    def _mark_bound(self, claim: IPAddressClaim, address: IPAddress) -> ReconcileResult:
        """Record the binding on the claim status; the address itself is never touched"""
        changed = False
        if claim.status.address_ref is None or claim.status.address_ref.name != address.name:
            claim.status.address_ref = LocalObjectReference(name=address.name)
            changed = True
        changed |= set_condition(
            claim.status.conditions,
            Condition(
                type=READY,
                status="True",
                reason=REASON_ALLOCATED,
                message=f"Allocated {address.spec.address}/{address.spec.prefix}",
            ),
        )
        changed |= remove_condition(claim.status.conditions, DEGRADED)
        if changed:
            self.store.update(claim)
        return ReconcileResult()

    def _degrade(self, claim: IPAddressClaim, reason: str, message: str) -> ReconcileResult:
        """
        Report a bound claim whose dependency vanished

        Never re-allocates: re-binding requires deleting and recreating the claim.
        """
        logger.warning(f"Claim {claim.namespace}/{claim.name} degraded: {message}")
        self._set_conditions(
            claim,
            Condition(type=DEGRADED, status="True", reason=reason, message=message),
            Condition(type=READY, status="False", reason=reason, message=message),
        )
        return ReconcileResult()

    # === Releasing / Released ===

    def _reconcile_releasing(self, snap: ClaimSnapshot, namespace: str, name: str) -> ReconcileResult:
        claim = snap.claim
        if not claim.has_finalizer(RELEASE_ADDRESS_FINALIZER):
            return ReconcileResult()

        if snap.address is not None:
            if snap.address_owned:
                self._release_address(snap.address)
            else:
                logger.info(f"Address {namespace}/{name} is not owned by the deleted claim, leaving it")

        claim.remove_finalizer(RELEASE_ADDRESS_FINALIZER)
        self.store.update(claim)
        self._transition(snap.state, ClaimState.RELEASED, claim)
        logger.info(f"Released claim {namespace}/{name}")
        return ReconcileResult()

    def _reconcile_released(self, snap: ClaimSnapshot, namespace: str, name: str) -> ReconcileResult:
        """Claim is gone; finish releasing an address the cascade left behind"""
        address = snap.address
        if address is None or not self._is_claim_address(address, name):
            return ReconcileResult()

        logger.info(f"Releasing orphaned address {namespace}/{name} ({address.spec.address})")
        self._release_address(address)
        return ReconcileResult()

    @staticmethod
    def _is_claim_address(address: IPAddress, claim_name: str) -> bool:
        """Address was created by a claim of this name, any incarnation"""
        ref = address.controller_reference()
        return (
            ref is not None
            and ref.kind == "IPAddressClaim"
            and ref.name == claim_name
            and address.spec.claim_ref.name == claim_name
        )

    def _release_address(self, address: IPAddress) -> None:
        """Delete the address and drop its protective finalizer"""
        try:
            if not address.is_deleting:
                remaining = self.store.delete("IPAddress", address.name, address.namespace)
                if remaining is None:
                    return
                address = remaining
            if address.remove_finalizer(PROTECT_ADDRESS_FINALIZER):
                self.store.update(address)
        except NotFoundError:
            return

    # === Helpers ===

    def _set_conditions(self, claim: IPAddressClaim, *conditions: Condition) -> None:
        changed = False
        for condition in conditions:
            changed |= set_condition(claim.status.conditions, condition)
        if changed:
            self.store.update(claim)

    @staticmethod
    def _transition(current: ClaimState, target: ClaimState, claim: IPAddressClaim) -> None:
        if not can_transition(current, target):
            raise RuntimeError(
                f"Illegal claim transition {current.value} -> {target.value} "
                f"for {claim.namespace}/{claim.name}"
            )
        logger.debug(f"Claim {claim.namespace}/{claim.name}: {current.value} -> {target.value}")

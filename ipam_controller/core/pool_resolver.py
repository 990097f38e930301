# ipam_controller/core/pool_resolver.py
"""
Pool Resolver
Maps a pool reference to the matching namespaced or cluster-scoped pool
"""

from typing import List, Optional
import logging

from ipam_controller.errors import NotFoundError, PoolNotFound, UnsupportedKind
from ipam_controller.schemas import (
    API_GROUP,
    POOL_KINDS,
    InClusterIPPool,
    IPAddress,
    IPAddressClaim,
    TypedObjectReference,
)
from ipam_controller.store import ResourceStore

logger = logging.getLogger(__name__)


def is_supported(pool_ref: TypedObjectReference) -> bool:
    """Only pool kinds of our API group are handled; a missing group is accepted"""
    return pool_ref.kind in POOL_KINDS and pool_ref.api_group in (None, "", API_GROUP)


def references(pool_ref: TypedObjectReference, ref_namespace: Optional[str], pool: InClusterIPPool) -> bool:
    """
    Check whether a reference made from `ref_namespace` points at `pool`

    Kind disambiguates pools of different scope sharing one name.
    """
    if not is_supported(pool_ref):
        return False
    if pool_ref.kind != pool.kind or pool_ref.name != pool.name:
        return False
    if pool.NAMESPACED:
        return ref_namespace == pool.namespace
    return True


class PoolResolver:
    """
    Resolves pool references against the store

    Namespaced kinds resolve by (kind, name, claim namespace),
    cluster-scoped kinds by (kind, name).
    """

    def __init__(self, store: ResourceStore):
        self.store = store

    def resolve(self, pool_ref: TypedObjectReference, namespace: Optional[str]) -> InClusterIPPool:
        """
        Resolve a claim's pool reference

        Raises:
            UnsupportedKind: The kind belongs to another controller
            PoolNotFound: The pool does not exist (yet)
        """
        if not is_supported(pool_ref):
            raise UnsupportedKind(f"Unsupported pool kind {pool_ref.api_group}/{pool_ref.kind}")

        pool_class = POOL_KINDS[pool_ref.kind]
        lookup_namespace = namespace if pool_class.NAMESPACED else None
        try:
            return self.store.get(pool_ref.kind, pool_ref.name, lookup_namespace)
        except NotFoundError:
            raise PoolNotFound(
                f"{pool_ref.kind} {pool_ref.name} not found"
                + (f" in namespace {namespace}" if pool_class.NAMESPACED else "")
            )

    def list_addresses(self, pool: InClusterIPPool) -> List[IPAddress]:
        """Every address allocated from the pool, terminating ones included"""
        scope = pool.namespace if pool.NAMESPACED else None
        return [
            address for address in self.store.list("IPAddress", scope)
            if references(address.spec.pool_ref, address.namespace, pool)
        ]

    def list_claims(self, pool: InClusterIPPool) -> List[IPAddressClaim]:
        """Every claim whose pool reference resolves to the pool"""
        scope = pool.namespace if pool.NAMESPACED else None
        return [
            claim for claim in self.store.list("IPAddressClaim", scope)
            if references(claim.spec.pool_ref, claim.namespace, pool)
        ]

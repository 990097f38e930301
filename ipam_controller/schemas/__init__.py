# ipam_controller/schemas/__init__.py
"""
Pydantic schemas for stored resources
Organized by kind: pools, claims, addresses
"""

from .base import (
    API_GROUP,
    API_VERSION,
    GROUP_VERSION,
    PROTECT_ADDRESS_FINALIZER,
    RELEASE_ADDRESS_FINALIZER,
    APIModel,
    Condition,
    LocalObjectReference,
    ObjectMeta,
    OwnerReference,
    Resource,
    TypedObjectReference,
    find_condition,
    remove_condition,
    set_condition,
)
from .pool import (
    POOL_KINDS,
    GlobalInClusterIPPool,
    InClusterIPPool,
    PoolAddressesStatus,
    PoolSpec,
    PoolStatus,
)
from .claim import ClaimSpec, ClaimStatus, IPAddressClaim
from .address import IPAddress, IPAddressSpec

# kind name -> model class, used by stores to rebuild typed objects
RESOURCE_KINDS = {
    **POOL_KINDS,
    "IPAddressClaim": IPAddressClaim,
    "IPAddress": IPAddress,
}


def resource_class(kind: str):
    try:
        return RESOURCE_KINDS[kind]
    except KeyError:
        raise ValueError(f"Unknown resource kind: {kind}")


def is_namespaced(kind: str) -> bool:
    return resource_class(kind).NAMESPACED


__all__ = [
    # Base
    "API_GROUP",
    "API_VERSION",
    "GROUP_VERSION",
    "PROTECT_ADDRESS_FINALIZER",
    "RELEASE_ADDRESS_FINALIZER",
    "APIModel",
    "Condition",
    "LocalObjectReference",
    "ObjectMeta",
    "OwnerReference",
    "Resource",
    "TypedObjectReference",
    "find_condition",
    "remove_condition",
    "set_condition",
    # Pool
    "POOL_KINDS",
    "GlobalInClusterIPPool",
    "InClusterIPPool",
    "PoolAddressesStatus",
    "PoolSpec",
    "PoolStatus",
    # Claim
    "ClaimSpec",
    "ClaimStatus",
    "IPAddressClaim",
    # Address
    "IPAddress",
    "IPAddressSpec",
    # Registry
    "RESOURCE_KINDS",
    "resource_class",
    "is_namespaced",
]

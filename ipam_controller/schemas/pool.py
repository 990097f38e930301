# ipam_controller/schemas/pool.py
"""
Pool schemas
InClusterIPPool (namespaced) and GlobalInClusterIPPool (cluster-scoped)
"""

from pydantic import ConfigDict, Field
from typing import ClassVar, List, Optional

from .base import APIModel, Condition, Resource


class PoolSpec(APIModel):
    """
    Either a contiguous range (first/last) or an explicit address list

    `addresses` entries may be single addresses, "a-b" ranges or CIDR blocks.
    `prefix` is metadata copied onto every allocated address.
    """
    first: Optional[str] = None
    last: Optional[str] = None
    addresses: List[str] = Field(default_factory=list)
    prefix: int = 0
    gateway: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"first": "10.0.0.1", "last": "10.0.0.254", "prefix": 24, "gateway": "10.0.0.1"},
                {"addresses": ["10.0.0.50", "10.0.0.128"], "prefix": 24, "gateway": "10.0.0.1"},
            ]
        }
    )


class PoolAddressesStatus(APIModel):
    """Usage counters maintained by the pool reconciler"""
    total: int = 0
    used: int = 0
    free: int = 0
    out_of_range: int = 0


class PoolStatus(APIModel):
    addresses: PoolAddressesStatus = Field(default_factory=PoolAddressesStatus)
    conditions: List[Condition] = Field(default_factory=list)


class InClusterIPPool(Resource):
    """Namespaced pool, resolved by (name, claim namespace)"""
    kind: str = "InClusterIPPool"
    spec: PoolSpec = Field(default_factory=PoolSpec)
    status: PoolStatus = Field(default_factory=PoolStatus)


class GlobalInClusterIPPool(InClusterIPPool):
    """Cluster-scoped pool, resolved by name alone"""
    NAMESPACED: ClassVar[bool] = False

    kind: str = "GlobalInClusterIPPool"


POOL_KINDS = {
    "InClusterIPPool": InClusterIPPool,
    "GlobalInClusterIPPool": GlobalInClusterIPPool,
}

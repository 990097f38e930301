# ipam_controller/schemas/claim.py
"""
IPAddressClaim schemas
A claim requests exactly one address from the referenced pool
"""

from pydantic import Field
from typing import List, Optional

from .base import APIModel, Condition, LocalObjectReference, Resource, TypedObjectReference


class ClaimSpec(APIModel):
    pool_ref: TypedObjectReference


class ClaimStatus(APIModel):
    """
    address_ref is set once the claim is bound and never cleared,
    so a vanished address can be told apart from a claim that never bound
    """
    address_ref: Optional[LocalObjectReference] = None
    conditions: List[Condition] = Field(default_factory=list)


class IPAddressClaim(Resource):
    kind: str = "IPAddressClaim"
    spec: ClaimSpec
    status: ClaimStatus = Field(default_factory=ClaimStatus)

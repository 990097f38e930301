# ipam_controller/schemas/address.py
"""
IPAddress schemas
Records one allocation: claim -> value from pool
"""

from typing import Optional

from .base import APIModel, LocalObjectReference, Resource, TypedObjectReference


class IPAddressSpec(APIModel):
    """prefix and gateway are a snapshot of the pool at allocation time"""
    claim_ref: LocalObjectReference
    pool_ref: TypedObjectReference
    address: str
    prefix: int
    gateway: Optional[str] = None


class IPAddress(Resource):
    kind: str = "IPAddress"
    spec: IPAddressSpec

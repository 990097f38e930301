# ipam_controller/schemas/base.py
"""
Base schemas shared by all resource kinds
Metadata, references and conditions
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import ClassVar, Dict, List, Optional
from datetime import datetime, timezone

API_GROUP = "ipam.cluster.x-k8s.io"
API_VERSION = "v1alpha1"
GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

PROTECT_ADDRESS_FINALIZER = f"{API_GROUP}/ProtectAddress"
RELEASE_ADDRESS_FINALIZER = f"{API_GROUP}/ReleaseAddress"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class OwnerReference(APIModel):
    """Declared ownership used for cascade deletion"""
    api_version: str = GROUP_VERSION
    kind: str
    name: str
    uid: Optional[str] = None
    controller: bool = False
    block_owner_deletion: bool = True


class ObjectMeta(APIModel):
    name: str
    namespace: Optional[str] = None
    uid: Optional[str] = None
    resource_version: int = 0
    creation_revision: int = 0
    creation_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None
    finalizers: List[str] = Field(default_factory=list)
    owner_references: List[OwnerReference] = Field(default_factory=list)
    labels: Dict[str, str] = Field(default_factory=dict)


class TypedObjectReference(APIModel):
    api_group: Optional[str] = None
    kind: str
    name: str


class LocalObjectReference(APIModel):
    name: str


class Condition(APIModel):
    """Status condition: type, status (True/False/Unknown), reason, message"""
    type: str
    status: str
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = None


class Resource(APIModel):
    """
    Common envelope of every stored object
    Subclasses set `kind` and NAMESPACED
    """
    NAMESPACED: ClassVar[bool] = True

    api_version: str = GROUP_VERSION
    kind: str
    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add finalizer, return True if the object changed"""
        if finalizer in self.metadata.finalizers:
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove finalizer, return True if the object changed"""
        if finalizer not in self.metadata.finalizers:
            return False
        self.metadata.finalizers = [f for f in self.metadata.finalizers if f != finalizer]
        return True

    def controller_reference(self) -> Optional[OwnerReference]:
        for ref in self.metadata.owner_references:
            if ref.controller:
                return ref
        return None

    def owner_reference(self, controller: bool) -> OwnerReference:
        """Build a reference pointing at this object"""
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid,
            controller=controller,
            block_owner_deletion=True,
        )


def find_condition(conditions: List[Condition], condition_type: str) -> Optional[Condition]:
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def set_condition(conditions: List[Condition], condition: Condition) -> bool:
    """
    Insert or replace a condition in place

    lastTransitionTime is kept when the status does not flip.
    Returns True if anything changed.
    """
    existing = find_condition(conditions, condition.type)
    if existing is None:
        condition.last_transition_time = condition.last_transition_time or utcnow()
        conditions.append(condition)
        return True

    if (existing.status, existing.reason, existing.message) == (
        condition.status, condition.reason, condition.message
    ):
        return False

    if existing.status != condition.status:
        existing.last_transition_time = utcnow()
    existing.status = condition.status
    existing.reason = condition.reason
    existing.message = condition.message
    return True


def remove_condition(conditions: List[Condition], condition_type: str) -> bool:
    before = len(conditions)
    conditions[:] = [c for c in conditions if c.type != condition_type]
    return len(conditions) != before

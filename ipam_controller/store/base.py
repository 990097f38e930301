# ipam_controller/store/base.py
"""
Resource Store interface
Declarative object store consumed by the reconcilers
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional
import logging
import threading
import uuid

from ipam_controller.errors import NotFoundError
from ipam_controller.schemas import RESOURCE_KINDS, Resource, is_namespaced
from ipam_controller.schemas.base import utcnow

logger = logging.getLogger(__name__)

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """Change notification. Used as a re-run trigger only, never trusted over a fresh read"""
    type: str
    object: Resource


WatchHandler = Callable[[WatchEvent], None]


class ResourceStore(ABC):
    """
    Declarative resource store

    Guarantees relied upon by the reconcilers:
    - create fails with AlreadyExistsError on a (kind, namespace, name) collision
    - update fails with ConflictError on a stale resourceVersion
    - delete of an object carrying finalizers only sets deletionTimestamp
    - an object being deleted is purged once its last finalizer is removed
    - purging an object deletes every dependent it controls (cascade)
    - every write bumps one global revision; revision order is commit order
    """

    def __init__(self):
        self._watchers: List[WatchHandler] = []
        self._watch_lock = threading.Lock()

    # === Watch ===

    def watch(self, handler: WatchHandler) -> Callable[[], None]:
        """
        Register a change handler

        Returns:
            Callable that removes the handler again
        """
        with self._watch_lock:
            self._watchers.append(handler)

        def unsubscribe() -> None:
            with self._watch_lock:
                if handler in self._watchers:
                    self._watchers.remove(handler)

        return unsubscribe

    def _notify(self, event_type: str, obj: Resource) -> None:
        with self._watch_lock:
            watchers = list(self._watchers)
        for handler in watchers:
            try:
                handler(WatchEvent(type=event_type, object=obj.model_copy(deep=True)))
            except Exception as e:
                logger.error(f"Watch handler failed for {event_type} {obj.kind} {obj.name}: {e}")

    # === CRUD ===

    @abstractmethod
    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        """Raises NotFoundError"""

    @abstractmethod
    def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        """List objects of a kind, optionally restricted to one namespace"""

    @abstractmethod
    def create(self, obj: Resource) -> Resource:
        """Raises AlreadyExistsError"""

    @abstractmethod
    def update(self, obj: Resource) -> Resource:
        """Raises NotFoundError, ConflictError"""

    @abstractmethod
    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Resource]:
        """
        Delete or mark for deletion

        Returns:
            The object still present (deletionTimestamp set), or None if purged

        Raises:
            NotFoundError
        """

    # === Shared helpers ===

    @staticmethod
    def _scope(kind: str, namespace: Optional[str]) -> Optional[str]:
        """Cluster-scoped kinds never carry a namespace"""
        return namespace if is_namespaced(kind) else None

    def _prepare_create(self, obj: Resource, revision: int) -> Resource:
        """Fill store-owned metadata on a new object"""
        new = obj.model_copy(deep=True)
        new.metadata.namespace = self._scope(new.kind, new.metadata.namespace)
        new.metadata.uid = str(uuid.uuid4())
        new.metadata.resource_version = revision
        new.metadata.creation_revision = revision
        new.metadata.creation_timestamp = utcnow()
        new.metadata.deletion_timestamp = None
        return new

    @staticmethod
    def _prepare_update(current: Resource, obj: Resource, revision: int) -> Resource:
        """Apply a client update, keeping store-owned metadata from the stored copy"""
        new = obj.model_copy(deep=True)
        new.metadata.namespace = current.metadata.namespace
        new.metadata.uid = current.metadata.uid
        new.metadata.creation_revision = current.metadata.creation_revision
        new.metadata.creation_timestamp = current.metadata.creation_timestamp
        new.metadata.deletion_timestamp = current.metadata.deletion_timestamp
        new.metadata.resource_version = revision
        return new

    @staticmethod
    def _is_dependent(obj: Resource, owner_uid: str) -> bool:
        ref = obj.controller_reference()
        return ref is not None and ref.uid == owner_uid

    def _cascade(self, owner: Resource) -> None:
        """
        Delete every object controlled by a purged owner

        Runs after the owner's write has committed; dependents keep their
        own finalizers and are only marked for deletion while those remain.
        Purging a dependent cascades further through delete().
        """
        for kind in RESOURCE_KINDS:
            for dependent in self.list(kind):
                if not self._is_dependent(dependent, owner.metadata.uid):
                    continue
                logger.debug(
                    f"Cascade delete {dependent.kind} {dependent.namespace}/{dependent.name} "
                    f"owned by {owner.kind} {owner.name}"
                )
                try:
                    self.delete(dependent.kind, dependent.name, dependent.namespace)
                except NotFoundError:
                    continue

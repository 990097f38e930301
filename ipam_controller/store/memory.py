# ipam_controller/store/memory.py
"""
In-memory Resource Store
Lock-protected dictionary keyed by (kind, namespace, name)
"""

from typing import Dict, List, Optional, Tuple
import threading

from ipam_controller.errors import AlreadyExistsError, ConflictError, NotFoundError
from ipam_controller.schemas import Resource
from ipam_controller.schemas.base import utcnow
from .base import ADDED, DELETED, MODIFIED, ResourceStore

Key = Tuple[str, Optional[str], str]


class MemoryResourceStore(ResourceStore):
    """
    Process-local store

    All reads and writes happen under one lock; watch handlers and cascade
    deletion run after the lock is released.
    """

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._data: Dict[Key, Resource] = {}
        self._revision = 0

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    def _next_revision(self) -> int:
        self._revision += 1
        return self._revision

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        key = (kind, self._scope(kind, namespace), name)
        with self._lock:
            obj = self._data.get(key)
            if obj is None:
                raise NotFoundError(f"{kind} {namespace}/{name} not found")
            return obj.model_copy(deep=True)

    def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        with self._lock:
            items = [
                obj.model_copy(deep=True)
                for key, obj in self._data.items()
                if key[0] == kind and (namespace is None or key[1] == namespace)
            ]
        return sorted(items, key=lambda o: (o.metadata.namespace or "", o.metadata.name))

    def create(self, obj: Resource) -> Resource:
        with self._lock:
            key = (obj.kind, self._scope(obj.kind, obj.metadata.namespace), obj.metadata.name)
            if key in self._data:
                raise AlreadyExistsError(f"{obj.kind} {key[1]}/{key[2]} already exists")
            new = self._prepare_create(obj, self._next_revision())
            self._data[key] = new
            result = new.model_copy(deep=True)

        self._notify(ADDED, result)
        return result

    def update(self, obj: Resource) -> Resource:
        purged = False
        with self._lock:
            key = (obj.kind, self._scope(obj.kind, obj.metadata.namespace), obj.metadata.name)
            current = self._data.get(key)
            if current is None:
                raise NotFoundError(f"{obj.kind} {key[1]}/{key[2]} not found")
            if current.metadata.resource_version != obj.metadata.resource_version:
                raise ConflictError(
                    f"{obj.kind} {key[1]}/{key[2]} was modified "
                    f"(have {obj.metadata.resource_version}, store {current.metadata.resource_version})"
                )
            new = self._prepare_update(current, obj, self._next_revision())
            if new.is_deleting and not new.metadata.finalizers:
                del self._data[key]
                purged = True
            else:
                self._data[key] = new
            result = new.model_copy(deep=True)

        if purged:
            self._notify(DELETED, result)
            self._cascade(result)
        else:
            self._notify(MODIFIED, result)
        return result

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Resource]:
        with self._lock:
            key = (kind, self._scope(kind, namespace), name)
            current = self._data.get(key)
            if current is None:
                raise NotFoundError(f"{kind} {key[1]}/{key[2]} not found")

            if current.metadata.finalizers:
                if current.is_deleting:
                    return current.model_copy(deep=True)
                current.metadata.deletion_timestamp = utcnow()
                current.metadata.resource_version = self._next_revision()
                result = current.model_copy(deep=True)
                purged = False
            else:
                del self._data[key]
                self._next_revision()
                result = current.model_copy(deep=True)
                purged = True

        if purged:
            self._notify(DELETED, result)
            self._cascade(result)
            return None
        self._notify(MODIFIED, result)
        return result

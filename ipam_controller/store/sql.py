# ipam_controller/store/sql.py
"""
SQL Resource Store
Objects are persisted as JSON rows; uniqueness and revision ordering
come from the database transaction
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ipam_controller.database import (
    CLUSTER_NAMESPACE,
    ResourceRecord,
    StoreRevision,
    build_engine,
    build_session_factory,
    init_db,
)
from ipam_controller.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
)
from ipam_controller.schemas import Resource, resource_class
from ipam_controller.schemas.base import utcnow
from .base import ADDED, DELETED, MODIFIED, ResourceStore

logger = logging.getLogger(__name__)


class SQLResourceStore(ResourceStore):
    """
    SQLAlchemy-backed store

    Every write transaction bumps the single revision row first. The row
    lock serializes writers, so revision order equals commit order.
    """

    def __init__(self, engine: Optional[Engine] = None, database_url: Optional[str] = None):
        super().__init__()
        self.engine = engine or build_engine(database_url)
        init_db(self.engine)
        self.SessionLocal = build_session_factory(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.SessionLocal()
        try:
            yield db
        except OperationalError as e:
            db.rollback()
            logger.warning(f"Resource store backend error: {e}")
            raise StoreUnavailableError(f"Database unavailable: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _bump_revision(db: Session) -> int:
        db.execute(
            update(StoreRevision)
            .where(StoreRevision.id == 1)
            .values(value=StoreRevision.value + 1)
        )
        return db.execute(
            select(StoreRevision.value).where(StoreRevision.id == 1)
        ).scalar_one()

    @staticmethod
    def _find(db: Session, kind: str, namespace: Optional[str], name: str) -> Optional[ResourceRecord]:
        return db.query(ResourceRecord).filter(
            ResourceRecord.kind == kind,
            ResourceRecord.namespace == (namespace or CLUSTER_NAMESPACE),
            ResourceRecord.name == name,
        ).first()

    @staticmethod
    def _load(record: ResourceRecord) -> Resource:
        return resource_class(record.kind).model_validate_json(record.body)

    @staticmethod
    def _dump(obj: Resource) -> str:
        return obj.model_dump_json(by_alias=True)

    @staticmethod
    def _naive(obj: Resource):
        ts = obj.metadata.deletion_timestamp
        return ts.replace(tzinfo=None) if ts is not None else None

    # === Reads ===

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Resource:
        namespace = self._scope(kind, namespace)
        with self._session() as db:
            record = self._find(db, kind, namespace, name)
            if record is None:
                raise NotFoundError(f"{kind} {namespace}/{name} not found")
            return self._load(record)

    def list(self, kind: str, namespace: Optional[str] = None) -> List[Resource]:
        with self._session() as db:
            query = db.query(ResourceRecord).filter(ResourceRecord.kind == kind)
            if namespace is not None:
                query = query.filter(ResourceRecord.namespace == namespace)
            records = query.order_by(ResourceRecord.namespace, ResourceRecord.name).all()
            return [self._load(record) for record in records]

    # === Writes ===

    def create(self, obj: Resource) -> Resource:
        namespace = self._scope(obj.kind, obj.metadata.namespace)
        with self._session() as db:
            revision = self._bump_revision(db)
            new = self._prepare_create(obj, revision)
            db.add(ResourceRecord(
                kind=new.kind,
                namespace=namespace or CLUSTER_NAMESPACE,
                name=new.metadata.name,
                uid=new.metadata.uid,
                resource_version=revision,
                creation_revision=revision,
                body=self._dump(new),
            ))
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise AlreadyExistsError(
                    f"{obj.kind} {namespace}/{obj.metadata.name} already exists"
                ) from e

        self._notify(ADDED, new)
        return new

    def update(self, obj: Resource) -> Resource:
        namespace = self._scope(obj.kind, obj.metadata.namespace)
        with self._session() as db:
            revision = self._bump_revision(db)
            record = self._find(db, obj.kind, namespace, obj.metadata.name)
            if record is None:
                raise NotFoundError(f"{obj.kind} {namespace}/{obj.metadata.name} not found")
            if record.resource_version != obj.metadata.resource_version:
                raise ConflictError(
                    f"{obj.kind} {namespace}/{obj.metadata.name} was modified "
                    f"(have {obj.metadata.resource_version}, store {record.resource_version})"
                )

            new = self._prepare_update(self._load(record), obj, revision)
            purged = new.is_deleting and not new.metadata.finalizers
            if purged:
                db.delete(record)
            else:
                record.body = self._dump(new)
                record.resource_version = revision
            db.commit()

        if purged:
            self._notify(DELETED, new)
            self._cascade(new)
        else:
            self._notify(MODIFIED, new)
        return new

    def delete(self, kind: str, name: str, namespace: Optional[str] = None) -> Optional[Resource]:
        namespace = self._scope(kind, namespace)
        with self._session() as db:
            revision = self._bump_revision(db)
            record = self._find(db, kind, namespace, name)
            if record is None:
                raise NotFoundError(f"{kind} {namespace}/{name} not found")

            current = self._load(record)
            if current.metadata.finalizers:
                if current.is_deleting:
                    # nothing to write, the session closes without commit
                    return current
                current.metadata.deletion_timestamp = utcnow()
                current.metadata.resource_version = revision
                record.body = self._dump(current)
                record.resource_version = revision
                record.deletion_timestamp = self._naive(current)
                db.commit()
                purged = False
            else:
                db.delete(record)
                db.commit()
                purged = True

        if purged:
            self._notify(DELETED, current)
            self._cascade(current)
            return None
        self._notify(MODIFIED, current)
        return current

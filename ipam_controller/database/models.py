# ipam_controller/database/models.py
"""
SQLAlchemy Database Models for the SQL Resource Store
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()

# Cluster-scoped objects are stored under the empty namespace so the
# unique constraint also covers them (NULLs never collide in SQL)
CLUSTER_NAMESPACE = ""


class ResourceRecord(Base):
    """
    Resources table - one row per stored object
    The unique (kind, namespace, name) constraint is the create-on-unique-name guarantee
    """
    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity
    kind = Column(String(63), nullable=False,
                  comment="Resource kind, e.g. IPAddressClaim")
    namespace = Column(String(253), nullable=False, default=CLUSTER_NAMESPACE,
                       comment="Namespace, empty for cluster-scoped kinds")
    name = Column(String(253), nullable=False,
                  comment="Object name")
    uid = Column(String(36), unique=True, nullable=False)

    # Versioning
    resource_version = Column(Integer, nullable=False,
                              comment="Store revision of the last write")
    creation_revision = Column(Integer, nullable=False,
                               comment="Store revision of the create")

    # Body
    body = Column(Text, nullable=False,
                  comment="JSON-encoded object (camelCase)")

    # Timestamps
    deletion_timestamp = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('kind', 'namespace', 'name', name='uq_resources_kind_namespace_name'),
        Index('ix_resources_kind_namespace', 'kind', 'namespace'),
    )

    def __repr__(self):
        return f"<ResourceRecord(kind={self.kind}, namespace={self.namespace}, name={self.name})>"


class StoreRevision(Base):
    """
    Single-row revision counter
    Bumped first in every write transaction, which serializes writers
    so that revision order equals commit order
    """
    __tablename__ = "store_revision"

    id = Column(Integer, primary_key=True)
    value = Column(Integer, nullable=False, default=0)

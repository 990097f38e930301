"""
Database modules
"""

from .session import build_engine, build_session_factory, init_db
from .models import Base, ResourceRecord, StoreRevision, CLUSTER_NAMESPACE

__all__ = [
    # Session
    "build_engine",
    "build_session_factory",
    "init_db",
    # Models
    "Base",
    "ResourceRecord",
    "StoreRevision",
    "CLUSTER_NAMESPACE",
]

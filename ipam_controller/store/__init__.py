"""
Resource store: interface and reference implementations
"""

from .base import ADDED, DELETED, MODIFIED, ResourceStore, WatchEvent, WatchHandler
from .memory import MemoryResourceStore
from .sql import SQLResourceStore

__all__ = [
    "ADDED",
    "DELETED",
    "MODIFIED",
    "ResourceStore",
    "WatchEvent",
    "WatchHandler",
    "MemoryResourceStore",
    "SQLResourceStore",
]

# ipam_controller/core/__init__.py
"""
Core business logic modules
"""

from .address_space import AddressDomain, allocatable, parse_address
from .allocator import Allocator, allocator, allocate
from .pool_resolver import PoolResolver, is_supported, references
from .claim_state import ClaimSnapshot, ClaimState, TRANSITIONS, can_transition, derive_state
from .controller import Controller, ReconcileResult
from .workqueue import RateLimitingQueue
from .claim_reconciler import ClaimReconciler
from .pool_reconciler import PoolReconciler

__all__ = [
    # Address space
    "AddressDomain",
    "allocatable",
    "parse_address",
    # Allocator
    "Allocator",
    "allocator",
    "allocate",
    # Pool resolver
    "PoolResolver",
    "is_supported",
    "references",
    # Claim state
    "ClaimSnapshot",
    "ClaimState",
    "TRANSITIONS",
    "can_transition",
    "derive_state",
    # Scheduling
    "Controller",
    "ReconcileResult",
    "RateLimitingQueue",
    # Reconcilers
    "ClaimReconciler",
    "PoolReconciler",
]

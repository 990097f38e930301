# ipam_controller/errors.py
"""Exception hierarchy.

Allocation errors inherit from IPAMError, resource store errors from
StoreError. Reconcilers decide per class whether a failure is a no-op,
a status update or a retry.
"""


class IPAMError(Exception):
    """Base exception for allocation errors."""


class InvalidPoolSpec(IPAMError, ValueError):
    """Pool spec cannot be turned into an address domain (permanent until edited)."""


class PoolExhausted(IPAMError, RuntimeError):
    """Pool has no free address left (transient, capacity may grow)."""


class PoolNotFound(IPAMError, LookupError):
    """Referenced pool does not exist (yet)."""


class UnsupportedKind(IPAMError):
    """Pool reference points at a kind this controller does not own."""


class StoreError(Exception):
    """Base exception for resource store failures."""


class NotFoundError(StoreError, LookupError):
    """Object does not exist."""


class AlreadyExistsError(StoreError):
    """Create collided with an existing object of the same name and namespace."""


class ConflictError(StoreError):
    """Update carried a stale resourceVersion, or a concurrent write won."""


class StoreUnavailableError(StoreError):
    """Backend failure that is expected to heal on retry."""

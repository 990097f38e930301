"""Pytest configuration and shared fixtures.

This module defines:
- Store fixtures (in-memory and SQLite-backed)
- Builders for pools and claims
- An `eventually` polling helper for tests running real worker threads
"""

import time
from typing import Callable, List, Optional

import pytest

from ipam_controller.database import build_engine
from ipam_controller.schemas import (
    API_GROUP,
    ClaimSpec,
    GlobalInClusterIPPool,
    InClusterIPPool,
    IPAddressClaim,
    ObjectMeta,
    PoolSpec,
    TypedObjectReference,
)
from ipam_controller.store import MemoryResourceStore, SQLResourceStore


@pytest.fixture
def store() -> MemoryResourceStore:
    return MemoryResourceStore()


@pytest.fixture
def sql_store() -> SQLResourceStore:
    return SQLResourceStore(engine=build_engine("sqlite://"))


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    """Runs a test once per store implementation"""
    if request.param == "memory":
        return MemoryResourceStore()
    return SQLResourceStore(engine=build_engine("sqlite://"))


def make_pool(
    name: str,
    namespace: Optional[str] = "default",
    first: Optional[str] = None,
    last: Optional[str] = None,
    addresses: Optional[List[str]] = None,
    prefix: int = 24,
    gateway: Optional[str] = None,
    global_pool: bool = False,
) -> InClusterIPPool:
    spec = PoolSpec(
        first=first,
        last=last,
        addresses=addresses or [],
        prefix=prefix,
        gateway=gateway,
    )
    if global_pool:
        return GlobalInClusterIPPool(metadata=ObjectMeta(name=name), spec=spec)
    return InClusterIPPool(metadata=ObjectMeta(name=name, namespace=namespace), spec=spec)


def make_claim(
    name: str,
    pool_name: str,
    namespace: str = "default",
    kind: str = "InClusterIPPool",
    api_group: Optional[str] = API_GROUP,
) -> IPAddressClaim:
    return IPAddressClaim(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=ClaimSpec(pool_ref=TypedObjectReference(api_group=api_group, kind=kind, name=pool_name)),
    )


def eventually(check: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll until check() is truthy or the timeout expires"""
    deadline = time.monotonic() + timeout
    while True:
        try:
            if check():
                return True
        except LookupError:
            pass
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)


def consistently(check: Callable[[], bool], duration: float = 1.0, interval: float = 0.05) -> bool:
    """check() must stay truthy for the whole duration"""
    deadline = time.monotonic() + duration
    while time.monotonic() < deadline:
        if not check():
            return False
        time.sleep(interval)
    return True

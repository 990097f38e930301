# ipam_controller/core/claim_state.py
"""
Claim lifecycle state
Derived once per reconcile from a fresh read of the claim and its address
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from ipam_controller.schemas import IPAddress, IPAddressClaim


class ClaimState(str, Enum):
    """Claim lifecycle state"""
    UNBOUND = "unbound"        # no address yet, not being deleted
    BOUND = "bound"            # address allocated (it may have vanished since)
    RELEASING = "releasing"    # claim has a deletion timestamp
    RELEASED = "released"      # claim is gone


# Legal transitions; staying in the same state is always allowed
TRANSITIONS: Dict[ClaimState, FrozenSet[ClaimState]] = {
    ClaimState.UNBOUND: frozenset({ClaimState.BOUND, ClaimState.RELEASING}),
    ClaimState.BOUND: frozenset({ClaimState.RELEASING}),
    ClaimState.RELEASING: frozenset({ClaimState.RELEASED}),
    ClaimState.RELEASED: frozenset(),
}


def can_transition(current: ClaimState, target: ClaimState) -> bool:
    return current == target or target in TRANSITIONS[current]


def owns_address(claim: IPAddressClaim, address: IPAddress) -> bool:
    """
    The address belongs to this incarnation of the claim

    claimRef only carries the name, so the controller owner reference uid
    tells a recreated claim apart from the one that created the address.
    """
    if address.spec.claim_ref.name != claim.name:
        return False
    ref = address.controller_reference()
    return ref is not None and ref.kind == claim.kind and ref.uid == claim.metadata.uid


def is_populated(address: IPAddress) -> bool:
    return bool(address.spec.address) and address.spec.pool_ref is not None


@dataclass
class ClaimSnapshot:
    """Result of one fresh read: the claim, its address and the derived state"""
    state: ClaimState
    claim: Optional[IPAddressClaim] = None
    address: Optional[IPAddress] = None

    @property
    def address_owned(self) -> bool:
        return (
            self.claim is not None
            and self.address is not None
            and owns_address(self.claim, self.address)
        )


def derive_state(claim: Optional[IPAddressClaim], address: Optional[IPAddress]) -> ClaimState:
    """
    Compute the claim state

    - no claim: RELEASED
    - deletion timestamp: RELEASING
    - owned, populated, live address, or status already records a binding: BOUND
    - otherwise: UNBOUND
    """
    if claim is None:
        return ClaimState.RELEASED
    if claim.is_deleting:
        return ClaimState.RELEASING
    if (
        address is not None
        and not address.is_deleting
        and owns_address(claim, address)
        and is_populated(address)
    ):
        return ClaimState.BOUND
    if claim.status.address_ref is not None:
        return ClaimState.BOUND
    return ClaimState.UNBOUND


def snapshot(claim: Optional[IPAddressClaim], address: Optional[IPAddress]) -> ClaimSnapshot:
    return ClaimSnapshot(state=derive_state(claim, address), claim=claim, address=address)

# ipam_controller/core/allocator.py
"""
Allocator
Picks the lowest free address of a pool, or reports exhaustion
"""

from typing import Iterable, List, Union
import logging

from ipam_controller.errors import InvalidPoolSpec, PoolExhausted
from ipam_controller.schemas import PoolAddressesStatus, PoolSpec
from .address_space import Address, AddressDomain, parse_address

logger = logging.getLogger(__name__)


class Allocator:
    """
    Stateless allocator

    Nothing is cached between calls: the caller lists the pool's live
    addresses right before every attempt and passes them in. Two callers
    with the same inputs always get the same candidate, so a retry after a
    failed write reproduces the choice instead of skipping addresses.
    """

    @staticmethod
    def _parse_used(used_addresses: Iterable[Union[str, Address]]) -> List[Address]:
        used = []
        for value in used_addresses:
            if not isinstance(value, str):
                used.append(value)
                continue
            try:
                used.append(parse_address(value))
            except InvalidPoolSpec:
                logger.warning(f"Ignoring unparsable address {value!r} in pool usage")
        return used

    def allocate(self, spec: PoolSpec, used_addresses: Iterable[Union[str, Address]]) -> Address:
        """
        Allocate the numerically lowest free address

        Args:
            spec: Pool spec
            used_addresses: Values of every live address in the pool

        Returns:
            The chosen address

        Raises:
            InvalidPoolSpec: If the pool spec is malformed
            PoolExhausted: If every allocatable address is used
        """
        domain = AddressDomain.from_spec(spec)
        candidate = domain.lowest_free(self._parse_used(used_addresses))
        if candidate is None:
            raise PoolExhausted(f"IP pool exhausted. All {domain.size()} addresses are in use.")
        return candidate

    def pool_usage(self, spec: PoolSpec, used_addresses: Iterable[Union[str, Address]]) -> PoolAddressesStatus:
        """
        Get pool usage counters

        Addresses that no longer fall inside an edited pool are counted
        as out of range instead of used.

        Raises:
            InvalidPoolSpec: If the pool spec is malformed
        """
        domain = AddressDomain.from_spec(spec)
        used = set(self._parse_used(used_addresses))
        in_range = sum(1 for address in used if address in domain)
        total = domain.size()

        return PoolAddressesStatus(
            total=total,
            used=in_range,
            free=max(total - in_range, 0),
            out_of_range=len(used) - in_range,
        )


allocator = Allocator()


def allocate(spec: PoolSpec, used_addresses: Iterable[Union[str, Address]]) -> Address:
    """Shortcut for allocator.allocate()"""
    return allocator.allocate(spec, used_addresses)

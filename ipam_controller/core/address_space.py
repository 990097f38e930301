# ipam_controller/core/address_space.py
"""
Address Space Model
Turns a pool spec into an ordered, deduplicated domain of allocatable addresses
"""

import ipaddress
from typing import Dict, Iterable, Iterator, List, Optional, Set, Tuple, Union
import logging

from ipam_controller.errors import InvalidPoolSpec
from ipam_controller.schemas import PoolSpec

logger = logging.getLogger(__name__)

Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

# (ip version, first as int, last as int), both ends inclusive
Interval = Tuple[int, int, int]

MAX_PREFIX = {4: 32, 6: 128}


def parse_address(value: str) -> Address:
    """Parse a single address, raising InvalidPoolSpec on bad input"""
    try:
        return ipaddress.ip_address(str(value).strip())
    except ValueError as e:
        raise InvalidPoolSpec(f"Invalid address {value!r}: {e}")


def _to_address(version: int, value: int) -> Address:
    if version == 4:
        return ipaddress.IPv4Address(value)
    return ipaddress.IPv6Address(value)


def _range_interval(first: Address, last: Address) -> Interval:
    if first.version != last.version:
        raise InvalidPoolSpec(f"Range {first}-{last} mixes address families")
    if int(first) > int(last):
        raise InvalidPoolSpec(f"Range start {first} is after range end {last}")
    return (first.version, int(first), int(last))


def _cidr_interval(entry: str) -> Interval:
    try:
        network = ipaddress.ip_network(entry.strip(), strict=False)
    except ValueError as e:
        raise InvalidPoolSpec(f"Invalid CIDR {entry!r}: {e}")

    start = int(network.network_address)
    end = int(network.broadcast_address)
    # usable hosts, same rules as ipaddress' hosts()
    if network.version == 4 and network.prefixlen < 31:
        start, end = start + 1, end - 1
    elif network.version == 6 and network.prefixlen < 127:
        start += 1
    return (network.version, start, end)


def _entry_interval(entry: str) -> Interval:
    """A list entry is a single address, an "a-b" range or a CIDR block"""
    if "/" in entry:
        return _cidr_interval(entry)
    if "-" in entry:
        first, _, last = entry.partition("-")
        return _range_interval(parse_address(first), parse_address(last))
    address = parse_address(entry)
    return (address.version, int(address), int(address))


def _merge(intervals: Iterable[Interval]) -> List[Interval]:
    """Sort and merge overlapping or adjacent intervals of the same family"""
    merged: List[Interval] = []
    for version, start, end in sorted(intervals):
        if merged and merged[-1][0] == version and start <= merged[-1][2] + 1:
            last_version, last_start, last_end = merged[-1]
            merged[-1] = (last_version, last_start, max(last_end, end))
        else:
            merged.append((version, start, end))
    return merged


def _ordered_segments(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Disjoint pieces of the intervals in the order they were given

    Values already covered by an earlier interval are dropped from later
    ones, so duplicates keep their first position.
    """
    covered: List[Interval] = []
    segments: List[Interval] = []
    for version, start, end in intervals:
        pieces = [(start, end)]
        for cov_version, cov_start, cov_end in covered:
            if cov_version != version:
                continue
            remaining = []
            for piece_start, piece_end in pieces:
                if cov_end < piece_start or cov_start > piece_end:
                    remaining.append((piece_start, piece_end))
                    continue
                if piece_start < cov_start:
                    remaining.append((piece_start, cov_start - 1))
                if piece_end > cov_end:
                    remaining.append((cov_end + 1, piece_end))
            pieces = remaining
        segments.extend((version, piece_start, piece_end) for piece_start, piece_end in pieces)
        covered = _merge(covered + [(version, start, end)])
    return segments


class AddressDomain:
    """
    Allocatable addresses of one pool

    Iteration follows the pool spec: a range ascends from first to last, a
    list yields its entries in declaration order with duplicates kept at
    their first position. The gateway is never part of the domain.

    Large ranges are never materialised; size, membership and lowest-free
    lookups work on merged intervals. lowest_free picks the numerically
    lowest free address; declaration order only decides between families.
    """

    def __init__(
        self,
        intervals: List[Interval],
        prefix: int,
        gateway: Optional[Address] = None,
        family_order: Optional[Dict[int, int]] = None,
    ):
        self.prefix = prefix
        self.gateway = gateway
        self._family_order = family_order or {}
        self._segments = _ordered_segments(intervals)
        self._intervals = sorted(
            _merge(intervals),
            key=lambda i: (self._family_order.get(i[0], i[0]), i[1]),
        )

    @classmethod
    def from_spec(cls, spec: PoolSpec) -> "AddressDomain":
        """
        Build the domain of a pool spec

        Raises:
            InvalidPoolSpec: both or neither of range/list set, first > last,
                unparsable address, prefix out of range for the family
        """
        has_range = bool(spec.first) or bool(spec.last)
        has_list = bool(spec.addresses)

        if has_range and has_list:
            raise InvalidPoolSpec("Pool sets both first/last and addresses")
        if not has_range and not has_list:
            raise InvalidPoolSpec("Pool sets neither first/last nor addresses")

        family_order: Dict[int, int] = {}
        if has_range:
            if not spec.first or not spec.last:
                raise InvalidPoolSpec("Range pools need both first and last")
            intervals = [_range_interval(parse_address(spec.first), parse_address(spec.last))]
        else:
            intervals = [_entry_interval(entry) for entry in spec.addresses]
            for version, _, _ in intervals:
                family_order.setdefault(version, len(family_order))

        for version in {i[0] for i in intervals}:
            if not 0 <= spec.prefix <= MAX_PREFIX[version]:
                raise InvalidPoolSpec(
                    f"Prefix {spec.prefix} is out of range for IPv{version}"
                )

        gateway = parse_address(spec.gateway) if spec.gateway else None
        return cls(intervals, spec.prefix, gateway, family_order)

    def _in_intervals(self, address: Address) -> bool:
        value = int(address)
        return any(
            version == address.version and start <= value <= end
            for version, start, end in self._intervals
        )

    def __contains__(self, address) -> bool:
        if isinstance(address, str):
            address = parse_address(address)
        if self.gateway is not None and address == self.gateway:
            return False
        return self._in_intervals(address)

    def size(self) -> int:
        total = sum(end - start + 1 for _, start, end in self._intervals)
        if self.gateway is not None and self._in_intervals(self.gateway):
            total -= 1
        return total

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[Address]:
        for version, start, end in self._segments:
            for value in range(start, end + 1):
                address = _to_address(version, value)
                if address != self.gateway:
                    yield address

    def lowest_free(self, used: Iterable[Address]) -> Optional[Address]:
        """
        Lowest address of the domain not in `used`

        Walks each interval from its start and skips taken values, so the
        cost is bounded by the number of used addresses.
        """
        taken: Set[Tuple[int, int]] = {(a.version, int(a)) for a in used}
        if self.gateway is not None:
            taken.add((self.gateway.version, int(self.gateway)))

        for version, start, end in self._intervals:
            candidate = start
            while candidate <= end:
                if (version, candidate) not in taken:
                    return _to_address(version, candidate)
                candidate += 1
        return None


def allocatable(spec: PoolSpec) -> List[Address]:
    """
    Ordered allocatable set of a pool

    Materialises every address; use AddressDomain for large ranges.
    """
    return list(AddressDomain.from_spec(spec))

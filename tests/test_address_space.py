"""Tests for the address space model."""
import ipaddress

import pytest

from ipam_controller.core.address_space import AddressDomain, allocatable
from ipam_controller.errors import InvalidPoolSpec
from ipam_controller.schemas import PoolSpec


def ips(*values):
    return [ipaddress.ip_address(v) for v in values]


class TestRangePools:

    def test_range_is_inclusive_and_ascending(self):
        spec = PoolSpec(first="10.0.0.1", last="10.0.0.4", prefix=24)
        assert allocatable(spec) == ips("10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4")

    def test_gateway_inside_range_is_removed(self):
        spec = PoolSpec(first="10.0.0.1", last="10.0.0.5", prefix=24, gateway="10.0.0.1")
        assert allocatable(spec) == ips("10.0.0.2", "10.0.0.3", "10.0.0.4", "10.0.0.5")

    def test_gateway_outside_range_is_ignored(self):
        spec = PoolSpec(first="10.0.0.10", last="10.0.0.11", prefix=24, gateway="10.0.0.1")
        assert allocatable(spec) == ips("10.0.0.10", "10.0.0.11")
        assert AddressDomain.from_spec(spec).size() == 2

    def test_prefix_does_not_restrict_domain(self):
        spec = PoolSpec(first="10.0.0.250", last="10.0.1.2", prefix=24)
        assert len(allocatable(spec)) == 9

    def test_single_address_range(self):
        spec = PoolSpec(first="10.0.0.7", last="10.0.0.7", prefix=32)
        assert allocatable(spec) == ips("10.0.0.7")

    def test_large_ipv6_range_is_not_materialised(self):
        spec = PoolSpec(first="fd00::1", last="fd00::ffff:ffff:ffff", prefix=64)
        domain = AddressDomain.from_spec(spec)
        assert domain.size() == 0xFFFFFFFFFFFF
        assert ipaddress.ip_address("fd00::1234") in domain
        assert domain.lowest_free(ips("fd00::1", "fd00::2")) == ipaddress.ip_address("fd00::3")


class TestListPools:

    def test_declared_addresses(self):
        spec = PoolSpec(addresses=["10.0.0.50", "10.0.0.128"], prefix=24, gateway="10.0.0.1")
        assert allocatable(spec) == ips("10.0.0.50", "10.0.0.128")

    def test_duplicates_are_removed(self):
        spec = PoolSpec(addresses=["10.0.0.5", "10.0.0.5", "10.0.0.4"], prefix=24)
        assert allocatable(spec) == ips("10.0.0.5", "10.0.0.4")

    def test_range_and_cidr_entries(self):
        spec = PoolSpec(addresses=["10.0.0.1-10.0.0.3", "10.0.1.0/30"], prefix=24)
        assert allocatable(spec) == ips(
            "10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.1.1", "10.0.1.2",
        )

    def test_overlapping_entries_are_merged(self):
        spec = PoolSpec(addresses=["10.0.0.1-10.0.0.4", "10.0.0.3-10.0.0.6"], prefix=24)
        assert AddressDomain.from_spec(spec).size() == 6

    def test_gateway_in_list_is_removed(self):
        spec = PoolSpec(addresses=["10.0.0.1", "10.0.0.2"], prefix=24, gateway="10.0.0.1")
        assert allocatable(spec) == ips("10.0.0.2")

    def test_declaration_order_is_kept(self):
        spec = PoolSpec(addresses=["10.0.0.128", "10.0.0.50"], prefix=24)
        assert allocatable(spec) == ips("10.0.0.128", "10.0.0.50")

    def test_overlapping_entries_keep_first_position(self):
        spec = PoolSpec(addresses=["10.0.0.3-10.0.0.6", "10.0.0.1-10.0.0.4", "10.0.0.5"], prefix=24)
        assert allocatable(spec) == ips(
            "10.0.0.3", "10.0.0.4", "10.0.0.5", "10.0.0.6", "10.0.0.1", "10.0.0.2",
        )

    def test_mixed_families_follow_declaration_order(self):
        spec = PoolSpec(addresses=["fd00::5", "10.0.0.9", "fd00::1"], prefix=24)
        assert allocatable(spec) == ips("fd00::5", "10.0.0.9", "fd00::1")

    def test_lowest_free_is_numeric_within_family(self):
        spec = PoolSpec(addresses=["fd00::5", "10.0.0.9", "fd00::1", "10.0.0.2"], prefix=24)
        domain = AddressDomain.from_spec(spec)
        assert domain.lowest_free([]) == ipaddress.ip_address("fd00::1")
        used = ips("fd00::1", "fd00::5")
        assert domain.lowest_free(used) == ipaddress.ip_address("10.0.0.2")


class TestInvalidSpecs:

    @pytest.mark.parametrize("spec", [
        PoolSpec(first="10.0.0.1", last="10.0.0.5", addresses=["10.0.0.9"], prefix=24),
        PoolSpec(prefix=24),
        PoolSpec(first="10.0.0.1", prefix=24),
        PoolSpec(first="10.0.0.9", last="10.0.0.1", prefix=24),
        PoolSpec(first="10.0.0.1", last="fd00::1", prefix=24),
        PoolSpec(first="10.0.0.1", last="10.0.0.300", prefix=24),
        PoolSpec(addresses=["not-an-ip"], prefix=24),
        PoolSpec(addresses=["10.0.0.0/33"], prefix=24),
        PoolSpec(first="10.0.0.1", last="10.0.0.5", prefix=33),
        PoolSpec(first="10.0.0.1", last="10.0.0.5", prefix=24, gateway="gateway"),
    ])
    def test_invalid_spec_is_rejected(self, spec):
        with pytest.raises(InvalidPoolSpec):
            AddressDomain.from_spec(spec)

    def test_ipv6_prefix_above_32_is_valid(self):
        spec = PoolSpec(first="fd00::1", last="fd00::2", prefix=64)
        assert len(allocatable(spec)) == 2

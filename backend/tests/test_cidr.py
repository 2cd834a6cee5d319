"""
Tests for IPv4 CIDR arithmetic and populate planning.
"""

import pytest

from services.cidr import (
    address_in_cidr,
    host_count,
    is_private_ipv4,
    iter_hosts,
    parse_cidr,
    plan_populate,
    subnet_prefix,
)
from services.errors import InvalidCIDR, SubnetTooLarge


class TestParseCidr:

    def test_parses_network_and_broadcast(self):
        block = parse_cidr("10.10.5.0/24")
        assert block.network_address == "10.10.5.0"
        assert block.broadcast_address == "10.10.5.255"
        assert block.prefix_length == 24
        assert block.cidr == "10.10.5.0/24"

    def test_host_bits_are_masked(self):
        assert parse_cidr("192.168.1.77/26").cidr == "192.168.1.64/26"

    def test_slash_zero(self):
        block = parse_cidr("0.0.0.0/0")
        assert block.network_address == "0.0.0.0"
        assert block.broadcast_address == "255.255.255.255"

    @pytest.mark.parametrize("bad", [
        "10.0.0.0",
        "10.0.0.0/33",
        "256.0.0.0/24",
        "10.0.0/24",
        "not-a-cidr",
        "",
        "2001:db8::/32",
    ])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InvalidCIDR):
            parse_cidr(bad)

    def test_invalid_cidr_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_cidr("10.0.0.0/40")

    def test_contains(self):
        block = parse_cidr("10.0.1.0/24")
        assert block.contains("10.0.1.200")
        assert not block.contains("10.0.2.1")
        assert address_in_cidr("172.16.4.9", "172.16.0.0/12")


class TestHostCount:

    @pytest.mark.parametrize("prefix,expected", [
        (24, 254),
        (30, 2),
        (29, 6),
        (20, 4094),
        (16, 65534),
        (31, 0),
        (32, 0),
    ])
    def test_usable_hosts(self, prefix, expected):
        assert host_count(prefix) == expected

    def test_rejects_out_of_range_prefix(self):
        with pytest.raises(InvalidCIDR):
            host_count(33)

    def test_iter_hosts_excludes_network_and_broadcast(self):
        hosts = list(iter_hosts(parse_cidr("10.0.0.0/30")))
        assert hosts == ["10.0.0.1", "10.0.0.2"]


class TestPlanPopulate:

    def test_fresh_slash_24(self):
        plan = plan_populate("10.10.5.0/24", [], min_prefix=20)
        assert len(plan.to_create) == 254
        assert plan.to_create[0] == "10.10.5.1"
        assert plan.to_create[-1] == "10.10.5.254"
        assert plan.existing_count == 0
        assert plan.total_host_count == 254

    def test_existing_addresses_are_skipped(self):
        plan = plan_populate("10.10.5.0/24", ["10.10.5.1", "10.10.5.100"], min_prefix=20)
        assert len(plan.to_create) == 252
        assert "10.10.5.100" not in plan.to_create
        assert plan.existing_count == 2

    def test_network_and_broadcast_rows_are_not_counted(self):
        plan = plan_populate("10.10.5.0/24", ["10.10.5.0", "10.10.5.7", "10.10.5.255"], min_prefix=20)
        assert plan.existing_count == 1
        assert len(plan.to_create) + plan.existing_count == plan.total_host_count

    def test_addresses_owned_elsewhere_are_skipped(self):
        plan = plan_populate(
            "10.0.0.0/20",
            ["10.0.0.9"],
            min_prefix=20,
            taken_elsewhere=["10.0.1.5", "10.0.1.6"],
        )
        assert plan.skipped == ["10.0.1.5", "10.0.1.6"]
        assert plan.existing_count == 1
        assert "10.0.1.5" not in plan.to_create
        assert len(plan.to_create) == 4094 - 3

    def test_too_large_is_refused(self):
        with pytest.raises(SubnetTooLarge):
            plan_populate("10.0.0.0/16", [], min_prefix=20)

    def test_slash_31_creates_nothing(self):
        plan = plan_populate("10.0.0.0/31", [], min_prefix=20)
        assert plan.to_create == []
        assert plan.total_host_count == 0


class TestPrivateRanges:

    @pytest.mark.parametrize("address", ["10.1.2.3", "172.16.0.1", "172.31.255.254", "192.168.1.1"])
    def test_rfc1918(self, address):
        assert is_private_ipv4(address)

    @pytest.mark.parametrize("address", ["8.8.8.8", "172.32.0.1", "192.169.0.1", "100.64.0.1", None, "", "garbage"])
    def test_not_private(self, address):
        assert not is_private_ipv4(address)

    def test_subnet_prefix(self):
        assert subnet_prefix("10.0.1.5") == "10.0.1"

"""
Tests for observation building and /24 grouping.
"""

from datetime import datetime, timezone

from services.grouping import build_observations, group_by_subnet, match_declared_network
from services.inventory import UnifiClientEntry, UnifiDevice, UnifiNetwork


def _client(mac, ip, name=None, connected_at=None):
    return UnifiClientEntry(mac_address=mac, ip_address=ip, name=name, connected_at=connected_at)


class TestBuildObservations:

    def test_macs_are_lowercased(self):
        entries = build_observations([_client("AA:BB:CC:DD:EE:01", "10.0.1.10", "laptop")], [])
        assert entries[0].mac == "aa:bb:cc:dd:ee:01"
        assert entries[0].kind == "client"

    def test_name_falls_back_to_mac_then_ip(self):
        entries = build_observations(
            [_client("aa:bb:cc:dd:ee:01", "10.0.1.10"), _client(None, "10.0.1.11")],
            [],
        )
        assert entries[0].name == "aa:bb:cc:dd:ee:01"
        assert entries[1].name == "10.0.1.11"

    def test_device_model_becomes_vendor(self):
        device = UnifiDevice(mac_address="aa:bb:cc:dd:ee:02", ip_address="10.0.1.2", model="U6-Lite")
        entries = build_observations([], [device])
        assert entries[0].vendor == "U6-Lite"
        assert entries[0].name == "U6-Lite"
        assert entries[0].kind == "device"

    def test_connected_at_is_last_seen(self):
        seen = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        entries = build_observations([_client("aa:bb:cc:dd:ee:01", "10.0.1.10", connected_at=seen)], [])
        assert entries[0].last_seen == seen

    def test_camel_case_payload(self):
        client = UnifiClientEntry.model_validate({
            "macAddress": "AA:BB:CC:DD:EE:03",
            "ipAddress": "192.168.1.50",
            "name": "tv",
            "connectedAt": "2026-01-02T03:04:05Z",
        })
        entry = build_observations([client], [])[0]
        assert entry.mac == "aa:bb:cc:dd:ee:03"
        assert entry.ip == "192.168.1.50"


class TestGroupBySubnet:

    def test_groups_by_first_three_octets(self):
        entries = build_observations([
            _client("aa:00:00:00:00:01", "10.0.1.10"),
            _client("aa:00:00:00:00:02", "10.0.1.11"),
            _client("aa:00:00:00:00:03", "10.0.2.10"),
        ], [])
        groups = group_by_subnet(entries)
        assert list(groups) == ["10.0.1", "10.0.2"]
        assert groups["10.0.1"].cidr == "10.0.1.0/24"
        assert groups["10.0.1"].gateway == "10.0.1.1"
        assert groups["10.0.1"].name == "10.0.1.0/24"
        assert len(groups["10.0.1"].entries) == 2

    def test_skips_public_and_missing_addresses(self):
        entries = build_observations([
            _client("aa:00:00:00:00:01", "8.8.8.8"),
            _client("aa:00:00:00:00:02", None),
            _client("aa:00:00:00:00:03", "192.168.7.20"),
        ], [])
        groups = group_by_subnet(entries)
        assert list(groups) == ["192.168.7"]

    def test_vlan_tag_matching_third_octet_names_the_network(self):
        entries = build_observations([_client("aa:00:00:00:00:01", "10.0.20.5")], [])
        declared = [
            UnifiNetwork(id="a", name="Default", vlan_id=None),
            UnifiNetwork(id="b", name="IoT", vlan_id=20),
        ]
        proposal = group_by_subnet(entries, declared)["10.0.20"]
        assert proposal.name == "IoT"
        assert proposal.vlan_id == 20

    def test_first_declared_network_wins_on_duplicate_vlan(self):
        declared = [
            UnifiNetwork(id="a", name="First", vlan_id=5),
            UnifiNetwork(id="b", name="Second", vlan_id=5),
        ]
        assert match_declared_network(5, declared).name == "First"

        entries = build_observations([_client("aa:00:00:00:00:01", "10.0.5.9")], [])
        assert group_by_subnet(entries, declared)["10.0.5"].name == "First"

    def test_no_match_leaves_vlan_empty(self):
        entries = build_observations([_client("aa:00:00:00:00:01", "10.0.30.5")], [])
        declared = [UnifiNetwork(id="b", name="IoT", vlan_id=20)]
        proposal = group_by_subnet(entries, declared)["10.0.30"]
        assert proposal.vlan_id is None
        assert proposal.name == "10.0.30.0/24"

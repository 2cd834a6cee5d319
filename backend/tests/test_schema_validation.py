"""
Tests for the Pydantic schema validators.

Tests cover both valid and invalid inputs for:
- NetworkCreate and NetworkUpdate
- IPAddressCreate and IPAddressUpdate
- DeviceCreate and DeviceUpdate
- Response schemas with lenience testing
"""

import pytest
from datetime import datetime
from pydantic import ValidationError

from schemas import (
    DeviceCreate, DeviceResponse, DeviceUpdate,
    IPAddressCreate, IPAddressUpdate,
    NetworkCreate, NetworkUpdate,
    SettingsUpdate,
)


class TestNetworkSchemas:

    def test_cidr_is_normalized(self):
        network = NetworkCreate(name="LAN", cidr=" 10.0.1.9/24 ")
        assert network.cidr == "10.0.1.0/24"

    def test_invalid_cidr(self):
        with pytest.raises(ValidationError) as exc_info:
            NetworkCreate(name="LAN", cidr="10.0.1.0/99")
        assert "Prefix length" in str(exc_info.value)

    def test_vlan_range(self):
        NetworkCreate(name="LAN", cidr="10.0.1.0/24", vlan_id=4094)
        with pytest.raises(ValidationError):
            NetworkCreate(name="LAN", cidr="10.0.1.0/24", vlan_id=4095)

    def test_empty_gateway_becomes_none(self):
        assert NetworkCreate(name="LAN", cidr="10.0.1.0/24", gateway="").gateway is None

    def test_ipv6_gateway_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            NetworkCreate(name="LAN", cidr="10.0.1.0/24", gateway="fe80::1")
        assert "Invalid gateway" in str(exc_info.value)

    def test_update_all_optional(self):
        update = NetworkUpdate()
        assert update.model_dump(exclude_unset=True) == {}

    def test_update_validates_cidr(self):
        with pytest.raises(ValidationError):
            NetworkUpdate(cidr="bogus")


class TestIPAddressSchemas:

    def test_default_status(self):
        assert IPAddressCreate(address="10.0.1.5", network_id=1).status == "AVAILABLE"

    def test_status_is_uppercased(self):
        assert IPAddressCreate(address="10.0.1.5", network_id=1, status="in_use").status == "IN_USE"

    @pytest.mark.parametrize("address", ["10.0.1", "10.0.1.256", "0.0.0.0", "fe80::1", "host.lan"])
    def test_invalid_address(self, address):
        with pytest.raises(ValidationError):
            IPAddressCreate(address=address, network_id=1)

    def test_update_rejects_unknown_status(self):
        with pytest.raises(ValidationError) as exc_info:
            IPAddressUpdate(status="BROKEN")
        assert "Allowed values" in str(exc_info.value)


class TestDeviceSchemas:

    def test_mac_normalized(self):
        device = DeviceCreate(name="tv", mac_address="AA-BB-CC-DD-EE-FF")
        assert device.mac_address == "aa:bb:cc:dd:ee:ff"

    def test_empty_mac_becomes_none(self):
        assert DeviceCreate(name="tv", mac_address="").mac_address is None

    def test_invalid_hostname(self):
        with pytest.raises(ValidationError):
            DeviceCreate(name="tv", hostname="bad host!")

    def test_name_required(self):
        with pytest.raises(ValidationError):
            DeviceCreate(name="")

    def test_update_validates_mac(self):
        with pytest.raises(ValidationError):
            DeviceUpdate(mac_address="zz:zz:zz:zz:zz:zz")

    def test_response_is_lenient(self):
        """Synced names and vendors were never validated and must still serialize."""
        response = DeviceResponse(
            id=1,
            name="Living Room TV (Samsung) 📺",
            mac_address="AA:BB:CC:DD:EE:FF",
            hostname="not a valid hostname",
            source="UNIFI",
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        assert response.hostname == "not a valid hostname"


class TestSettingsUpdate:

    def test_extra_keys_become_updates(self):
        payload = SettingsUpdate.model_validate({"UNIFI_URL": "https://unifi.lan", "UNIFI_API_KEY": None})
        assert payload.as_updates() == {"UNIFI_URL": "https://unifi.lan", "UNIFI_API_KEY": None}

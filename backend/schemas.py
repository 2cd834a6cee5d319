"""
Pydantic v2 schemas with strict input validation and lenient output serialization.

Architecture:
  - *Fields classes: pure field definitions, no validators.  Shared by both
    input (Create/Update) and output (Response) schemas.
  - *Create / *Update classes: inherit from *Fields and ADD strict validators
    so bad data is rejected early with clear, actionable error messages.
  - *Response classes: inherit from *Fields directly (no validators) so any
    data already in the database serializes without crashing.

This separation matters because the inventory sync writes directly to the
DB models and never goes through the API schemas (e.g. a device name
taken verbatim from the controller).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import DeviceSource, IPStatus
from services.cidr import CIDR_RE, parse_cidr


# ── Allowed value sets (for input validation) ────────────────────────

VALID_IP_STATUSES = frozenset(s.value for s in IPStatus)
VALID_DEVICE_SOURCES = frozenset(s.value for s in DeviceSource)

# ── Reusable validators ──────────────────────────────────────────────

MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}[:\-]){5}[0-9A-Fa-f]{2}$")
HOSTNAME_RE = re.compile(r"^[a-zA-Z0-9._\-]+$")
IPV4_RE = re.compile(r"^(\d{1,3})\.(\d{1,3})\.(\d{1,3})\.(\d{1,3})$")


def _validate_ipv4(value: str, field_name: str = "IP address") -> str:
    """Validate a dotted-quad IPv4 address string."""
    match = IPV4_RE.match(value)
    if not match or any(int(octet) > 255 for octet in match.groups()):
        raise ValueError(
            f"Invalid {field_name} '{value}'. Expected IPv4 (e.g. 192.168.1.1)"
        )
    if value == "0.0.0.0":
        raise ValueError(f"Unspecified {field_name} ({value}) is not allowed")
    return value


def _validate_mac(value: str) -> str:
    """Validate a MAC address string and normalize it to lowercase colon form."""
    if not MAC_RE.match(value):
        raise ValueError(
            f"Invalid MAC address '{value}'. "
            "Expected format XX:XX:XX:XX:XX:XX or XX-XX-XX-XX-XX-XX "
            "(6 pairs of hex digits)"
        )
    return value.replace("-", ":").lower()


def _validate_hostname(value: str) -> str:
    """Validate a hostname string."""
    if len(value) > 255:
        raise ValueError(
            "Hostname too long. Maximum 255 characters allowed"
        )
    if not HOSTNAME_RE.match(value):
        raise ValueError(
            f"Invalid hostname '{value}'. "
            "Use only alphanumeric characters, hyphens, dots, and underscores"
        )
    return value


def _validate_status(value: str) -> str:
    upper = value.upper()
    if upper not in VALID_IP_STATUSES:
        raise ValueError(
            f"Invalid status '{value}'. "
            f"Allowed values: {', '.join(sorted(VALID_IP_STATUSES))}"
        )
    return upper


# ═══════════════════════════════════════════════════════════════════════
# NETWORK SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class NetworkFields(BaseModel):
    """Pure field definitions for networks.  No validators."""

    name: str = Field(..., min_length=1, max_length=255)
    cidr: str
    vlan_id: Optional[int] = None  # 802.1Q tag; the sync may store any tag the controller reports
    gateway: Optional[str] = None
    description: Optional[str] = Field(None, max_length=5000)


class _NetworkValidators:
    """Mixin-style validators reused by NetworkCreate and NetworkUpdate."""

    @field_validator("cidr")
    @classmethod
    def validate_cidr(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not CIDR_RE.match(v.strip()):
            raise ValueError(
                f"Invalid CIDR '{v}'. Expected A.B.C.D/N (e.g. 10.0.1.0/24)"
            )
        # InvalidCIDR is a ValueError, so pydantic reports it as a 422
        return parse_cidr(v).cidr

    @field_validator("gateway")
    @classmethod
    def validate_gateway(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _validate_ipv4(v, "gateway")


class NetworkCreate(NetworkFields, _NetworkValidators):
    """Schema for creating a network: fields + strict validation."""

    vlan_id: Optional[int] = Field(None, ge=1, le=4094)


class NetworkUpdate(BaseModel, _NetworkValidators):
    """Schema for updating a network (all fields optional, with validation)."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    cidr: Optional[str] = None
    vlan_id: Optional[int] = Field(None, ge=1, le=4094)
    gateway: Optional[str] = None
    description: Optional[str] = Field(None, max_length=5000)


class NetworkResponse(NetworkFields):
    """Schema for network responses: no validators, just serialization."""

    id: int
    prefix_length: int
    ip_address_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ═══════════════════════════════════════════════════════════════════════
# DEVICE SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class DeviceFields(BaseModel):
    """Pure field definitions for devices.  No validators."""

    name: str = Field(..., min_length=1, max_length=255)
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = Field(None, max_length=255)
    ip_address_id: Optional[int] = None


class _DeviceValidators:
    """Mixin-style validators reused by DeviceCreate and DeviceUpdate."""

    @field_validator("mac_address")
    @classmethod
    def validate_mac(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _validate_mac(v)

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        return _validate_hostname(v)


class DeviceCreate(DeviceFields, _DeviceValidators):
    """Schema for creating a device by hand. Source is always MANUAL."""
    pass


class DeviceUpdate(BaseModel, _DeviceValidators):
    """Schema for updating a device (all fields optional, with validation)."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = Field(None, max_length=255)
    ip_address_id: Optional[int] = None


class DeviceResponse(DeviceFields):
    """Schema for device responses: no validators."""

    id: int
    source: str
    last_seen: Optional[datetime] = None
    ip_address: Optional[str] = None  # the linked address, if any
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeviceSummary(BaseModel):
    """Compact device view embedded in IP address responses."""

    id: int
    name: str
    mac_address: Optional[str] = None
    source: str

    model_config = ConfigDict(from_attributes=True)


# ═══════════════════════════════════════════════════════════════════════
# IP ADDRESS SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class IPAddressFields(BaseModel):
    """Pure field definitions for IP addresses.  No validators."""

    address: str
    network_id: int
    status: str = IPStatus.AVAILABLE.value
    description: Optional[str] = Field(None, max_length=5000)


class IPAddressCreate(IPAddressFields):
    """Schema for creating an IP address: fields + strict validation."""

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _validate_ipv4(v, "IP address")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _validate_status(v)


class IPAddressUpdate(BaseModel):
    """Only status and description of an address can change."""

    status: Optional[str] = None
    description: Optional[str] = Field(None, max_length=5000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _validate_status(v)


class IPAddressResponse(IPAddressFields):
    """Schema for IP address responses: no validators."""

    id: int
    network_name: Optional[str] = None
    device: Optional[DeviceSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NetworkDetailResponse(NetworkResponse):
    """A network with its addresses (and the device on each, if any)."""

    ip_addresses: List[IPAddressResponse] = []


# ═══════════════════════════════════════════════════════════════════════
# OPERATION RESULT SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class PopulateResponse(BaseModel):
    created: int
    existing: int
    total: int
    errors: List[str] = []


class SyncResponse(BaseModel):
    """Counts from a full UniFi sync."""

    sites: int
    networks: Dict[str, int]
    ip_addresses: Dict[str, int]
    devices: Dict[str, int]
    reconciled: int
    errors: List[str] = []


class DiscoverResponse(BaseModel):
    """Counts from a device-only discovery."""

    sites: int
    discovered: int
    synced: int
    errors: List[str] = []


# ═══════════════════════════════════════════════════════════════════════
# SETTINGS SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class SettingsUpdate(BaseModel):
    """
    Settings submitted from the settings page.

    Keys are the setting names (e.g. UNIFI_URL). Submitting the mask
    placeholder for a secret leaves the stored secret unchanged.
    """

    model_config = ConfigDict(extra="allow")

    def as_updates(self) -> Dict[str, Optional[str]]:
        return {k: (None if v is None else str(v)) for k, v in (self.model_extra or {}).items()}


# ═══════════════════════════════════════════════════════════════════════
# AUDIT LOG SCHEMAS
# ═══════════════════════════════════════════════════════════════════════

class AuditLogResponse(BaseModel):
    """One audit entry; changes decoded from its stored JSON."""

    id: int
    action: str
    entity_type: str
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    changes: Optional[Any] = None
    source: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogPage(BaseModel):
    """Paginated audit log response."""

    total: int
    page: int
    limit: int
    logs: List[AuditLogResponse]

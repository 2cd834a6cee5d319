"""Enumerated string values stored in the IPAM tables."""

from enum import Enum


class IPStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    IN_USE = "IN_USE"


class DeviceSource(str, Enum):
    """Where a device record came from.

    Anything other than MANUAL is a managed source: the record is
    created and refreshed by an automated inventory sync.
    """

    MANUAL = "MANUAL"
    UNIFI = "UNIFI"
    PROXMOX = "PROXMOX"

    @property
    def is_managed(self) -> bool:
        return self is not DeviceSource.MANUAL


MANAGED_SOURCES = tuple(s.value for s in DeviceSource if s.is_managed)


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SYNC = "SYNC"
    POPULATE = "POPULATE"


class AuditSource(str, Enum):
    USER = "USER"
    SYSTEM = "SYSTEM"

from .enums import IPStatus, DeviceSource, AuditAction, AuditSource, MANAGED_SOURCES
from .network import Network
from .ip_address import IPAddress
from .device import Device
from .audit_log import AuditLog
from .setting import Setting

__all__ = [
    "IPStatus",
    "DeviceSource",
    "AuditAction",
    "AuditSource",
    "MANAGED_SOURCES",
    "Network",
    "IPAddress",
    "Device",
    "AuditLog",
    "Setting",
]

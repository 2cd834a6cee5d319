from .networks import router as networks_router
from .ip_addresses import router as ip_addresses_router
from .devices import router as devices_router
from .unifi import router as unifi_router
from .settings import router as settings_router
from .audit_log import router as audit_log_router

__all__ = [
    "networks_router",
    "ip_addresses_router",
    "devices_router",
    "unifi_router",
    "settings_router",
    "audit_log_router",
]

"""Services package for Homelab IPAM."""

from .errors import (
    IPAMError,
    InvalidCIDR,
    SubnetTooLarge,
    NotConfigured,
    UpstreamUnavailable,
    RecordConflict,
    NotFound,
    SyncInProgress,
)
from .cidr import parse_cidr, host_count, plan_populate, CIDRBlock, PopulatePlan
from .networks import populate_network, delete_network
from .sync import run_sync, run_discover, SyncResult, DiscoverResult

__all__ = [
    "IPAMError",
    "InvalidCIDR",
    "SubnetTooLarge",
    "NotConfigured",
    "UpstreamUnavailable",
    "RecordConflict",
    "NotFound",
    "SyncInProgress",
    "parse_cidr",
    "host_count",
    "plan_populate",
    "CIDRBlock",
    "PopulatePlan",
    "populate_network",
    "delete_network",
    "run_sync",
    "run_discover",
    "SyncResult",
    "DiscoverResult",
]

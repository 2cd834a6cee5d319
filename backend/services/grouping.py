"""
Observation building and /24 subnet grouping for the inventory sync.

Controller clients and devices are flattened into ObservedEntry records,
then the private, addressed ones are bucketed by their first three
octets. Each bucket gets a proposed network identity.

VLAN matching is a heuristic: a declared network matches a bucket when
its VLAN tag equals the bucket's third octet. When several declared
networks share that VLAN tag the first one in controller order wins,
silently.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from .cidr import is_private_ipv4, subnet_prefix
from .inventory import UnifiClientEntry, UnifiDevice, UnifiNetwork

logger = logging.getLogger(__name__)


@dataclass
class ObservedEntry:
    """One client or device as seen by the controller in this sync."""

    mac: Optional[str]
    ip: Optional[str]
    name: str
    vendor: Optional[str] = None
    last_seen: Optional[datetime] = None
    kind: str = "client"  # client/device


@dataclass
class SubnetProposal:
    """Proposed network identity for one /24 bucket."""

    prefix: str
    cidr: str
    gateway: str
    name: str
    vlan_id: Optional[int] = None
    entries: List[ObservedEntry] = field(default_factory=list)


def _normalize_mac(mac: Optional[str]) -> Optional[str]:
    return mac.strip().lower() if mac else None


def build_observations(
    clients: Iterable[UnifiClientEntry],
    devices: Iterable[UnifiDevice],
) -> List[ObservedEntry]:
    """Flatten controller clients and devices, clients first."""
    entries: List[ObservedEntry] = []
    for c in clients:
        entries.append(ObservedEntry(
            mac=_normalize_mac(c.mac_address),
            ip=c.ip_address,
            name=c.name or c.mac_address or c.ip_address or "unknown",
            last_seen=c.connected_at,
            kind="client",
        ))
    for d in devices:
        entries.append(ObservedEntry(
            mac=_normalize_mac(d.mac_address),
            ip=d.ip_address,
            name=d.name or d.model or d.mac_address or d.ip_address or "unknown",
            vendor=d.model,
            kind="device",
        ))
    return entries


def match_declared_network(
    third_octet: int,
    declared: Sequence[UnifiNetwork],
) -> Optional[UnifiNetwork]:
    """First declared network whose VLAN tag equals the third octet."""
    for network in declared:
        if network.vlan_id is not None and network.vlan_id == third_octet:
            return network
    return None


def group_by_subnet(
    entries: Iterable[ObservedEntry],
    declared: Sequence[UnifiNetwork] = (),
) -> Dict[str, SubnetProposal]:
    """
    Bucket addressed entries into /24 proposals keyed by prefix.

    Entries without an address, or with an address outside the RFC 1918
    ranges, are dropped. Buckets keep first-appearance order.
    """
    groups: Dict[str, SubnetProposal] = {}
    skipped = 0

    for entry in entries:
        if not entry.ip:
            continue
        if not is_private_ipv4(entry.ip):
            skipped += 1
            continue

        prefix = subnet_prefix(entry.ip)
        proposal = groups.get(prefix)
        if proposal is None:
            cidr = f"{prefix}.0/24"
            third_octet = int(prefix.split(".")[2])
            matched = match_declared_network(third_octet, declared)
            proposal = SubnetProposal(
                prefix=prefix,
                cidr=cidr,
                gateway=f"{prefix}.1",
                name=matched.name if matched and matched.name else cidr,
                vlan_id=matched.vlan_id if matched else None,
            )
            groups[prefix] = proposal
        proposal.entries.append(entry)

    if skipped:
        logger.debug(f"Skipped {skipped} non-private addresses while grouping")
    return groups

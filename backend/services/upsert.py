"""
Idempotent create-or-update of inventory records.

Networks are keyed by CIDR, IP addresses by address, devices by MAC.
Every call commits its own record; there is no transaction spanning
entities, so one failed write never undoes the others. Callers should
only keep ids (plain ints) between calls: a failed write rolls the
session back and expires loaded instances.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Device, DeviceSource, IPAddress, IPStatus, Network
from .cidr import parse_cidr
from .errors import RecordConflict
from .grouping import ObservedEntry, SubnetProposal

logger = logging.getLogger(__name__)


@dataclass
class UpsertOutcome:
    id: int
    created: bool
    # Address a managed device was linked to before moving this pass
    vacated_ip_id: Optional[int] = None


async def commit_or_conflict(db: AsyncSession, what: str) -> None:
    """Commit, turning constraint violations into RecordConflict."""
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise RecordConflict(f"{what}: {e.orig}") from e


def _naive_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


async def upsert_network(db: AsyncSession, proposal: SubnetProposal) -> UpsertOutcome:
    """
    Create the network for a proposal, or refresh name and VLAN only.

    Gateway and description of an existing network are never changed.
    """
    result = await db.execute(select(Network).where(Network.cidr == proposal.cidr))
    network = result.scalar_one_or_none()

    if network is None:
        network = Network(
            name=proposal.name,
            cidr=proposal.cidr,
            prefix_length=parse_cidr(proposal.cidr).prefix_length,
            gateway=proposal.gateway,
            vlan_id=proposal.vlan_id,
        )
        db.add(network)
        created = True
    else:
        network.name = proposal.name
        network.vlan_id = proposal.vlan_id
        created = False

    await commit_or_conflict(db, f"Network {proposal.cidr}")
    logger.debug(f"{'Created' if created else 'Updated'} network {proposal.cidr} ({proposal.name})")
    return UpsertOutcome(id=network.id, created=created)


async def upsert_ip_address(db: AsyncSession, address: str, network_id: int) -> UpsertOutcome:
    """Create an IN_USE address, or force IN_USE and move it to network_id."""
    result = await db.execute(select(IPAddress).where(IPAddress.address == address))
    ip = result.scalar_one_or_none()

    if ip is None:
        ip = IPAddress(address=address, network_id=network_id, status=IPStatus.IN_USE.value)
        db.add(ip)
        created = True
    else:
        ip.status = IPStatus.IN_USE.value
        if ip.network_id != network_id:
            logger.info(f"Moving {address} from network {ip.network_id} to {network_id}")
            ip.network_id = network_id
        created = False

    await commit_or_conflict(db, f"IP {address}")
    return UpsertOutcome(id=ip.id, created=created)


async def mark_ip_in_use(db: AsyncSession, address: str) -> Optional[int]:
    """Flag an already-known address IN_USE. Returns its id, or None if unknown."""
    result = await db.execute(select(IPAddress).where(IPAddress.address == address))
    ip = result.scalar_one_or_none()
    if ip is None:
        return None
    if ip.status != IPStatus.IN_USE.value:
        ip.status = IPStatus.IN_USE.value
        await commit_or_conflict(db, f"IP {address}")
    return ip.id


async def _claim_ip(db: AsyncSession, device_id: Optional[int], ip_address_id: int) -> bool:
    """
    Free ip_address_id for device_id.

    A managed device still holding the address is detached (the newest
    observation wins). A MANUAL holder is left alone and the claim fails.
    """
    result = await db.execute(select(Device).where(Device.ip_address_id == ip_address_id))
    holder = result.scalar_one_or_none()
    if holder is None or holder.id == device_id:
        return True
    if holder.source == DeviceSource.MANUAL.value:
        logger.info(
            f"IP id {ip_address_id} is held by manual device {holder.id}, not relinking"
        )
        return False
    holder.ip_address_id = None
    # Flush the detach before the new link so the unique index never sees two holders
    await db.flush()
    return True


async def upsert_device(
    db: AsyncSession,
    entry: ObservedEntry,
    ip_address_id: Optional[int] = None,
    source: DeviceSource = DeviceSource.UNIFI,
) -> UpsertOutcome:
    """
    Create or refresh a device by MAC.

    Args:
        db: Database session
        entry: Observed client/device (must carry a MAC)
        ip_address_id: Address resolved for this entry in the current
            pass, if any. The link is only written when it differs from
            the device's current one.
        source: Managed source to stamp on the record

    Returns:
        UpsertOutcome with the device id, and the id of the address it
        moved away from when a managed device was relinked
    """
    if not entry.mac:
        raise ValueError("Cannot upsert a device without a MAC address")

    mac = entry.mac.lower()
    last_seen = _naive_utc(entry.last_seen)

    result = await db.execute(select(Device).where(Device.mac_address == mac))
    device = result.scalar_one_or_none()

    vacated_ip_id = None
    if device is None:
        if ip_address_id is not None and not await _claim_ip(db, None, ip_address_id):
            ip_address_id = None
        device = Device(
            name=entry.name,
            mac_address=mac,
            vendor=entry.vendor,
            source=source.value,
            last_seen=last_seen,
            ip_address_id=ip_address_id,
        )
        db.add(device)
        created = True
    elif device.source == DeviceSource.MANUAL.value:
        # Human-entered record: only note that it was seen
        device.last_seen = last_seen
        created = False
    else:
        device.name = entry.name
        device.vendor = entry.vendor
        device.source = source.value
        device.last_seen = last_seen
        if ip_address_id is not None and device.ip_address_id != ip_address_id:
            if await _claim_ip(db, device.id, ip_address_id):
                vacated_ip_id = device.ip_address_id
                device.ip_address_id = ip_address_id
        created = False

    await commit_or_conflict(db, f"Device {mac}")
    return UpsertOutcome(id=device.id, created=created, vacated_ip_id=vacated_ip_id)

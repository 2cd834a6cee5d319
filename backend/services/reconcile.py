"""
Release addresses whose managed device was not seen in the latest sync.

Used by the sync after each site and once more after the last one:
- reconcile_network: IN_USE addresses linked to a managed device that
  was not observed
- release_vacated: addresses a managed device moved away from
- networks_with_managed_links: networks still holding managed links, so
  a network with no observations left is still converged
"""

import logging
from typing import Iterable, List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import Device, IPAddress, IPStatus, MANAGED_SOURCES
from .upsert import commit_or_conflict

logger = logging.getLogger(__name__)


async def reconcile_network(
    db: AsyncSession,
    network_id: int,
    seen_addresses: Iterable[str],
) -> int:
    """
    Converge one network back to the observed inventory.

    Every IN_USE address in the network that is linked to a device from
    a managed source, and was not observed this sync, is set AVAILABLE
    and its device is unlinked. Addresses linked to MANUAL devices,
    unlinked addresses, and AVAILABLE/RESERVED rows are left as they are.

    Returns:
        Number of addresses released
    """
    seen = set(seen_addresses)

    stmt = (
        select(IPAddress.id, IPAddress.address, Device.id)
        .join(Device, Device.ip_address_id == IPAddress.id)
        .where(
            IPAddress.network_id == network_id,
            IPAddress.status == IPStatus.IN_USE.value,
            Device.source.in_(MANAGED_SOURCES),
        )
    )
    if seen:
        stmt = stmt.where(IPAddress.address.not_in(seen))

    stale = (await db.execute(stmt)).all()

    released = 0
    for ip_id, address, device_id in stale:
        await db.execute(
            update(IPAddress)
            .where(IPAddress.id == ip_id)
            .values(status=IPStatus.AVAILABLE.value)
        )
        await db.execute(
            update(Device)
            .where(Device.id == device_id)
            .values(ip_address_id=None)
        )
        await commit_or_conflict(db, f"Reconcile {address}")
        logger.info(f"Released {address} (device {device_id} no longer observed)")
        released += 1

    return released


async def release_vacated(
    db: AsyncSession,
    ip_address_ids: Iterable[int],
    seen_addresses: Iterable[str],
) -> int:
    """
    Release addresses that a managed device moved away from this sync.

    Once a device is relinked its old address has no device, so
    reconcile_network no longer sees it. Only addresses that are still
    IN_USE, still unlinked and not observed this sync are set AVAILABLE.

    Returns:
        Number of addresses released
    """
    ids = set(ip_address_ids)
    if not ids:
        return 0
    seen = set(seen_addresses)

    linked = select(Device.id).where(Device.ip_address_id == IPAddress.id).exists()
    stmt = select(IPAddress.id, IPAddress.address).where(
        IPAddress.id.in_(ids),
        IPAddress.status == IPStatus.IN_USE.value,
        ~linked,
    )

    released = 0
    for ip_id, address in (await db.execute(stmt)).all():
        if address in seen:
            continue
        await db.execute(
            update(IPAddress)
            .where(IPAddress.id == ip_id)
            .values(status=IPStatus.AVAILABLE.value)
        )
        await commit_or_conflict(db, f"Release {address}")
        logger.info(f"Released {address} (its device moved to another address)")
        released += 1

    return released


async def networks_with_managed_links(db: AsyncSession) -> List[int]:
    """Ids of networks with an IN_USE address linked to a managed device."""
    stmt = (
        select(IPAddress.network_id)
        .join(Device, Device.ip_address_id == IPAddress.id)
        .where(
            IPAddress.status == IPStatus.IN_USE.value,
            Device.source.in_(MANAGED_SOURCES),
        )
        .distinct()
        .order_by(IPAddress.network_id)
    )
    return list((await db.execute(stmt)).scalars().all())

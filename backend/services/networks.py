"""
Network-level operations: populate and cascade-aware delete.
"""

import logging
from typing import Any, Dict

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models import AuditAction, Device, IPAddress, IPStatus, Network
from utils.audit import audit
from .cidr import parse_cidr, plan_populate
from .errors import NotFound
from .upsert import commit_or_conflict

logger = logging.getLogger(__name__)


def network_label(network: Network) -> str:
    return f"{network.name} ({network.cidr})"


async def get_network_or_404(db: AsyncSession, network_id: int) -> Network:
    network = await db.get(Network, network_id)
    if network is None:
        raise NotFound(f"Network {network_id} not found")
    return network


async def populate_network(db: AsyncSession, network_id: int) -> Dict[str, Any]:
    """
    Create every host address of the network as AVAILABLE.

    Addresses already stored for the network are skipped, so running it
    twice creates nothing the second time. Host addresses that another
    (overlapping) network already owns are left alone and listed in
    errors, since an address is unique across the whole store.

    Returns:
        {"created": n, "existing": n, "total": usable host count,
         "errors": [per-address messages]}

    Raises:
        NotFound: if the network does not exist
        SubnetTooLarge: if the prefix is shorter than POPULATE_MIN_PREFIX
        RecordConflict: if a concurrent write claims an address first
    """
    network = await get_network_or_404(db, network_id)
    label = network_label(network)
    block = parse_cidr(network.cidr)

    rows = (
        await db.execute(select(IPAddress.address, IPAddress.network_id))
    ).all()
    existing = [address for address, owner in rows if owner == network_id]
    owners = {
        address: owner
        for address, owner in rows
        if owner != network_id and block.contains(address)
    }

    plan = plan_populate(network.cidr, existing, taken_elsewhere=owners)

    if plan.to_create:
        db.add_all([
            IPAddress(address=address, network_id=network_id, status=IPStatus.AVAILABLE.value)
            for address in plan.to_create
        ])
        await commit_or_conflict(db, f"Populate {label}")

    errors = [
        f"{address}: already belongs to network {owners[address]}"
        for address in plan.skipped
    ]
    summary = {
        "created": len(plan.to_create),
        "existing": plan.existing_count,
        "total": plan.total_host_count,
        "errors": errors,
    }
    logger.info(
        f"Populated {label}: created={summary['created']} "
        f"existing={summary['existing']} total={summary['total']} skipped={len(errors)}"
    )

    await audit.record(
        db,
        AuditAction.POPULATE,
        "Network",
        entity_id=network_id,
        entity_name=label,
        changes={
            "created": summary["created"],
            "existing": summary["existing"],
            "total": summary["total"],
            "skipped": len(errors),
        },
    )
    return summary


async def delete_network(db: AsyncSession, network_id: int) -> Dict[str, int]:
    """
    Delete a network and its addresses without orphaning devices.

    Order: unlink devices from the network's addresses, delete the
    addresses, delete the network. Devices themselves are kept.
    """
    network = await get_network_or_404(db, network_id)
    label = network_label(network)

    ip_ids = (
        await db.execute(select(IPAddress.id).where(IPAddress.network_id == network_id))
    ).scalars().all()

    devices_unlinked = 0
    if ip_ids:
        unlink = await db.execute(
            update(Device)
            .where(Device.ip_address_id.in_(ip_ids))
            .values(ip_address_id=None)
        )
        devices_unlinked = unlink.rowcount or 0
        await db.execute(delete(IPAddress).where(IPAddress.network_id == network_id))

    await db.delete(network)
    await commit_or_conflict(db, f"Delete {label}")

    logger.info(
        f"Deleted network {label}: {len(ip_ids)} addresses, "
        f"{devices_unlinked} devices unlinked"
    )

    await audit.record(
        db,
        AuditAction.DELETE,
        "Network",
        entity_id=network_id,
        entity_name=label,
    )
    return {"ip_addresses_deleted": len(ip_ids), "devices_unlinked": devices_unlinked}

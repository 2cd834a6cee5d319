"""
Network management endpoints.

CRUD for managed subnets, plus populate (create every host address as
AVAILABLE) and a delete that unlinks devices before removing addresses.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import AuditAction, Device, IPAddress, Network
from schemas import (
    DeviceSummary,
    IPAddressResponse,
    NetworkCreate,
    NetworkDetailResponse,
    NetworkResponse,
    NetworkUpdate,
    PopulateResponse,
)
from services.cidr import ip_to_int, parse_cidr
from services.errors import RecordConflict
from services.networks import delete_network, get_network_or_404, network_label, populate_network
from services.upsert import commit_or_conflict
from utils.audit import audit, diff_changes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/networks", tags=["networks"])

EDITABLE_FIELDS = ("name", "cidr", "vlan_id", "gateway", "description")


async def _address_count(db: AsyncSession, network_id: int) -> int:
    result = await db.execute(
        select(func.count(IPAddress.id)).where(IPAddress.network_id == network_id)
    )
    return result.scalar() or 0


async def _ensure_cidr_free(db: AsyncSession, cidr: str) -> None:
    result = await db.execute(select(Network.id).where(Network.cidr == cidr))
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail=f"Network {cidr} already exists")


@router.get("", response_model=List[NetworkResponse])
async def list_networks(db: AsyncSession = Depends(get_db)):
    """List all networks with their address counts."""
    counts_result = await db.execute(
        select(IPAddress.network_id, func.count(IPAddress.id)).group_by(IPAddress.network_id)
    )
    counts = dict(counts_result.all())

    result = await db.execute(select(Network).order_by(Network.id))
    networks = result.scalars().all()

    responses = []
    for network in networks:
        response = NetworkResponse.model_validate(network)
        response.ip_address_count = counts.get(network.id, 0)
        responses.append(response)
    return responses


@router.get("/{network_id}", response_model=NetworkDetailResponse)
async def get_network(network_id: int, db: AsyncSession = Depends(get_db)):
    """Get a network with every address and the device linked to it."""
    network = await get_network_or_404(db, network_id)

    result = await db.execute(
        select(IPAddress, Device)
        .outerjoin(Device, Device.ip_address_id == IPAddress.id)
        .where(IPAddress.network_id == network_id)
    )
    rows = sorted(result.all(), key=lambda row: ip_to_int(row[0].address))

    addresses = []
    for ip, device in rows:
        response = IPAddressResponse.model_validate(ip)
        response.network_name = network.name
        response.device = DeviceSummary.model_validate(device) if device else None
        addresses.append(response)

    detail = NetworkDetailResponse.model_validate(network)
    detail.ip_address_count = len(addresses)
    detail.ip_addresses = addresses
    return detail


@router.post("", response_model=NetworkResponse, status_code=201)
async def create_network(payload: NetworkCreate, db: AsyncSession = Depends(get_db)):
    """Create a network. The CIDR is normalized to its network address."""
    await _ensure_cidr_free(db, payload.cidr)

    network = Network(
        name=payload.name,
        cidr=payload.cidr,
        prefix_length=parse_cidr(payload.cidr).prefix_length,
        vlan_id=payload.vlan_id,
        gateway=payload.gateway,
        description=payload.description,
    )
    db.add(network)
    await commit_or_conflict(db, f"Network {payload.cidr}")
    await db.refresh(network)

    response = NetworkResponse.model_validate(network)
    response.ip_address_count = 0
    logger.info(f"Created network {network_label(network)}")

    await audit.record(
        db,
        AuditAction.CREATE,
        "Network",
        entity_id=response.id,
        entity_name=f"{response.name} ({response.cidr})",
        changes=payload.model_dump(),
    )
    return response


@router.put("/{network_id}", response_model=NetworkResponse)
async def update_network(
    network_id: int,
    payload: NetworkUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Update a network.

    The CIDR can only change while the network holds no addresses.
    """
    network = await get_network_or_404(db, network_id)

    updates = payload.model_dump(exclude_unset=True)
    # Required columns cannot be cleared
    for key in ("name", "cidr"):
        if key in updates and updates[key] is None:
            del updates[key]

    count = await _address_count(db, network_id)
    new_cidr = updates.get("cidr")
    if new_cidr is not None and new_cidr != network.cidr:
        if count:
            raise RecordConflict(
                f"Cannot change the CIDR of {network_label(network)}: it has {count} addresses"
            )
        await _ensure_cidr_free(db, new_cidr)

    before = {field: getattr(network, field) for field in EDITABLE_FIELDS}
    for field, value in updates.items():
        setattr(network, field, value)
    if new_cidr is not None:
        network.prefix_length = parse_cidr(new_cidr).prefix_length

    await commit_or_conflict(db, f"Network {network_id}")
    await db.refresh(network)

    after = {field: getattr(network, field) for field in EDITABLE_FIELDS}
    response = NetworkResponse.model_validate(network)
    response.ip_address_count = count

    await audit.record(
        db,
        AuditAction.UPDATE,
        "Network",
        entity_id=network_id,
        entity_name=f"{response.name} ({response.cidr})",
        changes=diff_changes(before, after),
    )
    return response


@router.delete("/{network_id}", status_code=204)
async def remove_network(network_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a network and its addresses. Linked devices are kept, unlinked."""
    await delete_network(db, network_id)
    return Response(status_code=204)


@router.post("/{network_id}/populate", response_model=PopulateResponse)
async def populate(network_id: int, db: AsyncSession = Depends(get_db)):
    """Create every usable host address of the network as AVAILABLE."""
    return await populate_network(db, network_id)

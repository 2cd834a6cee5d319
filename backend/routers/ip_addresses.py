"""
IP address endpoints.

Addresses belong to exactly one network and must lie inside its CIDR.
Only status and description are editable; deleting an address unlinks
whichever device held it.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import AuditAction, Device, IPAddress, Network
from schemas import (
    DeviceSummary,
    IPAddressCreate,
    IPAddressResponse,
    IPAddressUpdate,
    VALID_IP_STATUSES,
)
from services.cidr import address_in_cidr, ip_to_int
from services.errors import NotFound
from services.networks import get_network_or_404
from services.upsert import commit_or_conflict
from utils.audit import audit, diff_changes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ipaddresses", tags=["ip_addresses"])


def _to_response(ip: IPAddress, network: Optional[Network], device: Optional[Device]) -> IPAddressResponse:
    response = IPAddressResponse.model_validate(ip)
    response.network_name = network.name if network else None
    response.device = DeviceSummary.model_validate(device) if device else None
    return response


def _joined():
    return (
        select(IPAddress, Network, Device)
        .join(Network, Network.id == IPAddress.network_id)
        .outerjoin(Device, Device.ip_address_id == IPAddress.id)
    )


async def _load(db: AsyncSession, ip_id: int):
    result = await db.execute(_joined().where(IPAddress.id == ip_id))
    row = result.first()
    if row is None:
        raise NotFound(f"IP address {ip_id} not found")
    return row


@router.get("", response_model=List[IPAddressResponse])
async def list_ip_addresses(
    status: Optional[str] = Query(None, description="Filter by AVAILABLE, RESERVED or IN_USE"),
    db: AsyncSession = Depends(get_db),
):
    """List all addresses, newest first."""
    query = _joined().order_by(IPAddress.created_at.desc(), IPAddress.id.desc())
    if status:
        if status.upper() not in VALID_IP_STATUSES:
            raise HTTPException(status_code=422, detail=f"Invalid status '{status}'")
        query = query.where(IPAddress.status == status.upper())

    result = await db.execute(query)
    return [_to_response(ip, network, device) for ip, network, device in result.all()]


@router.get("/network/{network_id}", response_model=List[IPAddressResponse])
async def list_network_addresses(network_id: int, db: AsyncSession = Depends(get_db)):
    """List the addresses of one network in numeric order."""
    await get_network_or_404(db, network_id)
    result = await db.execute(_joined().where(IPAddress.network_id == network_id))
    rows = sorted(result.all(), key=lambda row: ip_to_int(row[0].address))
    return [_to_response(ip, network, device) for ip, network, device in rows]


@router.get("/{ip_id}", response_model=IPAddressResponse)
async def get_ip_address(ip_id: int, db: AsyncSession = Depends(get_db)):
    ip, network, device = await _load(db, ip_id)
    return _to_response(ip, network, device)


@router.post("", response_model=IPAddressResponse, status_code=201)
async def create_ip_address(payload: IPAddressCreate, db: AsyncSession = Depends(get_db)):
    """Create an address inside an existing network."""
    network = await get_network_or_404(db, payload.network_id)

    if not address_in_cidr(payload.address, network.cidr):
        raise HTTPException(
            status_code=422,
            detail=f"{payload.address} is not inside {network.name} ({network.cidr})",
        )

    existing = await db.execute(select(IPAddress.id).where(IPAddress.address == payload.address))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail=f"IP address {payload.address} already exists")

    ip = IPAddress(
        address=payload.address,
        network_id=network.id,
        status=payload.status,
        description=payload.description,
    )
    db.add(ip)
    await commit_or_conflict(db, f"IP {payload.address}")
    await db.refresh(ip)

    response = _to_response(ip, network, None)
    await audit.record(
        db,
        AuditAction.CREATE,
        "IPAddress",
        entity_id=response.id,
        entity_name=f"{response.address} ({response.network_name})",
        changes=payload.model_dump(),
    )
    return response


@router.put("/{ip_id}", response_model=IPAddressResponse)
async def update_ip_address(
    ip_id: int,
    payload: IPAddressUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Change the status and/or description of an address."""
    ip, network, device = await _load(db, ip_id)

    updates = payload.model_dump(exclude_unset=True)
    if updates.get("status") is None:
        updates.pop("status", None)

    before = {"status": ip.status, "description": ip.description}
    for field, value in updates.items():
        setattr(ip, field, value)
    await commit_or_conflict(db, f"IP {ip.address}")
    await db.refresh(ip)

    response = _to_response(ip, network, device)
    await audit.record(
        db,
        AuditAction.UPDATE,
        "IPAddress",
        entity_id=ip_id,
        entity_name=f"{response.address} ({response.network_name})",
        changes=diff_changes(before, {"status": response.status, "description": response.description}),
    )
    return response


@router.delete("/{ip_id}", status_code=204)
async def delete_ip_address(ip_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an address, unlinking its device first."""
    ip, network, _ = await _load(db, ip_id)
    label = f"{ip.address} ({network.name})"

    await db.execute(
        update(Device).where(Device.ip_address_id == ip_id).values(ip_address_id=None)
    )
    await db.delete(ip)
    await commit_or_conflict(db, f"Delete IP {label}")
    logger.info(f"Deleted IP address {label}")

    await audit.record(db, AuditAction.DELETE, "IPAddress", entity_id=ip_id, entity_name=label)
    return Response(status_code=204)

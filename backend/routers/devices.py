"""
Device endpoints.

Devices created here are MANUAL: the inventory sync only refreshes
their last_seen and never moves or releases their address.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import AuditAction, Device, DeviceSource, IPAddress
from schemas import DeviceCreate, DeviceResponse, DeviceUpdate, VALID_DEVICE_SOURCES
from services.errors import NotFound
from services.upsert import commit_or_conflict
from utils.audit import audit, diff_changes

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/devices", tags=["devices"])

EDITABLE_FIELDS = ("name", "mac_address", "hostname", "vendor", "ip_address_id")


def _to_response(device: Device, address: Optional[str]) -> DeviceResponse:
    response = DeviceResponse.model_validate(device)
    response.ip_address = address
    return response


async def _load(db: AsyncSession, device_id: int):
    result = await db.execute(
        select(Device, IPAddress.address)
        .outerjoin(IPAddress, IPAddress.id == Device.ip_address_id)
        .where(Device.id == device_id)
    )
    row = result.first()
    if row is None:
        raise NotFound(f"Device {device_id} not found")
    return row


async def _check_mac_free(db: AsyncSession, mac: Optional[str], device_id: Optional[int] = None) -> None:
    if not mac:
        return
    result = await db.execute(select(Device.id).where(Device.mac_address == mac))
    holder = result.scalar_one_or_none()
    if holder is not None and holder != device_id:
        raise HTTPException(status_code=409, detail=f"A device with MAC {mac} already exists")


async def _check_ip_free(db: AsyncSession, ip_address_id: Optional[int], device_id: Optional[int] = None) -> Optional[str]:
    """Return the address string for ip_address_id, refusing one already held."""
    if ip_address_id is None:
        return None
    ip = await db.get(IPAddress, ip_address_id)
    if ip is None:
        raise NotFound(f"IP address {ip_address_id} not found")
    result = await db.execute(select(Device.id).where(Device.ip_address_id == ip_address_id))
    holder = result.scalar_one_or_none()
    if holder is not None and holder != device_id:
        raise HTTPException(
            status_code=409,
            detail=f"IP address {ip.address} is already assigned to device {holder}",
        )
    return ip.address


@router.get("", response_model=List[DeviceResponse])
async def list_devices(
    source: Optional[str] = Query(None, description="Filter by MANUAL, UNIFI or PROXMOX"),
    db: AsyncSession = Depends(get_db),
):
    """List devices, most recently seen first."""
    query = (
        select(Device, IPAddress.address)
        .outerjoin(IPAddress, IPAddress.id == Device.ip_address_id)
        .order_by(Device.last_seen.desc(), Device.name)
    )
    if source:
        if source.upper() not in VALID_DEVICE_SOURCES:
            raise HTTPException(status_code=422, detail=f"Invalid source '{source}'")
        query = query.where(Device.source == source.upper())

    result = await db.execute(query)
    return [_to_response(device, address) for device, address in result.all()]


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(device_id: int, db: AsyncSession = Depends(get_db)):
    device, address = await _load(db, device_id)
    return _to_response(device, address)


@router.post("", response_model=DeviceResponse, status_code=201)
async def create_device(payload: DeviceCreate, db: AsyncSession = Depends(get_db)):
    """Create a manual device, optionally linked to an address."""
    await _check_mac_free(db, payload.mac_address)
    address = await _check_ip_free(db, payload.ip_address_id)

    device = Device(
        name=payload.name,
        mac_address=payload.mac_address,
        hostname=payload.hostname,
        vendor=payload.vendor,
        source=DeviceSource.MANUAL.value,
        ip_address_id=payload.ip_address_id,
    )
    db.add(device)
    await commit_or_conflict(db, f"Device {payload.name}")
    await db.refresh(device)

    response = _to_response(device, address)
    await audit.record(
        db,
        AuditAction.CREATE,
        "Device",
        entity_id=response.id,
        entity_name=response.name,
        changes=payload.model_dump(),
    )
    return response


@router.put("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: int,
    payload: DeviceUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a device. Sending ip_address_id=null unlinks it."""
    device, address = await _load(db, device_id)

    updates = payload.model_dump(exclude_unset=True)
    if "name" in updates and updates["name"] is None:
        del updates["name"]
    if "mac_address" in updates:
        await _check_mac_free(db, updates["mac_address"], device_id)
    if "ip_address_id" in updates:
        address = await _check_ip_free(db, updates["ip_address_id"], device_id)

    before = {field: getattr(device, field) for field in EDITABLE_FIELDS}
    for field, value in updates.items():
        setattr(device, field, value)
    await commit_or_conflict(db, f"Device {device_id}")
    await db.refresh(device)

    after = {field: getattr(device, field) for field in EDITABLE_FIELDS}
    response = _to_response(device, address)
    await audit.record(
        db,
        AuditAction.UPDATE,
        "Device",
        entity_id=device_id,
        entity_name=response.name,
        changes=diff_changes(before, after),
    )
    return response


@router.delete("/{device_id}", status_code=204)
async def delete_device(device_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a device. Its address keeps its status."""
    device, _ = await _load(db, device_id)
    name = device.name

    await db.delete(device)
    await commit_or_conflict(db, f"Delete device {name}")
    logger.info(f"Deleted device {device_id} ({name})")

    await audit.record(db, AuditAction.DELETE, "Device", entity_id=device_id, entity_name=name)
    return Response(status_code=204)

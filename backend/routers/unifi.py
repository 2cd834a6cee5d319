"""
UniFi controller endpoints.

Connection status, site listing, device-only discovery and the full
inventory sync. The controller client is provided by the
get_inventory_client dependency so tests can swap in a fake.
"""

import logging
from dataclasses import asdict
from typing import Any, AsyncIterator, Dict, List

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models import Device, DeviceSource, IPAddress
from schemas import DeviceResponse, DiscoverResponse, SyncResponse
from services.errors import NotConfigured
from services.inventory import UnifiClient, load_controller_config
from services.sync import InventorySource, run_discover, run_sync

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/unifi", tags=["unifi"])


async def get_inventory_client(db: AsyncSession = Depends(get_db)) -> AsyncIterator[InventorySource]:
    """
    Yield a controller client built from the current settings.

    Raises:
        NotConfigured: if URL or API key is missing (answered as 400)
    """
    client = await UnifiClient.from_settings(db)
    try:
        yield client
    finally:
        await client.aclose()


def _upstream_failure(message: str, results: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": f"Failed to reach UniFi controller: {message}", "results": results},
    )


@router.get("/status")
async def controller_status(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    """Check the controller connection. Never fails; reports instead."""
    try:
        config = await load_controller_config(db)
    except NotConfigured as e:
        return {"connected": False, "configured": False, "error": e.message}

    async with UnifiClient(config) as client:
        result = await client.test_connection()
    result["configured"] = True
    return result


@router.get("/sites")
async def list_sites(client: InventorySource = Depends(get_inventory_client)) -> List[Dict[str, Any]]:
    """List controller sites. Upstream failures answer 503."""
    sites = await client.get_sites()
    return [site.model_dump() for site in sites]


@router.post("/discover", response_model=DiscoverResponse)
async def discover_devices(
    db: AsyncSession = Depends(get_db),
    client: InventorySource = Depends(get_inventory_client),
):
    """Upsert devices from every site, linking them to addresses already stored."""
    result = await run_discover(db, client)
    if result.fatal_error:
        return _upstream_failure(result.fatal_error, asdict(result))
    return DiscoverResponse(**asdict(result))


@router.post("/sync", response_model=SyncResponse)
async def sync_inventory(
    db: AsyncSession = Depends(get_db),
    client: InventorySource = Depends(get_inventory_client),
):
    """
    Full sync: networks, addresses and devices from every site, then
    release addresses whose managed device has disappeared.
    """
    result = await run_sync(db, client)
    if result.fatal_error:
        return _upstream_failure(result.fatal_error, asdict(result))
    return SyncResponse(**asdict(result))


@router.get("/devices", response_model=List[DeviceResponse])
async def list_unifi_devices(db: AsyncSession = Depends(get_db)):
    """List devices synced from UniFi, most recently seen first."""
    result = await db.execute(
        select(Device, IPAddress.address)
        .outerjoin(IPAddress, IPAddress.id == Device.ip_address_id)
        .where(Device.source == DeviceSource.UNIFI.value)
        .order_by(Device.last_seen.desc())
    )
    devices = []
    for device, address in result.all():
        response = DeviceResponse.model_validate(device)
        response.ip_address = address
        devices.append(response)
    return devices

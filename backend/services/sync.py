"""
UniFi inventory sync and discovery.

Handles:
- Full sync: networks, IP addresses, devices, then reconciliation (per
  site, then once more across all sites)
- Discovery: devices only, linked to addresses that already exist
- Per-site and per-record error isolation ("best effort, fully reported")
- One sync/discover at a time per process

Partial progress is kept: nothing here is all-or-nothing.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import AuditAction, AuditSource
from utils.audit import audit
from utils.logging_utils import LogTimer
from .errors import IPAMError, SyncInProgress, UpstreamUnavailable
from .grouping import build_observations, group_by_subnet
from .inventory import UnifiClientEntry, UnifiDevice, UnifiNetwork, UnifiSite
from .reconcile import networks_with_managed_links, reconcile_network, release_vacated
from .upsert import mark_ip_in_use, upsert_device, upsert_ip_address, upsert_network

logger = logging.getLogger(__name__)

# Held for the duration of one sync or discover run
_sync_lock = asyncio.Lock()


class InventorySource(Protocol):
    """What the sync needs from an inventory client."""

    async def get_sites(self) -> List[UnifiSite]: ...

    async def get_networks(self, site_id: str) -> List[UnifiNetwork]: ...

    async def get_clients(self, site_id: str) -> List[UnifiClientEntry]: ...

    async def get_devices(self, site_id: str) -> List[UnifiDevice]: ...


@dataclass
class SyncResult:
    """Result of a full sync."""

    sites: int = 0
    networks: Dict[str, int] = field(default_factory=lambda: {"created": 0, "updated": 0})
    ip_addresses: Dict[str, int] = field(default_factory=lambda: {"created": 0, "updated": 0})
    devices: Dict[str, int] = field(default_factory=lambda: {"synced": 0})
    reconciled: int = 0
    errors: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None


@dataclass
class _SyncPass:
    """Bookkeeping shared by every site of one sync run."""

    seen: Set[str] = field(default_factory=set)
    touched: Set[int] = field(default_factory=set)
    vacated: Set[int] = field(default_factory=set)
    failed_sites: int = 0


@dataclass
class DiscoverResult:
    """Result of a device-only discovery."""

    sites: int = 0
    discovered: int = 0
    synced: int = 0
    errors: List[str] = field(default_factory=list)
    fatal_error: Optional[str] = None


def is_sync_running() -> bool:
    return _sync_lock.locked()


def _describe(error: Exception) -> str:
    return error.message if isinstance(error, IPAMError) else str(error)


async def _record_failure(db: AsyncSession, errors: List[str], label: str, error: Exception) -> None:
    if isinstance(error, SQLAlchemyError):
        await db.rollback()
    message = f"{label}: {_describe(error)}"
    logger.warning(message)
    errors.append(message)


async def _sync_site(
    db: AsyncSession,
    client: InventorySource,
    site: UnifiSite,
    result: SyncResult,
    run: _SyncPass,
) -> None:
    try:
        declared, clients, devices = await asyncio.gather(
            client.get_networks(site.id),
            client.get_clients(site.id),
            client.get_devices(site.id),
        )
    except UpstreamUnavailable as e:
        await _record_failure(db, result.errors, f"Site {site.name}", e)
        run.failed_sites += 1
        return

    entries = build_observations(clients, devices)
    groups = group_by_subnet(entries, declared)
    seen = {entry.ip for proposal in groups.values() for entry in proposal.entries}
    run.seen.update(seen)
    logger.info(
        f"Site {site.name}: {len(clients)} clients, {len(devices)} devices, "
        f"{len(groups)} subnets, {len(seen)} private addresses"
    )

    # 1. Networks
    prefix_to_network_id: Dict[str, int] = {}
    for prefix, proposal in groups.items():
        try:
            outcome = await upsert_network(db, proposal)
        except (IPAMError, SQLAlchemyError) as e:
            await _record_failure(db, result.errors, f"Network {proposal.cidr}", e)
            continue
        result.networks["created" if outcome.created else "updated"] += 1
        prefix_to_network_id[prefix] = outcome.id

    # 2. IP addresses
    address_to_ip_id: Dict[str, int] = {}
    for prefix, proposal in groups.items():
        network_id = prefix_to_network_id.get(prefix)
        if network_id is None:
            continue
        for entry in proposal.entries:
            try:
                outcome = await upsert_ip_address(db, entry.ip, network_id)
            except (IPAMError, SQLAlchemyError) as e:
                await _record_failure(db, result.errors, f"IP {entry.ip}", e)
                continue
            result.ip_addresses["created" if outcome.created else "updated"] += 1
            address_to_ip_id[entry.ip] = outcome.id

    # 3. Devices
    for entry in entries:
        if not entry.mac:
            continue
        try:
            outcome = await upsert_device(db, entry, address_to_ip_id.get(entry.ip))
        except (IPAMError, SQLAlchemyError, ValueError) as e:
            await _record_failure(db, result.errors, f"Device {entry.mac}", e)
            continue
        result.devices["synced"] += 1
        if outcome.vacated_ip_id is not None:
            run.vacated.add(outcome.vacated_ip_id)

    # 4. Reconciliation of every network touched above
    for network_id in prefix_to_network_id.values():
        run.touched.add(network_id)
        try:
            result.reconciled += await reconcile_network(db, network_id, seen)
        except (IPAMError, SQLAlchemyError) as e:
            await _record_failure(db, result.errors, f"Reconcile network {network_id}", e)


async def _finish_reconcile(db: AsyncSession, result: SyncResult, run: _SyncPass) -> None:
    """
    Reconciliation that needs every site's observations.

    Addresses vacated by a moving device are released against everything
    seen this sync. Networks no site touched are then converged too, but
    only when every site was fetched: a site that failed to load may
    still hold those devices.
    """
    try:
        result.reconciled += await release_vacated(db, run.vacated, run.seen)
    except (IPAMError, SQLAlchemyError) as e:
        await _record_failure(db, result.errors, "Release vacated addresses", e)

    if run.failed_sites:
        logger.info(
            f"Skipping reconciliation of untouched networks: "
            f"{run.failed_sites} site(s) failed to load"
        )
        return

    try:
        network_ids = await networks_with_managed_links(db)
    except SQLAlchemyError as e:
        await _record_failure(db, result.errors, "List networks to reconcile", e)
        return

    for network_id in network_ids:
        if network_id in run.touched:
            continue
        try:
            result.reconciled += await reconcile_network(db, network_id, run.seen)
        except (IPAMError, SQLAlchemyError) as e:
            await _record_failure(db, result.errors, f"Reconcile network {network_id}", e)


async def run_sync(db: AsyncSession, client: InventorySource) -> SyncResult:
    """
    Full sync of every controller site into the record store.

    A failure listing sites is fatal: the result comes back with
    fatal_error set. Failures on one site or one record are appended to
    errors and processing continues.

    Raises:
        SyncInProgress: if another sync or discover is running
    """
    if _sync_lock.locked():
        raise SyncInProgress("A UniFi sync is already running")

    async with _sync_lock:
        result = SyncResult()
        with LogTimer(logger, "UniFi sync") as timer:
            try:
                sites = await client.get_sites()
            except UpstreamUnavailable as e:
                logger.error(f"Sync aborted, cannot list sites: {e.message}")
                result.fatal_error = e.message
                return result

            result.sites = len(sites)
            run = _SyncPass()
            for site in sites:
                await _sync_site(db, client, site, result, run)
            await _finish_reconcile(db, result, run)

            timer.set_record_count(result.ip_addresses["created"] + result.ip_addresses["updated"])
            timer.add_info("reconciled", result.reconciled)

        await audit.record(
            db,
            AuditAction.SYNC,
            "Device",
            entity_name=f"UniFi sync: {result.sites} site(s)",
            source=AuditSource.SYSTEM,
            changes={
                "networks": result.networks,
                "ip_addresses": result.ip_addresses,
                "devices": result.devices,
                "reconciled": result.reconciled,
                "errors": len(result.errors),
            },
        )
        return result


async def run_discover(db: AsyncSession, client: InventorySource) -> DiscoverResult:
    """
    Device-only discovery.

    Upserts a device for every MAC-bearing client/device and links it to
    its address when that address is already stored (marking it IN_USE).
    No networks are created and nothing is reconciled.

    Raises:
        SyncInProgress: if another sync or discover is running
    """
    if _sync_lock.locked():
        raise SyncInProgress("A UniFi sync is already running")

    async with _sync_lock:
        result = DiscoverResult()
        with LogTimer(logger, "UniFi discover") as timer:
            try:
                sites = await client.get_sites()
            except UpstreamUnavailable as e:
                logger.error(f"Discover aborted, cannot list sites: {e.message}")
                result.fatal_error = e.message
                return result

            result.sites = len(sites)
            for site in sites:
                try:
                    clients, devices = await asyncio.gather(
                        client.get_clients(site.id),
                        client.get_devices(site.id),
                    )
                except UpstreamUnavailable as e:
                    await _record_failure(db, result.errors, f"Site {site.name}", e)
                    continue

                entries = [e for e in build_observations(clients, devices) if e.mac]
                result.discovered += len(entries)

                for entry in entries:
                    try:
                        ip_address_id = await mark_ip_in_use(db, entry.ip) if entry.ip else None
                        await upsert_device(db, entry, ip_address_id)
                    except (IPAMError, SQLAlchemyError, ValueError) as e:
                        await _record_failure(db, result.errors, f"Device {entry.mac}", e)
                        continue
                    result.synced += 1

            timer.set_record_count(result.synced)

        await audit.record(
            db,
            AuditAction.SYNC,
            "Device",
            entity_name=f"UniFi discover: {result.sites} site(s)",
            source=AuditSource.SYSTEM,
            changes={
                "discovered": result.discovered,
                "synced": result.synced,
                "errors": len(result.errors),
            },
        )
        return result

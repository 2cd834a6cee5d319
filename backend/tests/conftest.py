"""
Pytest configuration and fixtures for Homelab IPAM tests.

Provides:
- Async SQLite in-memory database with foreign keys enforced
- A fake UniFi inventory source for sync/discover tests
- FastAPI app with dependency overrides
- AsyncClient for testing async endpoints
"""

from typing import Dict, List, Optional, Set

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database import Base, enable_sqlite_foreign_keys, get_db
from main import app
from routers.unifi import get_inventory_client
from services.errors import UpstreamUnavailable
from services.inventory import UnifiClientEntry, UnifiDevice, UnifiNetwork, UnifiSite


class FakeInventory:
    """
    In-memory stand-in for the UniFi client.

    Sites default to a single "default" site. Set sites_error to make
    site listing fail, or add a site id to failing_sites to make that
    site's fetches fail.
    """

    def __init__(self):
        self.sites: List[UnifiSite] = [UnifiSite(id="default", name="Default")]
        self.networks: Dict[str, List[UnifiNetwork]] = {}
        self.clients: Dict[str, List[UnifiClientEntry]] = {}
        self.devices: Dict[str, List[UnifiDevice]] = {}
        self.sites_error: Optional[str] = None
        self.failing_sites: Set[str] = set()

    def add_site(self, site_id: str, name: str) -> None:
        self.sites.append(UnifiSite(id=site_id, name=name))

    def add_network(self, name: str, vlan_id: Optional[int], site_id: str = "default") -> None:
        self.networks.setdefault(site_id, []).append(
            UnifiNetwork(id=f"net-{name}", name=name, vlan_id=vlan_id)
        )

    def add_client(self, mac: str, ip: Optional[str], name: Optional[str] = None, site_id: str = "default") -> None:
        self.clients.setdefault(site_id, []).append(
            UnifiClientEntry(mac_address=mac, ip_address=ip, name=name)
        )

    def add_device(self, mac: str, ip: Optional[str], name: Optional[str] = None,
                   model: Optional[str] = None, site_id: str = "default") -> None:
        self.devices.setdefault(site_id, []).append(
            UnifiDevice(mac_address=mac, ip_address=ip, name=name, model=model)
        )

    def remove_client(self, mac: str, site_id: str = "default") -> None:
        self.clients[site_id] = [c for c in self.clients.get(site_id, []) if c.mac_address != mac]

    def _check(self, site_id: str) -> None:
        if site_id in self.failing_sites:
            raise UpstreamUnavailable(f"site {site_id} unreachable")

    async def get_sites(self) -> List[UnifiSite]:
        if self.sites_error:
            raise UpstreamUnavailable(self.sites_error)
        return list(self.sites)

    async def get_networks(self, site_id: str) -> List[UnifiNetwork]:
        self._check(site_id)
        return list(self.networks.get(site_id, []))

    async def get_clients(self, site_id: str) -> List[UnifiClientEntry]:
        self._check(site_id)
        return list(self.clients.get(site_id, []))

    async def get_devices(self, site_id: str) -> List[UnifiDevice]:
        self._check(site_id)
        return list(self.devices.get(site_id, []))


@pytest_asyncio.fixture
async def session_factory():
    """
    Session factory bound to a fresh in-memory database.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)

    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A session on the test database, for service-level tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_inventory() -> FakeInventory:
    return FakeInventory()


@pytest_asyncio.fixture
async def async_client(session_factory, fake_inventory, monkeypatch):
    """
    Create an AsyncClient pointing to the FastAPI app with an in-memory
    test database and the fake inventory as the UniFi client.

    Yields:
        httpx.AsyncClient: Async HTTP client for making requests to the app.
    """
    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_inventory_client():
        yield fake_inventory

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inventory_client] = override_get_inventory_client

    # Health checks open their own sessions
    monkeypatch.setattr("services.health.AsyncSessionLocal", session_factory)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

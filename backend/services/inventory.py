"""
UniFi Network Integration API client.

Fetches sites, and per site the declared networks, connected clients and
managed devices. Credentials are resolved on every client construction
from stored settings first, then the environment.

Transport failures are surfaced as UpstreamUnavailable and never retried
here; the sync loop decides what to do with a failed site.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from .errors import NotConfigured, UpstreamUnavailable
from .settings_store import UNIFI_API_KEY, UNIFI_URL, resolve_setting

logger = logging.getLogger(__name__)

API_PREFIX = "/proxy/network/integration/v1"


class _InventoryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UnifiSite(_InventoryModel):
    id: str
    name: str = ""
    description: Optional[str] = None


class UnifiNetwork(_InventoryModel):
    id: str
    name: str = ""
    vlan_id: Optional[int] = Field(None, alias="vlanId")
    enabled: bool = True


class UnifiClientEntry(_InventoryModel):
    """A connected client (laptop, phone, IoT...)."""

    id: Optional[str] = None
    mac_address: Optional[str] = Field(None, alias="macAddress")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    name: Optional[str] = None
    type: Optional[str] = None
    connected_at: Optional[datetime] = Field(None, alias="connectedAt")


class UnifiDevice(_InventoryModel):
    """A controller-managed device (AP, switch, gateway)."""

    id: Optional[str] = None
    mac_address: Optional[str] = Field(None, alias="macAddress")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    name: Optional[str] = None
    model: Optional[str] = None
    state: Optional[str] = None


@dataclass
class ControllerConfig:
    url: str
    api_key: str


async def load_controller_config(db: AsyncSession) -> ControllerConfig:
    """
    Resolve the controller URL and API key.

    Raises:
        NotConfigured: if either value is missing
    """
    url = await resolve_setting(db, UNIFI_URL)
    api_key = await resolve_setting(db, UNIFI_API_KEY)
    if not url:
        raise NotConfigured("UNIFI_URL is not configured. Set it in Settings.")
    if not api_key:
        raise NotConfigured("UNIFI_API_KEY is not configured. Set it in Settings.")
    return ControllerConfig(url=url.rstrip("/"), api_key=api_key)


class UnifiClient:
    """
    Async client for the UniFi Network Integration API v1.

    Usage:
        async with UnifiClient(config) as client:
            sites = await client.get_sites()
    """

    def __init__(
        self,
        config: ControllerConfig,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.page_size = page_size or settings.UNIFI_PAGE_SIZE
        self._http = httpx.AsyncClient(
            base_url=config.url,
            headers={
                "X-API-KEY": config.api_key,
                "Accept": "application/json",
            },
            timeout=timeout if timeout is not None else settings.UNIFI_TIMEOUT_SECONDS,
            verify=settings.UNIFI_VERIFY_SSL if verify is None else verify,
            transport=transport,
        )

    @classmethod
    async def from_settings(cls, db: AsyncSession, **kwargs) -> "UnifiClient":
        """Build a client from stored settings / environment."""
        config = await load_controller_config(db)
        return cls(config, **kwargs)

    async def __aenter__(self) -> "UnifiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{API_PREFIX}{path}"
        try:
            response = await self._http.get(url, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            raise UpstreamUnavailable(f"Timed out calling {url}: {e}") from e
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(
                f"Controller returned status {e.response.status_code} for {url}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid JSON from {url}: {e}") from e

    @staticmethod
    def _unwrap_list(body: Any) -> List[Dict[str, Any]]:
        # Collections come either wrapped as {"data": [...]} or bare
        if isinstance(body, dict):
            return body.get("data") or []
        return body or []

    async def _fetch_all_pages(self, path: str) -> List[Dict[str, Any]]:
        """
        Follow offset pagination until totalCount items are collected.

        The offset advances by the number of items actually received, so
        a server that caps the page below our limit is still walked fully.
        """
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            body = await self._get(path, params={"offset": offset, "limit": self.page_size})
            if not isinstance(body, dict):
                raise UpstreamUnavailable(f"Unexpected page shape from {path}")
            page = body.get("data") or []
            total = body.get("totalCount") or 0
            items.extend(page)
            if len(items) >= total:
                break
            if not page:
                logger.warning(
                    f"Empty page from {path} at offset {offset} "
                    f"({len(items)}/{total} items), stopping"
                )
                break
            offset = len(items)
        return items

    @staticmethod
    def _parse(model, items, path: str) -> list:
        try:
            return [model.model_validate(item) for item in items]
        except ValidationError as e:
            raise UpstreamUnavailable(f"Unexpected {model.__name__} payload from {path}: {e}") from e

    async def get_sites(self) -> List[UnifiSite]:
        body = await self._get("/sites")
        return self._parse(UnifiSite, self._unwrap_list(body), "/sites")

    async def get_networks(self, site_id: str) -> List[UnifiNetwork]:
        path = f"/sites/{site_id}/networks"
        body = await self._get(path)
        return self._parse(UnifiNetwork, self._unwrap_list(body), path)

    async def get_clients(self, site_id: str) -> List[UnifiClientEntry]:
        path = f"/sites/{site_id}/clients"
        return self._parse(UnifiClientEntry, await self._fetch_all_pages(path), path)

    async def get_devices(self, site_id: str) -> List[UnifiDevice]:
        path = f"/sites/{site_id}/devices"
        return self._parse(UnifiDevice, await self._fetch_all_pages(path), path)

    async def test_connection(self) -> Dict[str, Any]:
        """Report whether the controller answers. Never raises."""
        try:
            sites = await self.get_sites()
            return {"connected": True, "url": self.config.url, "site_count": len(sites)}
        except UpstreamUnavailable as e:
            return {"connected": False, "url": self.config.url, "error": e.message}

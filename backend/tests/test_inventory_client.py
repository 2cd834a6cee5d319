"""
Tests for the UniFi Integration API client.

The controller is replaced with an httpx.MockTransport, so these cover
headers, pagination and error mapping without any network access.
"""

import httpx
import pytest

from config import settings
from models import Setting
from services.errors import NotConfigured, UpstreamUnavailable
from services.inventory import API_PREFIX, ControllerConfig, UnifiClient, load_controller_config

CONFIG = ControllerConfig(url="https://unifi.test", api_key="secret-key")


def _client(handler, page_size=2) -> UnifiClient:
    return UnifiClient(CONFIG, page_size=page_size, transport=httpx.MockTransport(handler))


def _paged(items):
    """Handler serving items with offset/limit pagination."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params["offset"])
        limit = int(request.url.params["limit"])
        calls.append((offset, limit))
        return httpx.Response(200, json={
            "offset": offset,
            "limit": limit,
            "count": len(items[offset:offset + limit]),
            "totalCount": len(items),
            "data": items[offset:offset + limit],
        })

    return handler, calls


class TestRequests:

    @pytest.mark.asyncio
    async def test_sends_api_key_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["key"] = request.headers.get("X-API-KEY")
            seen["path"] = request.url.path
            return httpx.Response(200, json={"data": [{"id": "s1", "name": "Default"}]})

        async with _client(handler) as client:
            sites = await client.get_sites()

        assert seen["key"] == "secret-key"
        assert seen["path"] == f"{API_PREFIX}/sites"
        assert sites[0].id == "s1"
        assert sites[0].name == "Default"

    @pytest.mark.asyncio
    async def test_accepts_bare_list_of_sites(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": "s1", "name": "Home"}])

        async with _client(handler) as client:
            sites = await client.get_sites()
        assert [s.name for s in sites] == ["Home"]

    @pytest.mark.asyncio
    async def test_networks_parse_vlan_id(self):
        def handler(request):
            return httpx.Response(200, json={"data": [
                {"id": "n1", "name": "IoT", "vlanId": 20, "enabled": True},
            ]})

        async with _client(handler) as client:
            networks = await client.get_networks("s1")
        assert networks[0].vlan_id == 20


class TestPagination:

    @pytest.mark.asyncio
    async def test_follows_pages_until_total(self):
        items = [
            {"macAddress": f"aa:00:00:00:00:0{i}", "ipAddress": f"10.0.1.{i}"}
            for i in range(1, 6)
        ]
        handler, calls = _paged(items)

        async with _client(handler, page_size=2) as client:
            clients = await client.get_clients("s1")

        assert len(clients) == 5
        assert [offset for offset, _ in calls] == [0, 2, 4]
        assert clients[4].ip_address == "10.0.1.5"

    @pytest.mark.asyncio
    async def test_offset_advances_by_items_received(self):
        items = [{"macAddress": f"aa:00:00:00:00:0{i}"} for i in range(1, 5)]
        calls = []

        # Server caps every page at one item regardless of the limit asked for
        def handler(request):
            offset = int(request.url.params["offset"])
            calls.append(offset)
            return httpx.Response(200, json={"totalCount": len(items), "data": items[offset:offset + 1]})

        async with _client(handler, page_size=50) as client:
            devices = await client.get_devices("s1")

        assert len(devices) == 4
        assert calls == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_stops_on_empty_page(self):
        def handler(request):
            return httpx.Response(200, json={"totalCount": 10, "data": []})

        async with _client(handler) as client:
            clients = await client.get_clients("s1")
        assert clients == []


class TestErrors:

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        def handler(request):
            return httpx.Response(401, json={"message": "unauthorized"})

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailable) as exc_info:
                await client.get_sites()
        assert "401" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_sites()

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_clients("s1")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"<html>login</html>")

        async with _client(handler) as client:
            with pytest.raises(UpstreamUnavailable):
                await client.get_sites()

    @pytest.mark.asyncio
    async def test_test_connection_reports_failure(self):
        def handler(request):
            return httpx.Response(503)

        async with _client(handler) as client:
            result = await client.test_connection()
        assert result["connected"] is False
        assert result["url"] == "https://unifi.test"
        assert "error" in result

    @pytest.mark.asyncio
    async def test_test_connection_counts_sites(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"id": "a"}, {"id": "b"}]})

        async with _client(handler) as client:
            result = await client.test_connection()
        assert result == {"connected": True, "url": "https://unifi.test", "site_count": 2}


class TestControllerConfig:

    @pytest.mark.asyncio
    async def test_missing_settings_raise_not_configured(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "UNIFI_URL", None)
        monkeypatch.setattr(settings, "UNIFI_API_KEY", None)
        with pytest.raises(NotConfigured):
            await load_controller_config(db_session)

    @pytest.mark.asyncio
    async def test_missing_key_raises_not_configured(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "UNIFI_URL", "https://unifi.test")
        monkeypatch.setattr(settings, "UNIFI_API_KEY", None)
        with pytest.raises(NotConfigured):
            await load_controller_config(db_session)

    @pytest.mark.asyncio
    async def test_stored_settings_override_environment(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "UNIFI_URL", "https://env.test")
        monkeypatch.setattr(settings, "UNIFI_API_KEY", "env-key")
        db_session.add(Setting(key="UNIFI_URL", value="https://stored.test/"))
        await db_session.commit()

        config = await load_controller_config(db_session)
        assert config.url == "https://stored.test"
        assert config.api_key == "env-key"

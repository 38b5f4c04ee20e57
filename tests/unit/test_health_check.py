"""
Unit tests for data source health checks
"""

import asyncio
import socket

import httpx
import pytest

from ingestion.sources import NaturalEarthSource, RestCountriesSource, WikidataAnthemSource


def transport_for(handler):
    return httpx.MockTransport(handler)


def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestHealthCheck:
    """Test that probes report instead of raising"""

    @pytest.mark.asyncio
    async def test_healthy(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"cca3": "NOR"}])

        source = RestCountriesSource(transport=transport_for(handler))
        result = await source.health_check()

        assert result.healthy is True
        assert result.status_code == 200
        assert result.message == "OK"
        assert result.response_time_ms >= 0
        assert seen[0].url.params["fields"] == "cca3"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        source = WikidataAnthemSource(
            transport=transport_for(lambda request: httpx.Response(503))
        )
        result = await source.health_check()

        assert result.healthy is False
        assert result.status_code == 503
        assert result.message.startswith("HTTP 503")

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        result = await RestCountriesSource(transport=transport_for(handler)).health_check()

        assert result.healthy is False
        assert result.status_code is None
        assert "Connection failed" in result.message

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        source = RestCountriesSource(transport=transport_for(handler), health_check_timeout=2)
        result = await source.health_check()

        assert result.healthy is False
        assert result.message == "Timed out after 2s"

    @pytest.mark.asyncio
    async def test_hung_endpoint_is_bounded(self):
        async def handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200)

        source = RestCountriesSource(transport=transport_for(handler), health_check_timeout=0.05)
        result = await source.health_check()

        assert result.healthy is False
        assert result.message.startswith("Timed out")
        assert result.response_time_ms < 5000

    @pytest.mark.asyncio
    async def test_unexpected_error(self):
        def handler(request):
            raise RuntimeError("broken transport")

        result = await RestCountriesSource(transport=transport_for(handler)).health_check()

        assert result.healthy is False
        assert "Unexpected error" in result.message

    @pytest.mark.asyncio
    async def test_static_file_uses_head(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            return httpx.Response(200)

        result = await NaturalEarthSource(transport=transport_for(handler)).health_check()

        assert result.healthy is True
        assert methods == ["HEAD"]

    @pytest.mark.asyncio
    async def test_closed_local_port(self):
        source = RestCountriesSource(health_check_timeout=5)
        source.url = f"http://127.0.0.1:{unused_port()}/v3.1/all"

        result = await source.health_check()

        assert result.healthy is False
        assert result.message

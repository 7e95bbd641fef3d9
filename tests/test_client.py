"""Tests for the outbound consumer client."""

import httpx
import pytest

from resource_provider.client import ConsumerClient, resource_path
from resource_provider.exceptions import RemoteDeliveryError


def test_resource_path():
    assert resource_path("provider_models", "abc") == "/backend/api/resources/provider_models/abc"


@pytest.mark.asyncio
async def test_success_returns_response(consumer_client, transport):
    resp = await consumer_client.request("PUT", "https://consumer.example/x", json={"a": 1})
    assert resp.status_code == 200
    assert transport.bodies() == [{"a": 1}]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [301, 404, 500])
async def test_non_2xx_raises(consumer_client, transport, status):
    transport.status_by_host["consumer.example"] = status
    with pytest.raises(RemoteDeliveryError) as exc_info:
        await consumer_client.request("POST", "https://consumer.example/x", json={})
    assert exc_info.value.status_code == status
    assert exc_info.value.method == "POST"


@pytest.mark.asyncio
async def test_transport_error_raises(consumer_client, transport):
    transport.unreachable.add("consumer.example")
    with pytest.raises(RemoteDeliveryError) as exc_info:
        await consumer_client.request("DELETE", "https://consumer.example/x")
    assert exc_info.value.status_code is None
    assert "connection refused" in str(exc_info.value)


@pytest.mark.asyncio
async def test_context_manager_closes_client():
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
    async with ConsumerClient(http_client) as client:
        await client.request("DELETE", "https://consumer.example/x")
    assert http_client.is_closed

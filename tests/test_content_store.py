"""Tests for the content store client."""

import httpx
import pytest

from retrieval.content_store import ContentStoreClient
from retrieval.exceptions import NetworkFailure


def client_with_handler(handler, mode='gateway', auth=None) -> ContentStoreClient:
    client = ContentStoreClient(base_url='http://store.test', mode=mode, auth=auth)
    client.session = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url='http://store.test', auth=auth
    )
    return client


@pytest.mark.asyncio
async def test_gateway_fetch():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path))
        return httpx.Response(200, content=b'\x00\x00\x00\x04blob')

    async with client_with_handler(handler) as client:
        data = await client.fetch('bafkreiexample')

    assert data == b'\x00\x00\x00\x04blob'
    assert seen == [('GET', '/ipfs/bafkreiexample')]


@pytest.mark.asyncio
async def test_api_mode_posts_cat_with_basic_auth():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=b'blob')

    async with client_with_handler(handler, mode='api', auth=('project', 'secret')) as client:
        await client.fetch('QmExample')

    request = seen[0]
    assert request.method == 'POST'
    assert request.url.path == '/api/v0/cat'
    assert request.url.params['arg'] == 'QmExample'
    assert request.headers['authorization'].startswith('Basic ')


@pytest.mark.asyncio
@pytest.mark.parametrize('status', [404, 500, 502])
async def test_non_success_status_is_network_failure(status):
    async with client_with_handler(lambda request: httpx.Response(status)) as client:
        with pytest.raises(NetworkFailure, match=str(status)):
            await client.fetch('cid-1')


@pytest.mark.asyncio
async def test_transport_error_is_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_with_handler(handler) as client:
        with pytest.raises(NetworkFailure):
            await client.fetch('cid-1')


@pytest.mark.asyncio
async def test_timeout_is_network_failure():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    async with client_with_handler(handler) as client:
        with pytest.raises(NetworkFailure, match="Timed out"):
            await client.fetch('cid-1')


@pytest.mark.asyncio
async def test_empty_content_id_rejected():
    async with client_with_handler(lambda request: httpx.Response(200)) as client:
        with pytest.raises(NetworkFailure):
            await client.fetch('')


def test_unknown_mode_rejected():
    with pytest.raises(ValueError):
        ContentStoreClient(base_url='http://store.test', mode='carrier-pigeon')

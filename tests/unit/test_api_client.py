"""
Unit Tests for RemoteApiClient
Runs the client against a local aiohttp test server
"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from station_sync.core.api_client import RemoteApiClient
from station_sync.core.exceptions import (
    AuthenticationMissingError, RemoteUnavailableError, RemoteRejectedError,
    InvalidResponseError
)


@asynccontextmanager
async def running_api(**client_options):
    """Start a fake remote API and yield a client pointed at it plus the request log"""
    received = []

    async def items(request):
        received.append({
            'method': request.method,
            'path': request.path,
            'query': dict(request.query),
            'authorization': request.headers.get('Authorization'),
        })
        return web.json_response({'data': [{'id': '1', 'rfidTag': 'E200'}], 'pagination': {'totalPages': 1}})

    async def mark_clean(request):
        body = await request.json()
        received.append({'method': request.method, 'path': request.path, 'body': body})
        return web.json_response({'updated': len(body['itemIds'])})

    async def forbidden(request):
        return web.Response(status=403, text='Forbidden tenant')

    async def server_error(request):
        return web.Response(status=500)

    async def no_content(request):
        return web.Response(status=204)

    async def not_json(request):
        return web.Response(status=200, text='<html>maintenance</html>')

    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({})

    app = web.Application()
    app.router.add_get('/api/items', items)
    app.router.add_post('/api/items/mark-clean', mark_clean)
    app.router.add_get('/api/forbidden', forbidden)
    app.router.add_get('/api/broken', server_error)
    app.router.add_delete('/api/empty', no_content)
    app.router.add_get('/api/html', not_json)
    app.router.add_get('/api/slow', slow)

    server = test_utils.TestServer(app)
    await server.start_server()
    client = RemoteApiClient(base_url=str(server.make_url('/api')), **client_options)
    try:
        yield client, received
    finally:
        await client.close()
        await server.close()


class TestRemoteApiClient:
    """HTTP behaviour and error mapping"""

    @pytest.mark.asyncio
    async def test_get_returns_parsed_json_and_sends_bearer_token(self):
        async with running_api() as (client, received):
            result = await client.request('/items?page=1&limit=1000', token='secret-token')

        assert result['data'][0]['rfidTag'] == 'E200'
        assert received[0]['authorization'] == 'Bearer secret-token'
        assert received[0]['query'] == {'page': '1', 'limit': '1000'}

    @pytest.mark.asyncio
    async def test_post_sends_json_body(self):
        async with running_api() as (client, received):
            result = await client.request('/items/mark-clean', 'post', {'itemIds': ['a', 'b']}, token='t')

        assert result == {'updated': 2}
        assert received[0]['method'] == 'POST'
        assert received[0]['body'] == {'itemIds': ['a', 'b']}

    @pytest.mark.asyncio
    async def test_missing_token_raises_before_any_request(self):
        async with running_api() as (client, received):
            with pytest.raises(AuthenticationMissingError):
                await client.request('/items', token=None)

        assert received == []

    @pytest.mark.asyncio
    async def test_client_error_status_is_rejected(self):
        async with running_api() as (client, _):
            with pytest.raises(RemoteRejectedError) as exc_info:
                await client.request('/forbidden', token='t')

        assert exc_info.value.status == 403
        assert exc_info.value.body == 'Forbidden tenant'
        assert exc_info.value.endpoint == '/forbidden'
        assert str(exc_info.value) == 'HTTP 403: Forbidden tenant'

    @pytest.mark.asyncio
    async def test_server_error_status_is_rejected(self):
        async with running_api() as (client, _):
            with pytest.raises(RemoteRejectedError) as exc_info:
                await client.request('/broken', token='t')

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_empty_body_returns_none(self):
        async with running_api() as (client, _):
            assert await client.request('/empty', 'DELETE', token='t') is None

    @pytest.mark.asyncio
    async def test_invalid_json_raises_invalid_response(self):
        async with running_api() as (client, _):
            with pytest.raises(InvalidResponseError) as exc_info:
                await client.request('/html', token='t')

        assert isinstance(exc_info.value, RemoteRejectedError)
        assert exc_info.value.status == 200

    @pytest.mark.asyncio
    async def test_timeout_raises_remote_unavailable(self):
        async with running_api(timeout_seconds=0.1) as (client, _):
            with pytest.raises(RemoteUnavailableError):
                await client.request('/slow', token='t')

    @pytest.mark.asyncio
    async def test_connection_refused_raises_remote_unavailable(self):
        client = RemoteApiClient(base_url=f'http://127.0.0.1:{test_utils.unused_port()}/api', timeout_seconds=2)
        try:
            with pytest.raises(RemoteUnavailableError):
                await client.request('/items', token='t')
        finally:
            await client.close()

    def test_build_url_joins_endpoint(self):
        client = RemoteApiClient(base_url='https://example.test/api/')

        assert client.build_url('/items') == 'https://example.test/api/items'
        assert client.build_url('items') == 'https://example.test/api/items'

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = RemoteApiClient(base_url='http://127.0.0.1:1/api')
        await client.close()
        await client.close()

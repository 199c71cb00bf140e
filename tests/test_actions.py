from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pyconnect.actions import api, delay
from pyconnect.exceptions import ActionError, ActionTimeoutError


async def _echo(request: web.Request) -> web.Response:
    body = await request.json()
    return web.json_response({"method": request.method, "body": body}, status=201)


async def _text(request: web.Request) -> web.Response:
    return web.Response(text="not here", status=404)


async def _broken_json(request: web.Request) -> web.Response:
    return web.Response(text="{oops", content_type="application/json")


async def _slow(request: web.Request) -> web.Response:
    await asyncio.sleep(1)
    return web.json_response({})


async def _headers(request: web.Request) -> web.Response:
    return web.json_response({"x-token": request.headers.get("X-Token")})


@pytest_asyncio.fixture
async def server() -> AsyncIterator[TestServer]:
    app = web.Application()
    app.router.add_post("/echo", _echo)
    app.router.add_get("/missing", _text)
    app.router.add_get("/broken", _broken_json)
    app.router.add_get("/slow", _slow)
    app.router.add_get("/headers", _headers)
    test_server = TestServer(app)
    await test_server.start_server()
    try:
        yield test_server
    finally:
        await test_server.close()


@pytest.mark.asyncio
async def test_post_sends_and_decodes_json(server: TestServer) -> None:
    resp = await api(str(server.make_url("/echo")), "post", body={"title": "hi"})

    assert resp.status == 201
    assert resp.ok
    assert resp.data == {"method": "POST", "body": {"title": "hi"}}


@pytest.mark.asyncio
async def test_non_json_error_response_is_returned_as_text(server: TestServer) -> None:
    resp = await api(str(server.make_url("/missing")))

    assert resp.status == 404
    assert not resp.ok
    assert resp.data == "not here"


@pytest.mark.asyncio
async def test_custom_headers_and_shared_session(server: TestServer) -> None:
    async with aiohttp.ClientSession() as session:
        resp = await api(str(server.make_url("/headers")), headers={"X-Token": "t"}, session=session)
        assert not session.closed

    assert resp.data == {"x-token": "t"}


@pytest.mark.asyncio
async def test_invalid_json_raises(server: TestServer) -> None:
    with pytest.raises(ActionError, match="Invalid JSON"):
        await api(str(server.make_url("/broken")))


@pytest.mark.asyncio
async def test_timeout(server: TestServer) -> None:
    url = str(server.make_url("/slow"))
    with pytest.raises(ActionTimeoutError) as excinfo:
        await api(url, timeout=0.05)
    assert excinfo.value.url == url


@pytest.mark.asyncio
async def test_connection_failure(unused_tcp_port: int) -> None:
    with pytest.raises(ActionError, match="failed"):
        await api(f"http://127.0.0.1:{unused_tcp_port}/")


@pytest.mark.asyncio
async def test_delay() -> None:
    loop = asyncio.get_running_loop()
    started = loop.time()
    await delay(0.01)
    assert loop.time() - started >= 0.009

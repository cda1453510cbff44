"""
Shared pytest fixtures.

Network facing tests run against in-process aiohttp servers: a consumer that
records every request it receives, and a broker serving the session bootstrap
route and the tunnel WebSocket.
"""

import base64
import io
import json
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from fhttp.config import get_settings
from fhttp.reporter import Reporter

SESSION_HASH = "AbCdEfGhIj"


# =============================================================================
# Wire helpers
# =============================================================================


def envelope(message_type: str, message: Any = None) -> dict[str, Any]:
    return {"type": message_type, "message": message}


def frame(message_type: str, message: Any = None) -> bytes:
    return json.dumps(envelope(message_type, message)).encode()


def consumer_message(
    route: str = "/api/test",
    method: str = "POST",
    headers: dict[str, list[str]] | None = None,
    body: bytes = b"",
) -> dict[str, Any]:
    return {
        "route": route,
        "method": method,
        "headers": headers if headers is not None else {},
        "body": base64.b64encode(body).decode(),
    }


def hello_message(session_hash: str = SESSION_HASH, request_uri: str = "", open_uri: str | None = None) -> dict:
    message = {"hash": session_hash, "request_uri": request_uri or f"https://fhttp.dev/{session_hash}"}
    if open_uri is not None:
        message["open_uri"] = open_uri
    return message


# =============================================================================
# Fake HTTP session
# =============================================================================


class FakeResponse:
    """Stands in for an aiohttp ClientResponse."""

    def __init__(self, status: int = 200, body: bytes = b"", reason: str = "OK", read_error: Exception | None = None):
        self.status = status
        self.reason = reason
        self._body = body
        self._read_error = read_error

    async def read(self) -> bytes:
        if self._read_error is not None:
            raise self._read_error
        return self._body


class FakeSession:
    """Records calls made through ``post``/``request`` and answers with a canned response."""

    def __init__(self, response: FakeResponse | None = None, error: Exception | None = None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._respond()

    @asynccontextmanager
    async def _respond(self) -> AsyncIterator[FakeResponse]:
        if self.error is not None:
            raise self.error
        yield self.response


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def reporter(output: io.StringIO) -> Reporter:
    return Reporter(stream=output, body_preview_length=80)


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way it was after a test reconfigures it."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture
async def consumer_server() -> AsyncIterator[TestServer]:
    """Consumer recording each request; answers ``consumer says hi``."""
    received: list[dict[str, Any]] = []

    async def handle(request: web.Request) -> web.Response:
        received.append(
            {
                "method": request.method,
                "path": request.path_qs,
                "headers": request.headers.copy(),
                "body": await request.read(),
            }
        )
        return web.Response(text="consumer says hi", status=201)

    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", handle)

    server = TestServer(app)
    await server.start_server()
    server.received = received
    yield server
    await server.close()


@pytest.fixture
async def broker() -> AsyncIterator[Callable[..., Any]]:
    """
    Build a fake broker.

    ``on_tunnel`` is awaited with the server side WebSocket once a client
    opens ``/open/{hash}``; the broker closes the socket when it returns.
    """
    servers: list[TestServer] = []

    async def start(on_tunnel=None, hello_status: int = 200) -> TestServer:
        state: dict[str, Any] = {"bootstraps": 0, "tunnels": [], "server_messages": []}

        async def new_session(request: web.Request) -> web.Response:
            state["bootstraps"] += 1
            open_uri = str(request.url.with_path(f"/open/{SESSION_HASH}"))
            body = envelope(
                "hello",
                hello_message(request_uri=f"https://{SESSION_HASH}.fhttp.dev", open_uri=open_uri),
            )
            return web.json_response(body, status=hello_status)

        async def open_tunnel(request: web.Request) -> web.WebSocketResponse:
            ws = web.WebSocketResponse(autoping=False)
            await ws.prepare(request)
            state["tunnels"].append(request.match_info["hash"])
            if on_tunnel is not None:
                await on_tunnel(ws, state)
            await ws.close()
            return ws

        app = web.Application()
        app.router.add_post("/new", new_session)
        app.router.add_get("/open/{hash}", open_tunnel)

        server = TestServer(app)
        await server.start_server()
        server.state = state
        servers.append(server)
        return server

    yield start

    for server in servers:
        await server.close()

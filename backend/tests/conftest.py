import inspect
import json
from typing import Any, Callable, Dict, List, Tuple, Union

import httpx
import pytest
import pytest_asyncio

from urchin.db import EntityStore
from urchin.services.api_client import APIClient

TOKEN_HEADER = "x-tidepool-session-token"

Responder = Union[httpx.Response, Callable[[httpx.Request], Any]]


class FakeTidepool:
    """Tidepool API stand-in served through httpx.MockTransport."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []

    def route(self, method: str, path: str, response: Responder) -> None:
        self.routes[(method, path)] = response

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responder = self.routes.get((request.method, request.url.path))
        if responder is None:
            return httpx.Response(404, text="not found")
        if callable(responder):
            responder = responder(request)
            if inspect.isawaitable(responder):
                responder = await responder
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def login(self, userid: str = "u1", token: str = "tok-1", **extra) -> None:
        body = {
            "userid": userid,
            "username": f"{userid}@example.com",
            "emails": [f"{userid}@example.com"],
            "emailVerified": True,
            "termsAccepted": "2015-08-27T18:38:04-07:00",
        }
        body.update(extra)
        self.route("POST", "/auth/login", httpx.Response(200, json=body, headers={TOKEN_HEADER: token}))


class Recorder:
    """Callback that remembers every (result, error) it receives."""

    def __init__(self):
        self.calls: List[Tuple[Any, Any]] = []

    def __call__(self, result, error):
        self.calls.append((result, error))

    @property
    def result(self):
        assert len(self.calls) == 1, self.calls
        return self.calls[0][0]

    @property
    def error(self):
        assert len(self.calls) == 1, self.calls
        return self.calls[0][1]


def note_json(note_id: str, text: str = "hello", timestamp: str = "2023-05-01T12:30:00+0000", **extra) -> str:
    body = {
        "id": note_id,
        "userid": "author-1",
        "groupid": "u1",
        "messagetext": text,
        "timestamp": timestamp,
        "createdtime": timestamp,
    }
    body.update(extra)
    return json.dumps(body)


@pytest_asyncio.fixture
async def store(tmp_path):
    store = EntityStore(f"sqlite+aiosqlite:///{tmp_path / 'urchin.db'}")
    await store.create_all()
    yield store
    await store.dispose()


@pytest.fixture
def server():
    return FakeTidepool()


@pytest_asyncio.fixture
async def client(store, server):
    api = APIClient(store=store, transport=server.transport)
    yield api
    await api.aclose()


@pytest_asyncio.fixture
async def signed_in(client, server):
    server.login()
    done = Recorder()
    handle = await client.sign_in("u1@example.com", "secret", done)
    await handle.wait()
    assert done.error is None
    return client

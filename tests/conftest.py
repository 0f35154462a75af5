"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from pytest_gql.errors import MessageDecodeError, WebSocketClosedError


class FakeWebSocket:
    """In-memory ``WebSocket``: tests push server frames and inspect what the client sent."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.close_calls = 0
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
        self._waiting = False

    async def send_text(self, data: str) -> None:
        if self.closed:
            raise WebSocketClosedError(1000, "closed")
        self.sent.append(data)

    async def receive_text(self) -> str:
        self._waiting = self._incoming.empty()
        item = await self._incoming.get()
        self._waiting = False
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.closed = True

    def push(self, frame: dict[str, Any] | str) -> None:
        """Queue a server frame. Dicts are sent as JSON."""
        self._incoming.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def push_binary(self) -> None:
        """Queue a non-text frame."""
        self._incoming.put_nowait(MessageDecodeError("Expected a text frame, got BytesMessage"))

    def push_close(self, code: int = 1000, reason: str | None = None) -> None:
        """Queue a close from the server."""
        self._incoming.put_nowait(WebSocketClosedError(code, reason))

    @property
    def sent_messages(self) -> list[dict[str, Any]]:
        """Frames sent by the client, decoded."""
        return [json.loads(frame) for frame in self.sent]

    async def flush(self) -> None:
        """Wait until the client has processed every pushed frame or closed the socket."""
        for _ in range(1000):
            await asyncio.sleep(0)
            if self.closed or (self._incoming.empty() and self._waiting):
                return
        msg = "client did not consume the pushed frames"
        raise AssertionError(msg)


@pytest.fixture
def fake_socket() -> FakeWebSocket:
    """A fresh in-memory socket."""
    return FakeWebSocket()


@pytest.fixture
def socket_factory(fake_socket: FakeWebSocket):
    """Socket factory handing out ``fake_socket``."""

    async def factory() -> FakeWebSocket:
        return fake_socket

    return factory


@pytest.fixture
def graphql_ws_app():
    """A Starlette app serving a small graphql-ws endpoint at /graphql.

    It accepts connections whose init payload carries ``token == "abc"``,
    answers each ``start`` with ``upto`` data frames then ``complete`` (left
    out when the variables set ``hold``, so the stream stays open until
    ``stop``), and records the ids of ``stop`` frames in ``app.state.stopped``.
    """
    try:
        from starlette.applications import Starlette
        from starlette.routing import WebSocketRoute
        from starlette.websockets import WebSocket, WebSocketDisconnect
    except ImportError:
        pytest.skip("Starlette not installed")

    async def graphql_ws(websocket: WebSocket) -> None:
        await websocket.accept(subprotocol="graphql-ws")
        init = await websocket.receive_json()
        payload = init.get("payload") or {}
        if init.get("type") != "connection_init" or payload.get("token") != "abc":
            await websocket.send_json({"type": "connection_error", "payload": {"message": "unauthorized"}})
            await websocket.close()
            return

        await websocket.send_json({"type": "connection_ack"})
        try:
            while True:
                message = await websocket.receive_json()
                if message["type"] == "start":
                    upto = message["payload"]["variables"].get("upto", 3)
                    for i in range(upto):
                        await websocket.send_json(
                            {"id": message["id"], "type": "data", "payload": {"data": {"count": i}}}
                        )
                    if not message["payload"]["variables"].get("hold"):
                        await websocket.send_json({"id": message["id"], "type": "complete"})
                elif message["type"] == "stop":
                    app.state.stopped.append(message["id"])
        except WebSocketDisconnect:
            pass

    app = Starlette(routes=[WebSocketRoute("/graphql", graphql_ws)])
    app.state.stopped = []
    return app

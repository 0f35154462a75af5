"""WebSocket handles used by the subscription transport.

The transport only needs three primitives from a socket: send a text frame,
receive a text frame, and close. ``WebSocket`` describes them; the transport
gets its socket from an async ``SocketFactory`` so that tests can hand it an
in-memory fake.

``HttpxWebSocketFactory`` is the real factory. It opens the connection with
httpx-ws, either against an in-process ASGI application (through
``ASGIWebSocketTransport``) or against a live server URL.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any, Protocol

import httpx
from httpx_ws import WebSocketDisconnect, WebSocketInvalidTypeReceived, WebSocketNetworkError, aconnect_ws
from httpx_ws.transport import ASGIWebSocketTransport

from pytest_gql.errors import MessageDecodeError, WebSocketClosedError
from pytest_gql.protocol.messages import GRAPHQL_WS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from httpx_ws import AsyncWebSocketSession


class WebSocket(Protocol):
    """The socket primitives the transport relies on."""

    async def send_text(self, data: str) -> None:
        """Send one text frame.

        Raises:
            WebSocketClosedError: If the socket is gone.
        """
        ...

    async def receive_text(self) -> str:
        """Wait for the next text frame.

        Raises:
            WebSocketClosedError: If the socket was closed.
            MessageDecodeError: If a non-text frame arrived. The frame is consumed.
        """
        ...

    async def close(self) -> None:
        """Close the socket and release its resources."""
        ...


SocketFactory = Callable[[], Awaitable[WebSocket]]


class HttpxWebSocket:
    """``WebSocket`` implementation over an httpx-ws session.

    Attributes:
        subprotocol: The subprotocol accepted by the server, if any.
    """

    def __init__(self, session: AsyncWebSocketSession, exit_stack: AsyncExitStack) -> None:
        self._session = session
        self._exit_stack = exit_stack
        self.subprotocol: str | None = getattr(session, "subprotocol", None)

    async def send_text(self, data: str) -> None:
        try:
            await self._session.send_text(data)
        except WebSocketNetworkError as e:
            raise WebSocketClosedError(1006, str(e)) from e

    async def receive_text(self) -> str:
        try:
            return await self._session.receive_text()
        except WebSocketDisconnect as e:
            raise WebSocketClosedError(e.code, e.reason) from e
        except WebSocketNetworkError as e:
            raise WebSocketClosedError(1006, str(e)) from e
        except WebSocketInvalidTypeReceived as e:
            msg = f"Expected a text frame, got {type(e.event).__name__}"
            raise MessageDecodeError(msg) from e

    async def close(self) -> None:
        await self._exit_stack.aclose()


def _http_url(url: str) -> str:
    """httpx only speaks http(s); the upgrade request uses the matching scheme."""
    if url.startswith("ws://"):
        return "http://" + url[len("ws://") :]
    if url.startswith("wss://"):
        return "https://" + url[len("wss://") :]
    return url


class HttpxWebSocketFactory:
    """Opens ``graphql-ws`` sockets with httpx-ws.

    Attributes:
        url: The GraphQL endpoint. Either a path resolved against ``base_url``
            or an absolute ``ws://``/``http://`` URL.
        app: ASGI application to connect to in-process. When None, the default
            httpx network transport is used.
        base_url: Base URL of the httpx client.
        headers: Headers sent with the upgrade request.
        subprotocols: Subprotocols requested during the upgrade.

    Example:
        >>> factory = HttpxWebSocketFactory("/graphql", app=app)
        >>> socket = await factory()
        >>> await socket.send_text('{"type": "connection_init"}')
    """

    def __init__(
        self,
        url: str,
        *,
        app: Any = None,
        base_url: str = "http://test",
        headers: dict[str, str] | None = None,
        subprotocols: Sequence[str] = (GRAPHQL_WS,),
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = _http_url(url)
        self.app = app
        self.base_url = _http_url(base_url)
        self.headers = dict(headers or {})
        self.subprotocols = list(subprotocols)
        self._http_client = http_client

    async def __call__(self) -> HttpxWebSocket:
        stack = AsyncExitStack()
        try:
            client = self._http_client
            if client is None:
                transport = ASGIWebSocketTransport(app=self.app) if self.app is not None else None
                client = await stack.enter_async_context(httpx.AsyncClient(transport=transport, base_url=self.base_url))
            session = await stack.enter_async_context(
                aconnect_ws(self.url, client, subprotocols=self.subprotocols, headers=self.headers)
            )
        except BaseException:
            await stack.aclose()
            raise
        return HttpxWebSocket(session, stack)

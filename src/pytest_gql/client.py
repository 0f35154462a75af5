"""GraphQL subscription test client.

Example:
    >>> async with SubscriptionClient(app=app, init_payload={"token": "abc"}) as client:
    ...     events = []
    ...     handle = await client.create_subscription("subscription { onX }", {}, events.append)
    ...     ...
    ...     await handle.unsubscribe()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from graphql import DocumentNode, print_ast

from pytest_gql.config import SubscriptionConfig
from pytest_gql.errors import ConnectionInitError
from pytest_gql.transport.connection import ConnectionState, SubscriptionTransport
from pytest_gql.transport.socket import HttpxWebSocketFactory

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

    from pytest_gql.protocol.registry import SubscriptionCallback
    from pytest_gql.transport.socket import SocketFactory


def print_query(query: str | DocumentNode) -> str:
    """Return the query text, printing parsed documents with graphql-core."""
    if isinstance(query, DocumentNode):
        return print_ast(query)
    return query


@dataclass
class SubscriptionHandle:
    """A subscription started with ``SubscriptionClient.create_subscription``."""

    id: str
    client: SubscriptionClient = field(repr=False)

    async def unsubscribe(self) -> None:
        """Stop this subscription. Other subscriptions on the client keep running."""
        await self.client.unsubscribe(self.id)


class SubscriptionClient:
    """Client for the GraphQL subscriptions of an app under test.

    One client owns one WebSocket connection; any number of subscriptions can
    be multiplexed over it once the handshake has completed.

    Attributes:
        config: The effective configuration.
        transport: The underlying ``SubscriptionTransport``.
    """

    def __init__(
        self,
        url: str | None = None,
        *,
        app: Any = None,
        init_payload: Any = None,
        connection_callback: Callable[[], Any] | None = None,
        failed_connection_callback: Callable[[Exception], Any] | None = None,
        connection_lost_callback: Callable[[Exception], Any] | None = None,
        headers: dict[str, str] | None = None,
        config: SubscriptionConfig | None = None,
        socket_factory: SocketFactory | None = None,
    ) -> None:
        """Initialize the client. Call ``connect()`` (or use ``async with``) to open it.

        Args:
            url: GraphQL endpoint. Defaults to ``config.url``.
            app: ASGI app to drive in-process. When None, ``url`` is reached over the network.
            init_payload: ``connection_init`` payload, or a (possibly async) function returning it.
            connection_callback: Called once when the handshake succeeds.
            failed_connection_callback: Called once with the error when the handshake fails.
            connection_lost_callback: Called once if a ready connection is lost.
            headers: Extra headers for the WebSocket upgrade request.
            config: Client configuration. Defaults to ``SubscriptionConfig()``.
            socket_factory: Replaces the httpx-ws socket factory, e.g. in tests.
        """
        self.config = config or SubscriptionConfig()
        if socket_factory is None:
            socket_factory = HttpxWebSocketFactory(
                url or self.config.url,
                app=app,
                base_url=self.config.base_url,
                headers={**self.config.headers, **(headers or {})},
                subprotocols=[self.config.subprotocol],
            )
        self.transport = SubscriptionTransport(
            socket_factory,
            init_payload=init_payload,
            connection_callback=connection_callback,
            failed_connection_callback=failed_connection_callback,
            connection_lost_callback=connection_lost_callback,
            debug=self.config.debug,
        )

    @property
    def state(self) -> ConnectionState:
        """Current state of the connection."""
        return self.transport.state

    async def connect(self) -> SubscriptionClient:
        """Open the connection and wait for the handshake.

        Returns:
            The client itself, READY.

        Raises:
            ConnectionInitError: If the handshake failed or did not complete
                within ``config.connect_timeout``. The connection is closed.
        """
        try:
            state = await asyncio.wait_for(self.transport.connect(), timeout=self.config.connect_timeout)
        except asyncio.TimeoutError as e:
            msg = f"Handshake did not complete within {self.config.connect_timeout}s"
            error = ConnectionInitError(msg)
            await self.transport.close(error=error)
            raise error from e

        if state is not ConnectionState.READY:
            error = self.transport.handshake_error
            await self.transport.close()
            if isinstance(error, ConnectionInitError):
                raise error
            msg = f"Connection failed: {error}"
            raise ConnectionInitError(msg) from error
        return self

    async def create_subscription(
        self,
        query: str | DocumentNode,
        variables: Mapping[str, Any] | None,
        on_data: SubscriptionCallback,
        *,
        operation_name: str | None = None,
        on_error: SubscriptionCallback | None = None,
    ) -> SubscriptionHandle:
        """Start a subscription.

        Returns once the ``start`` frame has been written to the socket.

        Args:
            query: The subscription document, as text or parsed with graphql-core.
            variables: Operation variables.
            on_data: Called with the payload of each ``data`` frame.
            operation_name: Operation to run when the document holds several.
            on_error: Called with the payload of an ``error`` frame for this
                subscription. Defaults to ``on_data``.

        Returns:
            A handle whose ``unsubscribe()`` stops this subscription.

        Raises:
            ConnectionNotReadyError: If the client is not connected.
        """
        subscription_id = await self.transport.start_subscription(
            print_query(query),
            variables,
            on_data,
            operation_name=operation_name,
            on_error=on_error,
        )
        return SubscriptionHandle(id=subscription_id, client=self)

    async def unsubscribe(self, subscription_id: str) -> None:
        """Stop one subscription; its callbacks receive nothing further."""
        await self.transport.stop_subscription(subscription_id)

    async def close(self) -> None:
        """Close the connection and drop every subscription. Safe to call twice."""
        await self.transport.close()

    async def __aenter__(self) -> SubscriptionClient:
        return await self.connect()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


@dataclass
class ActiveSubscription:
    """A single subscription owning its own connection, as returned by ``subscribe()``."""

    id: str
    client: SubscriptionClient = field(repr=False)

    async def unsubscribe(self) -> None:
        """Close the connection carrying this subscription."""
        await self.client.close()


async def subscribe(
    query: str | DocumentNode,
    *,
    on_data: SubscriptionCallback,
    variables: Mapping[str, Any] | None = None,
    init_payload: Any = None,
    operation_name: str | None = None,
    app: Any = None,
    url: str | None = None,
    headers: dict[str, str] | None = None,
    config: SubscriptionConfig | None = None,
) -> ActiveSubscription:
    """Connect, start one subscription and return it.

    Args:
        query: The subscription document.
        on_data: Called with the payload of each ``data`` frame.
        variables: Operation variables.
        init_payload: ``connection_init`` payload, or a (possibly async) function returning it.
        operation_name: Operation to run when the document holds several.
        app: ASGI app to drive in-process.
        url: GraphQL endpoint. Defaults to ``config.url``.
        headers: Extra headers for the WebSocket upgrade request.
        config: Client configuration.

    Returns:
        The running subscription. ``unsubscribe()`` closes its connection.

    Raises:
        ConnectionInitError: If the handshake failed.

    Example:
        >>> events = []
        >>> sub = await subscribe("subscription { onX }", on_data=events.append, app=app)
        >>> await sub.unsubscribe()
    """
    client = SubscriptionClient(url, app=app, init_payload=init_payload, headers=headers, config=config)
    await client.connect()
    try:
        handle = await client.create_subscription(query, variables, on_data, operation_name=operation_name)
    except BaseException:
        await client.close()
        raise
    return ActiveSubscription(id=handle.id, client=client)

"""Tests for the SubscriptionClient facade."""

from __future__ import annotations

from unittest.mock import Mock

import pytest
from graphql import parse

from pytest_gql.client import SubscriptionClient, SubscriptionHandle, print_query
from pytest_gql.config import SubscriptionConfig
from pytest_gql.errors import ConnectionInitError, ConnectionNotReadyError
from pytest_gql.transport.connection import ConnectionState
from pytest_gql.transport.socket import HttpxWebSocketFactory

ACK = {"type": "connection_ack"}


class TestPrintQuery:
    """Tests for print_query."""

    def test_text_passes_through(self) -> None:
        """Test that query text is sent unchanged."""
        assert print_query("subscription{onX}") == "subscription{onX}"

    def test_document_is_printed(self) -> None:
        """Test that parsed documents are printed back to text."""
        printed = print_query(parse("subscription OnX { onX { id } }"))

        assert printed.startswith("subscription OnX")
        assert parse(printed).definitions[0].name.value == "OnX"


class TestSubscriptionClient:
    """Tests for SubscriptionClient."""

    def test_default_socket_factory(self) -> None:
        """Test that the default factory is built from the config."""
        config = SubscriptionConfig(url="/api/graphql", headers={"X-Env": "test"})

        client = SubscriptionClient(config=config, headers={"Authorization": "Bearer t"})

        factory = client.transport._socket_factory  # noqa: SLF001
        assert isinstance(factory, HttpxWebSocketFactory)
        assert factory.url == "/api/graphql"
        assert factory.headers == {"X-Env": "test", "Authorization": "Bearer t"}
        assert factory.subprotocols == ["graphql-ws"]

    def test_ws_url_uses_http_scheme(self) -> None:
        """Test that ws:// URLs are requested over http://."""
        client = SubscriptionClient("ws://localhost:4000/graphql")

        assert client.transport._socket_factory.url == "http://localhost:4000/graphql"  # noqa: SLF001

    @pytest.mark.asyncio
    async def test_connect_and_subscribe(self, socket_factory, fake_socket) -> None:
        """Test connecting, subscribing and receiving data."""
        on_connected = Mock()
        client = SubscriptionClient(
            socket_factory=socket_factory,
            init_payload={"token": "abc"},
            connection_callback=on_connected,
        )
        fake_socket.push(ACK)
        received = []

        assert await client.connect() is client
        handle = await client.create_subscription(parse("subscription { onX }"), {}, received.append)
        fake_socket.push({"id": handle.id, "type": "data", "payload": {"onX": 1}})
        await fake_socket.flush()

        assert client.state is ConnectionState.READY
        assert isinstance(handle, SubscriptionHandle)
        assert received == [{"onX": 1}]
        assert fake_socket.sent_messages[1]["payload"]["query"] == print_query(parse("subscription { onX }"))
        on_connected.assert_called_once_with()
        await client.close()

    @pytest.mark.asyncio
    async def test_handle_unsubscribe(self, socket_factory, fake_socket) -> None:
        """Test that unsubscribing one handle leaves the others running."""
        fake_socket.push(ACK)
        first, second = [], []

        async with SubscriptionClient(socket_factory=socket_factory) as client:
            handle = await client.create_subscription("subscription { a }", {}, first.append)
            await client.create_subscription("subscription { b }", {}, second.append)
            await handle.unsubscribe()

            fake_socket.push({"id": "1", "type": "data", "payload": {"a": 1}})
            fake_socket.push({"id": "2", "type": "data", "payload": {"b": 1}})
            await fake_socket.flush()

        assert first == []
        assert second == [{"b": 1}]
        assert {"id": "1", "type": "stop"} in fake_socket.sent_messages
        assert client.state is ConnectionState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_raises_on_rejection(self, socket_factory, fake_socket) -> None:
        """Test that a rejected handshake raises and closes the client."""
        on_failed = Mock()
        client = SubscriptionClient(socket_factory=socket_factory, failed_connection_callback=on_failed)
        fake_socket.push({"type": "connection_error", "payload": {"message": "unauthorized"}})

        with pytest.raises(ConnectionInitError, match="rejected") as exc_info:
            await client.connect()

        assert exc_info.value.payload == {"message": "unauthorized"}
        on_failed.assert_called_once_with(exc_info.value)
        assert client.state is ConnectionState.FAILED

    @pytest.mark.asyncio
    async def test_connect_timeout(self, socket_factory, fake_socket) -> None:
        """Test that a server that never acknowledges times out."""
        on_failed = Mock()
        client = SubscriptionClient(
            socket_factory=socket_factory,
            failed_connection_callback=on_failed,
            config=SubscriptionConfig(connect_timeout=0.05),
        )

        with pytest.raises(ConnectionInitError, match="within 0.05s") as exc_info:
            await client.connect()

        assert client.state is ConnectionState.CLOSED
        assert fake_socket.closed
        on_failed.assert_called_once_with(exc_info.value)
        assert client.transport.handshake_error is exc_info.value

    @pytest.mark.asyncio
    async def test_subscribe_before_connect_raises(self, socket_factory) -> None:
        """Test that create_subscription requires a connected client."""
        client = SubscriptionClient(socket_factory=socket_factory)

        with pytest.raises(ConnectionNotReadyError):
            await client.create_subscription("subscription { a }", {}, print)

    @pytest.mark.asyncio
    async def test_debug_flag_reaches_transport(self, socket_factory) -> None:
        """Test that the debug setting is passed to the transport."""
        client = SubscriptionClient(socket_factory=socket_factory, config=SubscriptionConfig(debug=True))

        assert client.transport.debug is True

    @pytest.mark.asyncio
    async def test_context_manager_closes_on_error(self, socket_factory, fake_socket) -> None:
        """Test that leaving the block with an exception still closes the client."""
        fake_socket.push(ACK)

        with pytest.raises(KeyError):
            async with SubscriptionClient(socket_factory=socket_factory) as client:
                raise KeyError("boom")

        assert client.state is ConnectionState.CLOSED
        assert fake_socket.closed

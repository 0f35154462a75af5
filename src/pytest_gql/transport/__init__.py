"""WebSocket transport for GraphQL subscriptions.

Architecture:
    SubscriptionTransport
        |
        +-- SocketFactory -> WebSocket (HttpxWebSocketFactory -> HttpxWebSocket)
        +-- SubscriptionRegistry (id -> Subscription)
        +-- encode_message / decode_message
"""

from __future__ import annotations

from pytest_gql.transport.connection import (
    ConnectionState,
    InitPayload,
    ProducerPayload,
    StaticPayload,
    SubscriptionTransport,
    as_init_payload,
)
from pytest_gql.transport.socket import HttpxWebSocket, HttpxWebSocketFactory, SocketFactory, WebSocket

__all__ = [
    "ConnectionState",
    "HttpxWebSocket",
    "HttpxWebSocketFactory",
    "InitPayload",
    "ProducerPayload",
    "SocketFactory",
    "StaticPayload",
    "SubscriptionTransport",
    "WebSocket",
    "as_init_payload",
]

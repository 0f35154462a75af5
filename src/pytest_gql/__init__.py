"""pytest-gql: GraphQL subscription testing over graphql-ws for ASGI applications."""

from __future__ import annotations

from pytest_gql.__metadata__ import __version__
from pytest_gql.client import (
    ActiveSubscription,
    SubscriptionClient,
    SubscriptionHandle,
    print_query,
    subscribe,
)
from pytest_gql.config import SubscriptionConfig, load_config_from_pyproject, merge_configs
from pytest_gql.errors import (
    ConnectionClosedError,
    ConnectionInitError,
    ConnectionLostError,
    ConnectionNotReadyError,
    GraphQLClientError,
    MessageDecodeError,
    WebSocketClosedError,
)
from pytest_gql.protocol import (
    MessageType,
    OperationMessage,
    Subscription,
    SubscriptionRegistry,
    decode_message,
    encode_message,
)
from pytest_gql.transport import (
    ConnectionState,
    HttpxWebSocketFactory,
    ProducerPayload,
    StaticPayload,
    SubscriptionTransport,
)

__all__ = [
    "__version__",
    # Client
    "ActiveSubscription",
    "SubscriptionClient",
    "SubscriptionHandle",
    "print_query",
    "subscribe",
    # Config
    "SubscriptionConfig",
    "load_config_from_pyproject",
    "merge_configs",
    # Errors
    "ConnectionClosedError",
    "ConnectionInitError",
    "ConnectionLostError",
    "ConnectionNotReadyError",
    "GraphQLClientError",
    "MessageDecodeError",
    "WebSocketClosedError",
    # Protocol
    "MessageType",
    "OperationMessage",
    "Subscription",
    "SubscriptionRegistry",
    "decode_message",
    "encode_message",
    # Transport
    "ConnectionState",
    "HttpxWebSocketFactory",
    "ProducerPayload",
    "StaticPayload",
    "SubscriptionTransport",
]

"""The graphql-ws message codec and the subscription registry."""

from __future__ import annotations

from pytest_gql.protocol.messages import (
    GRAPHQL_WS,
    MessageType,
    OperationMessage,
    connection_init_message,
    decode_message,
    encode_message,
    start_message,
    stop_message,
)
from pytest_gql.protocol.registry import Subscription, SubscriptionCallback, SubscriptionRegistry

__all__ = [
    "GRAPHQL_WS",
    "MessageType",
    "OperationMessage",
    "Subscription",
    "SubscriptionCallback",
    "SubscriptionRegistry",
    "connection_init_message",
    "decode_message",
    "encode_message",
    "start_message",
    "stop_message",
]

"""Wire messages of the ``graphql-ws`` subscription subprotocol.

Every frame is a JSON text frame shaped as ``{"id"?, "type", "payload"?}``.
This module converts between that text form and ``OperationMessage``.

Message types:
    Client -> Server
        - connection_init: start the handshake, carries the auth/context payload
        - start: begin subscription ``id``
        - stop: cancel subscription ``id``

    Server -> Client
        - connection_ack: handshake accepted
        - connection_error: handshake rejected
        - data: one event for subscription ``id``
        - error: subscription-level (with ``id``) or connection-level error
        - complete: subscription ``id`` finished
        - ka: keep-alive
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from pytest_gql.errors import MessageDecodeError

if TYPE_CHECKING:
    from collections.abc import Mapping

GRAPHQL_WS = "graphql-ws"


class MessageType(str, Enum):
    """Message types of the ``graphql-ws`` subprotocol."""

    CONNECTION_INIT = "connection_init"
    CONNECTION_ACK = "connection_ack"
    CONNECTION_ERROR = "connection_error"
    START = "start"
    DATA = "data"
    ERROR = "error"
    COMPLETE = "complete"
    STOP = "stop"
    KEEP_ALIVE = "ka"


_KNOWN_TYPES = {member.value for member in MessageType}

# Fields a known server message cannot be decoded without.
_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    MessageType.DATA.value: ("id", "payload"),
    MessageType.COMPLETE.value: ("id",),
    MessageType.ERROR.value: ("payload",),
    MessageType.START.value: ("id", "payload"),
    MessageType.STOP.value: ("id",),
}


@dataclass(frozen=True)
class OperationMessage:
    """A single protocol frame.

    Attributes:
        type: The message type. A plain string so that unknown types survive decoding.
        id: The subscription id the frame belongs to, if any.
        payload: The message payload, if any.
    """

    type: str
    id: str | None = None
    payload: Any = None

    @property
    def is_known(self) -> bool:
        """Whether the message type is part of the protocol."""
        return self.type in _KNOWN_TYPES

    def to_dict(self) -> dict[str, Any]:
        """Build the JSON envelope, leaving out absent fields."""
        data: dict[str, Any] = {}
        if self.id is not None:
            data["id"] = self.id
        data["type"] = self.type
        if self.payload is not None:
            data["payload"] = self.payload
        return data


def encode_message(message: OperationMessage) -> str:
    """Encode a message as a JSON text frame.

    Args:
        message: The message to encode.

    Returns:
        The JSON text of the frame.

    Example:
        >>> encode_message(OperationMessage(type="stop", id="1"))
        '{"id": "1", "type": "stop"}'
    """
    return json.dumps(message.to_dict())


def decode_message(raw: str | bytes) -> OperationMessage:
    """Decode a JSON text frame into a message.

    Args:
        raw: The raw frame received from the socket.

    Returns:
        The decoded message. Unknown message types are decoded as-is.

    Raises:
        MessageDecodeError: If the frame is not a well-formed message envelope,
            or a known message type is missing one of its required fields.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        msg = f"Frame is not valid JSON: {e}"
        raise MessageDecodeError(msg, raw) from e

    if not isinstance(data, dict):
        msg = f"Frame must be a JSON object, got {type(data).__name__}"
        raise MessageDecodeError(msg, raw)

    message_type = data.get("type")
    if not isinstance(message_type, str):
        msg = "Frame has no string 'type' field"
        raise MessageDecodeError(msg, raw)

    message_id = data.get("id")
    # bool is an int subclass, but never a valid id
    if isinstance(message_id, bool) or not (message_id is None or isinstance(message_id, (str, int))):
        msg = f"Frame id must be a string or an integer, got {type(message_id).__name__}"
        raise MessageDecodeError(msg, raw)

    for name in _REQUIRED_FIELDS.get(message_type, ()):
        if data.get(name) is None:
            msg = f"'{message_type}' frame is missing required field '{name}'"
            raise MessageDecodeError(msg, raw)

    return OperationMessage(
        type=message_type,
        id=str(message_id) if message_id is not None else None,
        payload=data.get("payload"),
    )


def connection_init_message(payload: Mapping[str, Any] | None = None) -> OperationMessage:
    """Build the ``connection_init`` message opening the handshake."""
    return OperationMessage(
        type=MessageType.CONNECTION_INIT.value,
        payload=dict(payload) if payload is not None else None,
    )


def start_message(
    subscription_id: str,
    query: str,
    variables: Mapping[str, Any] | None = None,
    operation_name: str | None = None,
) -> OperationMessage:
    """Build the ``start`` message for a subscription.

    Args:
        subscription_id: The client-assigned subscription id.
        query: The printed GraphQL document.
        variables: The operation variables. Key order is preserved.
        operation_name: The operation to run when the document holds several.

    Returns:
        The ``start`` message.
    """
    payload: dict[str, Any] = {
        "query": query,
        "variables": dict(variables) if variables is not None else {},
    }
    if operation_name is not None:
        payload["operationName"] = operation_name
    return OperationMessage(type=MessageType.START.value, id=subscription_id, payload=payload)


def stop_message(subscription_id: str) -> OperationMessage:
    """Build the ``stop`` message cancelling a subscription."""
    return OperationMessage(type=MessageType.STOP.value, id=subscription_id)

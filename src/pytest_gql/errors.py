"""Exception hierarchy for pytest-gql.

Handshake failures and connection loss are surfaced through the callbacks
given to the client (and, for ``SubscriptionClient.connect``, raised to the
caller). ``MessageDecodeError`` never escapes the transport: a malformed frame
is dropped and logged.
"""

from __future__ import annotations

from typing import Any


class GraphQLClientError(Exception):
    """Base class for all pytest-gql errors."""


class ConnectionInitError(GraphQLClientError):
    """The connection never reached the READY state.

    Attributes:
        payload: The ``connection_error`` payload sent by the server, if any.
    """

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class ConnectionClosedError(ConnectionInitError):
    """The socket was closed before the handshake completed."""


class ConnectionLostError(GraphQLClientError):
    """A READY connection was terminated by the server or the network.

    Every subscription that was live on the connection is orphaned: no
    further frames will be delivered to its callbacks.

    Attributes:
        payload: The payload of the untagged ``error`` frame, if any.
    """

    def __init__(self, message: str, payload: Any = None) -> None:
        super().__init__(message)
        self.payload = payload


class ConnectionNotReadyError(GraphQLClientError):
    """An operation that needs a READY connection was attempted too early or too late."""


class MessageDecodeError(GraphQLClientError):
    """An inbound frame is not a valid protocol message.

    Attributes:
        raw: The raw text of the offending frame.
    """

    def __init__(self, message: str, raw: str | bytes | None = None) -> None:
        super().__init__(message)
        self.raw = raw


class WebSocketClosedError(GraphQLClientError):
    """The underlying socket was closed, by the peer or by a network failure.

    Attributes:
        code: The WebSocket close code.
        reason: The close reason, if one was given.
    """

    def __init__(self, code: int = 1006, reason: str | None = None) -> None:
        super().__init__(f"WebSocket closed with code {code}" + (f": {reason}" if reason else ""))
        self.code = code
        self.reason = reason

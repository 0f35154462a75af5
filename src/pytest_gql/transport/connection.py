"""The graphql-ws subscription transport.

``SubscriptionTransport`` owns one WebSocket and the registry of the
subscriptions multiplexed over it. A single connection task opens the socket,
runs the ``connection_init``/``connection_ack`` handshake, then reads frames
one at a time and routes them to the subscription they belong to. The same
task closes the socket when it ends, so the socket is always entered and
exited from one task.

State machine::

    CONNECTING --> HANDSHAKING --> READY --> CLOSING --> CLOSED
         |              |            |
         +--------------+------------+--> FAILED

Callbacks (connection-level and per-subscription) run on the connection task.
A frame's callback finishes, and is awaited if it returns an awaitable, before
the next frame is read.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Union

from pytest_gql.errors import (
    ConnectionClosedError,
    ConnectionInitError,
    ConnectionLostError,
    ConnectionNotReadyError,
    MessageDecodeError,
    WebSocketClosedError,
)
from pytest_gql.protocol.messages import (
    MessageType,
    OperationMessage,
    connection_init_message,
    decode_message,
    encode_message,
    start_message,
    stop_message,
)
from pytest_gql.protocol.registry import SubscriptionCallback, SubscriptionRegistry

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pytest_gql.transport.socket import SocketFactory, WebSocket

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle states of a subscription transport."""

    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass(frozen=True)
class StaticPayload:
    """A ``connection_init`` payload known up front."""

    value: Mapping[str, Any] | None = None

    async def resolve(self) -> Mapping[str, Any] | None:
        return self.value


@dataclass(frozen=True)
class ProducerPayload:
    """A ``connection_init`` payload computed once per connection attempt.

    The producer may be a plain function or return an awaitable (e.g. an
    ``async def`` that fetches a token); the result is awaited before the
    ``connection_init`` frame is sent.
    """

    producer: Callable[[], Any]

    async def resolve(self) -> Mapping[str, Any] | None:
        result = self.producer()
        if inspect.isawaitable(result):
            result = await result
        return result


InitPayload = Union[StaticPayload, ProducerPayload]


def as_init_payload(value: Any) -> InitPayload:
    """Wrap a raw payload, producer or ready-made variant as an ``InitPayload``.

    A missing payload becomes an empty object, so ``connection_init`` always
    carries one.

    Example:
        >>> as_init_payload({"token": "abc"})
        StaticPayload(value={'token': 'abc'})
        >>> as_init_payload(None)
        StaticPayload(value={})
    """
    if value is None:
        return StaticPayload({})
    if isinstance(value, (StaticPayload, ProducerPayload)):
        return value
    if callable(value):
        return ProducerPayload(value)
    return StaticPayload(value)


async def _invoke(name: str, callback: Callable[..., Any] | None, *args: Any) -> None:
    """Run a user callback, awaiting it if needed.

    Errors raised by the callback are logged and do not reach the connection task.
    """
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Error in %s callback", name)


class SubscriptionTransport:
    """A stateful ``graphql-ws`` peer multiplexing subscriptions over one socket.

    Attributes:
        registry: The live subscriptions of this connection.
        state: The current lifecycle state.
        debug: Log malformed frames at WARNING instead of DEBUG.

    Example:
        >>> transport = SubscriptionTransport(factory, init_payload={"token": "abc"})
        >>> state = await transport.connect()
        >>> sub_id = await transport.start_subscription("subscription { onX }", {}, print)
        >>> await transport.close()
    """

    def __init__(
        self,
        socket_factory: SocketFactory,
        *,
        init_payload: Any = None,
        connection_callback: Callable[[], Any] | None = None,
        failed_connection_callback: Callable[[Exception], Any] | None = None,
        connection_lost_callback: Callable[[Exception], Any] | None = None,
        debug: bool = False,
    ) -> None:
        """Initialize the transport. Nothing is opened until ``connect()``.

        Args:
            socket_factory: Async callable returning an open ``WebSocket``.
            init_payload: ``connection_init`` payload: a mapping, a (possibly async)
                function producing one, or a ``StaticPayload``/``ProducerPayload``.
                Defaults to an empty object.
            connection_callback: Called once when the server acknowledges the handshake.
            failed_connection_callback: Called once with the error when the
                handshake fails. Never called after ``connection_callback``.
            connection_lost_callback: Called once with a ``ConnectionLostError``
                when a READY connection is terminated by the server or the network.
            debug: Log malformed frames at WARNING level.
        """
        self._socket_factory = socket_factory
        self._init_payload = as_init_payload(init_payload)
        self._connection_callback = connection_callback
        self._failed_connection_callback = failed_connection_callback
        self._connection_lost_callback = connection_lost_callback
        self.debug = debug

        self.registry = SubscriptionRegistry()
        self.state = ConnectionState.CONNECTING
        self.handshake_error: Exception | None = None

        self._socket: WebSocket | None = None
        self._task: asyncio.Task[None] | None = None
        self._handshake_settled = False
        self._handshake_done = asyncio.Event()
        self._close_called = False

    @property
    def is_ready(self) -> bool:
        """Whether subscriptions can be started."""
        return self.state is ConnectionState.READY

    async def connect(self) -> ConnectionState:
        """Open the socket and run the handshake.

        Returns once the handshake has been settled either way; the outcome is
        also reported through the connection callbacks.

        Returns:
            READY on success; FAILED or CLOSED otherwise (see ``handshake_error``).

        Raises:
            RuntimeError: If the transport was already started or closed.
        """
        if self._task is not None or self._close_called:
            msg = "connect() can only be called once on a fresh transport"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(self._run(), name="pytest-gql-connection")
        await self._handshake_done.wait()
        return self.state

    async def start_subscription(
        self,
        query: str,
        variables: Mapping[str, Any] | None,
        on_data: SubscriptionCallback,
        *,
        operation_name: str | None = None,
        on_error: SubscriptionCallback | None = None,
    ) -> str:
        """Register a subscription and send its ``start`` frame.

        Returns after the frame has been written to the socket.

        Returns:
            The id allocated for the subscription.

        Raises:
            ConnectionNotReadyError: If the connection is not READY.
            WebSocketClosedError: If the socket went away while sending.
        """
        if not self.is_ready:
            msg = f"Cannot start a subscription while the connection is {self.state.value}"
            raise ConnectionNotReadyError(msg)

        subscription_id = self.registry.register(
            query,
            on_data,
            variables,
            operation_name=operation_name,
            on_error=on_error,
        )
        try:
            await self._send(start_message(subscription_id, query, variables, operation_name))
        except BaseException:
            self.registry.remove(subscription_id)
            raise
        return subscription_id

    async def stop_subscription(self, subscription_id: str) -> None:
        """Forget a subscription and ask the server to stop it.

        The registry entry is dropped immediately; the ``stop`` frame is best
        effort and not sent at all unless the connection is READY.
        """
        if self.registry.remove(subscription_id) is None:
            return
        if not self.is_ready:
            return
        try:
            await self._send(stop_message(subscription_id))
        except WebSocketClosedError as e:
            logger.debug("Could not send stop for subscription %s: %s", subscription_id, e)

    async def close(self, error: Exception | None = None) -> None:
        """Tear the connection down.

        No ``stop`` frames are sent; the registry is cleared and the socket
        closed. Calling ``close()`` again does nothing.

        Args:
            error: Reported to the failure callback when the handshake is
                still pending. Defaults to a ``ConnectionClosedError``.
        """
        if self._close_called:
            return
        self._close_called = True

        if self.state is not ConnectionState.FAILED:
            self._set_state(ConnectionState.CLOSING)
        self.registry.clear()

        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if task is not None and not self._handshake_settled:
            await self._settle_handshake(
                error or ConnectionClosedError("Connection closed before the handshake completed")
            )

        if self.state is ConnectionState.CLOSING:
            self._set_state(ConnectionState.CLOSED)

    async def _run(self) -> None:
        try:
            await self._open()
            if self.state is ConnectionState.HANDSHAKING:
                await self._receive_loop()
        except Exception as e:
            logger.exception("Subscription connection crashed")
            await self._fail(ConnectionLostError(f"Connection crashed: {e}"))
        finally:
            socket, self._socket = self._socket, None
            if socket is not None:
                try:
                    await socket.close()
                except Exception:
                    logger.debug("Error while closing the WebSocket", exc_info=True)
            if not self._handshake_settled and self.state is not ConnectionState.CLOSING:
                self._set_state(ConnectionState.FAILED)
                await self._settle_handshake(ConnectionClosedError("Connection ended before the handshake completed"))

    async def _open(self) -> None:
        try:
            self._socket = await self._socket_factory()
        except Exception as e:
            await self._fail(ConnectionInitError(f"Could not open the WebSocket connection: {e}"))
            return

        self._set_state(ConnectionState.HANDSHAKING)

        try:
            init_message = connection_init_message(await self._init_payload.resolve())
        except Exception as e:
            await self._fail(ConnectionInitError(f"Could not produce the connection_init payload: {e}"))
            return

        try:
            await self._send(init_message)
        except WebSocketClosedError as e:
            await self._fail(ConnectionClosedError(f"Socket closed while sending connection_init: {e}"))

    async def _receive_loop(self) -> None:
        while self.state in (ConnectionState.HANDSHAKING, ConnectionState.READY):
            socket = self._socket
            if socket is None:
                return
            try:
                raw = await socket.receive_text()
                message = decode_message(raw)
            except MessageDecodeError as e:
                self._log_malformed(e)
                continue
            except WebSocketClosedError as e:
                await self._on_socket_closed(e)
                return

            logger.debug("< %s", raw)
            await self._dispatch(message)

    async def _dispatch(self, message: OperationMessage) -> None:
        if self.state is ConnectionState.HANDSHAKING:
            await self._handle_handshake(message)
        elif self.state is ConnectionState.READY:
            await self._handle_operation(message)

    async def _handle_handshake(self, message: OperationMessage) -> None:
        if message.type == MessageType.CONNECTION_ACK:
            self._set_state(ConnectionState.READY)
            await self._settle_handshake(None)
        elif message.type == MessageType.CONNECTION_ERROR:
            await self._fail(ConnectionInitError("Server rejected the connection", message.payload))
        elif message.type == MessageType.ERROR and message.id is None:
            await self._fail(ConnectionInitError("Server sent an error during the handshake", message.payload))
        else:
            logger.debug("Ignoring '%s' frame received during the handshake", message.type)

    async def _handle_operation(self, message: OperationMessage) -> None:
        if message.type == MessageType.DATA:
            subscription = self.registry.lookup(message.id)
            if subscription is None:
                logger.debug("Dropping data for unknown subscription %s", message.id)
                return
            await _invoke("data", subscription.on_data, message.payload)

        elif message.type == MessageType.ERROR:
            if message.id is None:
                await self._fail(ConnectionLostError("Server sent a connection-level error", message.payload))
                return
            subscription = self.registry.remove(message.id)
            if subscription is None:
                logger.debug("Dropping error for unknown subscription %s", message.id)
                return
            await _invoke("error", subscription.error_callback, message.payload)

        elif message.type == MessageType.COMPLETE:
            self.registry.remove(message.id)

        elif message.type != MessageType.KEEP_ALIVE:
            logger.debug("Ignoring '%s' frame", message.type)

    async def _on_socket_closed(self, error: WebSocketClosedError) -> None:
        if self.state is ConnectionState.HANDSHAKING:
            await self._fail(ConnectionClosedError(f"Socket closed during the handshake: {error}"))
        elif self.state is ConnectionState.READY:
            await self._fail(ConnectionLostError(f"Socket closed unexpectedly: {error}"))

    async def _fail(self, error: Exception) -> None:
        """Move to FAILED and report the error through the matching callback."""
        was_ready = self.state is ConnectionState.READY
        if self.state not in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            self._set_state(ConnectionState.FAILED)
        self.registry.clear()

        if not self._handshake_settled:
            await self._settle_handshake(error)
        elif was_ready:
            await _invoke("connection lost", self._connection_lost_callback, error)

    async def _settle_handshake(self, error: Exception | None) -> None:
        if self._handshake_settled:
            return
        self._handshake_settled = True
        self.handshake_error = error
        self._handshake_done.set()

        if error is None:
            logger.debug("Subscription connection ready")
            await _invoke("connection", self._connection_callback)
        else:
            logger.debug("Subscription connection failed: %s", error)
            await _invoke("failed connection", self._failed_connection_callback, error)

    async def _send(self, message: OperationMessage) -> None:
        if self._socket is None:
            msg = f"No open socket while the connection is {self.state.value}"
            raise ConnectionNotReadyError(msg)
        frame = encode_message(message)
        logger.debug("> %s", frame)
        await self._socket.send_text(frame)

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug("Connection state %s -> %s", self.state.value, state.value)
            self.state = state

    def _log_malformed(self, error: MessageDecodeError) -> None:
        level = logging.WARNING if self.debug else logging.DEBUG
        logger.log(level, "Dropping malformed frame: %s (%r)", error, error.raw)

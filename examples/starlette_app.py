"""Example Starlette application serving GraphQL subscriptions over graphql-ws.

The schema is executed with graphql-core. Point the plugin at it with::

    pytest --gql-app examples.starlette_app:app

or point a ``SubscriptionClient`` at it directly::

    async with SubscriptionClient(app=app, init_payload={"token": "secret"}) as client:
        await client.create_subscription("subscription { count(upto: 3) }", {}, print)
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any

from graphql import GraphQLError, build_schema, parse, subscribe, validate
from starlette.applications import Starlette
from starlette.routing import WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect

TOKEN = "secret"

schema = build_schema(
    """
    type Query {
        hello: String
    }

    type Subscription {
        count(upto: Int = 3): Int
        fail: Int
    }
    """
)


async def count_events(_root: Any, _info: Any, upto: int = 3):
    """Yield 0 .. upto - 1."""
    for i in range(upto):
        yield i
        await asyncio.sleep(0)


def fail_events(_root: Any, _info: Any) -> Any:
    """Refuse to open the event stream."""
    msg = "subscription source failed"
    raise GraphQLError(msg)


def _event_value(event: Any, _info: Any, **_args: Any) -> Any:
    return event


schema.subscription_type.fields["count"].subscribe = count_events
schema.subscription_type.fields["count"].resolve = _event_value
schema.subscription_type.fields["fail"].subscribe = fail_events
schema.subscription_type.fields["fail"].resolve = _event_value


async def _stream(websocket: WebSocket, operation_id: str, payload: dict[str, Any]) -> None:
    """Run one subscription and forward its results as data frames."""
    try:
        document = parse(payload["query"])
    except GraphQLError as e:
        await websocket.send_json({"id": operation_id, "type": "error", "payload": e.formatted})
        return

    if errors := validate(schema, document):
        await websocket.send_json({"id": operation_id, "type": "error", "payload": errors[0].formatted})
        return

    result = subscribe(
        schema,
        document,
        variable_values=payload.get("variables"),
        operation_name=payload.get("operationName"),
    )
    if inspect.isawaitable(result):
        result = await result

    if not hasattr(result, "__aiter__"):
        await websocket.send_json({"id": operation_id, "type": "error", "payload": result.errors[0].formatted})
        return

    async for item in result:
        await websocket.send_json({"id": operation_id, "type": "data", "payload": item.formatted})
    await websocket.send_json({"id": operation_id, "type": "complete"})


async def graphql_ws(websocket: WebSocket) -> None:
    """graphql-ws endpoint requiring ``{"token": TOKEN}`` in the connection_init payload."""
    await websocket.accept(subprotocol="graphql-ws")

    init = await websocket.receive_json()
    if init.get("type") != "connection_init" or (init.get("payload") or {}).get("token") != TOKEN:
        await websocket.send_json({"type": "connection_error", "payload": {"message": "invalid token"}})
        await websocket.close(code=4403)
        return
    await websocket.send_json({"type": "connection_ack"})

    operations: dict[str, asyncio.Task[None]] = {}
    try:
        while True:
            message = await websocket.receive_json()
            if message.get("type") == "start":
                operations[message["id"]] = asyncio.create_task(_stream(websocket, message["id"], message["payload"]))
            elif message.get("type") == "stop":
                task = operations.pop(message["id"], None)
                if task is not None:
                    task.cancel()
            elif message.get("type") == "connection_terminate":
                break
    except WebSocketDisconnect:
        pass
    finally:
        for task in operations.values():
            task.cancel()
        await asyncio.gather(*operations.values(), return_exceptions=True)


app = Starlette(routes=[WebSocketRoute("/graphql", graphql_ws)])

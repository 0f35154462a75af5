"""Per-connection registry of live subscriptions."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from collections.abc import Mapping

SubscriptionCallback = Callable[[Any], Any]
"""Receives a frame payload. May return an awaitable, which is awaited."""


@dataclass
class Subscription:
    """A subscription registered on a connection.

    Attributes:
        id: The client-assigned id, unique for the connection's lifetime.
        query: The printed GraphQL document.
        variables: The operation variables.
        on_data: Called with the payload of every ``data`` frame.
        operation_name: Optional operation name sent with ``start``.
        on_error: Called with the payload of an ``error`` frame. Defaults to ``on_data``.
    """

    id: str
    query: str
    on_data: SubscriptionCallback
    variables: dict[str, Any] = field(default_factory=dict)
    operation_name: str | None = None
    on_error: SubscriptionCallback | None = field(default=None, repr=False)

    @property
    def error_callback(self) -> SubscriptionCallback:
        """The callback that receives error payloads."""
        return self.on_error or self.on_data


class SubscriptionRegistry:
    """Maps subscription ids to their subscriptions.

    Ids are allocated from a counter owned by the registry, so they strictly
    increase ("1", "2", ...) and are never reused, even after removal. Late
    server frames for a removed id can therefore never reach a newer
    subscription.

    The registry is only touched from the connection's event loop and always
    by exact key, so it does no locking.

    Example:
        >>> registry = SubscriptionRegistry()
        >>> sub_id = registry.register("subscription { onX }", on_data=print)
        >>> sub_id
        '1'
        >>> registry.lookup("1").query
        'subscription { onX }'
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}
        self._counter = itertools.count(1)

    def register(
        self,
        query: str,
        on_data: SubscriptionCallback,
        variables: Mapping[str, Any] | None = None,
        *,
        operation_name: str | None = None,
        on_error: SubscriptionCallback | None = None,
    ) -> str:
        """Register a subscription under a fresh id.

        Returns:
            The allocated id.
        """
        subscription_id = str(next(self._counter))
        self._subscriptions[subscription_id] = Subscription(
            id=subscription_id,
            query=query,
            on_data=on_data,
            variables=dict(variables) if variables is not None else {},
            operation_name=operation_name,
            on_error=on_error,
        )
        return subscription_id

    def lookup(self, subscription_id: str) -> Subscription | None:
        """Return the live subscription with this id, or None."""
        return self._subscriptions.get(subscription_id)

    def remove(self, subscription_id: str) -> Subscription | None:
        """Remove a subscription. Removing an unknown id is a no-op.

        Returns:
            The removed subscription, or None if the id was not registered.
        """
        return self._subscriptions.pop(subscription_id, None)

    def clear(self) -> None:
        """Drop every subscription. The id counter keeps running."""
        self._subscriptions.clear()

    def ids(self) -> list[str]:
        """Ids of the live subscriptions, in registration order."""
        return list(self._subscriptions)

    def __contains__(self, subscription_id: object) -> bool:
        return subscription_id in self._subscriptions

    def __len__(self) -> int:
        return len(self._subscriptions)

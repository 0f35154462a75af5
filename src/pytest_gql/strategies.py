"""Hypothesis strategies for graphql-ws frames.

These strategies generate what a server might send to a subscription client,
so that routing and robustness properties of the client can be checked
against many frame sequences.

Architecture:
    Frame Strategies (atomic)
        - server_frame_strategy: well-formed server -> client frames
        - malformed_frame_strategy: text frames that are not valid messages

    Script Strategies (composite)
        - subscription_script_strategy: interleaved subscribe/unsubscribe/frame steps
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from hypothesis import strategies as st

from pytest_gql.protocol.messages import MessageType, OperationMessage, encode_message

if TYPE_CHECKING:
    from hypothesis.strategies import SearchStrategy

_DEFAULT_MAX_IDS = 5
_DEFAULT_SCRIPT_MIN_SIZE = 1
_DEFAULT_SCRIPT_MAX_SIZE = 30

_json_scalars = st.none() | st.booleans() | st.integers() | st.text(max_size=20)
_json_values = st.recursive(
    _json_scalars,
    lambda children: st.lists(children, max_size=3) | st.dictionaries(st.text(max_size=10), children, max_size=3),
    max_leaves=10,
)


def subscription_id_strategy(max_ids: int = _DEFAULT_MAX_IDS) -> SearchStrategy[str]:
    """Generate ids in the range a client would have allocated ("1" .. max_ids)."""
    return st.integers(min_value=1, max_value=max_ids).map(str)


def payload_strategy() -> SearchStrategy[dict[str, Any]]:
    """Generate non-null JSON object payloads."""
    return st.dictionaries(st.text(min_size=1, max_size=10), _json_values, max_size=4)


def server_frame_strategy(max_ids: int = _DEFAULT_MAX_IDS) -> SearchStrategy[OperationMessage]:
    """Generate well-formed frames a server may send to a READY client.

    Connection-level errors are left out since they end the connection.

    Args:
        max_ids: Highest subscription id to generate.

    Returns:
        Strategy producing ``OperationMessage`` instances.

    Example:
        >>> @given(server_frame_strategy())
        ... def test_frame(message):
        ...     assert message.type in {"data", "error", "complete", "ka"}
    """
    ids = subscription_id_strategy(max_ids)
    return st.one_of(
        st.builds(OperationMessage, type=st.just(MessageType.DATA.value), id=ids, payload=payload_strategy()),
        st.builds(
            OperationMessage,
            type=st.just(MessageType.ERROR.value),
            id=ids,
            payload=st.fixed_dictionaries({"message": st.text(max_size=20)}),
        ),
        st.builds(OperationMessage, type=st.just(MessageType.COMPLETE.value), id=ids),
        st.just(OperationMessage(type=MessageType.KEEP_ALIVE.value)),
    )


def malformed_frame_strategy() -> SearchStrategy[str]:
    """Generate text frames that must be rejected by the decoder.

    Covers invalid JSON, non-object JSON, missing or non-string types, and
    known types lacking a required field.
    """
    not_json = st.text(max_size=20).filter(lambda s: not _is_json(s))
    non_object = st.one_of(st.lists(_json_scalars, max_size=3), _json_scalars).map(json.dumps)
    bad_type = st.fixed_dictionaries({"type": st.one_of(st.none(), st.integers(), st.booleans())}).map(json.dumps)
    missing_field = st.sampled_from(
        [
            {"type": "data", "payload": {"x": 1}},
            {"type": "data", "id": "1"},
            {"type": "complete"},
            {"type": "error", "id": "1"},
        ]
    ).map(json.dumps)
    return st.one_of(not_json, non_object, bad_type, missing_field)


def _is_json(text: str) -> bool:
    try:
        json.loads(text)
    except ValueError:
        return False
    return True


@dataclass
class SubscriptionScript:
    """A sequence of client actions and server frames.

    Each step is one of:
        - ("subscribe", None): the client starts a new subscription
        - ("unsubscribe", index): the client stops the index-th subscription it started
        - ("frame", text): the server sends a text frame

    Attributes:
        steps: The steps in order.
        description: Human-readable description of the script.
    """

    steps: list[tuple[str, Any]] = field(default_factory=list)
    description: str = ""

    @property
    def frames(self) -> list[str]:
        """The server frames of the script, in order."""
        return [data for kind, data in self.steps if kind == "frame"]

    def __len__(self) -> int:
        """Return the number of steps in the script."""
        return len(self.steps)


def subscription_script_strategy(
    max_ids: int = _DEFAULT_MAX_IDS,
    min_size: int = _DEFAULT_SCRIPT_MIN_SIZE,
    max_size: int = _DEFAULT_SCRIPT_MAX_SIZE,
    include_malformed: bool = False,
) -> SearchStrategy[SubscriptionScript]:
    """Generate interleaved subscribe/unsubscribe/frame scripts.

    Args:
        max_ids: Highest subscription id used in server frames.
        min_size: Minimum number of steps.
        max_size: Maximum number of steps.
        include_malformed: Also emit malformed frames and unknown message types.

    Returns:
        Strategy producing ``SubscriptionScript`` instances.
    """
    frames = server_frame_strategy(max_ids).map(encode_message)
    if include_malformed:
        unknown = st.sampled_from(["ping", "pong", "next", "connection_keep_alive"]).map(
            lambda t: json.dumps({"type": t})
        )
        frames = st.one_of(frames, malformed_frame_strategy(), unknown)

    step = st.one_of(
        st.just(("subscribe", None)),
        st.tuples(st.just("unsubscribe"), st.integers(min_value=0, max_value=max_ids - 1)),
        st.tuples(st.just("frame"), frames),
    )

    @st.composite
    def build_script(draw: st.DrawFn) -> SubscriptionScript:
        steps = draw(st.lists(step, min_size=min_size, max_size=max_size))
        return SubscriptionScript(
            steps=steps,
            description=f"{len(steps)} steps",
        )

    return build_script()

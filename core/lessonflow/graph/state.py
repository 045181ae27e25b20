"""
State - Immutable snapshots of channel values.

A StateSchema declares the channels of a graph. A State is one snapshot:
applying a node's delta never mutates it, it returns a new State that
carries untouched channels forward. Old snapshots stay valid, so the
executor can hand the pre-node state back to a node that is re-run after
a resume.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from lessonflow.graph.channels import MISSING, Channel
from lessonflow.graph.errors import ConfigurationError

logger = logging.getLogger(__name__)


class StateSchema:
    """
    Ordered set of channels describing a graph's state.

    Example:
        schema = StateSchema(
            Channel("messages", list[Message], reducer=append, default=list),
            Channel("approved", bool | None),
        )
        state = schema.initial()
    """

    def __init__(self, *channels: Channel):
        self._channels: dict[str, Channel] = {}
        for channel in channels:
            if channel.name in self._channels:
                raise ConfigurationError(f"Duplicate state channel '{channel.name}'")
            self._channels[channel.name] = channel

    @property
    def channels(self) -> Mapping[str, Channel]:
        return MappingProxyType(self._channels)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __iter__(self) -> Iterator[str]:
        return iter(self._channels)

    def get(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown state channel '{name}'. Declared: {list(self._channels)}"
            ) from None

    def initial(self) -> State:
        """Fresh state for a thread with no checkpoints."""
        return State(self, {name: ch.initial() for name, ch in self._channels.items()})

    def load(self, data: Mapping[str, Any]) -> State:
        """Rebuild a State from a checkpoint snapshot."""
        unknown = [key for key in data if key not in self._channels]
        if unknown:
            logger.warning(f"Dropping unknown channels from snapshot: {unknown}")

        values = {}
        for name, channel in self._channels.items():
            if name in data:
                values[name] = channel.validate(data[name])
            else:
                values[name] = channel.initial()
        return State(self, values)

    def dump(self, state: State) -> dict[str, Any]:
        """JSON-compatible snapshot of every channel."""
        return {name: ch.dump(state[name]) for name, ch in self._channels.items()}


class State(Mapping[str, Any]):
    """
    One immutable snapshot of graph state.

    Supports mapping access (``state["messages"]``) and attribute access
    (``state.messages``).
    """

    __slots__ = ("_schema", "_values")

    def __init__(self, schema: StateSchema, values: Mapping[str, Any]):
        object.__setattr__(self, "_schema", schema)
        object.__setattr__(self, "_values", MappingProxyType(dict(values)))

    @property
    def schema(self) -> StateSchema:
        return self._schema

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(f"State has no channel '{name}'") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("State is immutable; return a delta from the node instead")

    def __repr__(self) -> str:
        return f"State({dict(self._values)!r})"

    def apply(self, delta: Mapping[str, Any] | None) -> State:
        """
        Fold a partial update through the channel reducers.

        Args:
            delta: {channel_name: update}. Channels not named are carried over.

        Returns:
            A new State; ``self`` is left unchanged.

        Raises:
            ConfigurationError: If the delta names an undeclared channel
        """
        if not delta:
            return self

        values = dict(self._values)
        for name, update in delta.items():
            channel = self._schema.get(name)
            values[name] = channel.reduce(values.get(name), update)
        return State(self._schema, values)

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible copy of this snapshot."""
        return self._schema.dump(self)

    def copy(self) -> State:
        """
        Deep copy that shares no lists, dicts or models with this snapshot.

        Round-trips through the channel types, so in-place edits on the copy
        (``state.log.append(...)``) never reach the original.
        """
        return self._schema.load(self._schema.dump(self))


__all__ = ["MISSING", "State", "StateSchema"]

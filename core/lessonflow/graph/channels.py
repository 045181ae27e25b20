"""
Channels - Named slices of graph state and how they merge.

Each channel owns a reducer ``(old, delta) -> new``:

- replace: the delta overwrites the old value (scalars, flags, phase)
- append: the delta is concatenated to the old sequence (conversation history)
- merge_by_key: items are matched on a stable key and merged field-wise,
  keeping the existing order (per-topic completion in a learning plan)

Reducers are pure and never mutate their inputs. ``append`` is NOT
idempotent: submitting the same delta twice appends it twice, so callers
must deduplicate at a higher layer before re-submitting.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, TypeAdapter


class _Missing:
    """Marker for "this channel was not touched"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()

Reducer = Callable[[Any, Any], Any]


def replace(old: Any, new: Any) -> Any:
    """New value wins."""
    return new


def append(old: Any, new: Any) -> list[Any]:
    """Concatenate ``new`` after ``old``. A non-list delta is a single item."""
    existing = list(old) if old else []
    if new is None:
        return existing
    if isinstance(new, (list, tuple)):
        return existing + list(new)
    return existing + [new]


def _get_field(item: Any, name: str) -> Any:
    if isinstance(item, BaseModel):
        return getattr(item, name, None)
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _patch_fields(item: Any) -> dict[str, Any]:
    # Only fields the caller actually set count as a patch
    if isinstance(item, BaseModel):
        return item.model_dump(exclude_unset=True)
    return dict(item)


def _merge_item(existing: Any, patch: dict[str, Any]) -> Any:
    if isinstance(existing, BaseModel):
        return existing.model_copy(update=patch)
    return {**existing, **patch}


def merge_by_key(key: str) -> Reducer:
    """
    Build a reducer that merges incoming items into a list by ``key``.

    Existing entries keep their position; matching entries are updated
    field-wise; entries not mentioned in the delta are untouched; incoming
    items with an unseen key are appended at the end.

    Example:
        reducer = merge_by_key("topic")
        reducer(
            [{"topic": "x", "completed": False}],
            [{"topic": "x", "completed": True}],
        )
        # -> [{"topic": "x", "completed": True}]
    """

    def reducer(old: Any, new: Any) -> list[Any]:
        merged = list(old) if old else []
        if new is None:
            return merged
        incoming = new if isinstance(new, (list, tuple)) else [new]

        positions = {_get_field(item, key): i for i, item in enumerate(merged)}
        for item in incoming:
            item_key = _get_field(item, key)
            if item_key is None:
                raise ValueError(f"merge_by_key('{key}'): item has no '{key}': {item!r}")
            if item_key in positions:
                index = positions[item_key]
                merged[index] = _merge_item(merged[index], _patch_fields(item))
            else:
                positions[item_key] = len(merged)
                merged.append(item)
        return merged

    reducer.__name__ = f"merge_by_key[{key}]"
    return reducer


@dataclass(frozen=True)
class Channel:
    """
    A named, typed slot in graph state.

    Example:
        Channel("messages", list[Message], reducer=append, default=list)
        Channel("plan_approved", bool | None)
    """

    name: str
    type: Any = Any
    reducer: Reducer = replace
    default: Any = None
    description: str = ""
    _adapter: TypeAdapter = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_adapter", TypeAdapter(self.type))

    def initial(self) -> Any:
        """Default value for a fresh thread."""
        value = self.default() if callable(self.default) else self.default
        return self.validate(value) if value is not None else None

    def reduce(self, old: Any, delta: Any = MISSING) -> Any:
        """Merge ``delta`` into ``old``. Absence is a no-op."""
        if delta is MISSING:
            return old
        return self.validate(self.reducer(old, delta))

    def validate(self, value: Any) -> Any:
        if value is None:
            return None
        return self._adapter.validate_python(value)

    def dump(self, value: Any) -> Any:
        """JSON-compatible form for checkpoints."""
        if value is None:
            return None
        return self._adapter.dump_python(value, mode="json")

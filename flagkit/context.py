"""
Context model.

A context identifies who a feature is evaluated for. Anything the engine
receives (a model instance, a string id, ``None`` for guests) is normalized
into an immutable :class:`Context` first.

Example usage:
```python
ctx = Context(42, "user")
scoped = ctx.with_scope("user", company=3, org=2, user=42)

resolve_context(current_user)   # Context(id=current_user.id, type="app.models.User")
serialize_context(None)         # "__null__"
```
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol, runtime_checkable

from .exceptions import CannotSerializeContextError, InvalidContextTypeError

NULL_CONTEXT = "__null__"
GUEST_ID = "__flagkit_guest__"


@runtime_checkable
class Contextable(Protocol):
    """Objects that know how to describe themselves as a feature context."""

    def to_feature_context(self) -> "Context":
        ...


@dataclass(frozen=True)
class FeatureScope:
    """
    Hierarchical scope attached to a context or a scoped activation.

    Attributes:
        kind: Entity kind this scope applies to (e.g. "user")
        constraints: Dimension -> value. On activations a ``None`` value
            is a wildcard.
    """
    kind: str
    constraints: Mapping[str, Any] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash(self.cache_key())

    def matches(self, record: "FeatureScope") -> bool:
        """Check whether a stored scope record applies to this scope."""
        if record.kind != self.kind:
            return False

        for dimension, expected in record.constraints.items():
            if expected is None:
                continue
            if dimension not in self.constraints or self.constraints[dimension] != expected:
                return False
        return True

    def wildcards(self) -> int:
        return sum(1 for value in self.constraints.values() if value is None)

    def cache_key(self) -> str:
        pairs = ",".join(
            f"{key}={self.constraints[key]}" for key in sorted(self.constraints)
        )
        return f"{self.kind}:{pairs}"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "constraints": dict(self.constraints)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureScope":
        return cls(kind=data["kind"], constraints=dict(data.get("constraints") or {}))


@dataclass(frozen=True)
class Context:
    """
    Immutable evaluation context.

    ``source`` keeps the original object around for resolvers that want it
    and takes no part in equality.
    """
    id: Any
    type: str = "default"
    scope: FeatureScope | None = None
    source: Any = field(default=None, compare=False, repr=False)

    @property
    def kind(self) -> str:
        if self.scope is not None:
            return self.scope.kind
        return self.type.rsplit(".", 1)[-1].lower()

    @property
    def is_guest(self) -> bool:
        return self.id == GUEST_ID

    def serialize(self) -> str:
        return f"{self.type}|{self.id}"

    def cache_key(self) -> str:
        key = f"{self.type}:{self.id}"
        if self.scope is not None:
            key += f"|{self.scope.cache_key()}"
        return key

    def with_scope(self, scope: FeatureScope | str, **constraints: Any) -> "Context":
        """Return a copy carrying the given scope."""
        if isinstance(scope, str):
            scope = FeatureScope(scope, constraints)
        return dataclasses.replace(self, scope=scope)

    def without_scope(self) -> "Context":
        return dataclasses.replace(self, scope=None)

    @classmethod
    def guest(cls) -> "Context":
        return GuestContext()


@dataclass(frozen=True)
class GuestContext(Context):
    """Context used when nobody is authenticated."""
    id: Any = GUEST_ID
    type: str = "guest"


# Sentinel context under which globally activated values are stored.
GLOBAL_CONTEXT = Context("__all__", "__global__")


# ============================================================
# NORMALIZATION
# ============================================================

def resolve_context(value: Any) -> Context:
    """
    Turn any supported value into a Context.

    Raises:
        InvalidContextTypeError: value has no context representation
    """
    if isinstance(value, Context):
        return value

    if isinstance(value, Contextable):
        return value.to_feature_context()

    if value is None:
        return GuestContext()

    if isinstance(value, bool):
        raise InvalidContextTypeError(value)

    if isinstance(value, (str, int)):
        return Context(value, "default")

    entity_id = getattr(value, "id", None)
    if entity_id is not None:
        cls = type(value)
        return Context(entity_id, f"{cls.__module__}.{cls.__qualname__}", source=value)

    raise InvalidContextTypeError(value)


def serialize_context(value: Any) -> str:
    """
    Produce a stable string identity for a context.

    Raises:
        CannotSerializeContextError: no serialization strategy applies
    """
    if value is None:
        return NULL_CONTEXT

    if isinstance(value, bool):
        raise CannotSerializeContextError(value)

    if isinstance(value, Context):
        return value.serialize()

    if isinstance(value, Contextable):
        return value.to_feature_context().serialize()

    serializer = getattr(value, "serialize", None)
    if callable(serializer):
        return str(serializer())

    if isinstance(value, str):
        return value

    if isinstance(value, (int, float)):
        return str(value)

    entity_id = getattr(value, "id", None)
    if entity_id is not None:
        return f"{type(value).__qualname__}|{entity_id}"

    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _content_hash(dataclasses.asdict(value))

    if isinstance(value, (dict, list, tuple, set, frozenset)):
        return _content_hash(value)

    raise CannotSerializeContextError(value)


def _normalize(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(item) for item in value), key=repr)
    if isinstance(value, dict):
        return {str(key): _normalize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    return value


def _content_hash(value: Any) -> str:
    payload = json.dumps(_normalize(value), sort_keys=True, default=str)
    return hashlib.md5(payload.encode()).hexdigest()

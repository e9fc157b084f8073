"""
Feature definitions and resolvers.

A resolver is one of:
- StaticResolver: a plain value
- UnaryResolver: ``fn(context)`` (zero-argument callables are wrapped)
- BinaryResolver: ``fn(context, global_context)``
- VariantResolver: weighted variant assignment

Rollout resolvers are passed explicitly: PercentageResolver,
TimeWindowResolver, ScheduledResolver and ConditionalResolver.

The shape is decided once, when the feature is defined.
"""

from __future__ import annotations

import inspect
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from .context import Context
from .exceptions import InvalidPercentageError, PercentageRolloutError
from .variants import calculate_variant, validate_weights

if TYPE_CHECKING:
    from .engine import ResolutionEngine


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


# ============================================================
# RESOLVERS
# ============================================================

class Resolver(ABC):
    """Produces the raw value of a feature for a context."""

    @abstractmethod
    def resolve(self, context: Context, global_context: Any = None) -> Any:
        pass


@dataclass(frozen=True)
class StaticResolver(Resolver):
    value: Any

    def resolve(self, context: Context, global_context: Any = None) -> Any:
        return self.value


@dataclass(frozen=True)
class UnaryResolver(Resolver):
    fn: Callable[[Context], Any]
    takes_context: bool = True

    def resolve(self, context: Context, global_context: Any = None) -> Any:
        if not self.takes_context:
            return self.fn()
        return self.fn(context)


@dataclass(frozen=True)
class BinaryResolver(Resolver):
    fn: Callable[[Context, Any], Any]

    def resolve(self, context: Context, global_context: Any = None) -> Any:
        return self.fn(context, global_context)


@dataclass(frozen=True)
class VariantResolver(Resolver):
    feature: str
    weights: Mapping[str, int]

    def resolve(self, context: Context, global_context: Any = None) -> Any:
        return calculate_variant(self.feature, context, self.weights)


# ============================================================
# ROLLOUT RESOLVERS
# ============================================================

@dataclass(frozen=True)
class PercentageResolver(Resolver):
    """
    Deterministic percentage rollout.

    A context is in when ``crc32(seed + id) % 100 < percentage``, so raising
    the percentage only ever adds contexts. Different seeds pick different
    cohorts for the same percentage.

    Raises:
        InvalidPercentageError: percentage outside 0..100
        PercentageRolloutError: resolved for the guest context
    """
    percentage: int
    seed: str = ""

    def __post_init__(self):
        valid = isinstance(self.percentage, int) and not isinstance(self.percentage, bool)
        if not valid or not 0 <= self.percentage <= 100:
            raise InvalidPercentageError(self.percentage)

    def bucket(self, context: Context) -> int:
        key = f"{self.seed}{context.id}"
        return abs(zlib.crc32(key.encode("utf-8"))) % 100

    def resolve(self, context: Context, global_context: Any = None) -> bool:
        if context.is_guest:
            raise PercentageRolloutError()
        return self.bucket(context) < self.percentage


@dataclass(frozen=True)
class TimeWindowResolver(Resolver):
    """Active between ``start`` and ``end``, both inclusive."""
    start: datetime
    end: datetime
    clock: Callable[[], datetime] | None = field(default=None, compare=False)

    def resolve(self, context: Context, global_context: Any = None) -> bool:
        now = self.clock() if self.clock else _now_for(self.start)
        return self.start <= now <= self.end


@dataclass(frozen=True)
class ScheduledResolver(Resolver):
    """
    Active from ``activate_at`` until ``deactivate_at``.

    Either bound may be omitted; with neither the feature is always on.
    """
    activate_at: datetime | None = None
    deactivate_at: datetime | None = None
    clock: Callable[[], datetime] | None = field(default=None, compare=False)

    def resolve(self, context: Context, global_context: Any = None) -> bool:
        bound = self.activate_at or self.deactivate_at
        if bound is None:
            return True

        now = self.clock() if self.clock else _now_for(bound)
        if self.activate_at is not None and now < self.activate_at:
            return False
        return not (self.deactivate_at is not None and now > self.deactivate_at)


@dataclass(frozen=True)
class ConditionalResolver(Resolver):
    """
    ``condition(context)``, with guests resolving to False unless allowed.

    Example:
    ```python
    engine.define("staff-tools", ConditionalResolver(lambda ctx: ctx.source.is_staff))
    ```
    """
    condition: Callable[[Context], Any]
    allow_guests: bool = False

    def resolve(self, context: Context, global_context: Any = None) -> Any:
        if context.is_guest and not self.allow_guests:
            return False
        return self.condition(context)


def _positional_arity(fn: Callable[..., Any]) -> int:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Builtins without introspectable signatures get the context.
        return 1

    arity = 0
    for param in signature.parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return 2
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
        ):
            arity += 1
    return arity


def make_resolver(value: Any) -> Resolver:
    """Wrap a callable, Feature or static value in the matching resolver."""
    if isinstance(value, Resolver):
        return value

    if isinstance(value, Feature):
        return BinaryResolver(value.resolve)

    if callable(value):
        arity = _positional_arity(value)
        if arity == 0:
            return UnaryResolver(value, takes_context=False)
        if arity == 1:
            return UnaryResolver(value)
        return BinaryResolver(value)

    return StaticResolver(value)


# ============================================================
# DEFINITIONS
# ============================================================

class Feature(ABC):
    """
    Class-based feature.

    Example:
    ```python
    class NewCheckout(Feature):
        name = "new-checkout"
        requires = ("payments",)

        def resolve(self, context, global_context=None):
            return context.id in BETA_USERS

    engine.define(NewCheckout())
    ```
    """
    name: str | None = None
    requires: Iterable[str] = ()
    expires_at: datetime | None = None
    variants: Mapping[str, int] | None = None
    description: str | None = None

    @abstractmethod
    def resolve(self, context: Context, global_context: Any = None) -> Any:
        pass

    def feature_name(self) -> str:
        return self.name or type(self).__name__


@dataclass
class FeatureDefinition:
    """
    A declared feature.

    Attributes:
        name: Unique feature name
        resolver: How the raw value is produced
        dependencies: Features that must be active first, in order
        expires_at: After this moment the feature resolves to False
        variant_weights: Variant name -> weight (sums to 100)
        description: Free text for humans
    """
    name: str
    resolver: Resolver
    dependencies: tuple[str, ...] = ()
    expires_at: datetime | None = None
    variant_weights: dict[str, int] | None = None
    description: str | None = None

    @classmethod
    def build(
        cls,
        name: str,
        resolver: Any = UNSET,
        *,
        requires: Iterable[str] = (),
        expires_at: datetime | None = None,
        variants: Mapping[str, int] | None = None,
        description: str | None = None,
    ) -> "FeatureDefinition":
        """
        Normalize definition arguments.

        Raises:
            InvalidVariantWeightsError: variants given but invalid
        """
        weights = validate_weights(variants) if variants is not None else None

        if resolver is UNSET:
            resolver = VariantResolver(name, weights) if weights else StaticResolver(False)

        return cls(
            name=name,
            resolver=make_resolver(resolver),
            dependencies=tuple(dict.fromkeys(requires)),
            expires_at=expires_at,
            variant_weights=weights,
            description=description,
        )

    @classmethod
    def from_feature(cls, feature: Feature) -> "FeatureDefinition":
        return cls.build(
            feature.feature_name(),
            BinaryResolver(feature.resolve),
            requires=feature.requires,
            expires_at=feature.expires_at,
            variants=feature.variants,
            description=feature.description,
        )

    @property
    def has_variants(self) -> bool:
        return bool(self.variant_weights)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return _now_for(self.expires_at, now) >= self.expires_at

    def is_expiring_soon(self, days: int = 7, now: datetime | None = None) -> bool:
        if self.expires_at is None or self.is_expired(now):
            return False
        return self.expires_at <= _now_for(self.expires_at, now) + timedelta(days=days)


def _now_for(moment: datetime, now: datetime | None = None) -> datetime:
    # Compare like with like: aware against aware, naive against naive.
    if now is not None:
        return now
    return datetime.now(moment.tzinfo) if moment.tzinfo else datetime.now()


# ============================================================
# FLUENT BUILDER
# ============================================================

@dataclass
class FeatureBuilder:
    """
    Fluent definition returned by ``engine.define(name)``.

    Example:
    ```python
    engine.define("advanced").requires("basic").expires_after(days=30).resolver(True)
    engine.define("checkout-layout").variants({"a": 50, "b": 50}).resolver()
    ```
    """
    engine: "ResolutionEngine"
    name: str
    _requires: list[str] = field(default_factory=list)
    _expires_at: datetime | None = None
    _variants: dict[str, int] | None = None
    _description: str | None = None

    def requires(self, *features: str) -> "FeatureBuilder":
        self._requires.extend(features)
        return self

    def expires_at(self, moment: datetime) -> "FeatureBuilder":
        self._expires_at = moment
        return self

    def expires_after(self, days: int = 0, hours: int = 0, minutes: int = 0) -> "FeatureBuilder":
        self._expires_at = datetime.now() + timedelta(days=days, hours=hours, minutes=minutes)
        return self

    def variants(self, weights: Mapping[str, int]) -> "FeatureBuilder":
        self._variants = validate_weights(weights)
        return self

    def describe(self, text: str) -> "FeatureBuilder":
        self._description = text
        return self

    def resolver(self, value: Any = UNSET) -> FeatureDefinition:
        """Finish the definition and register it with the engine."""
        definition = FeatureDefinition.build(
            self.name,
            value,
            requires=self._requires,
            expires_at=self._expires_at,
            variants=self._variants,
            description=self._description,
        )
        self.engine.register(definition)
        return definition

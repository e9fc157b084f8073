"""
Resolution engine.

Evaluation order for ``get`` (first answer wins, every answer is cached):
1. Cached result for (feature, context, global context)
2. Expired feature -> False
3. Unmet or circular prerequisite -> False
4. Active value stored for this exact context
5. Globally activated value of a group the context belongs to
6. Scope records, when the context carries a scope (an exact stored
   value for the context still wins)
7. Any other value stored for this exact context
8. The feature's resolver, whose result the driver stores
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

import structlog

from .cache import ResultCache
from .context import Context, resolve_context, serialize_context
from .definition import (
    UNSET,
    Feature,
    FeatureBuilder,
    FeatureDefinition,
    StaticResolver,
)
from .events import EventDispatcher, FeatureActivated, FeatureDeactivated
from .exceptions import FeatureGroupNotFoundError
from .groups import GroupMembershipResolver
from .interfaces import Driver, GroupMembershipRepository, GroupRepository
from .backends.memory import MemoryGroupMembershipRepository, MemoryGroupRepository
from .prerequisites import DependencyResolver
from .scope import ScopeMatcher
from .values import is_active
from .variants import calculate_variant

logger = structlog.get_logger(__name__)


class ResolutionEngine:
    """
    Feature resolution for one store.

    Owns the result cache and the global context. Give each concurrent
    unit of work its own engine, or flush between units.

    Example usage:
    ```python
    engine = ResolutionEngine(MemoryDriver())
    engine.define("basic", True)
    engine.define("advanced", lambda ctx: True, requires=["basic"])

    engine.active("advanced", user)             # True
    engine.deactivate("basic", user)
    engine.active("advanced", user)             # False
    ```
    """

    def __init__(
        self,
        driver: Driver,
        groups: GroupRepository | None = None,
        memberships: GroupMembershipRepository | None = None,
        *,
        events: EventDispatcher | None = None,
        default_context: Callable[[], Any] | None = None,
        name: str = "default",
    ):
        self.name = name
        self.driver = driver
        self.events = events or driver.events or EventDispatcher()
        if driver.events is None:
            driver.events = self.events

        self.groups = groups or MemoryGroupRepository()
        self.memberships = memberships or MemoryGroupMembershipRepository()
        self.cache = ResultCache()

        self._definitions: dict[str, FeatureDefinition] = {}
        self._default_context = default_context
        self._global_context: Any = None

        self.dependencies = DependencyResolver(self._definitions, self._evaluate)
        self.group_resolver = GroupMembershipResolver(self.groups, self.memberships, driver)

    # ============================================================
    # DEFINITIONS
    # ============================================================

    def define(
        self,
        feature: str | Feature | type[Feature],
        resolver: Any = UNSET,
        *,
        requires: Iterable[str] = (),
        expires_at: datetime | None = None,
        variants: Mapping[str, int] | None = None,
        description: str | None = None,
    ) -> FeatureDefinition | FeatureBuilder:
        """
        Define a feature.

        Accepts a ``Feature`` instance or class, or a name with a resolver
        (callable of 0, 1 or 2 arguments, or a static value). A bare name
        returns a fluent builder.

        Raises:
            InvalidVariantWeightsError: variants do not sum to 100
        """
        if isinstance(feature, type) and issubclass(feature, Feature):
            feature = feature()

        if isinstance(feature, Feature):
            return self.register(FeatureDefinition.from_feature(feature))

        requires = tuple(requires)
        options_given = requires or expires_at is not None or variants is not None or description
        if resolver is UNSET and not options_given:
            return FeatureBuilder(self, feature)

        definition = FeatureDefinition.build(
            feature,
            resolver,
            requires=requires,
            expires_at=expires_at,
            variants=variants,
            description=description,
        )
        return self.register(definition)

    def definition(self, name: str) -> FeatureBuilder:
        return FeatureBuilder(self, name)

    def register(self, definition: FeatureDefinition) -> FeatureDefinition:
        self._definitions[definition.name] = definition
        self.driver.define(definition.name, definition.resolver)
        self._forget(definition.name)
        logger.debug(
            "feature_defined",
            store=self.name,
            feature=definition.name,
            requires=list(definition.dependencies),
            resolver=type(definition.resolver).__name__,
        )
        return definition

    def get_definition(self, feature: str) -> FeatureDefinition | None:
        return self._definitions.get(feature)

    def defined(self) -> list[str]:
        return self.driver.defined()

    def stored(self) -> list[str]:
        return self.driver.stored()

    # ============================================================
    # CONTEXT
    # ============================================================

    @property
    def global_context(self) -> Any:
        return self._global_context

    def set_global_context(self, value: Any) -> None:
        self._global_context = value
        self.flush_cache()

    def clear_global_context(self) -> None:
        self.set_global_context(None)

    def _context(self, context: Any = UNSET) -> Context:
        if context is UNSET:
            context = self._default_context() if self._default_context else None
        return resolve_context(context)

    def for_context(self, context: Any) -> "ContextualFeatures":
        return ContextualFeatures(self, self._context(context))

    # ============================================================
    # RESOLUTION
    # ============================================================

    def get(self, feature: str, context: Any = UNSET) -> Any:
        """Resolve a feature's value. Resolver exceptions propagate."""
        return self._evaluate(feature, self._context(context), frozenset())

    def get_all(
        self,
        features: Mapping[str, Any] | Iterable[str],
        context: Any = UNSET,
    ) -> dict[str, Any]:
        """
        Resolve many features.

        A mapping of feature -> contexts returns feature -> list of values;
        a single context in the mapping counts as a list of one.
        A list of names returns feature -> value for one context.
        """
        if isinstance(features, Mapping):
            return {
                feature: [self.get(feature, ctx) for ctx in _contexts(contexts)]
                for feature, contexts in features.items()
            }

        ctx = self._context(context)
        return {feature: self._evaluate(feature, ctx, frozenset()) for feature in features}

    def _evaluate(self, feature: str, context: Context, visiting: frozenset) -> Any:
        context_key = context.cache_key()
        global_key = serialize_context(self._global_context)

        hit, value = self.cache.get(feature, context_key, global_key)
        if hit:
            return value

        value = self._resolve(feature, context, visiting)
        self.cache.put(feature, context_key, global_key, value, context.serialize())
        return value

    def _resolve(self, feature: str, context: Context, visiting: frozenset) -> Any:
        definition = self._definitions.get(feature)
        if definition is not None and definition.is_expired():
            return False

        if not self.dependencies.dependencies_met(feature, context, visiting):
            return False

        found, value = self.driver.retrieve(feature, context)
        if found and is_active(value):
            return value

        group_value, in_group = self.group_resolver.resolve(feature, context)
        if in_group:
            return group_value

        if context.scope is not None:
            records = self.driver.scoped_records(feature)
            if records:
                if found:
                    return value
                scoped_value, matched = ScopeMatcher.resolve(
                    feature, context.scope, context.kind, records
                )
                if matched:
                    return scoped_value

        if found:
            return value

        return self.driver.get(feature, context, self._global_context)

    def active(self, feature: str, context: Any = UNSET) -> bool:
        return is_active(self.get(feature, context))

    def inactive(self, feature: str, context: Any = UNSET) -> bool:
        return not self.active(feature, context)

    def value(self, feature: str, context: Any = UNSET) -> Any:
        return self.get(feature, context)

    def all_active(self, features: Iterable[str], context: Any = UNSET) -> bool:
        ctx = self._context(context)
        return all(self.active(feature, ctx) for feature in features)

    def some_active(self, features: Iterable[str], context: Any = UNSET) -> bool:
        ctx = self._context(context)
        return any(self.active(feature, ctx) for feature in features)

    def dependencies_met(self, feature: str, context: Any = UNSET) -> bool:
        return self.dependencies.dependencies_met(feature, self._context(context))

    def get_dependencies(self, feature: str) -> list[str]:
        return self.dependencies.get_dependencies(feature)

    # ============================================================
    # WRITES
    # ============================================================

    def set(self, feature: str, context: Any, value: Any) -> None:
        ctx = self._context(context)
        old_value = self._stored_value(feature, ctx)

        self.driver.set(feature, ctx, value)
        if ctx.scope is not None:
            self._forget(feature)
        else:
            self._forget(feature, ctx.serialize())

        if value is False:
            self.events.dispatch(FeatureDeactivated(feature, ctx, old_value))
        else:
            self.events.dispatch(FeatureActivated(feature, value, ctx))

    def delete(self, feature: str, context: Any = UNSET) -> None:
        ctx = self._context(context)
        old_value = self._stored_value(feature, ctx)

        self.driver.delete(feature, ctx)
        if ctx.scope is not None:
            self._forget(feature)
        else:
            self._forget(feature, ctx.serialize())

        self.events.dispatch(FeatureDeactivated(feature, ctx, old_value))

    def _stored_value(self, feature: str, ctx: Context) -> Any:
        if ctx.scope is None:
            _, value = self.driver.retrieve(feature, ctx)
            return value

        key = ctx.scope.cache_key()
        for record in self.driver.scoped_records(feature):
            if record.scope.cache_key() == key:
                return record.value
        return None

    def set_for_all_contexts(self, feature: str, value: Any) -> None:
        self.driver.set_for_all_contexts(feature, value)

        definition = self._definitions.get(feature)
        if definition is not None:
            definition.resolver = StaticResolver(value)

        self._forget(feature)
        if value is False:
            self.events.dispatch(FeatureDeactivated(feature))
        else:
            self.events.dispatch(FeatureActivated(feature, value))

    def purge(self, features: Iterable[str] | str | None = None) -> None:
        if features is None:
            self.driver.purge(None)
            self.flush_cache()
            return

        names = [features] if isinstance(features, str) else list(features)
        self.driver.purge(names)
        for feature in names:
            self._forget(feature)

    def activate(self, features: str | Iterable[str], context: Any = UNSET, value: Any = True) -> None:
        ctx = self._context(context)
        for feature in _names(features):
            self.set(feature, ctx, value)

    def deactivate(self, features: str | Iterable[str], context: Any = UNSET) -> None:
        ctx = self._context(context)
        for feature in _names(features):
            self.set(feature, ctx, False)

    def activate_for_everyone(self, features: str | Iterable[str], value: Any = True) -> None:
        for feature in _names(features):
            self.set_for_all_contexts(feature, value)

    def deactivate_for_everyone(self, features: str | Iterable[str]) -> None:
        for feature in _names(features):
            self.set_for_all_contexts(feature, False)

    def _forget(self, feature: str, identity: str | None = None) -> None:
        if identity is None:
            self.cache.forget_feature(feature)
        else:
            self.cache.forget(feature, identity)

        # Dependents cached a result computed from the old value.
        for dependent in self.dependencies.dependents_of(feature):
            self.cache.forget_feature(dependent)

    def flush_cache(self) -> None:
        self.cache.flush()
        logger.debug("feature_cache_flushed", store=self.name)

    # ============================================================
    # VARIANTS
    # ============================================================

    def variant(self, feature: str, context: Any = UNSET) -> str | None:
        """
        Variant assigned to a context, or None when the feature has no
        variants or is inactive for it.
        """
        weights = self.get_variants(feature)
        if not weights:
            return None

        ctx = self._context(context)
        value = self.get(feature, ctx)
        if isinstance(value, str) and value in weights:
            return value
        if not is_active(value):
            return None
        return calculate_variant(feature, ctx, weights)

    def get_variants(self, feature: str) -> dict[str, int]:
        definition = self._definitions.get(feature)
        if definition is None or not definition.variant_weights:
            return {}
        return dict(definition.variant_weights)

    def variant_names(self, feature: str) -> list[str]:
        return list(self.get_variants(feature))

    # ============================================================
    # EXPIRATION
    # ============================================================

    def is_expired(self, feature: str) -> bool:
        definition = self._definitions.get(feature)
        return definition.is_expired() if definition else False

    def expires_at(self, feature: str) -> datetime | None:
        definition = self._definitions.get(feature)
        return definition.expires_at if definition else None

    def is_expiring_soon(self, feature: str, days: int = 7) -> bool:
        definition = self._definitions.get(feature)
        return definition.is_expiring_soon(days) if definition else False

    def expiring_soon(self, days: int = 7) -> list[str]:
        return [
            name for name, definition in self._definitions.items()
            if definition.is_expiring_soon(days)
        ]

    # ============================================================
    # GROUPS
    # ============================================================

    def define_group(
        self,
        name: str,
        features: Iterable[str],
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        self.groups.define(name, features, metadata)
        self.flush_cache()

    def load_groups(self, groups: Mapping[str, Iterable[str]]) -> None:
        for name, features in groups.items():
            self.groups.define(name, features)

    def get_group(self, name: str) -> list[str]:
        return self.groups.get(name)

    def all_groups(self) -> dict[str, list[str]]:
        return self.groups.all()

    def delete_group(self, name: str) -> bool:
        deleted = self.groups.delete(name)
        self.flush_cache()
        return deleted

    def update_group(self, name: str, features: Iterable[str]) -> None:
        self.groups.update(name, features)
        self.flush_cache()

    def activate_group(self, name: str, value: Any = True) -> None:
        for feature in self.groups.get(name):
            self.set_for_all_contexts(feature, value)

    def deactivate_group(self, name: str) -> None:
        self.activate_group(name, False)

    def active_in_group(self, name: str, context: Any = UNSET) -> bool:
        return self.all_active(self.groups.get(name), context)

    def some_active_in_group(self, name: str, context: Any = UNSET) -> bool:
        return self.some_active(self.groups.get(name), context)

    def assign_to_group(self, group: str, context: Any = UNSET) -> None:
        ctx = self._context(context)
        self.group_resolver.assign(group, ctx)
        self.cache.forget_context(ctx.serialize())

    def unassign_from_group(self, group: str, context: Any = UNSET) -> None:
        ctx = self._context(context)
        self.group_resolver.unassign(group, ctx)
        self.cache.forget_context(ctx.serialize())

    def groups_for(self, context: Any = UNSET) -> list[str]:
        return self.group_resolver.groups_for(self._context(context))

    def is_in_group(self, group: str, context: Any = UNSET) -> bool:
        return self.group_resolver.is_in_group(group, self._context(context))

    def group_members(self, group: str) -> list[str]:
        if not self.groups.exists(group):
            raise FeatureGroupNotFoundError(group)
        return self.memberships.get_group_members(group)


class ContextualFeatures:
    """Feature checks bound to one context."""

    def __init__(self, engine: ResolutionEngine, context: Context):
        self.engine = engine
        self.context = context

    def active(self, feature: str) -> bool:
        return self.engine.active(feature, self.context)

    def inactive(self, feature: str) -> bool:
        return self.engine.inactive(feature, self.context)

    def value(self, feature: str) -> Any:
        return self.engine.value(feature, self.context)

    def variant(self, feature: str) -> str | None:
        return self.engine.variant(feature, self.context)

    def activate(self, features: str | Iterable[str], value: Any = True) -> None:
        self.engine.activate(features, self.context, value)

    def deactivate(self, features: str | Iterable[str]) -> None:
        self.engine.deactivate(features, self.context)

    def all_active(self, features: Iterable[str]) -> bool:
        return self.engine.all_active(features, self.context)

    def some_active(self, features: Iterable[str]) -> bool:
        return self.engine.some_active(features, self.context)


def _names(features: str | Iterable[str]) -> list[str]:
    return [features] if isinstance(features, str) else list(features)


def _contexts(value: Any) -> list[Any]:
    # A lone context (string, id, Context, entity) is one entry, not a sequence.
    if isinstance(value, (list, tuple, set, frozenset, Iterator)):
        return list(value)
    return [value]

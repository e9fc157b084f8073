"""
In-memory storage.

Backs the ``array`` store. Data lives as long as the process (or the
test) that created it.
"""

from collections import defaultdict
from itertools import count
from typing import Any, Iterable, Mapping

from ..context import GLOBAL_CONTEXT, Context, serialize_context
from ..definition import Resolver, StaticResolver
from ..events import EventDispatcher
from ..exceptions import FeatureGroupNotFoundError
from ..interfaces import Driver, GroupMembershipRepository, GroupRepository
from ..scope import ScopeRecord


class MemoryDriver(Driver):
    """
    Dict-backed driver.

    Stored values are kept per feature, keyed by context identity. Scope
    records are kept one per distinct scope; rewriting a scope replaces
    its record and bumps its sequence.
    """

    def __init__(self, events: EventDispatcher | None = None):
        super().__init__(events)
        self._resolvers: dict[str, Resolver] = {}
        self._values: dict[str, dict[str, Any]] = defaultdict(dict)
        self._scopes: dict[str, list[ScopeRecord]] = defaultdict(list)
        self._sequence = count(1)

    # ============================================================
    # DEFINITIONS
    # ============================================================

    def define(self, feature: str, resolver: Resolver) -> None:
        self._resolvers[feature] = resolver

    def defined(self) -> list[str]:
        return list(self._resolvers)

    def stored(self) -> list[str]:
        names = [f for f, values in self._values.items() if values]
        names += [f for f, records in self._scopes.items() if records and f not in names]
        return names

    def resolver_for(self, feature: str) -> Resolver | None:
        return self._resolvers.get(feature)

    # ============================================================
    # VALUES
    # ============================================================

    def retrieve(self, feature: str, context: Context) -> tuple[bool, Any]:
        values = self._values.get(feature, {})
        key = context.serialize()
        if key in values:
            return True, values[key]
        return False, None

    def set(self, feature: str, context: Context, value: Any) -> None:
        if context.scope is not None:
            records = [r for r in self._scopes[feature] if r.scope != context.scope]
            records.append(ScopeRecord(feature, context.scope, value, next(self._sequence)))
            self._scopes[feature] = records
            return

        self._values[feature][context.serialize()] = value

    def set_for_all_contexts(self, feature: str, value: Any) -> None:
        self._resolvers[feature] = StaticResolver(value)
        self._values[feature] = {GLOBAL_CONTEXT.serialize(): value}
        self._scopes.pop(feature, None)

    def delete(self, feature: str, context: Context) -> None:
        if context.scope is not None:
            self._scopes[feature] = [
                r for r in self._scopes.get(feature, []) if r.scope != context.scope
            ]
            return

        self._values.get(feature, {}).pop(context.serialize(), None)

    def purge(self, features: Iterable[str] | None = None) -> None:
        if features is None:
            self._values.clear()
            self._scopes.clear()
            return

        for feature in features:
            self._values.pop(feature, None)
            self._scopes.pop(feature, None)

    def scoped_records(self, feature: str) -> list[ScopeRecord]:
        return list(self._scopes.get(feature, []))


class MemoryGroupRepository(GroupRepository):
    def __init__(self):
        self._groups: dict[str, list[str]] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def define(self, name: str, features: Iterable[str], metadata: Mapping[str, Any] | None = None) -> None:
        self._groups[name] = list(dict.fromkeys(features))
        self._metadata[name] = dict(metadata or {})

    def get(self, name: str) -> list[str]:
        if name not in self._groups:
            raise FeatureGroupNotFoundError(name)
        return list(self._groups[name])

    def metadata(self, name: str) -> dict[str, Any]:
        if name not in self._groups:
            raise FeatureGroupNotFoundError(name)
        return dict(self._metadata.get(name, {}))

    def all(self) -> dict[str, list[str]]:
        return {name: list(features) for name, features in self._groups.items()}

    def exists(self, name: str) -> bool:
        return name in self._groups

    def delete(self, name: str) -> bool:
        self._metadata.pop(name, None)
        return self._groups.pop(name, None) is not None

    def update(self, name: str, features: Iterable[str]) -> None:
        if name not in self._groups:
            raise FeatureGroupNotFoundError(name)
        self._groups[name] = list(dict.fromkeys(features))


class MemoryGroupMembershipRepository(GroupMembershipRepository):
    def __init__(self):
        # context identity -> groups, in assignment order
        self._assignments: dict[str, list[str]] = defaultdict(list)

    def add_to_group(self, group: str, context: Context) -> None:
        groups = self._assignments[serialize_context(context)]
        if group not in groups:
            groups.append(group)

    def remove_from_group(self, group: str, context: Context) -> None:
        groups = self._assignments.get(serialize_context(context), [])
        if group in groups:
            groups.remove(group)

    def is_in_group(self, group: str, context: Context) -> bool:
        return group in self._assignments.get(serialize_context(context), [])

    def get_group_members(self, group: str) -> list[str]:
        return [key for key, groups in self._assignments.items() if group in groups]

    def get_groups_for_context(self, context: Context) -> list[str]:
        return list(self._assignments.get(serialize_context(context), []))

    def clear_group(self, group: str) -> None:
        for groups in self._assignments.values():
            if group in groups:
                groups.remove(group)

    def remove_context_from_all_groups(self, context: Context) -> None:
        self._assignments.pop(serialize_context(context), None)

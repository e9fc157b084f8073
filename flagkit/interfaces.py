"""
Storage contracts.

The engine talks to storage only through these. Implementations:
- MemoryDriver / MemoryGroupRepository: in-process (dev, tests, array store)
- DatabaseDriver / DatabaseGroupRepository: SQLAlchemy
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping

import structlog

from .context import Context
from .definition import Resolver
from .events import EventDispatcher, UnknownFeatureResolved
from .scope import ScopeRecord

logger = structlog.get_logger(__name__)


class Driver(ABC):
    """
    Feature storage.

    Stored values are keyed by the context's identity (``type|id``). A
    context carrying a scope is written as a scope record instead.
    """

    def __init__(self, events: EventDispatcher | None = None):
        self.events = events

    @abstractmethod
    def define(self, feature: str, resolver: Resolver) -> None:
        """Register (or replace) the resolver of a feature."""
        pass

    @abstractmethod
    def defined(self) -> list[str]:
        """Names of every feature with a resolver."""
        pass

    @abstractmethod
    def stored(self) -> list[str]:
        """Names of every feature with at least one stored value."""
        pass

    @abstractmethod
    def resolver_for(self, feature: str) -> Resolver | None:
        pass

    @abstractmethod
    def retrieve(self, feature: str, context: Context) -> tuple[bool, Any]:
        """
        Read a stored value for the exact context identity.

        Returns:
            (found, value)
        """
        pass

    @abstractmethod
    def set(self, feature: str, context: Context, value: Any) -> None:
        pass

    @abstractmethod
    def set_for_all_contexts(self, feature: str, value: Any) -> None:
        """Make ``value`` the answer for everyone and drop stored values."""
        pass

    @abstractmethod
    def delete(self, feature: str, context: Context) -> None:
        pass

    @abstractmethod
    def purge(self, features: Iterable[str] | None = None) -> None:
        """Drop stored values of the given features, or of all features."""
        pass

    @abstractmethod
    def scoped_records(self, feature: str) -> list[ScopeRecord]:
        pass

    # ============================================================
    # RESOLUTION
    # ============================================================

    def get(self, feature: str, context: Context, global_context: Any = None) -> Any:
        """
        Return the stored value, or resolve and store it.

        Unknown features resolve to False and are not stored. Results for
        scoped contexts are not stored either, so later scope records
        still apply to them.
        """
        found, value = self.retrieve(feature, context)
        if found:
            return value

        resolver = self.resolver_for(feature)
        if resolver is None:
            logger.debug("unknown_feature_resolved", feature=feature, context=context.serialize())
            if self.events is not None:
                self.events.dispatch(UnknownFeatureResolved(feature, context))
            return False

        value = resolver.resolve(context, global_context)
        if context.scope is None:
            self.set(feature, context, value)
        return value

    def get_all(
        self,
        features: Mapping[str, Iterable[Context]],
        global_context: Any = None,
    ) -> dict[str, list[Any]]:
        return {
            feature: [self.get(feature, context, global_context) for context in contexts]
            for feature, contexts in features.items()
        }


class GroupRepository(ABC):
    """Named sets of features."""

    @abstractmethod
    def define(self, name: str, features: Iterable[str], metadata: Mapping[str, Any] | None = None) -> None:
        pass

    @abstractmethod
    def get(self, name: str) -> list[str]:
        """
        Raises:
            FeatureGroupNotFoundError: the group does not exist
        """
        pass

    @abstractmethod
    def metadata(self, name: str) -> dict[str, Any]:
        pass

    @abstractmethod
    def all(self) -> dict[str, list[str]]:
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        pass

    @abstractmethod
    def update(self, name: str, features: Iterable[str]) -> None:
        pass

    def add_features(self, name: str, features: Iterable[str]) -> None:
        current = self.get(name)
        self.update(name, [*current, *(f for f in features if f not in current)])

    def remove_features(self, name: str, features: Iterable[str]) -> None:
        removed = set(features)
        self.update(name, [f for f in self.get(name) if f not in removed])


class GroupMembershipRepository(ABC):
    """Which contexts belong to which groups, in assignment order."""

    @abstractmethod
    def add_to_group(self, group: str, context: Context) -> None:
        pass

    @abstractmethod
    def remove_from_group(self, group: str, context: Context) -> None:
        pass

    @abstractmethod
    def is_in_group(self, group: str, context: Context) -> bool:
        pass

    @abstractmethod
    def get_group_members(self, group: str) -> list[str]:
        pass

    @abstractmethod
    def get_groups_for_context(self, context: Context) -> list[str]:
        pass

    @abstractmethod
    def clear_group(self, group: str) -> None:
        pass

    @abstractmethod
    def remove_context_from_all_groups(self, context: Context) -> None:
        pass

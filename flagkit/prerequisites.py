"""
Prerequisite chains between features.

A feature is only evaluated once every feature it requires is active for
the same context. Cycles are a configuration defect: every feature on a
cycle resolves to False instead of recursing.
"""

from typing import Any, Callable, Mapping

import structlog

from .context import Context
from .definition import FeatureDefinition
from .values import is_active

logger = structlog.get_logger(__name__)

Evaluator = Callable[[str, Context, frozenset], Any]


class DependencyResolver:
    """
    Depth-first prerequisite check.

    ``visiting`` holds the features on the current path. It is created per
    top-level lookup and passed down by value, so concurrent lookups never
    see each other's path.
    """

    def __init__(
        self,
        definitions: Mapping[str, FeatureDefinition],
        evaluate: Evaluator,
    ):
        self._definitions = definitions
        self._evaluate = evaluate

    def get_dependencies(self, feature: str) -> list[str]:
        definition = self._definitions.get(feature)
        return list(definition.dependencies) if definition else []

    def dependencies_met(
        self,
        feature: str,
        context: Context,
        visiting: frozenset = frozenset(),
    ) -> bool:
        dependencies = self.get_dependencies(feature)
        if not dependencies:
            return True

        path = visiting | {feature}
        for dependency in dependencies:
            if dependency in path:
                logger.warning(
                    "circular_feature_dependency",
                    feature=feature,
                    dependency=dependency,
                    path=sorted(path),
                )
                return False

            if not is_active(self._evaluate(dependency, context, path)):
                return False

        return True

    def dependents_of(self, feature: str) -> set[str]:
        """All features that require ``feature``, directly or transitively."""
        found: set[str] = set()
        pending = [feature]
        while pending:
            current = pending.pop()
            for name, definition in self._definitions.items():
                if current in definition.dependencies and name not in found:
                    found.add(name)
                    pending.append(name)
        found.discard(feature)
        return found

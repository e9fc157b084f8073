"""
Scoped (hierarchical) activations.

A scope record such as ``{company: 3, org: 2, user: None}`` activates a
feature for every user in org 2 of company 3. ``None`` is a wildcard.
"""

from dataclasses import dataclass
from typing import Any, Iterable

from .context import FeatureScope


@dataclass(frozen=True)
class ScopeRecord:
    """
    Attributes:
        feature: Feature name
        scope: Dimensions of the activation, ``None`` meaning any value
        value: Value granted to matching contexts
        sequence: Write order, higher is newer
    """
    feature: str
    scope: FeatureScope
    value: Any
    sequence: int = 0

    @property
    def kind(self) -> str:
        return self.scope.kind


class ScopeMatcher:
    """Picks the most specific record matching a context scope."""

    @staticmethod
    def matching(
        records: Iterable[ScopeRecord],
        context_scope: FeatureScope,
    ) -> list[ScopeRecord]:
        return [record for record in records if context_scope.matches(record.scope)]

    @classmethod
    def best(
        cls,
        records: Iterable[ScopeRecord],
        context_scope: FeatureScope,
    ) -> ScopeRecord | None:
        candidates = cls.matching(records, context_scope)
        if not candidates:
            return None
        # Fewest wildcards first, newest write breaks ties.
        return min(candidates, key=lambda r: (r.scope.wildcards(), -r.sequence))

    @classmethod
    def resolve(
        cls,
        feature: str,
        context_scope: FeatureScope,
        kind: str,
        records: Iterable[ScopeRecord],
    ) -> tuple[Any, bool]:
        """
        Resolve a feature for a scoped context.

        ``kind`` overrides the scope's own kind, which is how a context
        declares what sort of entity it is.

        Returns:
            (value, found)
        """
        if kind != context_scope.kind:
            context_scope = FeatureScope(kind, context_scope.constraints)

        record = cls.best(
            (r for r in records if r.feature == feature),
            context_scope,
        )
        if record is None:
            return None, False
        return record.value, True

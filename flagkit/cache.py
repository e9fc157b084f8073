"""
Per-unit-of-work result cache.

An ordered list scanned linearly. Lives for one request, job or command
and is flushed at its boundary.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class CacheEntry:
    """
    One resolved result.

    ``identity`` is the context's serialized identity without scope, so a
    write for an entity can evict its scoped lookups too.
    """
    feature: str
    context_key: str
    global_key: str
    value: Any
    identity: str = ""

    def matches(self, feature: str, context_key: str, global_key: str) -> bool:
        return (
            self.feature == feature
            and self.context_key == context_key
            and self.global_key == global_key
        )


class ResultCache:
    """At most one entry per (feature, context, global context) key."""

    def __init__(self):
        self._entries: list[CacheEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> list[CacheEntry]:
        return list(self._entries)

    def get(self, feature: str, context_key: str, global_key: str) -> tuple[bool, Any]:
        for entry in self._entries:
            if entry.matches(feature, context_key, global_key):
                return True, entry.value
        return False, None

    def put(
        self,
        feature: str,
        context_key: str,
        global_key: str,
        value: Any,
        identity: str = "",
    ) -> None:
        """Update in place, keeping position, or append."""
        for entry in self._entries:
            if entry.matches(feature, context_key, global_key):
                entry.value = value
                entry.identity = identity or entry.identity
                return
        self._entries.append(CacheEntry(feature, context_key, global_key, value, identity))

    def forget(self, feature: str, identity: str) -> int:
        """Evict every entry of a feature for one entity."""
        return self._remove(lambda e: e.feature == feature and e.identity == identity)

    def forget_feature(self, feature: str) -> int:
        return self._remove(lambda e: e.feature == feature)

    def forget_context(self, identity: str) -> int:
        return self._remove(lambda e: e.identity == identity)

    def flush(self) -> None:
        self._entries.clear()

    def _remove(self, predicate) -> int:
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if not predicate(entry)]
        return before - len(self._entries)

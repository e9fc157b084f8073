"""
Tests for in-memory storage.
"""

import pytest

from flagkit.backends.memory import (
    MemoryDriver,
    MemoryGroupMembershipRepository,
    MemoryGroupRepository,
)
from flagkit.context import GLOBAL_CONTEXT, Context, FeatureScope
from flagkit.definition import StaticResolver, UnaryResolver
from flagkit.events import EventDispatcher, UnknownFeatureResolved
from flagkit.exceptions import FeatureGroupNotFoundError


def test_get_resolves_and_stores():
    """Test driver.get persists the resolved value."""
    driver = MemoryDriver()
    driver.define("theme", UnaryResolver(lambda ctx: f"theme-{ctx.id}"))
    ctx = Context(4, "user")

    assert driver.retrieve("theme", ctx) == (False, None)
    assert driver.get("theme", ctx) == "theme-4"
    assert driver.retrieve("theme", ctx) == (True, "theme-4")
    assert driver.stored() == ["theme"]
    assert driver.defined() == ["theme"]


def test_unknown_feature_dispatches_event():
    """Test unknown features resolve False through the dispatcher."""
    events = EventDispatcher()
    events.record()
    driver = MemoryDriver(events)

    assert driver.get("nope", Context(1, "user")) is False
    assert events.dispatched(UnknownFeatureResolved)[0].feature == "nope"
    assert driver.stored() == []


def test_set_for_all_contexts_replaces_resolver_and_values():
    """Test a global write clears stored values and records the global value."""
    driver = MemoryDriver()
    driver.define("banner", StaticResolver(False))
    driver.set("banner", Context(1, "user"), "custom")

    driver.set_for_all_contexts("banner", "holiday")

    assert driver.retrieve("banner", Context(1, "user")) == (False, None)
    assert driver.retrieve("banner", GLOBAL_CONTEXT) == (True, "holiday")
    assert driver.get("banner", Context(2, "user")) == "holiday"


def test_scope_writes_replace_same_scope():
    """Test one record per distinct scope, newest sequence on rewrite."""
    driver = MemoryDriver()
    scope = FeatureScope("user", {"company": 3})
    other = FeatureScope("user", {"company": 4})

    driver.set("reports", Context(0, "user", scope), True)
    driver.set("reports", Context(0, "user", other), True)
    driver.set("reports", Context(0, "user", scope), "again")

    records = driver.scoped_records("reports")
    assert [(r.scope, r.value) for r in records] == [(other, True), (scope, "again")]
    assert records[1].sequence > records[0].sequence

    driver.delete("reports", Context(0, "user", other))
    assert [r.value for r in driver.scoped_records("reports")] == ["again"]


def test_delete_and_purge():
    """Test value removal."""
    driver = MemoryDriver()
    driver.set("a", Context(1, "user"), True)
    driver.set("a", Context(2, "user"), True)
    driver.set("b", Context(1, "user"), True)

    driver.delete("a", Context(1, "user"))
    assert driver.retrieve("a", Context(1, "user")) == (False, None)
    assert driver.retrieve("a", Context(2, "user")) == (True, True)

    driver.purge(["a"])
    assert driver.stored() == ["b"]

    driver.purge()
    assert driver.stored() == []


def test_get_all():
    """Test the per-feature bulk read."""
    driver = MemoryDriver()
    driver.define("id", UnaryResolver(lambda ctx: ctx.id))

    assert driver.get_all({"id": [Context(1, "user"), Context(2, "user")]}) == {"id": [1, 2]}


def test_group_repository():
    """Test group CRUD."""
    groups = MemoryGroupRepository()
    groups.define("beta", ["a", "b", "a"], {"owner": "growth"})

    assert groups.get("beta") == ["a", "b"]
    assert groups.metadata("beta") == {"owner": "growth"}
    assert groups.exists("beta")

    groups.add_features("beta", ["c", "a"])
    assert groups.get("beta") == ["a", "b", "c"]

    groups.remove_features("beta", ["b"])
    assert groups.get("beta") == ["a", "c"]

    assert groups.all() == {"beta": ["a", "c"]}
    assert groups.delete("beta")
    assert not groups.delete("beta")

    with pytest.raises(FeatureGroupNotFoundError):
        groups.get("beta")
    with pytest.raises(FeatureGroupNotFoundError):
        groups.update("beta", ["x"])


def test_membership_repository_keeps_assignment_order():
    """Test groups come back in the order they were assigned."""
    memberships = MemoryGroupMembershipRepository()
    one, two = Context(1, "user"), Context(2, "user")

    memberships.add_to_group("zeta", one)
    memberships.add_to_group("alpha", one)
    memberships.add_to_group("alpha", one)
    memberships.add_to_group("alpha", two)

    assert memberships.get_groups_for_context(one) == ["zeta", "alpha"]
    assert memberships.get_group_members("alpha") == ["user|1", "user|2"]
    assert memberships.is_in_group("zeta", one)

    memberships.remove_from_group("zeta", one)
    assert memberships.get_groups_for_context(one) == ["alpha"]

    memberships.clear_group("alpha")
    assert memberships.get_group_members("alpha") == []

    memberships.add_to_group("beta", two)
    memberships.remove_context_from_all_groups(two)
    assert memberships.get_groups_for_context(two) == []

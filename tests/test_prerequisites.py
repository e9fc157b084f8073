"""
Tests for prerequisite chains and cycle detection.
"""

from flagkit.context import Context
from flagkit.engine import ResolutionEngine


def test_feature_without_dependencies_is_satisfied(engine: ResolutionEngine):
    """Test an empty dependency list is trivially met."""
    engine.define("solo", True)
    assert engine.dependencies_met("solo", Context(1, "user"))
    assert engine.get_dependencies("solo") == []


def test_transitive_chain_requires_every_link(engine: ResolutionEngine):
    """Test A -> B -> C needs the full chain active."""
    ctx = Context(1, "user")
    engine.define("c", False)
    engine.define("b", True, requires=["c"])
    engine.define("a", True, requires=["b"])

    assert engine.get_dependencies("a") == ["b"]
    assert not engine.dependencies_met("a", ctx)
    assert engine.get("a", ctx) is False

    engine.activate("c", ctx)

    assert engine.dependencies_met("a", ctx)
    assert engine.get("a", ctx) is True


def test_circular_pair_is_never_met(engine: ResolutionEngine):
    """Test A requires B, B requires A resolves to False without recursing."""
    ctx = Context(1, "user")
    engine.define("a", True, requires=["b"])
    engine.define("b", True, requires=["a"])

    assert engine.dependencies_met("a", ctx) is False
    assert engine.dependencies_met("b", ctx) is False
    assert engine.get("a", ctx) is False
    assert engine.get("b", ctx) is False


def test_self_dependency_is_circular(engine: ResolutionEngine):
    """Test a feature requiring itself resolves to False."""
    engine.define("loop", True, requires=["loop"])
    assert engine.get("loop", Context(1, "user")) is False


def test_longer_cycle_is_detected(engine: ResolutionEngine):
    """Test A -> B -> C -> A resolves to False everywhere."""
    ctx = Context(1, "user")
    engine.define("a", True, requires=["b"])
    engine.define("b", True, requires=["c"])
    engine.define("c", True, requires=["a"])

    assert [engine.get(name, ctx) for name in ("a", "b", "c")] == [False, False, False]


def test_unmet_dependency_skips_resolver(engine: ResolutionEngine):
    """Test the dependent's resolver is never called when a prerequisite is off."""
    calls = []
    engine.define("base", False)
    engine.define("child", lambda ctx: calls.append(ctx) or True, requires=["base"])

    assert engine.get("child", Context(1, "user")) is False
    assert calls == []


def test_dependencies_are_checked_per_context(engine: ResolutionEngine):
    """Test a prerequisite active for one context does not leak to another."""
    engine.define("base", lambda ctx: ctx.id == 1)
    engine.define("child", True, requires=["base"])

    assert engine.active("child", Context(1, "user"))
    assert not engine.active("child", Context(2, "user"))


def test_diamond_is_not_a_cycle(engine: ResolutionEngine):
    """Test two paths to the same prerequisite are fine."""
    ctx = Context(1, "user")
    engine.define("root", True)
    engine.define("left", True, requires=["root"])
    engine.define("right", True, requires=["root"])
    engine.define("top", True, requires=["left", "right"])

    assert engine.get("top", ctx) is True


def test_dependents_are_found_transitively(engine: ResolutionEngine):
    """Test dependents_of walks the reverse graph."""
    engine.define("a", True)
    engine.define("b", True, requires=["a"])
    engine.define("c", True, requires=["b"])
    engine.define("d", True)

    assert engine.dependencies.dependents_of("a") == {"b", "c"}

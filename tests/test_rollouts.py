"""
Tests for percentage, time-window, scheduled and conditional resolvers.
"""

import zlib
from datetime import datetime, timedelta

import pytest

from flagkit.context import Context, GuestContext
from flagkit.definition import (
    ConditionalResolver,
    PercentageResolver,
    ScheduledResolver,
    TimeWindowResolver,
)
from flagkit.engine import ResolutionEngine
from flagkit.exceptions import InvalidPercentageError, PercentageRolloutError

from .factories import User

START = datetime(2024, 3, 1, 9, 0)
END = datetime(2024, 3, 31, 18, 0)


def users(count: int = 1000) -> list[Context]:
    return [Context(i, "user") for i in range(1, count + 1)]


# ============ Percentage ============


def test_percentage_is_deterministic():
    """Test the same context always gets the same answer."""
    resolver = PercentageResolver(50, seed="checkout")

    for ctx in users(50):
        assert resolver.resolve(ctx) == resolver.resolve(ctx)
        assert resolver.resolve(ctx) == PercentageResolver(50, "checkout").resolve(ctx)


def test_percentage_bucket_is_crc32_of_seed_and_id():
    """Test the bucket formula."""
    resolver = PercentageResolver(30, seed="beta-")

    assert resolver.bucket(Context(42, "user")) == abs(zlib.crc32(b"beta-42")) % 100


def test_percentage_distribution():
    """Test roughly the declared share of contexts is in."""
    resolver = PercentageResolver(30, seed="search")
    enabled = sum(resolver.resolve(ctx) for ctx in users())

    assert 240 <= enabled <= 360


def test_raising_percentage_only_adds_contexts():
    """Test a wider rollout keeps everyone already in."""
    narrow = {ctx.id for ctx in users() if PercentageResolver(20, "x").resolve(ctx)}
    wide = {ctx.id for ctx in users() if PercentageResolver(60, "x").resolve(ctx)}

    assert narrow <= wide
    assert len(wide) > len(narrow)


def test_seed_changes_cohort():
    """Test different seeds pick different contexts."""
    first = {ctx.id for ctx in users() if PercentageResolver(50, "a").resolve(ctx)}
    second = {ctx.id for ctx in users() if PercentageResolver(50, "b").resolve(ctx)}

    assert first != second


@pytest.mark.parametrize("percentage, expected", [(0, False), (100, True)])
def test_percentage_extremes(percentage, expected):
    """Test 0 and 100 switch everyone off and on."""
    resolver = PercentageResolver(percentage)

    assert {resolver.resolve(ctx) for ctx in users(200)} == {expected}


@pytest.mark.parametrize("percentage", [-1, 101, 50.5, True])
def test_percentage_out_of_range(percentage):
    """Test invalid percentages are rejected at construction."""
    with pytest.raises(InvalidPercentageError):
        PercentageResolver(percentage)


def test_percentage_rejects_guest():
    """Test a null context cannot be bucketed."""
    with pytest.raises(PercentageRolloutError):
        PercentageResolver(50).resolve(GuestContext())


def test_percentage_through_engine(engine: ResolutionEngine):
    """Test the resolver plugs into define and errors propagate."""
    engine.define("rollout", PercentageResolver(100))

    assert engine.active("rollout", User(id=1))
    with pytest.raises(PercentageRolloutError):
        engine.get("rollout", None)


# ============ Time window ============


@pytest.mark.parametrize(
    "now, expected",
    [
        (START - timedelta(seconds=1), False),
        (START, True),
        (START + timedelta(days=10), True),
        (END, True),
        (END + timedelta(seconds=1), False),
    ],
)
def test_time_window_boundaries(now, expected):
    """Test both ends of the window are inclusive."""
    resolver = TimeWindowResolver(START, END, clock=lambda: now)

    assert resolver.resolve(Context(1, "user")) is expected


def test_time_window_uses_wall_clock():
    """Test the window is checked against now without a clock."""
    now = datetime.now()
    open_window = TimeWindowResolver(now - timedelta(hours=1), now + timedelta(hours=1))
    past_window = TimeWindowResolver(now - timedelta(days=2), now - timedelta(days=1))

    assert open_window.resolve(GuestContext()) is True
    assert past_window.resolve(GuestContext()) is False


# ============ Scheduled ============


@pytest.mark.parametrize(
    "activate_at, deactivate_at, now, expected",
    [
        (None, None, START, True),
        (START, None, START - timedelta(seconds=1), False),
        (START, None, START, True),
        (None, END, END, True),
        (None, END, END + timedelta(seconds=1), False),
        (START, END, START + timedelta(days=1), True),
        (START, END, END + timedelta(days=1), False),
    ],
)
def test_scheduled_bounds(activate_at, deactivate_at, now, expected):
    """Test optional start and stop moments."""
    resolver = ScheduledResolver(activate_at, deactivate_at, clock=lambda: now)

    assert resolver.resolve(Context(1, "user")) is expected


# ============ Conditional ============


def test_conditional_calls_condition():
    """Test the condition decides for real contexts."""
    resolver = ConditionalResolver(lambda ctx: ctx.source.is_beta)

    assert resolver.resolve(Context(1, "user", source=User(id=1, is_beta=True))) is True
    assert resolver.resolve(Context(2, "user", source=User(id=2))) is False


def test_conditional_guests():
    """Test guests are off unless explicitly allowed."""
    calls = []
    guarded = ConditionalResolver(lambda ctx: calls.append(ctx) or "on")
    open_to_guests = ConditionalResolver(lambda ctx: "on", allow_guests=True)

    assert guarded.resolve(GuestContext()) is False
    assert calls == []
    assert open_to_guests.resolve(GuestContext()) == "on"


def test_conditional_through_engine(engine: ResolutionEngine):
    """Test conditional features resolve per context."""
    engine.define("beta", ConditionalResolver(lambda ctx: ctx.source.is_beta))

    assert engine.active("beta", User(id=1, is_beta=True))
    assert not engine.active("beta", User(id=2))
    assert not engine.active("beta", None)

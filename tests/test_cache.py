"""
Tests for the result cache.
"""

from flagkit.cache import ResultCache


def test_miss_then_hit():
    """Test get reports presence separately from the value."""
    cache = ResultCache()
    assert cache.get("f", "user:1", "__null__") == (False, None)

    cache.put("f", "user:1", "__null__", False, "user|1")
    assert cache.get("f", "user:1", "__null__") == (True, False)


def test_put_updates_in_place():
    """Test one entry per key, keeping its position."""
    cache = ResultCache()
    cache.put("a", "user:1", "g", 1)
    cache.put("b", "user:1", "g", 2)
    cache.put("a", "user:1", "g", 3)

    assert len(cache) == 2
    assert [(e.feature, e.value) for e in cache.entries()] == [("a", 3), ("b", 2)]


def test_global_context_is_part_of_the_key():
    """Test the same context under two global contexts gets two entries."""
    cache = ResultCache()
    cache.put("f", "user:1", "tenant|a", "A")
    cache.put("f", "user:1", "tenant|b", "B")

    assert cache.get("f", "user:1", "tenant|a") == (True, "A")
    assert cache.get("f", "user:1", "tenant|b") == (True, "B")


def test_forget_by_identity_covers_scoped_keys():
    """Test evicting an entity removes its scoped lookups too."""
    cache = ResultCache()
    cache.put("f", "user:7", "g", True, "user|7")
    cache.put("f", "user:7|user:company=3", "g", True, "user|7")
    cache.put("f", "user:8", "g", True, "user|8")

    assert cache.forget("f", "user|7") == 2
    assert len(cache) == 1


def test_forget_feature_and_context():
    """Test bulk evictions."""
    cache = ResultCache()
    cache.put("a", "user:1", "g", True, "user|1")
    cache.put("a", "user:2", "g", True, "user|2")
    cache.put("b", "user:1", "g", True, "user|1")

    assert cache.forget_feature("a") == 2
    assert cache.forget_context("user|1") == 1
    assert len(cache) == 0


def test_flush_clears_everything():
    """Test flush empties the cache."""
    cache = ResultCache()
    cache.put("a", "user:1", "g", True)
    cache.flush()
    assert len(cache) == 0

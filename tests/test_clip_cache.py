"""Tests for the search cache and its expiration sweep."""

from clipstage.services.clip_cache import ClipCache
from conftest import make_clip

DAY = 86400


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestClipCache:
    def test_miss_returns_none(self):
        assert ClipCache().get("pog moment") is None

    def test_put_then_get(self):
        cache = ClipCache()
        clip = make_clip()
        cache.put("pog moment", clip)

        assert cache.get("pog moment") == clip
        assert len(cache) == 1

    def test_frequency_counts_lookups(self):
        """A new entry starts at one and every hit increments it."""
        cache = ClipCache()
        cache.put("pog moment", make_clip())
        cache.get("pog moment")
        cache.get("pog moment")

        assert cache.entry("pog moment").search_frequency == 3

    def test_put_supersedes_clip(self):
        cache = ClipCache()
        cache.put("pog moment", make_clip("first"))
        cache.put("pog moment", make_clip("second"))

        assert cache.get("pog moment").id == "second"
        assert len(cache) == 1

    def test_entry_survives_until_expiration(self):
        """An entry idle one second short of the expiration is kept."""
        clock = FakeClock()
        cache = ClipCache(expiration_seconds=30 * DAY, clock=clock)
        cache.put("pog moment", make_clip())

        clock.now += 30 * DAY - 1
        assert cache.sweep() == 0
        assert cache.get("pog moment") is not None

    def test_entry_purged_after_expiration(self):
        clock = FakeClock()
        cache = ClipCache(expiration_seconds=30 * DAY, clock=clock)
        cache.put("pog moment", make_clip())

        clock.now += 30 * DAY + 1
        assert cache.sweep() == 1
        assert cache.get("pog moment") is None

    def test_access_extends_lifetime(self):
        clock = FakeClock()
        cache = ClipCache(expiration_seconds=10, clock=clock)
        cache.put("a", make_clip("a"))
        cache.put("b", make_clip("b"))

        clock.now += 8
        cache.get("a")
        clock.now += 8

        assert cache.sweep() == 1
        assert cache.entry("a") is not None
        assert cache.entry("b") is None

    def test_sweep_accepts_explicit_time(self):
        clock = FakeClock()
        cache = ClipCache(expiration_seconds=10, clock=clock)
        cache.put("a", make_clip("a"))

        assert cache.sweep(now=clock.now + 5) == 0
        assert cache.sweep(now=clock.now + 11) == 1

from __future__ import annotations

import unittest

from hadith_nlp.apps.cache import ResultCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ResultCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()

    def test_hit_and_miss_counters(self) -> None:
        cache = ResultCache(10, 60, clock=self.clock)
        self.assertIsNone(cache.get("a"))
        cache.put("a", 1)
        self.assertEqual(cache.get("a"), 1)
        self.assertEqual((cache.hits, cache.misses), (1, 1))

    def test_entries_expire(self) -> None:
        cache = ResultCache(10, 60, clock=self.clock)
        cache.put("a", 1)
        self.clock.now = 59.9
        self.assertEqual(cache.get("a"), 1)
        self.clock.now = 60.0
        self.assertIsNone(cache.get("a"))
        self.assertEqual(len(cache), 0)

    def test_least_recently_used_is_evicted(self) -> None:
        cache = ResultCache(2, 60, clock=self.clock)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        self.assertIsNone(cache.get("b"))
        self.assertEqual(cache.get("a"), 1)
        self.assertEqual(cache.get("c"), 3)

    def test_zero_size_disables_caching(self) -> None:
        cache = ResultCache(0, 60, clock=self.clock)
        cache.put("a", 1)
        self.assertIsNone(cache.get("a"))


if __name__ == "__main__":  # pragma: no cover
    unittest.main()

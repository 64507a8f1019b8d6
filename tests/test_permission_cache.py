"""Unit tests for flashpoint_web.services.permission_cache: TTLs, invalidation and the sweeper."""

import time
import unittest

from flashpoint_web.services.permission_cache import PermissionCache


class ManualClock:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


class TestUserTier(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.cache = PermissionCache(user_ttl=300, role_ttl=600, clock=self.clock)

    def test_miss_then_hit(self) -> None:
        self.assertIsNone(self.cache.get_user_permissions(1))
        self.cache.set_user_permissions(1, ["games.read", "games.play"])
        self.assertEqual(
            self.cache.get_user_permissions(1), frozenset({"games.read", "games.play"})
        )

    def test_empty_set_is_a_hit(self) -> None:
        self.cache.set_user_permissions(1, [])
        self.assertEqual(self.cache.get_user_permissions(1), frozenset())

    def test_entry_expires_after_ttl(self) -> None:
        self.cache.set_user_permissions(1, ["games.read"])
        self.clock.value += 299
        self.assertIsNotNone(self.cache.get_user_permissions(1))
        self.clock.value += 1
        self.assertIsNone(self.cache.get_user_permissions(1))

    def test_invalidate_all_users(self) -> None:
        self.cache.set_user_permissions(1, ["games.read"])
        self.cache.set_user_permissions(2, ["games.read"])
        self.cache.set_role_permissions(5, ["games.read"])
        self.cache.invalidate_all_users()
        self.assertEqual(self.cache.get_stats()["user_cache_size"], 0)
        self.assertIsNotNone(self.cache.get_role_permissions(5))

    def test_invalidate_user_only_drops_that_user(self) -> None:
        self.cache.set_user_permissions(1, ["games.read"])
        self.cache.set_user_permissions(2, ["games.read"])
        self.cache.invalidate_user(1)
        self.assertIsNone(self.cache.get_user_permissions(1))
        self.assertIsNotNone(self.cache.get_user_permissions(2))

    def test_stale_write_after_invalidation_is_dropped(self) -> None:
        generation = self.cache.user_generation
        self.cache.invalidate_user(1)
        stored = self.cache.set_user_permissions(1, ["users.delete"], generation=generation)
        self.assertFalse(stored)
        self.assertIsNone(self.cache.get_user_permissions(1))

    def test_write_with_current_generation_is_kept(self) -> None:
        generation = self.cache.user_generation
        self.assertTrue(self.cache.set_user_permissions(1, ["games.read"], generation=generation))


class TestRoleTier(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.cache = PermissionCache(user_ttl=300, role_ttl=600, clock=self.clock)

    def test_role_ttl_is_independent(self) -> None:
        self.cache.set_role_permissions(5, ["games.read"])
        self.cache.set_user_permissions(1, ["games.read"])
        self.clock.value += 301
        self.assertIsNone(self.cache.get_user_permissions(1))
        self.assertEqual(self.cache.get_role_permissions(5), frozenset({"games.read"}))
        self.clock.value += 300
        self.assertIsNone(self.cache.get_role_permissions(5))

    def test_invalidate_role_clears_every_user(self) -> None:
        self.cache.set_role_permissions(5, ["games.read"])
        self.cache.set_role_permissions(6, ["games.play"])
        for user_id in (1, 2, 3):
            self.cache.set_user_permissions(user_id, ["games.read"])
        self.cache.invalidate_role(5)
        self.assertIsNone(self.cache.get_role_permissions(5))
        self.assertIsNotNone(self.cache.get_role_permissions(6))
        for user_id in (1, 2, 3):
            self.assertIsNone(self.cache.get_user_permissions(user_id))

    def test_invalidate_all_roles_leaves_users(self) -> None:
        self.cache.set_role_permissions(5, ["games.read"])
        self.cache.set_user_permissions(1, ["games.read"])
        self.cache.invalidate_all_roles()
        self.assertIsNone(self.cache.get_role_permissions(5))
        self.assertIsNotNone(self.cache.get_user_permissions(1))

    def test_clear_all(self) -> None:
        self.cache.set_role_permissions(5, ["games.read"])
        self.cache.set_user_permissions(1, ["games.read"])
        self.cache.clear_all()
        self.assertEqual(
            self.cache.get_stats(),
            {"user_cache_size": 0, "role_cache_size": 0, "total_size": 0},
        )


class TestCleanupAndStats(unittest.TestCase):
    def test_cleanup_purges_only_expired(self) -> None:
        clock = ManualClock()
        cache = PermissionCache(user_ttl=10, role_ttl=20, clock=clock)
        cache.set_user_permissions(1, ["a.b"])
        cache.set_role_permissions(1, ["a.b"])
        clock.value += 5
        cache.set_user_permissions(2, ["a.b"])
        clock.value += 6
        self.assertEqual(cache.cleanup(), (1, 0))
        self.assertEqual(
            cache.get_stats(),
            {"user_cache_size": 1, "role_cache_size": 1, "total_size": 2},
        )
        clock.value += 20
        self.assertEqual(cache.cleanup(), (1, 1))
        self.assertEqual(cache.get_stats()["total_size"], 0)


class TestSweeper(unittest.TestCase):
    def test_start_sweeps_and_stop_joins(self) -> None:
        cache = PermissionCache(user_ttl=0.01, role_ttl=0.01, sweep_interval=0.02)
        cache.set_user_permissions(1, ["games.read"])
        cache.start()
        try:
            self.assertTrue(cache.running)
            deadline = time.monotonic() + 2
            while cache.get_stats()["user_cache_size"] and time.monotonic() < deadline:
                time.sleep(0.02)
            self.assertEqual(cache.get_stats()["user_cache_size"], 0)
        finally:
            cache.stop()
        self.assertFalse(cache.running)

    def test_start_is_idempotent(self) -> None:
        cache = PermissionCache(sweep_interval=60)
        cache.start()
        first = cache._sweeper
        cache.start()
        self.assertIs(cache._sweeper, first)
        cache.stop()


if __name__ == "__main__":
    unittest.main()

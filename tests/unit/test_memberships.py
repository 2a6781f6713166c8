"""Tests for MembershipCache."""

import threading
import time
from unittest.mock import MagicMock

import pytest

from provkit.memberships import MembershipCache


class TestGetMemberships:
    """Tests for MembershipCache.get_memberships."""

    def test_lookup_once(self):
        lookup = MagicMock(return_value=["admins", "devs"])
        cache = MembershipCache(lookup)

        assert cache.get_memberships("alice") == ["admins", "devs"]
        assert cache.get_memberships("alice") == ["admins", "devs"]
        lookup.assert_called_once_with("alice")

    @pytest.mark.parametrize("result", [[], None])
    def test_empty_result_cached(self, result):
        lookup = MagicMock(return_value=result)
        cache = MembershipCache(lookup)

        assert cache.get_memberships("bob") == []
        assert cache.get_memberships("bob") == []
        lookup.assert_called_once_with("bob")

    def test_same_object_returned(self):
        cache = MembershipCache(MagicMock(return_value=["devs"]))
        assert cache.get_memberships("alice") is cache.get_memberships("alice")

    def test_per_user(self):
        lookup = MagicMock(side_effect=lambda user: [f"{user}-group"])
        cache = MembershipCache(lookup)

        assert cache.get_memberships("alice") == ["alice-group"]
        assert cache.get_memberships("bob") == ["bob-group"]
        assert lookup.call_count == 2

    def test_order_kept_and_duplicates_dropped(self):
        cache = MembershipCache(MagicMock(return_value=["b", "a", "b"]))
        assert cache.get_memberships("alice") == ["b", "a"]

    def test_lowercase(self):
        lookup = MagicMock(return_value=["Admins", "admins", "DEVS"])
        cache = MembershipCache(lookup, lowercase=True)
        assert cache.get_memberships("alice") == ["admins", "devs"]

    def test_case_kept_by_default(self):
        cache = MembershipCache(MagicMock(return_value=["Admins"]))
        assert cache.get_memberships("alice") == ["Admins"]

    def test_lookup_error_not_cached(self):
        lookup = MagicMock(side_effect=[RuntimeError("down"), ["devs"]])
        cache = MembershipCache(lookup)

        with pytest.raises(RuntimeError):
            cache.get_memberships("alice")

        assert cache.get_memberships("alice") == ["devs"]
        assert lookup.call_count == 2

    def test_concurrent_callers_share_one_lookup(self):
        calls: list[str] = []

        def slow_lookup(user: str) -> list[str]:
            calls.append(user)
            time.sleep(0.05)
            return ["devs"]

        cache = MembershipCache(slow_lookup)
        results: list[list[str]] = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            results.append(cache.get_memberships("alice"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls == ["alice"]
        assert len(results) == 8
        assert all(r is results[0] for r in results)


class TestEntriesAndInvalidation:
    """Tests for entry() and invalidate()."""

    def test_entry_without_lookup(self):
        lookup = MagicMock(return_value=["devs"])
        cache = MembershipCache(lookup)

        assert cache.entry("alice") is None
        lookup.assert_not_called()

    def test_entry_after_lookup(self):
        cache = MembershipCache(MagicMock(return_value=["devs"]))
        groups = cache.get_memberships("alice")

        entry = cache.entry("alice")
        assert entry.username == "alice"
        assert entry.groups is groups
        assert entry.inserted_at.tzinfo is not None

    def test_invalidate_user(self):
        lookup = MagicMock(side_effect=[["old"], ["new"], ["bob"]])
        cache = MembershipCache(lookup)
        cache.get_memberships("alice")

        cache.invalidate("alice")

        assert cache.get_memberships("alice") == ["new"]
        assert lookup.call_count == 2

    def test_invalidate_all(self):
        lookup = MagicMock(return_value=["devs"])
        cache = MembershipCache(lookup)
        cache.get_memberships("alice")
        cache.get_memberships("bob")

        cache.invalidate()

        assert cache.entry("alice") is None
        assert cache.entry("bob") is None

    def test_invalidate_unknown_user(self):
        MembershipCache(MagicMock()).invalidate("nobody")

    def test_invalidate_during_lookup_wins(self):
        results = iter([["stale"], ["fresh"]])

        def lookup(user):
            groups = next(results)
            if groups == ["stale"]:
                cache.invalidate(user)
            return groups

        cache = MembershipCache(lookup)

        assert cache.get_memberships("alice") == ["stale"]
        assert cache.entry("alice") is None
        assert cache.get_memberships("alice") == ["fresh"]
        assert cache.entry("alice").groups == ["fresh"]

    def test_invalidate_all_during_lookup_wins(self):
        def lookup(user):
            cache.invalidate()
            return ["devs"]

        cache = MembershipCache(lookup)

        cache.get_memberships("alice")
        assert cache.entry("alice") is None

    def test_other_users_unaffected_after_invalidate(self):
        cache = MembershipCache(MagicMock(return_value=["devs"]))
        cache.invalidate("bob")
        cache.get_memberships("alice")
        assert cache.entry("alice").groups == ["devs"]


class TestUserLocks:
    """Tests for pruning of per-user lookup locks."""

    def test_user_lock_dropped_on_invalidate(self):
        cache = MembershipCache(MagicMock(return_value=["devs"]))
        cache.get_memberships("alice")
        cache.get_memberships("bob")
        assert set(cache._user_locks) == {"alice", "bob"}

        cache.invalidate("alice")

        assert set(cache._user_locks) == {"bob"}

    def test_all_user_locks_dropped(self):
        cache = MembershipCache(MagicMock(return_value=["devs"]))
        cache.get_memberships("alice")
        cache.get_memberships("bob")

        cache.invalidate()

        assert cache._user_locks == {}

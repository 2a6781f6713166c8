"""Per-user cache of group memberships.

Group lookups against the identity provider are slow and happen on every
authorization decision, so results are kept per user until someone
invalidates them. An empty result is cached too: a user without groups
must not trigger a lookup on every request.

Invalidation wins over a lookup that is still in flight: a result fetched
before an ``invalidate`` is returned to its caller but not stored.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from provkit.logging import get_logger

LOG = get_logger(__name__)

GroupLookup = Callable[[str], Sequence[str] | None]


@dataclass
class MembershipCacheEntry:
    """Cached groups of one user. ``inserted_at`` is informational only."""

    username: str
    groups: list[str]
    inserted_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class MembershipCache:
    """Cache group memberships in front of a remote lookup."""

    def __init__(self, lookup: GroupLookup, *, lowercase: bool = False) -> None:
        """Initialize a MembershipCache.

        Args:
            lookup: Remote lookup returning the user's group names, or None
                when the user has no groups.
            lowercase: Store group names lowercased instead of as received.
        """
        self._lookup = lookup
        self.lowercase = lowercase
        self._entries: dict[str, MembershipCacheEntry] = {}
        self._lock = threading.Lock()
        self._user_locks: dict[str, threading.Lock] = {}
        self._generation = 0

    def _user_lock(self, user: str) -> threading.Lock:
        with self._lock:
            return self._user_locks.setdefault(user, threading.Lock())

    def _normalize(self, groups: Sequence[str] | None) -> list[str]:
        ordered: dict[str, None] = {}
        for group in groups or ():
            ordered[group.lower() if self.lowercase else group] = None
        return list(ordered)

    def get_memberships(self, user: str) -> list[str]:
        """Return the groups of ``user``, looking them up on first use.

        The same list object is returned on every call until the entry is
        invalidated; callers must not mutate it.

        Args:
            user: User name.

        Returns:
            Ordered, de-duplicated group names.
        """
        start = time.monotonic()
        with self._lock:
            entry = self._entries.get(user)
        if entry is not None:
            LOG.debug(
                "memberships_from_cache",
                user=user,
                groups=len(entry.groups),
                elapsed_ms=round((time.monotonic() - start) * 1000, 2),
            )
            return entry.groups

        with self._user_lock(user):
            with self._lock:
                entry = self._entries.get(user)
                generation = self._generation
            if entry is not None:
                return entry.groups

            groups = self._normalize(self._lookup(user))
            entry = MembershipCacheEntry(username=user, groups=groups)
            with self._lock:
                stored = generation == self._generation
                if stored:
                    self._entries[user] = entry

        if not stored:
            LOG.debug("memberships_invalidated_during_lookup", user=user)
            return entry.groups

        LOG.debug(
            "memberships_cached",
            user=user,
            groups=len(groups),
            elapsed_ms=round((time.monotonic() - start) * 1000, 2),
        )
        return entry.groups

    def entry(self, user: str) -> MembershipCacheEntry | None:
        """Return the cache entry for ``user`` without triggering a lookup."""
        with self._lock:
            return self._entries.get(user)

    def invalidate(self, user: str | None = None) -> None:
        """Forget one user's memberships, or everyone's when ``user`` is None.

        Lookups already running when this is called do not store their result.
        """
        with self._lock:
            self._generation += 1
            if user is None:
                self._entries.clear()
                self._user_locks.clear()
            else:
                self._entries.pop(user, None)
                self._user_locks.pop(user, None)
        LOG.debug("memberships_invalidated", user=user or "*")

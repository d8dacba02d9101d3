"""
Group closure resolution.

Computes, for a principal, every group it belongs to directly or through
nested groups. Group graphs may contain cycles (G1 contains G2 and G2
contains G1), so traversal is a breadth-first search with a visited set.

Cache layout:
    user:{id}:groups       the full closure of a user (one value)
    group:{id}:parents     the direct parents of a group (one hop)

Invariants:
    - Every group id is expanded at most once per resolution
    - A cache hit on the user key short-circuits the whole traversal
    - Store failures propagate; they are never read as "no groups"
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from ..cache import Cache, cached_fetch
from ..cache.keys import group_parents_key, user_groups_key
from ..models import Principal
from ..store import MembershipStore

logger = logging.getLogger(__name__)


class GroupClosureResolver:
    """Resolves transitive group membership with per-hop caching.

    Concurrent resolutions for the same user are independent and idempotent;
    they may both miss the cache and both repopulate it with the same value.

    Example:
        >>> resolver = GroupClosureResolver(memberships, cache)
        >>> await resolver.resolve_groups_for_user("user-1")
        {'group-a', 'group-b'}
    """

    def __init__(
        self,
        memberships: MembershipStore,
        cache: Cache,
        ttl_seconds: int = 600,
    ) -> None:
        self.memberships = memberships
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def resolve_groups_for_user(self, user_id: str) -> set[str]:
        """Return every group ``user_id`` belongs to, directly or transitively.

        Args:
            user_id: User identifier

        Returns:
            Unordered, deduplicated set of group ids (possibly empty)

        Raises:
            StoreUnavailableError: If the store cannot be read
        """

        async def load() -> list[str]:
            direct = await self.memberships.get_parent_group_ids(Principal.user(user_id))
            return sorted(await self._expand(direct))

        group_ids = await cached_fetch(
            self.cache, user_groups_key(user_id), self.ttl_seconds, load
        )
        return set(group_ids)

    async def resolve_parent_groups(self, group_id: str) -> set[str]:
        """Return every group that contains ``group_id``, directly or transitively.

        ``group_id`` itself is part of the result only when it sits on a cycle.
        """
        direct = await self.get_parent_group_ids(group_id)
        return await self._expand(direct)

    async def get_parent_group_ids(self, group_id: str) -> list[str]:
        """Direct parents of a group, read through the cache."""

        async def load() -> list[str]:
            return sorted(await self.memberships.get_parent_group_ids(Principal.group(group_id)))

        return await cached_fetch(
            self.cache, group_parents_key(group_id), self.ttl_seconds, load
        )

    async def _expand(self, start_ids: Iterable[str]) -> set[str]:
        visited: set[str] = set()
        queue = deque(start_ids)

        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)

            for parent_id in await self.get_parent_group_ids(current):
                if parent_id not in visited:
                    queue.append(parent_id)

        return visited

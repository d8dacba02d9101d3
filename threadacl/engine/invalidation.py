"""
Cache invalidation after committed mutations.

A principal's group closure can only change when it sits, directly or
transitively, inside a group whose membership changed. Eviction therefore
walks membership edges from each changed group down to its members:
user members are affected users, group members are affected groups and are
expanded in turn. The walk carries a visited set since group graphs may be
cyclic.

Members of a changed group gain or lose every grant held by that group or
by any group containing it, so cached grant lookups on the content carrying
those grants are evicted as well. Containing groups are found by walking
membership edges upward from the changed groups.

Evicted keys:
    user:{id}:groups          for every affected user
    group:{id}:parents        for every affected group (changed groups included)
    permissions:{content}:*   for a content item whose grants or flags changed,
                              and for content granted to a changed group or
                              any group containing it

Invariants:
    - Called only after the mutation has committed; deletions collect what
      to evict before the rows disappear
    - Eviction failures raise CacheUnavailableError to the caller
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable

from ..cache import Cache
from ..cache.keys import group_parents_key, permission_prefix, user_groups_key
from ..models import Principal, PrincipalKind
from ..store import MembershipStore, PermissionStore

logger = logging.getLogger(__name__)

AffectedPrincipals = tuple[set[str], set[str]]


class CacheInvalidationCoordinator:
    """Evicts derived cache entries made stale by a mutation.

    Example:
        >>> coordinator = CacheInvalidationCoordinator(memberships, permissions, cache)
        >>> await coordinator.on_group_membership_changed(["group-a"])
        3
    """

    def __init__(
        self,
        memberships: MembershipStore,
        permissions: PermissionStore,
        cache: Cache,
    ) -> None:
        self.memberships = memberships
        self.permissions = permissions
        self.cache = cache

    async def collect_affected(self, group_ids: Iterable[str]) -> AffectedPrincipals:
        """Find every principal whose closure may depend on ``group_ids``.

        Must run before rows are deleted when the change is a deletion.

        Returns:
            (affected user ids, affected group ids)
        """
        affected_users: set[str] = set()
        affected_groups: set[str] = set()
        queue = deque(group_ids)

        while queue:
            group_id = queue.popleft()
            if group_id in affected_groups:
                continue
            affected_groups.add(group_id)

            for member in await self.memberships.get_direct_members(group_id):
                if member.kind is PrincipalKind.USER:
                    affected_users.add(member.id)
                elif member.id not in affected_groups:
                    queue.append(member.id)

        return affected_users, affected_groups

    async def collect_containing_groups(self, group_ids: Iterable[str]) -> set[str]:
        """The given groups plus every group containing one of them.

        Reads membership edges from the store, never from the cache.
        """
        visited: set[str] = set()
        queue = deque(group_ids)

        while queue:
            group_id = queue.popleft()
            if group_id in visited:
                continue
            visited.add(group_id)

            for parent_id in await self.memberships.get_parent_group_ids(
                Principal.group(group_id)
            ):
                if parent_id not in visited:
                    queue.append(parent_id)

        return visited

    async def collect_granted_contents(self, group_ids: Iterable[str]) -> set[str]:
        """Content whose group grants reach the members of ``group_ids``.

        Must run before rows are deleted when the change is a deletion.
        """
        content_ids: set[str] = set()
        for group_id in sorted(await self.collect_containing_groups(group_ids)):
            content_ids.update(
                await self.permissions.content_ids_granted_to(Principal.group(group_id))
            )
        return content_ids

    async def on_group_membership_changed(
        self,
        group_ids: Iterable[str],
        affected: AffectedPrincipals | None = None,
        granted_content_ids: Iterable[str] | None = None,
    ) -> int:
        """Evict closures, parent lists and grant lookups made stale by a change.

        Args:
            group_ids: Groups whose membership changed
            affected: Precomputed result of collect_affected()
            granted_content_ids: Precomputed result of collect_granted_contents()

        Returns:
            Number of keys evicted
        """
        group_ids = list(group_ids)
        if affected is None:
            affected = await self.collect_affected(group_ids)
        if granted_content_ids is None:
            granted_content_ids = await self.collect_granted_contents(group_ids)
        user_ids, affected_group_ids = affected

        keys = [user_groups_key(user_id) for user_id in sorted(user_ids)]
        keys += [group_parents_key(group_id) for group_id in sorted(affected_group_ids)]
        evicted = await self.cache.delete(*keys) if keys else 0

        content_ids = sorted(set(granted_content_ids))
        for content_id in content_ids:
            evicted += await self.cache.delete_prefix(permission_prefix(content_id))

        logger.info(
            "Invalidated group closures",
            extra={
                "affected_users": len(user_ids),
                "affected_groups": len(affected_group_ids),
                "affected_contents": len(content_ids),
                "evicted": evicted,
            },
        )
        return evicted

    async def on_permission_changed(self, content_id: str) -> int:
        """Evict every cached grant lookup of one content item."""
        evicted = await self.cache.delete_prefix(permission_prefix(content_id))
        logger.info(
            "Invalidated permission lookups",
            extra={"content_id": content_id, "evicted": evicted},
        )
        return evicted

"""
Authorization service facade.

Wires the store adapters, the cache and the engine components together and
exposes every write and read operation of ThreadACL.

Write path:
    validate ids -> one transaction -> commit -> invalidate cache

Read path:
    closure resolver / evaluator / visibility builder, cache before store

Invariants:
    - Every referenced id is validated before a transaction is opened, so a
      rejected request never leaves partial rows behind
    - Cache invalidation runs only after commit and covers cached grant
      lookups reached through a changed group; an eviction failure is
      logged at ERROR and does not fail the committed mutation (entries still
      expire through their TTL)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Sequence

from .cache import Cache, create_cache
from .config import ServerConfig
from .engine import (
    CacheInvalidationCoordinator,
    GroupClosureResolver,
    PermissionEvaluator,
    VisibilityQueryBuilder,
)
from .errors import InfrastructureError, InvalidInputError, NotFoundError
from .models import (
    Content,
    ContentCategory,
    ContentFilters,
    ContentPage,
    Group,
    Membership,
    PermissionType,
    Principal,
    User,
)
from .store import (
    ContentStore,
    Database,
    MembershipStore,
    PermissionStore,
    UserStore,
    clean_tags,
    now_ms,
)

logger = logging.getLogger(__name__)

MAX_LOCATION_LENGTH = 255


class AuthorizationService:
    """All ThreadACL operations behind one object.

    Attributes:
        db: Relational store
        cache: Cache backend
        groups: Group closure resolver
        evaluator: Per-item permission evaluator
        visibility: Visibility listing
        invalidation: Cache invalidation coordinator

    Example:
        >>> service = AuthorizationService.from_config(ServerConfig.from_env())
        >>> await service.start()
        >>> alice = await service.create_user("alice")
        >>> post = await service.create_content(alice.id, "hello")
        >>> await service.can_edit(alice.id, post.id)
        True
    """

    def __init__(self, db: Database, cache: Cache, ttl_seconds: int = 600) -> None:
        self.db = db
        self.cache = cache
        self.ttl_seconds = ttl_seconds

        self.users = UserStore(db)
        self.memberships = MembershipStore(db)
        self.permissions = PermissionStore(db)
        self.contents = ContentStore(db)

        self.groups = GroupClosureResolver(self.memberships, cache, ttl_seconds)
        self.evaluator = PermissionEvaluator(
            self.users, self.contents, self.permissions, self.groups, cache, ttl_seconds
        )
        self.visibility = VisibilityQueryBuilder(db, self.users, self.contents, self.groups)
        self.invalidation = CacheInvalidationCoordinator(
            self.memberships, self.permissions, cache
        )

    @classmethod
    def from_config(cls, config: ServerConfig) -> AuthorizationService:
        """Build an unstarted service from server configuration."""
        db = Database(
            config.storage.db_path,
            wal_mode=config.storage.wal_mode,
            busy_timeout_ms=config.storage.busy_timeout_ms,
        )
        return cls(db, create_cache(config.cache), config.cache.ttl_seconds)

    async def start(self) -> None:
        """Create the schema and connect the cache."""
        await self.db.initialize()
        await self.cache.connect()
        logger.info("Authorization service started")

    async def close(self) -> None:
        await self.cache.close()
        logger.info("Authorization service stopped")

    # --- Users ---

    async def create_user(self, name: str, user_id: str | None = None) -> User:
        return await self.users.create_user(name, user_id)

    # --- Groups ---

    async def create_group(
        self,
        member_user_ids: Sequence[str],
        member_group_ids: Sequence[str],
        name: str | None = None,
    ) -> Group:
        """Create a group with its initial members.

        Args:
            member_user_ids: Users to add
            member_group_ids: Groups to nest inside the new group
            name: Unique name (generated if not provided)

        Returns:
            Created Group

        Raises:
            InvalidInputError: If both member lists are empty
            NotFoundError: If any member id is unknown
        """
        members = await self._validate_members(member_user_ids, member_group_ids)

        async with self.db.transaction() as tx:
            group = await self.memberships.insert_group(tx, name)
            await self.memberships.insert_memberships(tx, group.id, members)

        logger.info(
            "Created group",
            extra={"group_id": group.id, "members": len(members)},
        )
        await self._invalidate(
            "create_group", self.invalidation.on_group_membership_changed([group.id])
        )
        return group

    async def add_group_members(
        self,
        group_id: str,
        member_user_ids: Sequence[str],
        member_group_ids: Sequence[str],
    ) -> list[Membership]:
        """Add users and groups to an existing group.

        Raises:
            NotFoundError: If the group or any member id is unknown
            InvalidInputError: If both member lists are empty
        """
        if not await self.memberships.groups_exist([group_id]):
            raise NotFoundError("group", [group_id])
        members = await self._validate_members(member_user_ids, member_group_ids)

        async with self.db.transaction() as tx:
            memberships = await self.memberships.insert_memberships(tx, group_id, members)

        await self._invalidate(
            "add_group_members", self.invalidation.on_group_membership_changed([group_id])
        )
        return memberships

    async def delete_group(self, group_id: str) -> None:
        """Delete a group, its memberships and the grants it holds.

        Raises:
            NotFoundError: If the group does not exist
        """
        if not await self.memberships.groups_exist([group_id]):
            raise NotFoundError("group", [group_id])

        # Rows are gone after commit, so collect what to evict first
        affected = await self.invalidation.collect_affected([group_id])
        granted_content_ids = await self.invalidation.collect_granted_contents([group_id])

        async with self.db.transaction() as tx:
            deleted = await self.memberships.delete_group(tx, group_id)
        if not deleted:
            raise NotFoundError("group", [group_id])

        logger.info("Deleted group", extra={"group_id": group_id})
        await self._invalidate(
            "delete_group",
            self.invalidation.on_group_membership_changed(
                [group_id], affected, granted_content_ids
            ),
        )

    # --- Content ---

    async def create_content(
        self,
        author_id: str,
        body: str,
        parent_id: str | None = None,
        tags: Sequence[str] | None = None,
        category: ContentCategory | None = None,
        location: str | None = None,
        inherit_view: bool = True,
        inherit_edit: bool = True,
    ) -> Content:
        """Create a content item, optionally nested under ``parent_id``.

        The author receives explicit view and edit grants in the same
        transaction.

        Raises:
            NotFoundError: If the author or the parent does not exist
            InvalidInputError: If the location is too long
        """
        if location is not None and len(location) > MAX_LOCATION_LENGTH:
            raise InvalidInputError(
                f"Location must be at most {MAX_LOCATION_LENGTH} characters", "location"
            )
        if not await self.users.user_exists(author_id):
            raise NotFoundError("user", [author_id])
        if parent_id is not None and not await self.contents.content_exists(parent_id):
            raise NotFoundError("content", [parent_id], "Parent content not found")

        content = Content(
            id=str(uuid.uuid4()),
            created_at=now_ms(),
            author_id=author_id,
            body=body,
            tags=clean_tags(tags),
            parent_id=parent_id,
            category=category,
            location=location,
            inherit_view=inherit_view,
            inherit_edit=inherit_edit,
        )
        author = [Principal.user(author_id)]

        async with self.db.transaction() as tx:
            await self.contents.insert_content(tx, content)
            await self.permissions.insert_grants(tx, content.id, PermissionType.VIEW, author)
            await self.permissions.insert_grants(tx, content.id, PermissionType.EDIT, author)

        logger.debug(
            "Created content",
            extra={"content_id": content.id, "author_id": author_id, "parent_id": parent_id},
        )
        return content

    async def update_content_permissions(
        self,
        content_id: str,
        inherit_view: bool,
        inherit_edit: bool,
        user_view_ids: Sequence[str] = (),
        group_view_ids: Sequence[str] = (),
        user_edit_ids: Sequence[str] = (),
        group_edit_ids: Sequence[str] = (),
    ) -> bool:
        """Set both inheritance flags and replace explicit grants.

        Grants of a type are replaced only when that type does not inherit;
        an inheriting type keeps whatever grants it had.

        Returns:
            True once committed

        Raises:
            NotFoundError: If the content or any principal id is unknown
        """
        if not await self.contents.content_exists(content_id):
            raise NotFoundError("content", [content_id])
        await self._require_users([*user_view_ids, *user_edit_ids])
        await self._require_groups([*group_view_ids, *group_edit_ids])

        async with self.db.transaction() as tx:
            if not await self.contents.update_inheritance(
                tx, content_id, inherit_view, inherit_edit
            ):
                raise NotFoundError("content", [content_id])
            if not inherit_view:
                await self.permissions.replace_grants(
                    tx,
                    content_id,
                    PermissionType.VIEW,
                    _principals(user_view_ids, group_view_ids),
                )
            if not inherit_edit:
                await self.permissions.replace_grants(
                    tx,
                    content_id,
                    PermissionType.EDIT,
                    _principals(user_edit_ids, group_edit_ids),
                )

        logger.info(
            "Updated content permissions",
            extra={
                "content_id": content_id,
                "inherit_view": inherit_view,
                "inherit_edit": inherit_edit,
            },
        )
        await self._invalidate(
            "update_content_permissions", self.invalidation.on_permission_changed(content_id)
        )
        return True

    # --- Reads ---

    async def can_edit(self, user_id: str, content_id: str) -> bool:
        return await self.evaluator.can_edit(user_id, content_id)

    async def can_view(self, user_id: str, content_id: str) -> bool:
        return await self.evaluator.can_view(user_id, content_id)

    async def require_edit(self, user_id: str, content_id: str) -> None:
        await self.evaluator.require(user_id, content_id, PermissionType.EDIT)

    async def require_view(self, user_id: str, content_id: str) -> None:
        await self.evaluator.require(user_id, content_id, PermissionType.VIEW)

    async def list_visible(
        self,
        user_id: str,
        limit: int,
        page: int,
        filters: ContentFilters | None = None,
    ) -> ContentPage:
        return await self.visibility.list_visible(user_id, limit, page, filters)

    async def resolve_groups_for_user(self, user_id: str) -> set[str]:
        if not await self.users.user_exists(user_id):
            raise NotFoundError("user", [user_id])
        return await self.groups.resolve_groups_for_user(user_id)

    # --- Helpers ---

    async def _validate_members(
        self,
        member_user_ids: Sequence[str],
        member_group_ids: Sequence[str],
    ) -> list[Principal]:
        if not member_user_ids and not member_group_ids:
            raise InvalidInputError("A group needs at least one member", "members")
        await self._require_users(member_user_ids)
        await self._require_groups(member_group_ids)
        return _principals(member_user_ids, member_group_ids)

    async def _require_users(self, user_ids: Sequence[str]) -> None:
        missing = await self.db.find_missing("users", user_ids)
        if missing:
            raise NotFoundError("user", missing, "One or more users not found")

    async def _require_groups(self, group_ids: Sequence[str]) -> None:
        missing = await self.db.find_missing("groups", group_ids)
        if missing:
            raise NotFoundError("group", missing, "One or more groups not found")

    async def _invalidate(self, operation: str, eviction: Awaitable[int]) -> None:
        try:
            await eviction
        except InfrastructureError as e:
            logger.error(
                f"Cache invalidation failed after {operation}: {e}",
                extra={"operation": operation},
            )


def _principals(user_ids: Sequence[str], group_ids: Sequence[str]) -> list[Principal]:
    return [Principal.user(u) for u in user_ids] + [Principal.group(g) for g in group_ids]

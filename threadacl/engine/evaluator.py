"""
Permission evaluation for single content items.

Decides whether a user may view or edit one content item by combining:
- Inheritance: an item whose inherit flag is set defers to its parent, and
  an inheriting forest root defers to its author alone
- Explicit grants to the user on the first non-inheriting ancestor
- Grants to any group in the user's closure on that same ancestor

Invariants:
    - Ascent is an explicit loop over an id -> node arena, bounded by
      "no parent"; a revisited id means corrupt data and fails closed
    - A missing author reference is a DataIntegrityError, never an allow
    - Grant lookups are cached per (content, user, scope, type) under the
      content's permission prefix, so a grant update evicts them all
"""

from __future__ import annotations

import logging
from typing import NoReturn

from ..cache import Cache, cached_fetch
from ..cache.keys import EXPLICIT, GROUP, permission_key
from ..errors import AccessDeniedError, DataIntegrityError, NotFoundError
from ..models import Content, PermissionType
from ..store import ContentStore, PermissionStore, UserStore
from .groups import GroupClosureResolver

logger = logging.getLogger(__name__)


class PermissionEvaluator:
    """Per-item view/edit decisions.

    Example:
        >>> evaluator = PermissionEvaluator(users, contents, permissions, groups, cache)
        >>> await evaluator.can_edit("user-1", "content-9")
        True
    """

    def __init__(
        self,
        users: UserStore,
        contents: ContentStore,
        permissions: PermissionStore,
        groups: GroupClosureResolver,
        cache: Cache,
        ttl_seconds: int = 600,
    ) -> None:
        self.users = users
        self.contents = contents
        self.permissions = permissions
        self.groups = groups
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def can_edit(self, user_id: str, content_id: str) -> bool:
        return await self.check(user_id, content_id, PermissionType.EDIT)

    async def can_view(self, user_id: str, content_id: str) -> bool:
        return await self.check(user_id, content_id, PermissionType.VIEW)

    async def require(
        self,
        user_id: str,
        content_id: str,
        permission_type: PermissionType,
    ) -> None:
        """Raise AccessDeniedError unless the user holds the permission."""
        if not await self.check(user_id, content_id, permission_type):
            raise AccessDeniedError(user_id, content_id, permission_type.value)

    async def check(
        self,
        user_id: str,
        content_id: str,
        permission_type: PermissionType,
    ) -> bool:
        """Decide one permission for one user on one content item.

        Args:
            user_id: Requesting user
            content_id: Content item
            permission_type: VIEW or EDIT

        Returns:
            True if authorized

        Raises:
            NotFoundError: If the user or the content item does not exist
            DataIntegrityError: If an item on the chain is corrupt
        """
        if not await self.users.user_exists(user_id):
            raise NotFoundError("user", [user_id])

        content = await self.contents.get_content(content_id, with_tags=False)
        if content is None:
            raise NotFoundError("content", [content_id])

        arena: dict[str, Content] = {content.id: content}
        current = content

        while True:
            self._check_integrity(current)

            if not current.inherits(permission_type):
                break

            if current.parent_id is None:
                # Inheriting root: only its author holds the permission
                return current.author_id == user_id

            if current.parent_id in arena:
                self._fail(f"Parent cycle at content {current.parent_id}", current.parent_id)

            parent = await self.contents.get_content(current.parent_id, with_tags=False)
            if parent is None:
                self._fail(f"Content {current.id} references a missing parent", current.id)

            arena[parent.id] = parent
            current = parent

        return await self._has_grant(user_id, current.id, permission_type)

    async def _has_grant(
        self,
        user_id: str,
        content_id: str,
        permission_type: PermissionType,
    ) -> bool:
        async def explicit() -> bool:
            return await self.permissions.has_user_grant(content_id, permission_type, user_id)

        if await cached_fetch(
            self.cache,
            permission_key(content_id, user_id, EXPLICIT, permission_type),
            self.ttl_seconds,
            explicit,
        ):
            return True

        async def via_group() -> bool:
            group_ids = await self.groups.resolve_groups_for_user(user_id)
            return await self.permissions.has_group_grant(content_id, permission_type, group_ids)

        return await cached_fetch(
            self.cache,
            permission_key(content_id, user_id, GROUP, permission_type),
            self.ttl_seconds,
            via_group,
        )

    def _check_integrity(self, content: Content) -> None:
        if content.author_id is None:
            self._fail(f"Content {content.id} has no author reference", content.id)

    def _fail(self, message: str, content_id: str) -> NoReturn:
        logger.error(message, extra={"content_id": content_id})
        raise DataIntegrityError(message, content_id=content_id)

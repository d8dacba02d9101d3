"""
Visibility listing.

Lists the content a user may view, one page at a time, with a single
recursive SQL statement. This is the one place where view inheritance is
evaluated set-wise instead of node by node.

Query shape:
    inherited_visible   permission roots (inherit_view = 0) that grant view to
                        the user or one of the user's groups, plus inheriting
                        forest roots authored by the user; the recursive step
                        descends into children that inherit view
    directly_granted    items carrying a view grant for the user or a group
    visible             union of both

Invariants:
    - limit and page are positive integers, otherwise InvalidInputError
    - limit + 1 rows are fetched so has_next_page needs no COUNT query
    - Ordering is created_at DESC, newest insert first on ties
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import InvalidInputError, NotFoundError
from ..models import ContentFilters, ContentPage, PermissionType, normalize_tag
from ..store import ContentStore, Database, UserStore, content_from_row
from ..store.content_store import CONTENT_COLUMNS
from ..store.database import placeholders
from .groups import GroupClosureResolver

logger = logging.getLogger(__name__)


def _grant_predicate(alias: str, group_count: int) -> str:
    clause = f"({alias}.permitted_kind = 'user' AND {alias}.permitted_id = ?)"
    if group_count:
        clause += (
            f" OR ({alias}.permitted_kind = 'group'"
            f" AND {alias}.permitted_id IN ({placeholders(group_count)}))"
        )
    return f"({clause})"


def validate_pagination(limit: Any, page: Any) -> None:
    """Reject non-integer or non-positive pagination arguments."""
    for name, value in (("limit", limit), ("page", page)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidInputError(f"{name.capitalize()} must be greater than 0", name)


class VisibilityQueryBuilder:
    """Builds and runs the paginated visibility query.

    Example:
        >>> builder = VisibilityQueryBuilder(db, users, contents, groups)
        >>> page = await builder.list_visible("user-1", limit=10, page=1)
        >>> page.has_next_page
        False
    """

    def __init__(
        self,
        db: Database,
        users: UserStore,
        contents: ContentStore,
        groups: GroupClosureResolver,
    ) -> None:
        self.db = db
        self.users = users
        self.contents = contents
        self.groups = groups

    def build(
        self,
        user_id: str,
        group_ids: set[str] | list[str],
        limit: int,
        page: int,
        filters: ContentFilters | None = None,
    ) -> tuple[str, list[Any]]:
        """Build the SQL text and parameters for one page.

        Args:
            user_id: Requesting user
            group_ids: The user's group closure
            limit: Page size
            page: 1-based page number
            filters: Optional conjunctive filters

        Returns:
            (sql, params) ready for Database.fetch_all
        """
        validate_pagination(limit, page)
        filters = filters or ContentFilters()
        groups = sorted(set(group_ids))
        view = PermissionType.VIEW.value

        sql = f"""
            WITH RECURSIVE inherited_visible(id) AS (
                SELECT c.id FROM contents c
                WHERE (
                    c.inherit_view = 0
                    AND EXISTS (
                        SELECT 1 FROM permissions p
                        WHERE p.content_id = c.id
                          AND p.permission_type = ?
                          AND {_grant_predicate("p", len(groups))}
                    )
                )
                OR (c.inherit_view = 1 AND c.parent_id IS NULL AND c.author_id = ?)

                UNION

                SELECT child.id FROM contents child
                JOIN inherited_visible iv ON child.parent_id = iv.id
                WHERE child.inherit_view = 1
            ),
            directly_granted(id) AS (
                SELECT g.content_id FROM permissions g
                WHERE g.permission_type = ?
                  AND {_grant_predicate("g", len(groups))}
            ),
            visible(id) AS (
                SELECT id FROM inherited_visible
                UNION
                SELECT id FROM directly_granted
            )
            SELECT {CONTENT_COLUMNS}, c.author_id AS author_id
            FROM contents c
            JOIN visible v ON v.id = c.id
        """
        params: list[Any] = [view, user_id, *groups, user_id, view, user_id, *groups]

        conditions: list[str] = []
        if filters.author_id is not None:
            conditions.append("c.author_id = ?")
            params.append(filters.author_id)
        if filters.tag is not None:
            conditions.append(
                "EXISTS (SELECT 1 FROM content_tags ct WHERE ct.content_id = c.id AND ct.tag = ?)"
            )
            params.append(normalize_tag(filters.tag))
        if filters.parent_id is not None:
            conditions.append("c.parent_id = ?")
            params.append(filters.parent_id)
        if filters.category is not None:
            conditions.append("c.category = ?")
            params.append(filters.category.value)
        if filters.location is not None:
            conditions.append("c.location = ?")
            params.append(filters.location)

        if conditions:
            sql += " WHERE " + " AND ".join(conditions)

        sql += " ORDER BY c.created_at DESC, c.rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit + 1, (page - 1) * limit])

        return sql, params

    async def list_visible(
        self,
        user_id: str,
        limit: int,
        page: int,
        filters: ContentFilters | None = None,
    ) -> ContentPage:
        """Return one page of content visible to ``user_id``.

        Raises:
            InvalidInputError: If limit or page is not a positive integer
            NotFoundError: If the user does not exist
        """
        validate_pagination(limit, page)
        if not await self.users.user_exists(user_id):
            raise NotFoundError("user", [user_id])

        group_ids = await self.groups.resolve_groups_for_user(user_id)
        sql, params = self.build(user_id, group_ids, limit, page, filters)
        rows = await self.db.fetch_all(sql, params)

        has_next_page = len(rows) > limit
        rows = rows[:limit]
        tags = await self.contents.get_tags([row["id"] for row in rows])
        items = [content_from_row(row, tags.get(row["id"], ())) for row in rows]

        logger.debug(
            "Listed visible content",
            extra={
                "user_id": user_id,
                "page": page,
                "limit": limit,
                "returned": len(items),
                "has_next_page": has_next_page,
            },
        )
        return ContentPage(items=items, has_next_page=has_next_page)

"""
Content records (posts).

Content items form a forest through an immutable parent_id. The store
hydrates the author reference with a LEFT JOIN so a dangling author shows
up as ``author_id=None`` instead of silently passing through.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence

from ..models import Content, ContentCategory, normalize_tag
from .database import Database, Transaction

logger = logging.getLogger(__name__)

CONTENT_COLUMNS = (
    "c.id, c.created_at, c.body, c.parent_id, c.category, c.location, "
    "c.inherit_view, c.inherit_edit"
)


def content_from_row(row: sqlite3.Row, tags: Sequence[str] = ()) -> Content:
    """Build a Content from a row selected with CONTENT_COLUMNS + author_id."""
    return Content(
        id=row["id"],
        created_at=row["created_at"],
        author_id=row["author_id"],
        body=row["body"],
        tags=list(tags),
        parent_id=row["parent_id"],
        category=ContentCategory(row["category"]) if row["category"] else None,
        location=row["location"],
        inherit_view=bool(row["inherit_view"]),
        inherit_edit=bool(row["inherit_edit"]),
    )


class ContentStore:
    """Read/write access to contents and their tags."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def insert_content(self, tx: Transaction, content: Content) -> None:
        """Insert a content row and its tags inside an open transaction."""
        await tx.execute(
            """
            INSERT INTO contents (id, created_at, author_id, body, parent_id,
                                  category, location, inherit_view, inherit_edit)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                content.id,
                content.created_at,
                content.author_id,
                content.body,
                content.parent_id,
                content.category.value if content.category else None,
                content.location,
                int(content.inherit_view),
                int(content.inherit_edit),
            ),
        )
        await tx.execute_many(
            "INSERT OR IGNORE INTO content_tags (content_id, tag) VALUES (?, ?)",
            [(content.id, tag) for tag in content.tags],
        )

    async def get_content(self, content_id: str, with_tags: bool = True) -> Content | None:
        """Fetch one item with its author reference hydrated.

        Args:
            content_id: Content identifier
            with_tags: Also load the tag list

        Returns:
            Content, or None if no such item exists
        """
        row = await self.db.fetch_one(
            f"""
            SELECT {CONTENT_COLUMNS}, u.id AS author_id
            FROM contents c
            LEFT JOIN users u ON u.id = c.author_id
            WHERE c.id = ?
            """,
            (content_id,),
        )
        if not row:
            return None
        tags = await self.get_tags([content_id]) if with_tags else {}
        return content_from_row(row, tags.get(content_id, ()))

    async def content_exists(self, content_id: str) -> bool:
        return await self.db.count_existing("contents", [content_id]) == 1

    async def get_tags(self, content_ids: Sequence[str]) -> dict[str, list[str]]:
        """Tag lists keyed by content id."""
        ids = list(dict.fromkeys(content_ids))
        if not ids:
            return {}
        rows = await self.db.fetch_all(
            f"""
            SELECT content_id, tag FROM content_tags
            WHERE content_id IN ({", ".join("?" for _ in ids)})
            ORDER BY tag
            """,
            ids,
        )
        tags: dict[str, list[str]] = {}
        for row in rows:
            tags.setdefault(row["content_id"], []).append(row["tag"])
        return tags

    async def update_inheritance(
        self,
        tx: Transaction,
        content_id: str,
        inherit_view: bool,
        inherit_edit: bool,
    ) -> bool:
        """Set both inheritance flags. Returns False if the item is gone."""
        updated = await tx.execute(
            "UPDATE contents SET inherit_view = ?, inherit_edit = ? WHERE id = ?",
            (int(inherit_view), int(inherit_edit), content_id),
        )
        return updated > 0


def clean_tags(tags: Sequence[str] | None) -> list[str]:
    """Normalize and deduplicate a tag list, dropping empty tags."""
    if not tags:
        return []
    return list(dict.fromkeys(t for t in (normalize_tag(tag) for tag in tags) if t))

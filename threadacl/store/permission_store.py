"""
Permission store adapter.

Read/write access to explicit permission grants on content items.

Invariants:
    - Any matching grant authorizes; duplicates are harmless
    - Replacing grants for (content_id, permission_type) is delete-then-insert
      inside the caller's transaction, so partial sets are never visible
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence

from ..models import PermissionGrant, PermissionType, Principal, PrincipalKind
from .database import Database, Transaction, now_ms, placeholders

logger = logging.getLogger(__name__)


class PermissionStore:
    """Grant lookups and grant replacement."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def insert_grants(
        self,
        tx: Transaction,
        content_id: str,
        permission_type: PermissionType,
        principals: Sequence[Principal],
    ) -> list[PermissionGrant]:
        """Bulk insert one grant per principal."""
        now = now_ms()
        grants = [
            PermissionGrant(
                id=str(uuid.uuid4()),
                permitted=principal,
                content_id=content_id,
                permission_type=permission_type,
                created_at=now,
            )
            for principal in dict.fromkeys(principals)
        ]
        await tx.execute_many(
            """
            INSERT INTO permissions
                (id, permitted_id, permitted_kind, content_id, permission_type, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    g.id,
                    g.permitted.id,
                    g.permitted.kind.value,
                    g.content_id,
                    g.permission_type.value,
                    g.created_at,
                )
                for g in grants
            ],
        )
        return grants

    async def delete_grants(
        self,
        tx: Transaction,
        content_id: str,
        permission_type: PermissionType,
    ) -> int:
        """Delete every grant of one type on one content item."""
        return await tx.execute(
            "DELETE FROM permissions WHERE content_id = ? AND permission_type = ?",
            (content_id, permission_type.value),
        )

    async def replace_grants(
        self,
        tx: Transaction,
        content_id: str,
        permission_type: PermissionType,
        principals: Sequence[Principal],
    ) -> list[PermissionGrant]:
        """Atomically swap the full grant set of one type on one item."""
        removed = await self.delete_grants(tx, content_id, permission_type)
        grants = await self.insert_grants(tx, content_id, permission_type, principals)
        logger.debug(
            "Replaced grants",
            extra={
                "content_id": content_id,
                "permission_type": permission_type.value,
                "removed": removed,
                "inserted": len(grants),
            },
        )
        return grants

    async def has_user_grant(
        self,
        content_id: str,
        permission_type: PermissionType,
        user_id: str,
    ) -> bool:
        row = await self.db.fetch_one(
            """
            SELECT 1 FROM permissions
            WHERE content_id = ? AND permission_type = ?
              AND permitted_kind = 'user' AND permitted_id = ?
            LIMIT 1
            """,
            (content_id, permission_type.value, user_id),
        )
        return row is not None

    async def has_group_grant(
        self,
        content_id: str,
        permission_type: PermissionType,
        group_ids: Iterable[str],
    ) -> bool:
        """True if any of ``group_ids`` holds a grant of this type on the item."""
        ids = sorted(set(group_ids))
        if not ids:
            return False
        row = await self.db.fetch_one(
            f"""
            SELECT 1 FROM permissions
            WHERE content_id = ? AND permission_type = ?
              AND permitted_kind = 'group' AND permitted_id IN ({placeholders(len(ids))})
            LIMIT 1
            """,
            (content_id, permission_type.value, *ids),
        )
        return row is not None

    async def content_ids_granted_to(self, principal: Principal) -> list[str]:
        """Content items on which ``principal`` holds any grant."""
        rows = await self.db.fetch_all(
            """
            SELECT DISTINCT content_id FROM permissions
            WHERE permitted_id = ? AND permitted_kind = ?
            ORDER BY content_id
            """,
            (principal.id, principal.kind.value),
        )
        return [row["content_id"] for row in rows]

    async def list_grants(
        self,
        content_id: str,
        permission_type: PermissionType | None = None,
    ) -> list[PermissionGrant]:
        """All grants on an item, optionally of one type."""
        query = "SELECT * FROM permissions WHERE content_id = ?"
        params: list[str] = [content_id]
        if permission_type is not None:
            query += " AND permission_type = ?"
            params.append(permission_type.value)
        query += " ORDER BY created_at, id"

        rows = await self.db.fetch_all(query, params)
        return [
            PermissionGrant(
                id=row["id"],
                permitted=Principal(PrincipalKind(row["permitted_kind"]), row["permitted_id"]),
                content_id=row["content_id"],
                permission_type=PermissionType(row["permission_type"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

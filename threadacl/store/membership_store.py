"""
Membership store adapter.

Read/write access to groups and to membership edges (member -> group),
where the member is a tagged Principal (user or group).

Invariants:
    - group_id always references an existing group
    - Group -> group edges may form cycles; this adapter never traverses,
      it only answers one-hop questions
    - Deleting a group removes the memberships it owns (cascade), the
      memberships where it is the member, and grants held by it
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from collections.abc import Iterable, Sequence

from ..errors import InvalidInputError
from ..models import Group, Membership, Principal, PrincipalKind
from .database import Database, Transaction, now_ms

logger = logging.getLogger(__name__)


class MembershipStore:
    """One-hop queries and batch writes over groups and memberships."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def groups_exist(self, group_ids: Iterable[str]) -> bool:
        """True iff every id in ``group_ids`` references an existing group."""
        unique_ids = set(group_ids)
        if not unique_ids:
            return True
        return await self.db.count_existing("groups", unique_ids) == len(unique_ids)

    async def get_group(self, group_id: str) -> Group | None:
        row = await self.db.fetch_one("SELECT * FROM groups WHERE id = ?", (group_id,))
        if not row:
            return None
        return Group(id=row["id"], name=row["name"], created_at=row["created_at"])

    async def insert_group(self, tx: Transaction, name: str | None = None) -> Group:
        """Insert a group row inside an open transaction."""
        now = now_ms()
        group = Group(
            id=str(uuid.uuid4()),
            name=name or f"group-{now}-{uuid.uuid4().hex[:8]}",
            created_at=now,
        )
        try:
            await tx.execute(
                "INSERT INTO groups (id, name, created_at) VALUES (?, ?, ?)",
                (group.id, group.name, group.created_at),
            )
        except sqlite3.IntegrityError:
            raise InvalidInputError(f"Group name already taken: {group.name}", "name") from None
        return group

    async def insert_memberships(
        self,
        tx: Transaction,
        group_id: str,
        members: Sequence[Principal],
    ) -> list[Membership]:
        """Insert one membership per member inside an open transaction.

        Edges that already exist are left untouched and are not returned.

        Returns:
            The memberships actually inserted
        """
        now = now_ms()
        inserted: list[Membership] = []
        for member in dict.fromkeys(members):
            membership = Membership(
                id=str(uuid.uuid4()), member=member, group_id=group_id, created_at=now
            )
            count = await tx.execute(
                """
                INSERT OR IGNORE INTO group_memberships
                    (id, member_id, member_kind, group_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (membership.id, member.id, member.kind.value, group_id, now),
            )
            if count:
                inserted.append(membership)
        return inserted

    async def get_parent_group_ids(self, member: Principal) -> list[str]:
        """Groups that directly contain ``member``."""
        rows = await self.db.fetch_all(
            """
            SELECT group_id FROM group_memberships
            WHERE member_id = ? AND member_kind = ?
            """,
            (member.id, member.kind.value),
        )
        return [row["group_id"] for row in rows]

    async def get_direct_members(self, group_id: str) -> list[Principal]:
        """Users and groups directly contained in ``group_id``."""
        rows = await self.db.fetch_all(
            "SELECT member_id, member_kind FROM group_memberships WHERE group_id = ?",
            (group_id,),
        )
        return [Principal(PrincipalKind(row["member_kind"]), row["member_id"]) for row in rows]

    async def delete_group(self, tx: Transaction, group_id: str) -> bool:
        """Delete a group and every edge or grant that references it.

        Returns:
            True if the group existed
        """
        await tx.execute(
            "DELETE FROM group_memberships WHERE member_id = ? AND member_kind = 'group'",
            (group_id,),
        )
        await tx.execute(
            "DELETE FROM permissions WHERE permitted_id = ? AND permitted_kind = 'group'",
            (group_id,),
        )
        # Owned memberships go through ON DELETE CASCADE
        deleted = await tx.execute("DELETE FROM groups WHERE id = ?", (group_id,))
        return deleted > 0

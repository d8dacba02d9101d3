"""
Unit tests for per-item permission evaluation.

Tests cover:
- Author-only rule at inheriting roots
- Inheritance along parent chains
- Explicit user grants and group grants
- Not-found and data-integrity failures
- Grant lookup caching
"""

import sqlite3

import pytest

from threadacl.cache.keys import EXPLICIT, GROUP, permission_key
from threadacl.errors import AccessDeniedError, DataIntegrityError, NotFoundError
from threadacl.models import PermissionType


def insert_raw_content(db_path, content_id, author_id, parent_id=None, inherit=True):
    """Insert a content row bypassing foreign keys (simulates corrupt data)."""
    conn = sqlite3.connect(db_path)
    try:
        conn.execute(
            """
            INSERT INTO contents (id, created_at, author_id, body, parent_id,
                                  inherit_view, inherit_edit)
            VALUES (?, 1, ?, 'corrupt', ?, ?, ?)
            """,
            (content_id, author_id, parent_id, int(inherit), int(inherit)),
        )
        conn.commit()
    finally:
        conn.close()


class TestInheritingRoot:
    """An inheriting forest root answers for its author only."""

    @pytest.mark.asyncio
    async def test_author_can_edit_and_view(self, service):
        alice = await service.create_user("alice")
        root = await service.create_content(alice.id, "root")

        assert await service.can_edit(alice.id, root.id)
        assert await service.can_view(alice.id, root.id)

    @pytest.mark.asyncio
    async def test_other_user_denied(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root")

        assert not await service.can_edit(bob.id, root.id)
        assert not await service.can_view(bob.id, root.id)

    @pytest.mark.asyncio
    async def test_grants_ignored_while_inheriting(self, service):
        """Grants on an inheriting root do not extend access beyond the author."""
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root", inherit_edit=False)
        await service.update_content_permissions(
            root.id, inherit_view=True, inherit_edit=False, user_edit_ids=[bob.id]
        )
        assert await service.can_edit(bob.id, root.id)

        await service.update_content_permissions(root.id, inherit_view=True, inherit_edit=True)

        assert not await service.can_edit(bob.id, root.id)
        assert await service.can_edit(alice.id, root.id)

    @pytest.mark.asyncio
    async def test_reply_author_defers_to_root_author(self, service):
        """An inheriting reply is governed by its ancestors, not its own author."""
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root")
        reply = await service.create_content(bob.id, "reply", parent_id=root.id)

        assert await service.can_edit(alice.id, reply.id)
        assert not await service.can_edit(bob.id, reply.id)


class TestChains:
    """Inheritance along root -> A -> B -> C."""

    async def build_chain(self, service, author_id):
        root = await service.create_content(author_id, "root", inherit_edit=False)
        a = await service.create_content(author_id, "a", parent_id=root.id)
        b = await service.create_content(author_id, "b", parent_id=a.id)
        c = await service.create_content(author_id, "c", parent_id=b.id)
        return root, a, b, c

    @pytest.mark.asyncio
    async def test_edit_is_monotonic_down_the_chain(self, service):
        """A user who can edit the root can edit every inheriting descendant."""
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        carol = await service.create_user("carol")
        editors = await service.create_group([bob.id], [])
        chain = await self.build_chain(service, alice.id)
        await service.update_content_permissions(
            chain[0].id, inherit_view=True, inherit_edit=False, group_edit_ids=[editors.id]
        )

        for item in chain:
            assert await service.can_edit(bob.id, item.id)
            assert not await service.can_edit(carol.id, item.id)

    @pytest.mark.asyncio
    async def test_non_inheriting_node_cuts_the_chain(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root, a, b, c = await self.build_chain(service, alice.id)
        await service.update_content_permissions(
            root.id, inherit_view=True, inherit_edit=False, user_edit_ids=[bob.id]
        )
        await service.update_content_permissions(
            b.id, inherit_view=True, inherit_edit=False, user_edit_ids=[]
        )

        assert await service.can_edit(bob.id, a.id)
        assert not await service.can_edit(bob.id, b.id)
        assert not await service.can_edit(bob.id, c.id)

    @pytest.mark.asyncio
    async def test_view_and_edit_are_independent(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(
            alice.id, "root", inherit_view=False, inherit_edit=False
        )
        await service.update_content_permissions(
            root.id,
            inherit_view=False,
            inherit_edit=False,
            user_view_ids=[alice.id, bob.id],
            user_edit_ids=[alice.id],
        )
        reply = await service.create_content(alice.id, "reply", parent_id=root.id)

        assert await service.can_view(bob.id, reply.id)
        assert not await service.can_edit(bob.id, reply.id)

    @pytest.mark.asyncio
    async def test_nested_group_grant(self, service):
        """A grant to an outer group reaches members of inner groups."""
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        inner = await service.create_group([bob.id], [])
        outer = await service.create_group([], [inner.id])
        root = await service.create_content(alice.id, "root", inherit_view=False)
        await service.update_content_permissions(
            root.id, inherit_view=False, inherit_edit=True, group_view_ids=[outer.id]
        )

        assert await service.can_view(bob.id, root.id)


class TestFailures:
    """Missing and corrupt references."""

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        alice = await service.create_user("alice")
        root = await service.create_content(alice.id, "root")

        with pytest.raises(NotFoundError) as exc_info:
            await service.can_edit("ghost", root.id)
        assert exc_info.value.entity == "user"

    @pytest.mark.asyncio
    async def test_unknown_content(self, service):
        alice = await service.create_user("alice")

        with pytest.raises(NotFoundError) as exc_info:
            await service.can_view(alice.id, "missing")
        assert exc_info.value.entity == "content"

    @pytest.mark.asyncio
    async def test_dangling_author_fails_closed(self, service, db_path):
        alice = await service.create_user("alice")
        insert_raw_content(db_path, "orphan", "ghost")

        with pytest.raises(DataIntegrityError) as exc_info:
            await service.can_edit(alice.id, "orphan")
        assert exc_info.value.content_id == "orphan"

    @pytest.mark.asyncio
    async def test_dangling_author_on_ancestor(self, service, db_path):
        """Corruption anywhere on the ascent is reported."""
        alice = await service.create_user("alice")
        insert_raw_content(db_path, "orphan", "ghost")
        reply = await service.create_content(alice.id, "reply", parent_id="orphan")

        with pytest.raises(DataIntegrityError):
            await service.can_edit(alice.id, reply.id)

    @pytest.mark.asyncio
    async def test_missing_parent(self, service, db_path):
        alice = await service.create_user("alice")
        insert_raw_content(db_path, "stray", alice.id, parent_id="nowhere")

        with pytest.raises(DataIntegrityError):
            await service.can_view(alice.id, "stray")

    @pytest.mark.asyncio
    async def test_parent_cycle(self, service, db_path):
        alice = await service.create_user("alice")
        insert_raw_content(db_path, "x", alice.id, parent_id="y")
        insert_raw_content(db_path, "y", alice.id, parent_id="x")

        with pytest.raises(DataIntegrityError):
            await service.can_edit(alice.id, "x")

    @pytest.mark.asyncio
    async def test_require_raises_access_denied(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root")

        await service.require_edit(alice.id, root.id)
        with pytest.raises(AccessDeniedError) as exc_info:
            await service.require_view(bob.id, root.id)
        assert exc_info.value.permission == "view"


class TestGrantCaching:
    """Grant lookups go through the cache."""

    @pytest.mark.asyncio
    async def test_lookups_cached_on_permission_root(self, service, cache):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root", inherit_edit=False)
        reply = await service.create_content(alice.id, "reply", parent_id=root.id)

        assert not await service.can_edit(bob.id, reply.id)

        explicit_key = permission_key(root.id, bob.id, EXPLICIT, PermissionType.EDIT)
        group_key = permission_key(root.id, bob.id, GROUP, PermissionType.EDIT)
        assert await cache.get(explicit_key) is False
        assert await cache.get(group_key) is False
        assert cache.keys() == sorted([explicit_key, group_key, f"user:{bob.id}:groups"])

    @pytest.mark.asyncio
    async def test_explicit_hit_skips_group_lookup(self, service, cache):
        alice = await service.create_user("alice")
        root = await service.create_content(alice.id, "root", inherit_edit=False)

        assert await service.can_edit(alice.id, root.id)

        explicit_key = permission_key(root.id, alice.id, EXPLICIT, PermissionType.EDIT)
        group_key = permission_key(root.id, alice.id, GROUP, PermissionType.EDIT)
        assert await cache.get(explicit_key) is True
        assert await cache.get(group_key) is None

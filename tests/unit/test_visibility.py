"""
Unit tests for the visibility listing.

Tests cover:
- Query construction (parameters, filters, pagination)
- Pagination with has_next_page
- Inherited visibility from permission roots
- Filters
- Agreement with per-item view checks
"""

import pytest

from threadacl.engine import VisibilityQueryBuilder, validate_pagination
from threadacl.errors import InvalidInputError, NotFoundError
from threadacl.models import ContentCategory, ContentFilters


def ids_of(page):
    return [c.id for c in page.items]


class TestBuild:
    """Tests for VisibilityQueryBuilder.build()."""

    @pytest.fixture
    def builder(self):
        """Query building never touches the stores."""
        return VisibilityQueryBuilder(None, None, None, None)

    def test_base_parameters(self, builder):
        sql, params = builder.build("u1", {"g2", "g1"}, limit=10, page=1)

        assert "WITH RECURSIVE" in sql
        assert sql.count("permitted_id IN (?, ?)") == 2
        assert params == ["view", "u1", "g1", "g2", "u1", "view", "u1", "g1", "g2", 11, 0]

    def test_without_groups(self, builder):
        sql, params = builder.build("u1", set(), limit=5, page=3)

        assert "permitted_id IN" not in sql
        assert params == ["view", "u1", "u1", "view", "u1", 6, 10]

    def test_filters_append_conditions(self, builder):
        filters = ContentFilters(
            author_id="u2",
            tag="#news",
            parent_id="c1",
            category=ContentCategory.TECH,
            location="Berlin",
        )

        sql, params = builder.build("u1", set(), limit=10, page=2, filters=filters)

        assert "c.author_id = ?" in sql
        assert "ct.tag = ?" in sql
        assert "c.parent_id = ?" in sql
        assert "c.category = ?" in sql
        assert "c.location = ?" in sql
        assert params[-7:] == ["u2", "news", "c1", "Tech", "Berlin", 11, 10]

    def test_orders_newest_first(self, builder):
        sql, _ = builder.build("u1", set(), limit=10, page=1)
        assert "ORDER BY c.created_at DESC, c.rowid DESC" in sql

    @pytest.mark.parametrize(
        "limit,page",
        [(0, 1), (-1, 1), (10, 0), (True, 1), (1.5, 1), ("10", 1)],
    )
    def test_invalid_pagination(self, limit, page):
        with pytest.raises(InvalidInputError):
            validate_pagination(limit, page)


class TestListVisible:
    """Tests for VisibilityQueryBuilder.list_visible()."""

    @pytest.mark.asyncio
    async def test_pagination(self, service):
        """15 visible items at limit 10 split into 10 + 5."""
        alice = await service.create_user("alice")
        created = [await service.create_content(alice.id, f"post {i}") for i in range(15)]

        first = await service.list_visible(alice.id, limit=10, page=1)
        second = await service.list_visible(alice.id, limit=10, page=2)

        assert len(first.items) == 10
        assert first.has_next_page is True
        assert len(second.items) == 5
        assert second.has_next_page is False

        newest_first = [c.id for c in reversed(created)]
        assert [c.id for c in first.items + second.items] == newest_first

    @pytest.mark.asyncio
    async def test_exact_page_has_no_next(self, service):
        alice = await service.create_user("alice")
        for i in range(10):
            await service.create_content(alice.id, f"post {i}")

        page = await service.list_visible(alice.id, limit=10, page=1)

        assert len(page.items) == 10
        assert page.has_next_page is False

    @pytest.mark.asyncio
    async def test_empty_page_past_the_end(self, service):
        alice = await service.create_user("alice")
        await service.create_content(alice.id, "only")

        page = await service.list_visible(alice.id, limit=10, page=5)

        assert page.items == []
        assert page.has_next_page is False

    @pytest.mark.asyncio
    async def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            await service.list_visible("ghost", limit=10, page=1)

    @pytest.mark.asyncio
    async def test_invalid_limit(self, service):
        alice = await service.create_user("alice")
        with pytest.raises(InvalidInputError):
            await service.list_visible(alice.id, limit=0, page=1)

    @pytest.mark.asyncio
    async def test_other_users_roots_hidden(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        await service.create_content(alice.id, "private root")

        page = await service.list_visible(bob.id, limit=10, page=1)

        assert page.items == []

    @pytest.mark.asyncio
    async def test_group_grant_on_root_reaches_descendants(self, service):
        """Inheriting replies under a shared root are listed for group members."""
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        carol = await service.create_user("carol")
        readers = await service.create_group([bob.id], [])
        root = await service.create_content(alice.id, "root", inherit_view=False)
        await service.update_content_permissions(
            root.id,
            inherit_view=False,
            inherit_edit=True,
            user_view_ids=[alice.id],
            group_view_ids=[readers.id],
        )
        reply = await service.create_content(alice.id, "reply", parent_id=root.id)
        nested = await service.create_content(alice.id, "nested", parent_id=reply.id)

        page = await service.list_visible(bob.id, limit=10, page=1)

        assert {c.id for c in page.items} == {root.id, reply.id, nested.id}
        assert (await service.list_visible(carol.id, limit=10, page=1)).items == []

    @pytest.mark.asyncio
    async def test_non_inheriting_child_hides_its_subtree(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root", inherit_view=False)
        await service.update_content_permissions(
            root.id, inherit_view=False, inherit_edit=True, user_view_ids=[bob.id]
        )
        hidden = await service.create_content(
            alice.id, "hidden", parent_id=root.id, inherit_view=False
        )
        below = await service.create_content(alice.id, "below", parent_id=hidden.id)

        page = await service.list_visible(bob.id, limit=10, page=1)
        ids = {c.id for c in page.items}

        assert root.id in ids
        assert hidden.id not in ids
        assert below.id not in ids

    @pytest.mark.asyncio
    async def test_author_sees_own_inheriting_thread(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        root = await service.create_content(alice.id, "root")
        reply = await service.create_content(bob.id, "reply", parent_id=root.id)

        alice_ids = {c.id for c in (await service.list_visible(alice.id, 10, 1)).items}
        bob_ids = {c.id for c in (await service.list_visible(bob.id, 10, 1)).items}

        assert alice_ids == {root.id, reply.id}
        # the reply author keeps the explicit view grant received at creation
        assert bob_ids == {reply.id}

    @pytest.mark.asyncio
    async def test_listed_inherited_items_pass_can_view(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        team = await service.create_group([bob.id], [])
        root = await service.create_content(alice.id, "root", inherit_view=False)
        await service.update_content_permissions(
            root.id, inherit_view=False, inherit_edit=True, group_view_ids=[team.id]
        )
        child = await service.create_content(alice.id, "child", parent_id=root.id)
        await service.create_content(alice.id, "grandchild", parent_id=child.id)

        page = await service.list_visible(bob.id, limit=10, page=1)

        assert len(page.items) == 3
        for item in page.items:
            assert await service.can_view(bob.id, item.id)


class TestFilters:
    """Filters narrow the visible set conjunctively."""

    @pytest.mark.asyncio
    async def test_filters(self, service):
        alice = await service.create_user("alice")
        bob = await service.create_user("bob")
        news = await service.create_content(
            alice.id, "news", tags=["#news", "local"], category=ContentCategory.NEWS,
            location="Berlin",
        )
        tech = await service.create_content(
            alice.id, "tech", tags=["tech"], category=ContentCategory.TECH, location="Paris"
        )
        reply = await service.create_content(alice.id, "reply", parent_id=news.id, tags=["news"])
        await service.create_content(bob.id, "bob's", tags=["news"])

        async def listing(**kwargs):
            return ids_of(await service.list_visible(alice.id, 10, 1, ContentFilters(**kwargs)))

        assert await listing(tag="news") == [reply.id, news.id]
        assert await listing(tag="#news") == [reply.id, news.id]
        assert await listing(category=ContentCategory.TECH) == [tech.id]
        assert await listing(location="Berlin") == [news.id]
        assert await listing(parent_id=news.id) == [reply.id]
        assert await listing(author_id=alice.id, tag="local") == [news.id]
        assert await listing(author_id=bob.id) == []

    @pytest.mark.asyncio
    async def test_items_carry_tags(self, service):
        alice = await service.create_user("alice")
        await service.create_content(alice.id, "tagged", tags=["#b", "a", "b"])

        page = await service.list_visible(alice.id, 10, 1)

        assert page.items[0].tags == ["a", "b"]

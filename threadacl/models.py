"""
Domain types for ThreadACL.

Entities mirror the rows of the relational store; the store owns them and
the cache only ever holds derived values (id lists, booleans).

Invariants:
    - A Principal is a tagged variant: kind decides which table id refers to
    - Content parent links form a forest and never change after creation
    - Timestamps are Unix milliseconds
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PrincipalKind(Enum):
    """Kinds of principals that can hold memberships and grants."""

    USER = "user"
    GROUP = "group"


class PermissionType(Enum):
    """Permission types a grant can carry."""

    VIEW = "view"
    EDIT = "edit"


class ContentCategory(Enum):
    """Categories a content item can be filed under."""

    NEWS = "News"
    TECH = "Tech"
    SPORT = "Sport"
    FINANCE = "Finance"
    ENTERTAINMENT = "Entertainment"


@dataclass(frozen=True)
class Principal:
    """A user or a group, addressed as ``kind:id``.

    Attributes:
        kind: Principal kind
        id: Identifier of the user or group row
    """

    kind: PrincipalKind
    id: str

    @classmethod
    def user(cls, user_id: str) -> Principal:
        return cls(PrincipalKind.USER, user_id)

    @classmethod
    def group(cls, group_id: str) -> Principal:
        return cls(PrincipalKind.GROUP, group_id)

    @classmethod
    def parse(cls, principal_str: str) -> Principal:
        """Parse a principal string such as ``user:42`` or ``group:7``.

        Raises:
            ValueError: If the format or kind is invalid
        """
        kind_str, sep, id_str = principal_str.partition(":")
        if not sep or not id_str:
            raise ValueError(f"Invalid principal format: {principal_str}")
        try:
            kind = PrincipalKind(kind_str)
        except ValueError:
            raise ValueError(f"Invalid principal kind: {kind_str}") from None
        return cls(kind, id_str)

    @property
    def is_group(self) -> bool:
        return self.kind is PrincipalKind.GROUP

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


@dataclass(frozen=True)
class User:
    """A user principal. Immutable once created."""

    id: str
    name: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at}


@dataclass(frozen=True)
class Group:
    """A group principal. Groups can be members of other groups."""

    id: str
    name: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "created_at": self.created_at}


@dataclass(frozen=True)
class Membership:
    """Edge from a member principal to the group that contains it.

    Attributes:
        id: Membership row id
        member: The contained user or group
        group_id: The containing group
        created_at: Creation timestamp (Unix ms)
    """

    id: str
    member: Principal
    group_id: str
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "member_id": self.member.id,
            "member_kind": self.member.kind.value,
            "group_id": self.group_id,
            "created_at": self.created_at,
        }


@dataclass
class Content:
    """A content item (post), optionally nested under a parent item.

    Attributes:
        id: Content id
        created_at: Creation timestamp (Unix ms)
        author_id: Author user id; None only in corrupt data
        body: Text body
        tags: Tag list without leading '#'
        parent_id: Parent content id, None for forest roots
        category: Optional category
        location: Optional free-text location
        inherit_view: Defer view decisions to the parent (or author at a root)
        inherit_edit: Defer edit decisions to the parent (or author at a root)
    """

    id: str
    created_at: int
    author_id: str | None
    body: str
    tags: list[str] = field(default_factory=list)
    parent_id: str | None = None
    category: ContentCategory | None = None
    location: str | None = None
    inherit_view: bool = True
    inherit_edit: bool = True

    def inherits(self, permission_type: PermissionType) -> bool:
        """Whether this item defers the given permission type upward."""
        if permission_type is PermissionType.VIEW:
            return self.inherit_view
        return self.inherit_edit

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "author_id": self.author_id,
            "body": self.body,
            "tags": list(self.tags),
            "parent_id": self.parent_id,
            "category": self.category.value if self.category else None,
            "location": self.location,
            "inherit_view": self.inherit_view,
            "inherit_edit": self.inherit_edit,
        }


@dataclass(frozen=True)
class PermissionGrant:
    """Explicit permission tying a principal to a content item."""

    id: str
    permitted: Principal
    content_id: str
    permission_type: PermissionType
    created_at: int


@dataclass(frozen=True)
class ContentFilters:
    """Optional conjunctive filters for visibility listings."""

    author_id: str | None = None
    tag: str | None = None
    parent_id: str | None = None
    category: ContentCategory | None = None
    location: str | None = None


@dataclass
class ContentPage:
    """One page of a visibility listing."""

    items: list[Content]
    has_next_page: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "has_next_page": self.has_next_page,
        }


def normalize_tag(tag: str) -> str:
    """Strip surrounding whitespace and a leading '#' from a tag."""
    return tag.strip().lstrip("#")

"""
Request and response models for the ThreadACL HTTP API.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from ..models import Content, ContentCategory, ContentPage, Group, Membership, User

# --- Requests ---


class UserCreateRequest(BaseModel):
    """Request to create a user."""

    name: str = Field(..., min_length=1, description="Display name")
    id: str | None = Field(None, description="Explicit user ID (generated if omitted)")


class GroupCreateRequest(BaseModel):
    """Request to create a group. At least one member is required."""

    member_user_ids: list[str] = Field(default_factory=list, description="User members")
    member_group_ids: list[str] = Field(default_factory=list, description="Nested groups")
    name: str | None = Field(None, description="Unique group name")


class GroupMembersRequest(BaseModel):
    """Request to add members to a group."""

    member_user_ids: list[str] = Field(default_factory=list, description="User members")
    member_group_ids: list[str] = Field(default_factory=list, description="Nested groups")


class ContentCreateRequest(BaseModel):
    """Request to create a content item."""

    author_id: str = Field(..., description="Author user ID")
    body: str = Field(..., description="Text body")
    parent_id: str | None = Field(None, description="Parent content ID")
    tags: list[str] | None = Field(None, description="Tags, leading '#' optional")
    category: ContentCategory | None = Field(None, description="Content category")
    location: str | None = Field(None, max_length=255, description="Free-text location")
    inherit_view: bool = Field(True, description="Defer view decisions to the parent")
    inherit_edit: bool = Field(True, description="Defer edit decisions to the parent")


class PermissionsUpdateRequest(BaseModel):
    """Request to replace the permissions of a content item."""

    inherit_view: bool
    inherit_edit: bool
    user_view_ids: list[str] = Field(default_factory=list)
    group_view_ids: list[str] = Field(default_factory=list)
    user_edit_ids: list[str] = Field(default_factory=list)
    group_edit_ids: list[str] = Field(default_factory=list)


# --- Responses ---


class UserResponse(BaseModel):
    """User response."""

    id: str
    name: str
    created_at: int

    @classmethod
    def from_user(cls, user: User) -> UserResponse:
        return cls(**user.to_dict())


class GroupResponse(BaseModel):
    """Group response."""

    id: str
    name: str
    created_at: int

    @classmethod
    def from_group(cls, group: Group) -> GroupResponse:
        return cls(**group.to_dict())


class MembershipResponse(BaseModel):
    """Membership edge response."""

    id: str
    member_id: str
    member_kind: str
    group_id: str
    created_at: int

    @classmethod
    def from_membership(cls, membership: Membership) -> MembershipResponse:
        return cls(**membership.to_dict())


class ContentResponse(BaseModel):
    """Content item response."""

    id: str
    created_at: int
    author_id: str | None
    body: str
    tags: list[str]
    parent_id: str | None = None
    category: str | None = None
    location: str | None = None
    inherit_view: bool
    inherit_edit: bool

    @classmethod
    def from_content(cls, content: Content) -> ContentResponse:
        return cls(**content.to_dict())


class ContentPageResponse(BaseModel):
    """One page of visible content."""

    items: list[ContentResponse]
    has_next_page: bool
    page: int
    limit: int

    @classmethod
    def from_page(cls, page: ContentPage, page_number: int, limit: int) -> ContentPageResponse:
        return cls(
            items=[ContentResponse.from_content(item) for item in page.items],
            has_next_page=page.has_next_page,
            page=page_number,
            limit=limit,
        )


class DecisionResponse(BaseModel):
    """Outcome of one permission check."""

    user_id: str
    content_id: str
    permission: str
    allowed: bool


class SuccessResponse(BaseModel):
    """Acknowledgement of a committed mutation."""

    success: bool = True

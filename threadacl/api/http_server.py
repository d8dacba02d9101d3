"""
HTTP server for ThreadACL.

FastAPI application exposing the authorization service as a JSON API under
``/api/v1``, plus a root ``/health`` endpoint.

Invariants:
    - Handlers are thin: validation beyond payload shape lives in the service
    - Every ThreadAclError maps to a stable status code and error_code
    - Unexpected exceptions are logged and returned as 500 INTERNAL

How to change safely:
    - Keep routes in sync with AuthorizationService operations
    - Version the API if breaking changes are needed
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..config import ServerConfig
from ..errors import (
    AccessDeniedError,
    DataIntegrityError,
    InfrastructureError,
    InvalidInputError,
    NotFoundError,
    ThreadAclError,
)
from ..models import ContentCategory, ContentFilters
from ..services import AuthorizationService
from .schemas import (
    ContentCreateRequest,
    ContentPageResponse,
    ContentResponse,
    DecisionResponse,
    GroupCreateRequest,
    GroupMembersRequest,
    GroupResponse,
    MembershipResponse,
    PermissionsUpdateRequest,
    SuccessResponse,
    UserCreateRequest,
    UserResponse,
)
from .settings import ApiSettings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ThreadACL"])

# Most specific first
ERROR_STATUS: list[tuple[type[ThreadAclError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (DataIntegrityError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (InfrastructureError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(error: ThreadAclError) -> int:
    """HTTP status code for a ThreadACL error."""
    for error_type, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# --- Dependencies ---


def get_service(request: Request) -> AuthorizationService:
    """Get the authorization service from app state."""
    return request.app.state.service


def get_settings(request: Request) -> ApiSettings:
    return request.app.state.settings


# --- User and group routes ---


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreateRequest,
    service: AuthorizationService = Depends(get_service),
):
    """Create a user."""
    user = await service.create_user(body.name, body.id)
    return UserResponse.from_user(user)


@router.post("/groups", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
async def create_group(
    body: GroupCreateRequest,
    service: AuthorizationService = Depends(get_service),
):
    """
    Create a group with its initial members.

    Members may be users or other groups. Every member id must exist and at
    least one member is required.
    """
    group = await service.create_group(body.member_user_ids, body.member_group_ids, body.name)
    return GroupResponse.from_group(group)


@router.post(
    "/groups/{group_id}/members",
    response_model=list[MembershipResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_group_members(
    group_id: str,
    body: GroupMembersRequest,
    service: AuthorizationService = Depends(get_service),
):
    """Add users and groups to an existing group."""
    memberships = await service.add_group_members(
        group_id, body.member_user_ids, body.member_group_ids
    )
    return [MembershipResponse.from_membership(m) for m in memberships]


@router.delete("/groups/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(
    group_id: str,
    service: AuthorizationService = Depends(get_service),
):
    """Delete a group, its memberships and the grants it holds."""
    await service.delete_group(group_id)


# --- Content routes ---


@router.post("/contents", response_model=ContentResponse, status_code=status.HTTP_201_CREATED)
async def create_content(
    body: ContentCreateRequest,
    service: AuthorizationService = Depends(get_service),
):
    """
    Create a content item.

    The author is granted view and edit on the new item. With a parent_id the
    item is nested under that parent and, while its inherit flags are set,
    takes its permissions from it.
    """
    content = await service.create_content(
        author_id=body.author_id,
        body=body.body,
        parent_id=body.parent_id,
        tags=body.tags,
        category=body.category,
        location=body.location,
        inherit_view=body.inherit_view,
        inherit_edit=body.inherit_edit,
    )
    return ContentResponse.from_content(content)


@router.put("/contents/{content_id}/permissions", response_model=SuccessResponse)
async def update_content_permissions(
    content_id: str,
    body: PermissionsUpdateRequest,
    service: AuthorizationService = Depends(get_service),
):
    """
    Replace the permissions of a content item.

    Both inherit flags are always written. Explicit grants are replaced only
    for the permission types that no longer inherit.
    """
    await service.update_content_permissions(
        content_id,
        inherit_view=body.inherit_view,
        inherit_edit=body.inherit_edit,
        user_view_ids=body.user_view_ids,
        group_view_ids=body.group_view_ids,
        user_edit_ids=body.user_edit_ids,
        group_edit_ids=body.group_edit_ids,
    )
    return SuccessResponse()


@router.get("/contents/{content_id}/can-edit", response_model=DecisionResponse)
async def can_edit(
    content_id: str,
    user_id: str = Query(..., description="Requesting user"),
    service: AuthorizationService = Depends(get_service),
):
    """Check whether a user may edit a content item."""
    allowed = await service.can_edit(user_id, content_id)
    return DecisionResponse(
        user_id=user_id, content_id=content_id, permission="edit", allowed=allowed
    )


@router.get("/contents/{content_id}/can-view", response_model=DecisionResponse)
async def can_view(
    content_id: str,
    user_id: str = Query(..., description="Requesting user"),
    service: AuthorizationService = Depends(get_service),
):
    """Check whether a user may view a content item."""
    allowed = await service.can_view(user_id, content_id)
    return DecisionResponse(
        user_id=user_id, content_id=content_id, permission="view", allowed=allowed
    )


@router.get("/contents", response_model=ContentPageResponse)
async def list_contents(
    user_id: str = Query(..., description="Requesting user"),
    limit: int | None = Query(None, description="Items per page"),
    page: int = Query(1, description="1-based page number"),
    author_id: str | None = Query(None),
    tag: str | None = Query(None),
    parent_id: str | None = Query(None),
    category: ContentCategory | None = Query(None),
    location: str | None = Query(None),
    service: AuthorizationService = Depends(get_service),
    settings: ApiSettings = Depends(get_settings),
):
    """
    List content visible to a user, newest first.

    All filters are optional and combined with AND.
    """
    if limit is None:
        limit = settings.default_page_size
    if limit > settings.max_page_size:
        raise InvalidInputError(f"Limit must be at most {settings.max_page_size}", "limit")

    filters = ContentFilters(
        author_id=author_id,
        tag=tag,
        parent_id=parent_id,
        category=category,
        location=location,
    )
    result = await service.list_visible(user_id, limit, page, filters)
    return ContentPageResponse.from_page(result, page, limit)


# --- Application ---


def create_app(
    service: AuthorizationService | None = None,
    settings: ApiSettings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Authorization service (built from environment if not provided)
        settings: API settings (loaded from environment if not provided)

    Returns:
        FastAPI application; the service is started and closed by its lifespan
    """
    settings = settings or ApiSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        svc = service or AuthorizationService.from_config(ServerConfig.from_env())
        await svc.start()
        app.state.service = svc
        app.state.settings = settings

        yield

        await svc.close()

    app = FastAPI(
        title="ThreadACL",
        description="Authorization engine for threaded content with nested groups.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(ThreadAclError)
    async def threadacl_error_handler(request: Request, exc: ThreadAclError) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error(
                f"Request failed: {exc.message}",
                extra={"path": request.url.path, "error_code": exc.code},
            )
        return JSONResponse(
            {"error": exc.message, "error_code": exc.code, "details": exc.details},
            status_code=code,
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"HTTP handler error: {exc}", exc_info=True)
        return JSONResponse(
            {"error": "Internal server error", "error_code": "INTERNAL"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health(request: Request):
        svc: AuthorizationService = request.app.state.service
        return {
            "status": "healthy",
            "service": "threadacl",
            "cache_connected": svc.cache.is_connected,
        }

    return app

"""
Error types for ThreadACL.

This module defines every exception raised by the engine and its adapters:
- ThreadAclError: Base exception
- NotFoundError: Referenced user, group or content does not exist
- InvalidInputError: Client input rejected before any write
- DataIntegrityError: Stored state violates a model invariant
- AccessDeniedError: Principal lacks the required permission
- InfrastructureError: Store or cache unreachable (retryable)

Invariants:
    - All errors inherit from ThreadAclError
    - Infrastructure failures are never reported as NotFound
    - Errors carry a stable code for the HTTP layer
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional


class ThreadAclError(Exception):
    """Base exception for all ThreadACL errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    retryable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "THREADACL_ERROR"
        self.details = details or {}


class NotFoundError(ThreadAclError):
    """Referenced entity does not exist.

    Raised when:
    - A user, group or content id is unknown
    - A bulk id list contains at least one unknown id
    - A parent content id given at creation is unknown
    """

    def __init__(
        self,
        entity: str,
        ids: Iterable[str] = (),
        message: Optional[str] = None,
    ) -> None:
        id_list: List[str] = list(ids)
        super().__init__(
            message or f"{entity.capitalize()} not found",
            code="NOT_FOUND",
            details={"entity": entity, "ids": id_list},
        )
        self.entity = entity
        self.ids = id_list


class InvalidInputError(ThreadAclError):
    """Client input rejected.

    Raised when:
    - A group is created without any member
    - Pagination limit or page is not a positive integer
    """

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVALID_INPUT",
            details={"field": field_name},
        )
        self.field_name = field_name


class DataIntegrityError(ThreadAclError):
    """Stored state is corrupt.

    Permission checks fail closed on this error; it is never turned into an
    allow decision.
    """

    def __init__(self, message: str, content_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="DATA_INTEGRITY",
            details={"content_id": content_id},
        )
        self.content_id = content_id


class AccessDeniedError(ThreadAclError):
    """Principal lacks the required permission on a content item."""

    def __init__(self, user_id: str, content_id: str, permission: str) -> None:
        super().__init__(
            f"Access denied: user {user_id} lacks {permission} on {content_id}",
            code="ACCESS_DENIED",
            details={
                "user_id": user_id,
                "content_id": content_id,
                "permission": permission,
            },
        )
        self.user_id = user_id
        self.content_id = content_id
        self.permission = permission


class InfrastructureError(ThreadAclError):
    """A backing service could not be reached. Callers may retry."""

    retryable = True

    def __init__(self, message: str, code: str = "INFRASTRUCTURE") -> None:
        super().__init__(message, code=code)


class StoreUnavailableError(InfrastructureError):
    """The relational store failed to execute a statement."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="STORE_UNAVAILABLE")


class CacheUnavailableError(InfrastructureError):
    """The cache backend failed to execute a command."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CACHE_UNAVAILABLE")

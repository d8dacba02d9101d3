"""
Cache key layout.

    user:{user_id}:groups                          full group closure of a user
    group:{group_id}:parents                       direct parent groups of a group
    permissions:{content_id}:{user_id}:{scope}_{type}
                                                   grant lookup, scope in
                                                   {explicit, group}, type in
                                                   {view, edit}

Every permission key of one content item shares the prefix returned by
permission_prefix(), so an update evicts them with a single prefix delete.
"""

from __future__ import annotations

from ..models import PermissionType

EXPLICIT = "explicit"
GROUP = "group"


def user_groups_key(user_id: str) -> str:
    return f"user:{user_id}:groups"


def group_parents_key(group_id: str) -> str:
    return f"group:{group_id}:parents"


def permission_prefix(content_id: str) -> str:
    return f"permissions:{content_id}:"


def permission_key(
    content_id: str,
    user_id: str,
    scope: str,
    permission_type: PermissionType,
) -> str:
    if scope not in (EXPLICIT, GROUP):
        raise ValueError(f"Invalid permission cache scope: {scope}")
    return f"{permission_prefix(content_id)}{user_id}:{scope}_{permission_type.value}"

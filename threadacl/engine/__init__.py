"""
Authorization engine for ThreadACL.

This module handles:
- Group closure resolution over possibly cyclic group graphs
- Per-item permission evaluation along the content parent chain
- The set-based visibility listing
- Cache invalidation after committed mutations

Invariants:
    - The engine reads through the cache and never writes the store
    - Every traversal terminates (visited sets, explicit ascent loop)
"""

from .evaluator import PermissionEvaluator
from .groups import GroupClosureResolver
from .invalidation import CacheInvalidationCoordinator
from .visibility import VisibilityQueryBuilder, validate_pagination

__all__ = [
    "GroupClosureResolver",
    "PermissionEvaluator",
    "CacheInvalidationCoordinator",
    "VisibilityQueryBuilder",
    "validate_pagination",
]

"""
ThreadACL - authorization engine for threaded content.

This package decides who may view or edit posts that can be nested under
other posts, for principals that are users or (nested) groups:
- Group closure: every group a user belongs to, directly or transitively
- Permission inheritance along the content parent chain
- A cache layer kept consistent by explicit invalidation after commits
- A set-based visibility query for listing content

Architecture:
    ┌─────────────┐     ┌──────────────────────┐
    │  HTTP API   │────▶│ AuthorizationService │
    │  (FastAPI)  │     └──────────┬───────────┘
    └─────────────┘                │
              ┌────────────────────┼────────────────────┐
              ▼                    ▼                    ▼
     ┌────────────────┐   ┌────────────────┐   ┌────────────────┐
     │ GroupClosure   │   │ Permission     │   │ Visibility     │
     │ Resolver       │   │ Evaluator      │   │ QueryBuilder   │
     └───────┬────────┘   └───────┬────────┘   └───────┬────────┘
             │                    │                    │
             ▼                    ▼                    ▼
     ┌──────────────────────────────────┐   ┌────────────────────┐
     │ Cache (memory / Redis)           │◀──│ Invalidation       │
     └──────────────────────────────────┘   │ Coordinator        │
     ┌──────────────────────────────────┐   └────────────────────┘
     │ SQLite store (system of record)  │
     └──────────────────────────────────┘

Invariants:
    - The store is the single source of truth; the cache holds derived copies
    - Mutations commit first, then invalidate the cache
    - Group traversals always carry a visited set (group graphs may be cyclic)
    - Content parent chains form a forest and are ascended iteratively

How to change safely:
    - New cache keys must be covered by the invalidation coordinator
    - New permission types must extend both the evaluator and the visibility query
"""

from ._version import __version__

__all__ = ["__version__"]

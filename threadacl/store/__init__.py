"""
Store module for ThreadACL - the relational system of record.

This module handles:
- SQLite connection management, schema and transactions
- User, group and membership records
- Content records with parent links and tags
- Explicit permission grants

Invariants:
    - Every mutation that writes more than one row runs in one transaction
    - Id existence is validated before a transaction is opened
    - Store failures surface as StoreUnavailableError
"""

from .content_store import ContentStore, clean_tags, content_from_row
from .database import Database, Transaction, now_ms
from .membership_store import MembershipStore
from .permission_store import PermissionStore
from .user_store import UserStore

__all__ = [
    "Database",
    "Transaction",
    "now_ms",
    "UserStore",
    "MembershipStore",
    "PermissionStore",
    "ContentStore",
    "clean_tags",
    "content_from_row",
]

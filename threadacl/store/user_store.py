"""
User records.

Users are identity only and immutable once created; the engine needs them
for existence checks and for the author-only rule at inheriting roots.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid

from ..errors import InvalidInputError
from ..models import User
from .database import Database, now_ms

logger = logging.getLogger(__name__)


class UserStore:
    """Read/write access to the users table."""

    def __init__(self, db: Database) -> None:
        self.db = db

    async def create_user(self, name: str, user_id: str | None = None) -> User:
        """Insert a new user.

        Args:
            name: Display name
            user_id: Optional specific id (generated if not provided)

        Returns:
            Created User
        """
        user = User(id=user_id or str(uuid.uuid4()), name=name, created_at=now_ms())
        try:
            async with self.db.transaction() as tx:
                await tx.execute(
                    "INSERT INTO users (id, name, created_at) VALUES (?, ?, ?)",
                    (user.id, user.name, user.created_at),
                )
        except sqlite3.IntegrityError:
            raise InvalidInputError(f"User already exists: {user.id}", "user_id") from None
        logger.debug("Created user", extra={"user_id": user.id})
        return user

    async def user_exists(self, user_id: str) -> bool:
        return await self.db.count_existing("users", [user_id]) == 1

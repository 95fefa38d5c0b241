"""Repository for record store users."""

from ..models import UserRecord
from .base import BaseRepository


class UserRepository(BaseRepository):
    """Handles database operations for users."""

    async def upsert(self, user: UserRecord):
        """Insert or update a user."""
        query = """
            INSERT INTO user_profile (record_name, nickname)
            VALUES (?, ?)
            ON CONFLICT(record_name) DO UPDATE SET
                nickname = excluded.nickname
        """
        await self._execute(query, (user.record_name, user.nickname))

    async def get_by_names(self, record_names: list[str]) -> list[UserRecord]:
        if not record_names:
            return []
        rows = await self._fetchall(
            f"SELECT * FROM user_profile WHERE record_name IN ({self._placeholders(record_names)})",
            tuple(record_names),
        )
        return [UserRecord(record_name=row["record_name"], nickname=row["nickname"]) for row in rows]

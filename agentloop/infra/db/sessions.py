"""Session repository - MongoDB persistence for conversation sessions."""

from __future__ import annotations

import logging

from agentloop.models.session import Session

logger = logging.getLogger(__name__)


class SessionRepo:
    """Save/load sessions keyed by their string id."""

    COLLECTION = "sessions"

    def __init__(self, db) -> None:
        self._col = db[self.COLLECTION]

    async def save(self, session: Session) -> None:
        """Insert or replace the whole session document."""
        await self._col.replace_one({"_id": session.id}, session.to_doc(), upsert=True)
        logger.debug("Saved session %s (%d messages)", session.id, len(session.messages))

    async def load(self, session_id: str) -> Session | None:
        doc = await self._col.find_one({"_id": session_id})
        return Session.from_doc(doc) if doc else None

    async def list_ids(self, paused_only: bool = False) -> list[str]:
        """Session ids, most recently updated first."""
        query: dict = {"paused": True} if paused_only else {}
        cursor = self._col.find(query, {"_id": 1}).sort("updated_at", -1)
        return [doc["_id"] async for doc in cursor]

    async def delete(self, session_id: str) -> bool:
        result = await self._col.delete_one({"_id": session_id})
        return result.deleted_count > 0

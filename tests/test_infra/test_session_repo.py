"""Tests for SessionRepo with a mocked collection."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from agentloop.infra.db.sessions import SessionRepo
from agentloop.models.session import Session, SessionMessage


@pytest.fixture
def collection():
    col = MagicMock()
    col.replace_one = AsyncMock()
    col.find_one = AsyncMock()
    col.delete_one = AsyncMock()
    return col


@pytest.fixture
def repo(collection):
    return SessionRepo({"sessions": collection})


class TestSessionRepo:
    @pytest.mark.asyncio
    async def test_save_upserts_by_id(self, repo, collection):
        session = Session(id="s1").with_messages(SessionMessage("hi", is_user=True))
        await repo.save(session)
        collection.replace_one.assert_called_once()
        query, doc = collection.replace_one.call_args.args
        assert query == {"_id": "s1"}
        assert doc["messages"][0]["text"] == "hi"
        assert collection.replace_one.call_args.kwargs["upsert"] is True

    @pytest.mark.asyncio
    async def test_load(self, repo, collection):
        collection.find_one.return_value = Session(id="s1", paused=True).to_doc()
        session = await repo.load("s1")
        assert session.id == "s1"
        assert session.paused

    @pytest.mark.asyncio
    async def test_load_missing(self, repo, collection):
        collection.find_one.return_value = None
        assert await repo.load("nope") is None

    @pytest.mark.asyncio
    async def test_delete(self, repo, collection):
        collection.delete_one.return_value = MagicMock(deleted_count=1)
        assert await repo.delete("s1") is True

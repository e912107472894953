from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from qbwc.session import Session
from qbwc.storage import ConflictError
from qbwc.storage.redis import RedisSessionStore

T0 = datetime(2024, 3, 4, 12, 0, 0)


@pytest.fixture
def mock_redis() -> MagicMock:
    """Mock Redis client with async methods."""
    m = MagicMock()
    m.set = AsyncMock(return_value=True)
    m.get = AsyncMock(return_value=None)
    m.delete = AsyncMock(return_value=1)
    m.sadd = AsyncMock(return_value=1)
    m.srem = AsyncMock(return_value=1)
    m.smembers = AsyncMock(return_value=set())
    m.scard = AsyncMock(return_value=0)
    return m


@pytest.mark.asyncio
async def test_create_sets_key_with_ttl(mock_redis):
    store = RedisSessionStore(mock_redis, key_prefix="test")
    session = Session(username="svc", ttl_seconds=90)

    await store.create(session)

    args, kwargs = mock_redis.set.call_args
    assert args[0] == f"test:session:{session.ticket}"
    assert kwargs == {"ex": 90, "nx": True}
    mock_redis.sadd.assert_awaited_once_with("test:sessions", session.ticket)


@pytest.mark.asyncio
async def test_create_existing_ticket_conflicts(mock_redis):
    mock_redis.set.return_value = None
    store = RedisSessionStore(mock_redis)

    with pytest.raises(ConflictError):
        await store.create(Session(username="svc"))
    mock_redis.sadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_get_decodes_json(mock_redis):
    session = Session(username="svc", company_file="C:\\Acme.qbw")
    mock_redis.get.return_value = session.model_dump_json()
    store = RedisSessionStore(mock_redis)

    loaded = await store.get(session.ticket)

    assert loaded == session
    mock_redis.get.assert_awaited_once_with(f"qbwc:session:{session.ticket}")


@pytest.mark.asyncio
async def test_delete_prunes_index(mock_redis):
    store = RedisSessionStore(mock_redis)

    assert await store.delete("t-1")
    mock_redis.delete.assert_awaited_once_with("qbwc:session:t-1")
    mock_redis.srem.assert_awaited_once_with("qbwc:sessions", "t-1")


@pytest.mark.asyncio
async def test_expire_idle_prunes_missing_and_expired(mock_redis):
    live = Session(ticket="live", username="svc", last_activity_at=T0, ttl_seconds=600)
    stale = Session(ticket="stale", username="svc", last_activity_at=T0 - timedelta(hours=1), ttl_seconds=60)
    stored = {"qbwc:session:live": live.model_dump_json(), "qbwc:session:stale": stale.model_dump_json()}

    mock_redis.smembers.return_value = {"live", "stale", "gone", "held"}
    mock_redis.get.side_effect = lambda key: stored.get(key)
    store = RedisSessionStore(mock_redis)

    expired = await store.expire_idle(T0, exclude={"held"})

    assert sorted(expired) == ["gone", "stale"]
    assert mock_redis.srem.await_count == 2


@pytest.mark.asyncio
async def test_count_reads_index(mock_redis):
    mock_redis.scard.return_value = 3
    assert await RedisSessionStore(mock_redis).count() == 3

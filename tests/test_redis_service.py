"""Tests for the Redis service lock helpers."""

from unittest.mock import AsyncMock

import pytest

from flatindex.services.redis_service import RedisService


@pytest.fixture
def connected_service() -> RedisService:
    service = RedisService()
    service._redis = AsyncMock()
    return service


class TestLocks:

    @pytest.mark.asyncio
    async def test_acquire_returns_token(self, connected_service):
        connected_service.client.set.return_value = True

        token = await connected_service.acquire_lock("flatindex:rebuild:customers", 60)

        assert token
        connected_service.client.set.assert_awaited_once_with(
            "flatindex:rebuild:customers", token, nx=True, ex=60
        )

    @pytest.mark.asyncio
    async def test_acquire_held_lock(self, connected_service):
        connected_service.client.set.return_value = None

        assert await connected_service.acquire_lock("flatindex:rebuild:customers", 60) is None

    @pytest.mark.asyncio
    async def test_release_checks_token(self, connected_service):
        connected_service.client.eval.return_value = 1

        assert await connected_service.release_lock("flatindex:rebuild:customers", "abc") is True
        args = connected_service.client.eval.await_args.args
        assert args[1:] == (1, "flatindex:rebuild:customers", "abc")

    @pytest.mark.asyncio
    async def test_release_of_foreign_lock(self, connected_service):
        connected_service.client.eval.return_value = 0

        assert await connected_service.release_lock("flatindex:rebuild:customers", "abc") is False


class TestConnection:

    def test_client_requires_connect(self):
        service = RedisService()

        assert service.is_connected is False
        with pytest.raises(RuntimeError):
            service.client

    @pytest.mark.asyncio
    async def test_health_when_disconnected(self):
        assert await RedisService().health_check() == {"status": "disconnected"}

    @pytest.mark.asyncio
    async def test_health_reports_memory(self, connected_service):
        connected_service.client.info.return_value = {"used_memory_human": "1.2M"}

        assert await connected_service.health_check() == {
            "status": "healthy",
            "used_memory_human": "1.2M",
        }

"""Tests for ARQ worker jobs and configuration."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from flatindex.config import settings
from flatindex.exceptions import RebuildInProgress
from flatindex.services import index_write_service
from flatindex.services.job_queue import parse_redis_url
from flatindex.services.search_store import DocumentRef
from flatindex.worker import (
    WorkerSettings,
    drain_index_queue,
    get_drain_seconds,
    parse_schedule_set,
    rebuild_index_job,
)


# =============================================================================
# Jobs
# =============================================================================


class TestDrainJob:

    @pytest.mark.asyncio
    async def test_drains_pending_entries(self, session_maker, registry, reconciler, search_store, customer_index, monkeypatch):
        monkeypatch.setattr("flatindex.worker.reconciler", reconciler)
        async with session_maker() as db:
            await index_write_service.update_document(
                db, registry, "customers", "crm", "customers", "c-1", {"name": "Ada"}
            )

        result = await drain_index_queue({})

        assert result["processed"] == 1
        assert result["indexed"] == 1
        assert "run_at" in result
        assert await search_store.get_document("customers-v1", DocumentRef("crm", "customers", "c-1")) is not None

    @pytest.mark.asyncio
    async def test_error_is_reported(self, monkeypatch):
        failing = MagicMock()
        failing.drain = AsyncMock(side_effect=RuntimeError("db down"))
        monkeypatch.setattr("flatindex.worker.reconciler", failing)

        result = await drain_index_queue({})

        assert result["processed"] == 0
        assert result["errors"] == [{"error": "db down"}]


class TestRebuildJob:

    @pytest.mark.asyncio
    async def test_runs_rebuild(self, reconciler, customer_index, monkeypatch):
        monkeypatch.setattr("flatindex.worker.reconciler", reconciler)

        result = await rebuild_index_job({}, "customers", "full", None)

        assert result["indexName"] == "customers"
        assert result["mode"] == "full"
        assert result["totalDocs"] == 0

    @pytest.mark.asyncio
    async def test_failure_is_returned(self, monkeypatch):
        locked = MagicMock()
        locked.rebuild = AsyncMock(side_effect=RebuildInProgress("busy"))
        monkeypatch.setattr("flatindex.worker.reconciler", locked)

        result = await rebuild_index_job({}, "customers")

        assert result == {"indexName": "customers", "mode": "incremental", "error": "busy"}


# =============================================================================
# Configuration
# =============================================================================


class TestWorkerSettings:
    """Tests for ARQ WorkerSettings configuration."""

    def test_redis_settings_parsed_from_url(self):
        redis_settings = parse_redis_url("redis://:secret@cache.internal:6380/2")

        assert redis_settings.host == "cache.internal"
        assert redis_settings.port == 6380
        assert redis_settings.password == "secret"
        assert redis_settings.database == 2

    def test_redis_url_defaults(self):
        redis_settings = parse_redis_url("redis://localhost")

        assert redis_settings.port == 6379
        assert redis_settings.database == 0

    def test_functions_registered(self):
        function_names = [f.__name__ for f in WorkerSettings.functions]
        assert function_names == ["drain_index_queue", "rebuild_index_job"]

    def test_cron_jobs_configured(self):
        assert len(WorkerSettings.cron_jobs) == 1
        assert WorkerSettings.cron_jobs[0].coroutine is drain_index_queue
        assert WorkerSettings.cron_jobs[0].unique is True

    def test_parse_schedule_set(self):
        assert parse_schedule_set("0,30") == {0, 30}
        assert parse_schedule_set(" 0, 15 ,30,45 ") == {0, 15, 30, 45}
        assert parse_schedule_set("") == set()

    def test_drain_seconds_default_when_empty(self, monkeypatch):
        monkeypatch.setattr(settings, "arq_drain_seconds", "")
        assert get_drain_seconds() == {0}

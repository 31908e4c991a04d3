"""Tests for the queue ledger."""

import pytest
import pytest_asyncio

from flatindex.models import IndexQueueEntry, IndexStatus, SourceDocument
from flatindex.services import queue_store
from flatindex.services.queue_store import QueueKey

CRM_DB = "crm"
CUSTOMERS = "customers"
ORDERS = "orders"

KEY = QueueKey(CRM_DB, CUSTOMERS, "c-1")


# =============================================================================
# record_update / record_delete
# =============================================================================


class TestRecordUpdate:
    """Every source write bumps the version by exactly one and leaves the entry pending."""

    @pytest.mark.asyncio
    async def test_first_write_creates_entry_at_version_one(self, db_session):
        entry = await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1", "m1")
        await db_session.commit()

        assert entry.update_version == 1
        assert entry.index_version == 0
        assert entry.status == IndexStatus.PENDING_INDEX
        assert entry.is_deleted is False
        assert entry.mongo_id == "m1"
        assert entry.create_at > 0
        assert -12 <= entry.update_at_time_zone <= 12

    @pytest.mark.asyncio
    async def test_subsequent_writes_increment(self, db_session):
        for expected in (1, 2, 3):
            entry = await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
            assert entry.update_version == expected
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_write_after_indexed_goes_back_to_pending(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        assert await queue_store.try_mark_indexed(db_session, KEY, 1)

        entry = await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await db_session.commit()

        assert entry.update_version == 2
        assert entry.index_version == 1
        assert entry.status == IndexStatus.PENDING_INDEX

    @pytest.mark.asyncio
    async def test_entries_are_per_document(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        other = await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-2")
        await db_session.commit()

        assert other.update_version == 1

    @pytest.mark.asyncio
    async def test_write_is_rolled_back_with_transaction(self, db_session, session_maker):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await db_session.rollback()

        async with session_maker() as other:
            assert await queue_store.get_entry(other, KEY) is None


class TestRecordDelete:

    @pytest.mark.asyncio
    async def test_delete_tombstones_and_bumps(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        entry = await queue_store.record_delete(db_session, CRM_DB, CUSTOMERS, "c-1")
        await db_session.commit()

        assert entry.is_deleted is True
        assert entry.update_version == 2
        assert entry.status == IndexStatus.PENDING_INDEX

    @pytest.mark.asyncio
    async def test_delete_without_entry_creates_tombstone(self, db_session):
        entry = await queue_store.record_delete(db_session, CRM_DB, CUSTOMERS, "ghost")
        await db_session.commit()

        assert entry.is_deleted is True
        assert entry.update_version == 1

    @pytest.mark.asyncio
    async def test_rewrite_after_delete_clears_tombstone(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await queue_store.record_delete(db_session, CRM_DB, CUSTOMERS, "c-1")
        entry = await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await db_session.commit()

        assert entry.is_deleted is False
        assert entry.update_version == 3


# =============================================================================
# try_mark_indexed
# =============================================================================


class TestTryMarkIndexed:
    """Marking only succeeds while the entry still sits at the committed version."""

    @pytest.mark.asyncio
    async def test_marks_at_current_version(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        assert await queue_store.try_mark_indexed(db_session, KEY, 1) is True
        await db_session.commit()

        entry = await queue_store.get_entry(db_session, KEY)
        assert entry.status == IndexStatus.INDEXED
        assert entry.index_version == entry.update_version == 1

    @pytest.mark.asyncio
    async def test_fails_when_version_advanced(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")

        assert await queue_store.try_mark_indexed(db_session, KEY, 1) is False
        await db_session.commit()

        entry = await queue_store.get_entry(db_session, KEY)
        assert entry.status == IndexStatus.PENDING_INDEX
        assert entry.index_version == 0

    @pytest.mark.asyncio
    async def test_unknown_entry(self, db_session):
        assert await queue_store.try_mark_indexed(db_session, KEY, 1) is False


# =============================================================================
# list_pending
# =============================================================================


class TestListPending:

    @pytest_asyncio.fixture
    async def mixed_entries(self, db_session):
        # c-a: v3 pending, c-b: v1 pending, c-c: v1 indexed, o-1: v2 pending (orders)
        for _ in range(3):
            await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-a")
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-b")
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-c")
        await queue_store.try_mark_indexed(db_session, QueueKey(CRM_DB, CUSTOMERS, "c-c"), 1)
        for _ in range(2):
            await queue_store.record_update(db_session, CRM_DB, ORDERS, "o-1")
        await queue_store.record_update(db_session, "other_db", CUSTOMERS, "x-1")
        await db_session.commit()

    @pytest.mark.asyncio
    async def test_orders_by_ascending_version(self, db_session, mixed_entries):
        entries = await queue_store.list_pending(db_session, CRM_DB)
        assert [(e.doc_id, e.update_version) for e in entries] == [
            ("c-b", 1),
            ("o-1", 2),
            ("c-a", 3),
        ]

    @pytest.mark.asyncio
    async def test_filters_by_collection(self, db_session, mixed_entries):
        entries = await queue_store.list_pending(db_session, CRM_DB, collection=CUSTOMERS)
        assert [e.doc_id for e in entries] == ["c-b", "c-a"]

    @pytest.mark.asyncio
    async def test_limit(self, db_session, mixed_entries):
        entries = await queue_store.list_pending(db_session, CRM_DB, limit=1)
        assert [e.doc_id for e in entries] == ["c-b"]

    @pytest.mark.asyncio
    async def test_count_pending(self, db_session, mixed_entries):
        assert await queue_store.count_pending(db_session, CRM_DB) == 3
        assert await queue_store.count_pending(db_session, CRM_DB, ORDERS) == 1

    @pytest.mark.asyncio
    async def test_queue_stats(self, db_session, mixed_entries):
        stats = await queue_store.queue_stats(db_session, CRM_DB)
        assert stats[CUSTOMERS] == {"pending": 2, "indexed": 1, "deleted": 0}
        assert stats[ORDERS] == {"pending": 1, "indexed": 0, "deleted": 0}


# =============================================================================
# Rebuild support
# =============================================================================


class TestRebuildSupport:

    @pytest.mark.asyncio
    async def test_reset_for_rebuild(self, db_session):
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")
        await queue_store.try_mark_indexed(db_session, KEY, 1)
        reset = await queue_store.reset_for_rebuild(db_session, CRM_DB, CUSTOMERS)
        await db_session.commit()

        entry = await queue_store.get_entry(db_session, KEY)
        assert reset == 1
        assert entry.index_version == 0
        assert entry.status == IndexStatus.PENDING_INDEX
        assert entry.update_version == 1

    @pytest.mark.asyncio
    async def test_backfill_missing_entries(self, db_session):
        db_session.add(SourceDocument(db_name=CRM_DB, coll_name=CUSTOMERS, doc_id="c-1", content={}))
        db_session.add(SourceDocument(db_name=CRM_DB, coll_name=CUSTOMERS, doc_id="c-2", content={}))
        await db_session.flush()
        await queue_store.record_update(db_session, CRM_DB, CUSTOMERS, "c-1")

        created = await queue_store.backfill_missing(db_session, CRM_DB, CUSTOMERS)
        await db_session.commit()

        assert created == 1
        entry = await queue_store.get_entry(db_session, QueueKey(CRM_DB, CUSTOMERS, "c-2"))
        assert isinstance(entry, IndexQueueEntry)
        assert entry.update_version == 1
        assert entry.mongo_id is not None

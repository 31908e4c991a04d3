"""IndexQueueEntry SQLAlchemy model: the per-document indexing ledger.

One row exists for every monitored document that has ever been written.
Rows are never deleted; deletes set ``is_deleted`` and bump the version.

Invariants:
- index_version <= update_version
- status == INDEXED  iff  index_version == update_version
"""

from enum import IntEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from ..database import Base


class IndexStatus(IntEnum):
    """Queue entry status codes as stored in the ledger."""

    INDEXED = 0
    PENDING_INDEX = -1


class IndexQueueEntry(Base):
    """
    Queue entry tracking indexing work for a single source document.

    Attributes:
        id: Surrogate primary key (tie-breaker for equal versions)
        db_name: Source database (ledger partition)
        collection: Source collection
        doc_id: Custom document identifier
        mongo_id: Store-internal identifier of the document
        update_version: Monotonic counter, +1 on every source write
        index_version: Last version committed to the search store
        status: IndexStatus value
        create_at: Creation time in epoch milliseconds
        create_at_time_zone: UTC offset in hours at creation
        update_at: Last write time in epoch milliseconds
        update_at_time_zone: UTC offset in hours at last write
        is_deleted: Tombstone flag set by deletes
    """

    __tablename__ = "IndexQueue"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    db_name = Column(String(255), nullable=False)
    collection = Column(String(255), nullable=False)
    doc_id = Column(String(255), nullable=False)
    mongo_id = Column(String(32), nullable=True)

    update_version = Column(BigInteger, nullable=False, default=1)
    index_version = Column(BigInteger, nullable=False, default=0)
    status = Column(Integer, nullable=False, default=int(IndexStatus.PENDING_INDEX))

    create_at = Column(BigInteger, nullable=False)
    create_at_time_zone = Column(Integer, nullable=False, default=0)
    update_at = Column(BigInteger, nullable=False)
    update_at_time_zone = Column(Integer, nullable=False, default=0)

    is_deleted = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("db_name", "collection", "doc_id", name="uq_index_queue_doc"),
        Index("status_update_version_idx", "status", "update_version"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == IndexStatus.PENDING_INDEX

    def __repr__(self) -> str:
        """String representation of IndexQueueEntry."""
        return (
            f"<IndexQueueEntry({self.db_name}.{self.collection}/{self.doc_id} "
            f"v{self.update_version} idx={self.index_version} status={self.status})>"
        )

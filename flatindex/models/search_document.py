"""Search store models: indexes, flattened documents and searchable fields.

A stored document is identified by its index, its source (database,
collection) and its doc_id, matching the key of its queue entry.

SearchDocument rows carry a ``seq_no`` sequence token that every write
increments; conditional replaces compare it to the value read before the
write. Deletes keep a tombstone row carrying the delete version so a
stale write cannot bring the document back.
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from ..database import Base


class SearchIndex(Base):
    """A named index in the search store."""

    __tablename__ = "SearchIndexes"
    __allow_unmapped__ = True

    name = Column(String(255), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<SearchIndex(name={self.name})>"


class SearchDocument(Base):
    """
    Flattened document stored in a search index.

    Attributes:
        id: Surrogate primary key
        index_name: Search index holding the document
        doc_id: Custom document identifier
        seq_no: Sequence token incremented on every write
        update_version: Queue version the content was flattened from
        update_at: Source write time in epoch milliseconds
        update_at_time_zone: UTC offset in hours
        source_db: Source database
        source_coll: Source collection
        flat: Ordered list of [path, value] pairs
        deleted: Tombstone marker
    """

    __tablename__ = "SearchDocuments"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_name = Column(String(255), nullable=False)
    doc_id = Column(String(255), nullable=False)

    seq_no = Column(BigInteger, nullable=False, default=0)
    update_version = Column(BigInteger, nullable=False)
    update_at = Column(BigInteger, nullable=True)
    update_at_time_zone = Column(Integer, nullable=True)

    source_db = Column(String(255), nullable=False)
    source_coll = Column(String(255), nullable=False)

    flat = Column(JSON, nullable=False, default=list)
    deleted = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint(
            "index_name", "source_db", "source_coll", "doc_id", name="uq_search_documents_doc"
        ),
        Index("ix_search_documents_source", "index_name", "source_db", "source_coll"),
    )

    def __repr__(self) -> str:
        return (
            f"<SearchDocument({self.index_name}/{self.source_db}.{self.source_coll}/{self.doc_id} "
            f"v{self.update_version} seq={self.seq_no})>"
        )


class SearchField(Base):
    """One flattened (path, value) pair, used to narrow substring candidates."""

    __tablename__ = "SearchFields"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_name = Column(String(255), nullable=False)
    doc_id = Column(String(255), nullable=False)
    source_db = Column(String(255), nullable=False)
    source_coll = Column(String(255), nullable=False)
    position = Column(Integer, nullable=False)
    path = Column(Text, nullable=False)
    value = Column(Text, nullable=False)

    __table_args__ = (
        Index("ix_search_fields_doc", "index_name", "source_db", "source_coll", "doc_id"),
    )

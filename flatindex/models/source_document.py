"""SourceDocument SQLAlchemy model for the primary document store.

Documents are schemaless JSON objects addressed by (database, collection,
doc_id). The JSON column keeps key order so flattening is deterministic.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint

from ..database import Base


def _new_mongo_id() -> str:
    return uuid.uuid4().hex


class SourceDocument(Base):
    """
    A document held by the primary store.

    Attributes:
        mongo_id: Store-internal identifier
        db_name: Logical source database
        coll_name: Source collection within the database
        doc_id: Custom document identifier, unique per collection
        content: Nested JSON object
        created_at: Timestamp when document was created
        updated_at: Timestamp when document was last written
    """

    __tablename__ = "SourceDocuments"
    __allow_unmapped__ = True

    mongo_id = Column(String(32), primary_key=True, default=_new_mongo_id)

    db_name = Column(String(255), nullable=False)
    coll_name = Column(String(255), nullable=False)
    doc_id = Column(String(255), nullable=False)

    content = Column(JSON, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("db_name", "coll_name", "doc_id", name="uq_source_documents_doc"),
    )

    def __repr__(self) -> str:
        """String representation of SourceDocument."""
        return f"<SourceDocument({self.db_name}.{self.coll_name}/{self.doc_id})>"

"""IndexDefinition and IndexSource SQLAlchemy models.

An index definition names a target search index and the set of
(database, collection) sources whose documents feed it.
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import Base


class IndexDefinition(Base):
    """
    A registered index.

    Attributes:
        id: Surrogate primary key
        name: Unique index name used by the API
        search_index: Name of the target index in the search store
        created_at: Timestamp when the definition was created
        updated_at: Timestamp when the definition was last changed
        sources: Monitored (database, collection) pairs
    """

    __tablename__ = "IndexDefinitions"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    search_index = Column(String(255), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    sources = relationship(
        "IndexSource",
        back_populates="index",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="IndexSource.id",
    )

    def __repr__(self) -> str:
        """String representation of IndexDefinition."""
        return f"<IndexDefinition(name={self.name}, search_index={self.search_index})>"


class IndexSource(Base):
    """
    A (database, collection) pair monitored by an index.

    Attributes:
        id: Surrogate primary key
        index_id: FK to IndexDefinitions
        db_name: Source database
        coll_name: Source collection
    """

    __tablename__ = "IndexSources"
    __allow_unmapped__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(
        Integer,
        ForeignKey("IndexDefinitions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    db_name = Column(String(255), nullable=False)
    coll_name = Column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("index_id", "db_name", "coll_name", name="uq_index_sources_source"),
    )

    index = relationship("IndexDefinition", back_populates="sources")

    def __repr__(self) -> str:
        """String representation of IndexSource."""
        return f"<IndexSource({self.db_name}.{self.coll_name})>"

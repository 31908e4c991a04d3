"""Pydantic schemas for index definitions."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IndexSourceSchema(BaseModel):
    """A monitored (database, collection) pair."""

    database: str = Field(..., min_length=1, max_length=255, examples=["crm"])
    collection: str = Field(..., min_length=1, max_length=255, examples=["customers"])


class IndexCreate(BaseModel):
    """Schema for registering a new index."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Unique index name",
        examples=["customer-search"],
    )
    search_index: Optional[str] = Field(
        None,
        max_length=255,
        description="Target search index name (defaults to the index name)",
        examples=["customer-search-v1"],
    )
    collections: list[IndexSourceSchema] = Field(
        default_factory=list,
        description="Sources whose documents feed the index",
    )


class IndexUpdate(BaseModel):
    """Schema for updating an index. Omitted fields are left unchanged."""

    search_index: Optional[str] = Field(None, max_length=255)
    collections: Optional[list[IndexSourceSchema]] = None


class IndexResponse(BaseModel):
    """Schema for an index definition response."""

    model_config = ConfigDict(from_attributes=True)

    name: str
    search_index: str
    collections: list[IndexSourceSchema]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_definition(cls, definition) -> "IndexResponse":
        return cls(
            name=definition.name,
            search_index=definition.search_index,
            collections=[
                IndexSourceSchema(database=s.db_name, collection=s.coll_name)
                for s in definition.sources
            ],
            created_at=definition.created_at,
            updated_at=definition.updated_at,
        )


class SourceRemovalResponse(BaseModel):
    """Indices that stopped monitoring a source."""

    database: str
    collection: str
    affected_indices: list[str]

"""Pydantic schemas for queue ledger entries."""

from pydantic import BaseModel, ConfigDict, Field


class QueueEntryResponse(BaseModel):
    """Wire shape of a queue entry."""

    model_config = ConfigDict(from_attributes=True)

    doc_id: str = Field(..., serialization_alias="docId")
    collection: str
    db_name: str = Field(..., serialization_alias="dbName")
    mongo_id: str | None = Field(None, serialization_alias="mongoId")
    update_version: int = Field(..., serialization_alias="updateVersion")
    index_version: int = Field(..., serialization_alias="indexVersion")
    status: int
    create_at: int = Field(..., serialization_alias="createAt")
    create_at_time_zone: int = Field(..., serialization_alias="createAtTimeZone")
    update_at: int = Field(..., serialization_alias="updateAt")
    update_at_time_zone: int = Field(..., serialization_alias="updateAtTimeZone")
    is_deleted: bool = Field(..., serialization_alias="isDeleted")


class CollectionQueueStats(BaseModel):
    pending: int
    indexed: int
    deleted: int

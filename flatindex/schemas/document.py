"""Pydantic schemas for monitored document writes."""

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class DocumentUpdateRequest(BaseModel):
    """Set-field update for a monitored document.

    Keys of ``updateDict`` are dotted paths ("profile.name", "tags.0").
    """

    update_dict: dict[str, Any] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("updateDict", "update_dict"),
        description="Dotted path -> new value",
        examples=[{"name": "Ada", "address.city": "London"}],
    )
    update_index: bool = Field(
        True,
        validation_alias=AliasChoices("updateIndex", "update_index"),
        description="Schedule indexing right after the write commits",
    )


class DocumentWriteResponse(BaseModel):
    """Result of a committed write."""

    doc_id: str = Field(..., serialization_alias="docId")
    update_at: int = Field(..., serialization_alias="updateAt")
    update_version: int = Field(..., serialization_alias="updateVersion")


class DocumentResponse(BaseModel):
    """A source document together with its indexing state."""

    doc_id: str = Field(..., serialization_alias="docId")
    database: str
    collection: str
    mongo_id: str = Field(..., serialization_alias="mongoId")
    content: dict[str, Any]
    update_version: Optional[int] = Field(None, serialization_alias="updateVersion")
    index_version: Optional[int] = Field(None, serialization_alias="indexVersion")
    status: Optional[int] = None

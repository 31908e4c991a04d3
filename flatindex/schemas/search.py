"""Pydantic schemas for substring search requests and responses."""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator


class SearchRequest(BaseModel):
    """Substring search over flattened paths and/or values."""

    query: str = Field(..., min_length=1, description="Literal, case-sensitive substring")
    search_in_paths: bool = Field(False, description="Match against flattened paths")
    search_in_values: bool = Field(True, description="Match against flattened values")
    page: int = Field(1, ge=1)
    page_size: int = Field(20, ge=1, le=500)
    merge: bool = Field(False, description="Group occurrences per (key, match_in)")

    @model_validator(mode="after")
    def check_targets(self) -> "SearchRequest":
        if not (self.search_in_paths or self.search_in_values):
            raise ValueError("at least one of search_in_paths or search_in_values must be true")
        return self


class MatchedKey(BaseModel):
    key: str
    value: str
    match_in: Literal["key", "value"]
    start_index: int
    end_index: int


class MergedMatchedKey(BaseModel):
    key: str
    value: str
    match_in: Literal["key", "value"]
    positions: list[list[int]]


class SearchHit(BaseModel):
    id: str
    database: str
    collection: str
    matched_keys: list[Union[MatchedKey, MergedMatchedKey]]


class SearchResponse(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    results: list[SearchHit]
    index: Optional[str] = None

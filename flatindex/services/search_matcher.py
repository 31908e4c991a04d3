"""Substring search over flattened documents.

Matching is literal and case-sensitive. Offsets are codepoint offsets into
the path or value string, ``end_index`` exclusive; occurrences within one
string never overlap (the scan resumes at the end of the previous match).

Pagination counts documents with at least one match, ordered by document
id and then by source (sources sharing an index may reuse an id). The
search store narrows candidates with a LIKE prefilter and every candidate
is verified here, so ``total`` is always exact.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Optional, Sequence

from .search_store import SearchStore, search_store as default_search_store

logger = logging.getLogger(__name__)

MatchIn = Literal["key", "value"]

# Candidate documents verified per search store round trip
LOAD_BATCH_SIZE = 200


@dataclass(frozen=True)
class Occurrence:
    key: str
    value: str
    match_in: MatchIn
    start_index: int
    end_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "match_in": self.match_in,
            "start_index": self.start_index,
            "end_index": self.end_index,
        }


def find_occurrences(text: str, query: str) -> list[tuple[int, int]]:
    """Non-overlapping [start, end) spans of ``query`` in ``text``."""
    if not query:
        raise ValueError("query must be non-empty")
    spans = []
    start = text.find(query)
    while start != -1:
        end = start + len(query)
        spans.append((start, end))
        start = text.find(query, end)
    return spans


def match_flat(
    flat: Iterable[Sequence[str]],
    query: str,
    search_in_paths: bool = False,
    search_in_values: bool = True,
) -> list[Occurrence]:
    """All occurrences in a flattened document, in pair order (key before value)."""
    occurrences = []
    for path, value in flat:
        if search_in_paths:
            occurrences.extend(
                Occurrence(path, value, "key", start, end)
                for start, end in find_occurrences(path, query)
            )
        if search_in_values:
            occurrences.extend(
                Occurrence(path, value, "value", start, end)
                for start, end in find_occurrences(value, query)
            )
    return occurrences


def merge_occurrences(occurrences: Iterable[Occurrence]) -> list[dict[str, Any]]:
    """Group occurrences by (key, match_in), positions sorted by start."""
    groups: dict[tuple[str, str], dict[str, Any]] = {}
    for occ in occurrences:
        group = groups.setdefault(
            (occ.key, occ.match_in),
            {"key": occ.key, "value": occ.value, "match_in": occ.match_in, "positions": []},
        )
        group["positions"].append([occ.start_index, occ.end_index])
    for group in groups.values():
        group["positions"].sort(key=lambda position: position[0])
    return list(groups.values())


class SearchMatcher:
    """Runs paginated substring searches against a search index."""

    def __init__(self, search_store: Optional[SearchStore] = None) -> None:
        self._search_store = search_store or default_search_store

    async def search(
        self,
        search_index: str,
        query: str,
        search_in_paths: bool = False,
        search_in_values: bool = True,
        page: int = 1,
        page_size: int = 20,
        merge: bool = False,
    ) -> dict[str, Any]:
        if not query:
            raise ValueError("query must be non-empty")
        if not (search_in_paths or search_in_values):
            raise ValueError("at least one of search_in_paths or search_in_values must be set")
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be positive")

        candidates = await self._search_store.candidate_refs(
            search_index, query, search_in_paths, search_in_values
        )

        first = (page - 1) * page_size
        last = first + page_size
        total = 0
        results = []
        for batch_start in range(0, len(candidates), LOAD_BATCH_SIZE):
            batch = candidates[batch_start:batch_start + LOAD_BATCH_SIZE]
            documents = await self._search_store.load_documents(search_index, batch)
            for ref in batch:
                document = documents.get(ref)
                if document is None:
                    continue
                occurrences = match_flat(document.flat, query, search_in_paths, search_in_values)
                if not occurrences:
                    continue
                if first <= total < last:
                    matched = (
                        merge_occurrences(occurrences)
                        if merge
                        else [occ.to_dict() for occ in occurrences]
                    )
                    results.append({
                        "id": ref.doc_id,
                        "database": ref.source_db,
                        "collection": ref.source_coll,
                        "matched_keys": matched,
                    })
                total += 1

        logger.debug(
            "Search %r on %s: %d candidates, %d matched", query, search_index, len(candidates), total
        )
        return {
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size),
            "results": results,
        }


# Global singleton instance
search_matcher = SearchMatcher()


async def get_search_matcher() -> SearchMatcher:
    """FastAPI dependency for the search matcher."""
    return search_matcher

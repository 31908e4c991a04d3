"""Tests for substring matching and paginated search."""

import pytest
import pytest_asyncio

from flatindex.exceptions import IndexNotFound
from flatindex.services.flattener import flatten
from flatindex.services.search_matcher import (
    Occurrence,
    SearchMatcher,
    find_occurrences,
    match_flat,
    merge_occurrences,
)
from flatindex.services.search_store import DocumentRef

INDEX = "docs"


def doc(doc_id: str) -> DocumentRef:
    return DocumentRef("crm", "notes", doc_id)


# =============================================================================
# find_occurrences
# =============================================================================


class TestFindOccurrences:

    def test_prefix_match(self):
        assert find_occurrences("abcdefg", "abc") == [(0, 3)]

    def test_multiple_matches(self):
        assert find_occurrences("Contains abc and more abc text", "abc") == [(9, 12), (22, 25)]

    def test_case_sensitive(self):
        assert find_occurrences("ABC abc", "abc") == [(4, 7)]
        assert find_occurrences("ABC", "abc") == []

    def test_non_overlapping(self):
        assert find_occurrences("aaaa", "aa") == [(0, 2), (2, 4)]
        assert find_occurrences("aaa", "aa") == [(0, 2)]

    def test_codepoint_offsets(self):
        assert find_occurrences("héllo wörld", "wö") == [(6, 8)]

    def test_whole_string(self):
        assert find_occurrences("abc", "abc") == [(0, 3)]

    def test_empty_query_rejected(self):
        with pytest.raises(ValueError):
            find_occurrences("abc", "")


# =============================================================================
# match_flat / merge_occurrences
# =============================================================================


class TestMatchFlat:

    FLAT = [["name", "abc"], ["abc_tag", "xabcx"], ["other", "none"]]

    def test_values_only_by_default(self):
        occurrences = match_flat(self.FLAT, "abc")
        assert [(o.key, o.match_in, o.start_index, o.end_index) for o in occurrences] == [
            ("name", "value", 0, 3),
            ("abc_tag", "value", 1, 4),
        ]

    def test_paths_only(self):
        occurrences = match_flat(self.FLAT, "abc", search_in_paths=True, search_in_values=False)
        assert [(o.key, o.match_in) for o in occurrences] == [("abc_tag", "key")]
        assert occurrences[0].value == "xabcx"

    def test_key_match_listed_before_value_match(self):
        occurrences = match_flat(self.FLAT, "abc", search_in_paths=True, search_in_values=True)
        assert [(o.key, o.match_in) for o in occurrences] == [
            ("name", "value"),
            ("abc_tag", "key"),
            ("abc_tag", "value"),
        ]

    def test_occurrence_wire_shape(self):
        occurrence = Occurrence("name", "abc", "value", 0, 3)
        assert occurrence.to_dict() == {
            "key": "name",
            "value": "abc",
            "match_in": "value",
            "start_index": 0,
            "end_index": 3,
        }


class TestMerge:

    def test_groups_by_key_and_target(self):
        occurrences = match_flat([["abab", "ab ab"]], "ab", search_in_paths=True)
        merged = merge_occurrences(occurrences)
        assert merged == [
            {"key": "abab", "value": "ab ab", "match_in": "key", "positions": [[0, 2], [2, 4]]},
            {"key": "abab", "value": "ab ab", "match_in": "value", "positions": [[0, 2], [3, 5]]},
        ]

    def test_positions_sorted(self):
        occurrences = [
            Occurrence("k", "v", "value", 5, 6),
            Occurrence("k", "v", "value", 1, 2),
        ]
        assert merge_occurrences(occurrences)[0]["positions"] == [[1, 2], [5, 6]]


# =============================================================================
# SearchMatcher
# =============================================================================


@pytest_asyncio.fixture
async def matcher(search_store):
    await search_store.create_index(INDEX)
    return SearchMatcher(search_store)


class TestSearch:

    @pytest.mark.asyncio
    async def test_search_returns_positions(self, search_store, matcher):
        await search_store.put_document(INDEX, doc("d1"), flatten({"title": "Contains abc and more abc text"}), 1)
        await search_store.put_document(INDEX, doc("d2"), flatten({"title": "nothing here"}), 1)

        result = await matcher.search(INDEX, "abc")

        assert result["total"] == 1
        assert result["total_pages"] == 1
        assert result["results"] == [
            {
                "id": "d1",
                "database": "crm",
                "collection": "notes",
                "matched_keys": [
                    {"key": "title", "value": "Contains abc and more abc text", "match_in": "value", "start_index": 9, "end_index": 12},
                    {"key": "title", "value": "Contains abc and more abc text", "match_in": "value", "start_index": 22, "end_index": 25},
                ],
            }
        ]

    @pytest.mark.asyncio
    async def test_case_mismatch_is_not_a_hit(self, search_store, matcher):
        # The LIKE prefilter matches ASCII case-insensitively on SQLite
        await search_store.put_document(INDEX, doc("d1"), flatten({"title": "ABC"}), 1)

        result = await matcher.search(INDEX, "abc")

        assert result["total"] == 0
        assert result["total_pages"] == 0
        assert result["results"] == []

    @pytest.mark.asyncio
    async def test_merged_results(self, search_store, matcher):
        await search_store.put_document(INDEX, doc("d1"), flatten({"t": "abc abc"}), 1)

        result = await matcher.search(INDEX, "abc", merge=True)

        assert result["results"][0]["matched_keys"] == [
            {"key": "t", "value": "abc abc", "match_in": "value", "positions": [[0, 3], [4, 7]]}
        ]

    @pytest.mark.asyncio
    async def test_paths_search(self, search_store, matcher):
        await search_store.put_document(INDEX, doc("d1"), flatten({"profile": {"email": "x"}}), 1)

        result = await matcher.search(INDEX, "email", search_in_paths=True, search_in_values=False)

        assert result["results"][0]["matched_keys"][0]["key"] == "profile.email"
        assert result["results"][0]["matched_keys"][0]["match_in"] == "key"
        assert result["results"][0]["matched_keys"][0]["start_index"] == 8

    @pytest.mark.asyncio
    async def test_pagination_by_doc_id(self, search_store, matcher):
        for doc_id in ("e", "c", "a", "d", "b"):
            await search_store.put_document(INDEX, doc(doc_id), flatten({"v": "hit"}), 1)

        first = await matcher.search(INDEX, "hit", page=1, page_size=2)
        last = await matcher.search(INDEX, "hit", page=3, page_size=2)
        beyond = await matcher.search(INDEX, "hit", page=4, page_size=2)

        assert first["total"] == 5
        assert first["total_pages"] == 3
        assert [hit["id"] for hit in first["results"]] == ["a", "b"]
        assert [hit["id"] for hit in last["results"]] == ["e"]
        assert beyond["results"] == []
        assert beyond["total"] == 5

    @pytest.mark.asyncio
    async def test_same_doc_id_in_two_sources(self, search_store, matcher):
        await search_store.put_document(INDEX, DocumentRef("crm", "orders", "1"), flatten({"v": "hit"}), 1)
        await search_store.put_document(INDEX, DocumentRef("crm", "customers", "1"), flatten({"v": "hit"}), 4)

        result = await matcher.search(INDEX, "hit")

        assert result["total"] == 2
        assert [(hit["id"], hit["collection"]) for hit in result["results"]] == [
            ("1", "customers"),
            ("1", "orders"),
        ]

    @pytest.mark.asyncio
    async def test_deleted_documents_not_returned(self, search_store, matcher):
        await search_store.put_document(INDEX, doc("d1"), flatten({"v": "hit"}), 1)
        await search_store.delete_document(INDEX, doc("d1"), 2)

        assert (await matcher.search(INDEX, "hit"))["total"] == 0

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, matcher):
        with pytest.raises(ValueError):
            await matcher.search(INDEX, "")
        with pytest.raises(ValueError):
            await matcher.search(INDEX, "x", search_in_paths=False, search_in_values=False)
        with pytest.raises(ValueError):
            await matcher.search(INDEX, "x", page=0)

    @pytest.mark.asyncio
    async def test_missing_index(self, search_store):
        with pytest.raises(IndexNotFound):
            await SearchMatcher(search_store).search("missing", "x")

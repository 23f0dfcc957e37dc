"""Tests for jane.index.search: wildcard listing, term search, excerpts."""

from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest

from jane.documents.models import Category
from jane.index.errors import SearchQueryError
from jane.index.search import (
    SearchFilters,
    extract_matches,
    highlight_terms,
    is_wildcard,
    split_terms,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from jane.documents.models import Document
    from jane.index.storage import DocumentIndex


@pytest.fixture()
def corpus(index: DocumentIndex, make_doc: Callable[..., Document]) -> DocumentIndex:
    index.upsert(make_doc(Category.STDLIB, "js/array.md", "map filter reduce", title="Array Methods"))
    index.upsert(make_doc(Category.STDLIB, "py/list.md", "append extend", title="List Methods"))
    index.upsert(make_doc(Category.SPEC, "proj1/api.md", "GET POST users", title="API Spec"))
    return index


def _paths(results: list) -> list[str]:
    return [r.document.path for r in results]


class TestHelpers:
    @pytest.mark.parametrize("query", ["", "   ", "*", " * "])
    def test_wildcard(self, query: str) -> None:
        assert is_wildcard(query)

    def test_not_wildcard(self) -> None:
        assert not is_wildcard("**")
        assert not is_wildcard("map")

    def test_split_terms(self) -> None:
        assert split_terms("  Map\tFILTER  ") == ["map", "filter"]

    def test_highlight_case_insensitive(self) -> None:
        assert highlight_terms("Map and map", ["map"]) == "**Map** and **map**"

    def test_highlight_longest_first(self) -> None:
        assert highlight_terms("mapping map", ["map", "mapping"]) == "**mapping** **map**"

    def test_highlight_regex_literals(self) -> None:
        assert highlight_terms("a+b (c)", ["+", "(c)"]) == "a**+**b **(c)**"

    def test_extract_matches_order(self) -> None:
        matches = extract_matches(
            "intro\n  uses map here  \nmap again", "Map Guide", "All about map", ["map"]
        )
        assert matches == [
            "uses **map** here",
            "Title: **Map** Guide",
            "Description: All about **map**",
        ]


class TestWildcard:
    def test_lists_everything_by_title(self, corpus: DocumentIndex) -> None:
        results = corpus.search("*")
        assert [r.document.meta.title for r in results] == [
            "API Spec",
            "Array Methods",
            "List Methods",
        ]
        assert all(r.matches == [] for r in results)

    def test_empty_query_same_as_star(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("")) == _paths(corpus.search("*"))

    def test_wildcard_with_category(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("*", SearchFilters(category="spec"))) == ["proj1/api.md"]
        assert _paths(corpus.search("*", SearchFilters(category="stdlib"))) == [
            "js/array.md",
            "py/list.md",
        ]

    def test_empty_index(self, index: DocumentIndex) -> None:
        assert index.search("*") == []
        assert index.search("anything") == []


class TestTermSearch:
    def test_single_term(self, corpus: DocumentIndex) -> None:
        results = corpus.search("filter", SearchFilters(include_content=True))
        assert _paths(results) == ["js/array.md"]
        assert results[0].matches == ["map **filter** reduce"]

    def test_title_match_excerpt(self, corpus: DocumentIndex) -> None:
        results = corpus.search("array", SearchFilters(include_content=True))
        assert _paths(results) == ["js/array.md"]
        assert results[0].matches == ["Title: **Array** Methods"]

    def test_all_terms_required(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("map reduce")) == ["js/array.md"]
        assert corpus.search("map users") == []

    def test_terms_across_title_and_content(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("users api")) == ["proj1/api.md"]

    def test_terms_may_hit_different_fields(
        self, index: DocumentIndex, make_doc: Callable[..., Document]
    ) -> None:
        index.upsert(
            make_doc(
                Category.STDLIB,
                "js/a.md",
                "body text",
                title="Streams",
                description="async iteration",
                tags=["node"],
            )
        )
        assert _paths(index.search("body streams async node")) == ["js/a.md"]

    def test_case_insensitive(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("GET")) == _paths(corpus.search("get"))

    def test_methods_ordered_by_title(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("methods")) == ["js/array.md", "py/list.md"]

    def test_title_hits_first(self, index: DocumentIndex, make_doc: Callable[..., Document]) -> None:
        index.upsert(make_doc(Category.STDLIB, "a.md", "map", title="Zebra"))
        index.upsert(make_doc(Category.STDLIB, "b.md", "nothing", title="Map Guide"))
        index.upsert(make_doc(Category.STDLIB, "c.md", "map", title="Apple"))
        titles = [r.document.meta.title for r in index.search("map")]
        assert titles == ["Map Guide", "Apple", "Zebra"]

    def test_title_order_is_case_sensitive(
        self, index: DocumentIndex, make_doc: Callable[..., Document]
    ) -> None:
        index.upsert(make_doc(Category.STDLIB, "a.md", "x", title="beta"))
        index.upsert(make_doc(Category.STDLIB, "b.md", "x", title="Zeta"))
        assert [r.document.meta.title for r in index.search("*")] == ["Zeta", "beta"]

    def test_tag_only_match_has_no_excerpt(
        self, index: DocumentIndex, make_doc: Callable[..., Document]
    ) -> None:
        index.upsert(make_doc(Category.STDLIB, "js/a.md", "body", title="T", tags=["functional"]))
        results = index.search("functional", SearchFilters(include_content=True))
        assert _paths(results) == ["js/a.md"]
        assert results[0].matches == []


class TestFilters:
    def test_category(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("methods", SearchFilters(category=Category.SPEC))) == []
        assert _paths(corpus.search("e", SearchFilters(category="stdlib"))) == [
            "js/array.md",
            "py/list.md",
        ]

    def test_subcategory(self, corpus: DocumentIndex) -> None:
        assert _paths(corpus.search("methods", SearchFilters(subcategory="js"))) == [
            "js/array.md"
        ]

    def test_category_and_subcategory_compose(self, corpus: DocumentIndex) -> None:
        filters = SearchFilters(category="spec", subcategory="js")
        assert corpus.search("*", filters) == []

    def test_subcategory_is_whole_segment(
        self, index: DocumentIndex, make_doc: Callable[..., Document]
    ) -> None:
        index.upsert(make_doc(Category.SPEC, "project1/a.md", "x", title="A"))
        index.upsert(make_doc(Category.SPEC, "project10/b.md", "x", title="B"))
        assert _paths(index.search("*", SearchFilters(subcategory="project1"))) == [
            "project1/a.md"
        ]

    def test_subcategory_does_not_match_file_name(
        self, index: DocumentIndex, make_doc: Callable[..., Document]
    ) -> None:
        index.upsert(make_doc(Category.STDLIB, "js.md", "x"))
        assert index.search("*", SearchFilters(subcategory="js")) == []

    def test_invalid_category(self, corpus: DocumentIndex) -> None:
        with pytest.raises(SearchQueryError, match="Unknown category"):
            corpus.search("map", SearchFilters(category="blog"))


class TestContentSuppression:
    def test_content_omitted_by_default(self, corpus: DocumentIndex) -> None:
        results = corpus.search("filter")
        assert results[0].document.content == ""
        assert results[0].matches == []

    def test_same_order_either_way(self, corpus: DocumentIndex) -> None:
        without = _paths(corpus.search("e"))
        with_content = _paths(corpus.search("e", SearchFilters(include_content=True)))
        assert without == with_content
        assert len(without) == 3

    def test_content_included_on_request(self, corpus: DocumentIndex) -> None:
        results = corpus.search("users", SearchFilters(include_content=True))
        assert results[0].document.content == "GET POST users"


class TestLiteralMatching:
    @pytest.fixture()
    def specials(self, index: DocumentIndex, make_doc: Callable[..., Document]) -> DocumentIndex:
        index.upsert(make_doc(Category.STDLIB, "a.md", "100% done", title="Percent"))
        index.upsert(make_doc(Category.STDLIB, "b.md", "snake_case names", title="Underscore"))
        index.upsert(make_doc(Category.STDLIB, "c.md", 'say "hi"', title="Quote"))
        index.upsert(make_doc(Category.STDLIB, "d.md", "plain words", title="Plain"))
        return index

    def test_percent_is_literal(self, specials: DocumentIndex) -> None:
        assert _paths(specials.search("%")) == ["a.md"]

    def test_underscore_is_literal(self, specials: DocumentIndex) -> None:
        assert _paths(specials.search("_")) == ["b.md"]

    def test_double_quote(self, specials: DocumentIndex) -> None:
        assert _paths(specials.search('"hi"')) == ["c.md"]

    def test_fts_syntax_not_interpreted(self, specials: DocumentIndex) -> None:
        assert specials.search("title:plain") == []
        assert specials.search("plain OR nothing") == []
        assert specials.search("pla*") == []

    def test_sql_text_is_inert(self, specials: DocumentIndex) -> None:
        assert specials.search("'; DROP TABLE documents; --") == []
        assert len(specials.search("*")) == 4


class TestFailures:
    def test_missing_projection_raises(self, corpus: DocumentIndex) -> None:
        raw = sqlite3.connect(str(corpus.db_path))
        raw.execute("DROP TABLE documents_fts")
        raw.commit()
        raw.close()
        with pytest.raises(SearchQueryError):
            corpus.search("map")

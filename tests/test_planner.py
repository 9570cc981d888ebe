import pytest

from doc_query.errors import InvalidQueryError, UnknownIndexError
from doc_query.models import IndexDefinition
from doc_query.planner import QueryShape, choose_plan, explain, prefix_score
from doc_query.predicates import bound_fields
from doc_query.seed import default_indexes, seed_books


ATWOOD_AFTER_1980 = {"author": "Margaret Atwood", "published_year": {"$gt": 1980}}


def _index(spec, name=None) -> IndexDefinition:
    return IndexDefinition.from_key_spec(spec, name=name)


def test_compound_index_beats_title_index(indexed_store) -> None:
    plan = explain(QueryShape(predicate=ATWOOD_AFTER_1980), indexed_store)
    assert plan.describe() == "index-scan(author_1_published_year_1)"
    assert plan.stage == "IXSCAN"
    assert plan.score == 2
    assert plan.docs_examined == 1
    assert plan.n_returned == 1
    assert ("title_1", 0) in plan.candidates
    assert ("author_1_published_year_1", 2) in plan.candidates


def test_title_lookup_uses_title_index(indexed_store) -> None:
    plan = explain(QueryShape(predicate={"title": "Dune"}), indexed_store)
    assert plan.index_name == "title_1"
    assert plan.docs_examined == 1
    assert plan.n_returned == 1


def test_natural_hint_forces_full_scan(indexed_store) -> None:
    for hint in ("$natural", {"$natural": 1}):
        plan = explain(QueryShape(predicate={"title": "Dune"}, hint=hint), indexed_store)
        assert plan.describe() == "full-scan"
        assert plan.stage == "COLLSCAN"
        assert plan.docs_examined == 10
        assert plan.n_returned == 1
        assert "No index matches a prefix of the filter" not in plan.notes


def test_hint_by_name_or_key_spec(indexed_store) -> None:
    by_name = explain(QueryShape(predicate={"title": "Dune"}, hint="title_1"), indexed_store)
    by_keys = explain(QueryShape(predicate={"title": "Dune"}, hint={"title": 1}), indexed_store)
    assert by_name.index_name == by_keys.index_name == "title_1"


def test_hinted_index_without_bounds_examines_everything(indexed_store) -> None:
    plan = explain(
        QueryShape(predicate={"title": "Dune"}, hint="author_1_published_year_1"),
        indexed_store,
    )
    assert plan.access_path == "index-scan"
    assert plan.score == 0
    assert plan.docs_examined == 10
    assert plan.n_returned == 1


def test_unknown_hint_raises(indexed_store) -> None:
    with pytest.raises(UnknownIndexError):
        explain(QueryShape(predicate={}, hint="price_1"), indexed_store)
    with pytest.raises(UnknownIndexError):
        explain(QueryShape(predicate={}, hint={"price": -1}), indexed_store)


def test_no_matching_prefix_falls_back_to_full_scan(books) -> None:
    plan = choose_plan(QueryShape(predicate={"published_year": 2006}), default_indexes(), books)
    assert plan.access_path == "full-scan"
    assert plan.docs_examined == len(books)
    assert plan.n_returned == 1
    assert "No index matches a prefix of the filter" in plan.notes


def test_tie_goes_to_first_declared_index(books) -> None:
    indexes = [_index({"author": 1}), _index({"author": 1, "genre": 1})]
    plan = choose_plan(QueryShape(predicate={"author": "Andy Weir"}), indexes, books)
    assert plan.index_name == "author_1"
    assert plan.candidates == [("author_1", 1), ("author_1_genre_1", 1)]


def test_prefix_score_rules() -> None:
    compound = _index({"published_year": 1, "author": 1})
    range_then_equality = bound_fields({"published_year": {"$gt": 1980}, "author": "Margaret Atwood"})
    both_equal = bound_fields({"published_year": 1985, "author": "Margaret Atwood"})
    only_second = bound_fields({"author": "Margaret Atwood"})
    assert prefix_score(compound, range_then_equality) == 1
    assert prefix_score(compound, both_equal) == 2
    assert prefix_score(compound, only_second) == 0


def test_requires_sort(books) -> None:
    indexes = default_indexes()
    by_year = choose_plan(
        QueryShape(predicate={"author": "Margaret Atwood"}, sort={"published_year": -1}), indexes, books
    )
    by_price = choose_plan(
        QueryShape(predicate={"author": "Margaret Atwood"}, sort={"price": 1}), indexes, books
    )
    full_scan = choose_plan(QueryShape(predicate={}, sort={"price": 1}), indexes, books)
    assert not by_year.requires_sort
    assert by_price.requires_sort
    assert full_scan.requires_sort
    assert not choose_plan(QueryShape(predicate={}), indexes, books).requires_sort


def test_planning_over_an_empty_collection() -> None:
    plan = choose_plan(QueryShape(predicate={"title": "Dune"}), default_indexes())
    assert plan.index_name == "title_1"
    assert plan.docs_examined == 0
    assert plan.n_returned == 0


def test_store_explain_records_execution_time(indexed_store) -> None:
    plan = indexed_store.explain(QueryShape(predicate=ATWOOD_AFTER_1980))
    assert plan.execution_time_ms is not None and plan.execution_time_ms >= 0
    assert explain(QueryShape(predicate=ATWOOD_AFTER_1980), indexed_store).execution_time_ms is None


def test_choose_plan_does_not_mutate_documents() -> None:
    books = seed_books()
    choose_plan(QueryShape(predicate=ATWOOD_AFTER_1980), default_indexes(), books)
    assert books == seed_books()


def test_hint_key_spec_must_match_index_key_order(indexed_store) -> None:
    query = QueryShape(predicate=ATWOOD_AFTER_1980, hint={"published_year": 1, "author": 1})
    with pytest.raises(UnknownIndexError):
        explain(query, indexed_store)
    ordered = QueryShape(predicate=ATWOOD_AFTER_1980, hint={"author": 1, "published_year": 1})
    assert explain(ordered, indexed_store).index_name == "author_1_published_year_1"


def test_malformed_hints_are_invalid_queries(indexed_store) -> None:
    for hint in ({"title": "text"}, {"title": 2}, 5):
        with pytest.raises(InvalidQueryError):
            explain(QueryShape(predicate={}, hint=hint), indexed_store)


def test_malformed_index_key_specs_are_invalid_queries() -> None:
    for raw in (5, "title", [("title",)], {}, {"title": True}):
        with pytest.raises(InvalidQueryError):
            IndexDefinition.from_key_spec(raw)

import pytest

from doc_query.errors import InvalidQueryError
from doc_query.models import PageSpec, Projection, SortKey
from doc_query.shaping import find, paginate, project, sort_documents


def test_projection_include_with_id_excluded(books) -> None:
    shaped = project({"_id": 1, **books[0]}, {"_id": 0, "title": 1, "author": 1, "price": 1})
    assert shaped == {"title": "Dune", "author": "Frank Herbert", "price": 15.99}


def test_projection_keeps_id_by_default() -> None:
    shaped = project({"_id": "a1", "title": "Dune", "pages": 412}, {"title": 1})
    assert shaped == {"_id": "a1", "title": "Dune"}


def test_projection_exclusion_mode() -> None:
    shaped = project({"_id": "a1", "title": "Dune", "publisher": "Chilton"}, {"publisher": 0})
    assert shaped == {"_id": "a1", "title": "Dune"}


def test_projection_only_id_excluded_keeps_other_fields() -> None:
    shaped = project({"_id": "a1", "title": "Dune"}, {"_id": 0})
    assert shaped == {"title": "Dune"}


def test_projection_one_level_of_nesting() -> None:
    document = {"_id": 1, "meta": {"isbn": "123", "lang": "en"}, "title": "Dune"}
    assert project(document, {"meta.isbn": 1}) == {"_id": 1, "meta": {"isbn": "123"}}
    assert project(document, {"meta.lang": 0}) == {"_id": 1, "meta": {"isbn": "123"}, "title": "Dune"}


def test_projection_skips_missing_fields() -> None:
    assert project({"_id": 1, "title": "Dune"}, {"rating": 1}) == {"_id": 1}


def test_projection_mixing_include_and_exclude_fails() -> None:
    with pytest.raises(InvalidQueryError):
        Projection.from_mapping({"title": 1, "price": 0})


def test_projection_does_not_mutate_input() -> None:
    document = {"_id": 1, "meta": {"isbn": "123"}}
    shaped = project(document, {"meta": 1})
    shaped["meta"]["isbn"] = "changed"
    assert document["meta"]["isbn"] == "123"


def test_sort_by_price_ascending_and_descending(books) -> None:
    ascending = sort_documents(books, {"price": 1})
    descending = sort_documents(books, {"price": -1})
    assert ascending[0]["title"] == "The Road"
    assert ascending[-1]["title"] == "Sapiens: A Brief History of Humankind"
    assert [doc["title"] for doc in descending] == [doc["title"] for doc in reversed(ascending)]


def test_sort_is_stable_in_both_directions() -> None:
    documents = [
        {"n": 1, "k": "b"},
        {"n": 2, "k": "a"},
        {"n": 3, "k": "b"},
        {"n": 4, "k": "a"},
        {"n": 5, "k": "b"},
    ]
    ascending = sort_documents(documents, {"k": 1})
    descending = sort_documents(documents, {"k": -1})
    assert [doc["n"] for doc in ascending] == [2, 4, 1, 3, 5]
    assert [doc["n"] for doc in descending] == [1, 3, 5, 2, 4]


def test_multi_key_sort(books) -> None:
    ordered = sort_documents(books, [("genre", 1), ("price", -1)])
    fantasy = [doc["title"] for doc in ordered if doc["genre"] == "Fantasy"]
    assert ordered[0]["genre"] == "Dystopian"
    assert fantasy == ["Circe", "Good Omens", "The Name of the Wind"]


def test_missing_values_sort_first_in_both_directions() -> None:
    documents = [{"n": 1, "v": 5}, {"n": 2}, {"n": 3, "v": 1}, {"n": 4, "v": None}]
    ascending = sort_documents(documents, [SortKey("v", 1)])
    descending = sort_documents(documents, [SortKey("v", -1)])
    assert [doc["n"] for doc in ascending] == [2, 4, 3, 1]
    assert [doc["n"] for doc in descending] == [2, 1, 3, 4]


def test_mixed_types_follow_type_order() -> None:
    documents = [{"v": True}, {"v": "text"}, {"v": 3}, {"v": None}, {"v": {"a": 1}}, {"v": [1]}]
    ordered = sort_documents(documents, {"v": 1})
    assert [doc["v"] for doc in ordered] == [None, 3, "text", {"a": 1}, [1], True]


def test_invalid_sort_direction_fails() -> None:
    with pytest.raises(InvalidQueryError):
        sort_documents([], {"price": 2})


def test_paginate_pages_of_five(books) -> None:
    first = paginate(books, PageSpec(skip=0, limit=5))
    second = paginate(books, PageSpec(skip=5, limit=5))
    third = paginate(books, PageSpec(skip=10, limit=5))
    assert [doc["title"] for doc in first + second] == [doc["title"] for doc in books]
    assert third == []


def test_paginate_out_of_range_never_errors(books) -> None:
    assert paginate(books, PageSpec(skip=50)) == []
    assert len(paginate(books, PageSpec(skip=8, limit=50))) == 2
    assert paginate(books, PageSpec(limit=0)) == []


def test_pagination_law(books) -> None:
    ordered = sort_documents(books, {"published_year": 1})
    for skip in range(0, len(ordered) + 3):
        head = paginate(ordered, PageSpec(skip=0, limit=skip))
        tail = paginate(ordered, PageSpec(skip=skip, limit=None))
        assert head + tail == ordered


def test_page_spec_rejects_negative_values() -> None:
    with pytest.raises(InvalidQueryError):
        PageSpec(skip=-1)
    with pytest.raises(InvalidQueryError):
        PageSpec(limit=-5)


def test_find_applies_filter_sort_page_and_projection(books) -> None:
    results = find(
        books,
        {"in_stock": True},
        projection={"_id": 0, "title": 1, "price": 1},
        sort={"price": 1},
        page=PageSpec(skip=1, limit=2),
    )
    assert results == [
        {"title": "Neuromancer", "price": 12.75},
        {"title": "The Martian", "price": 12.99},
    ]


def test_sort_spec_must_be_a_mapping_or_pairs() -> None:
    for raw in (5, "price", [("price", 1, 2)]):
        with pytest.raises(InvalidQueryError):
            sort_documents([{"price": 1}], raw)

import json

import pytest

from doc_query.runner import run_cli


@pytest.fixture
def data_file(tmp_path, capsys):
    path = str(tmp_path / "books.json")
    assert run_cli(["--data", path, "seed", "--with-indexes"]) == 0
    capsys.readouterr()
    return path


def _json_output(capsys):
    return json.loads(capsys.readouterr().out)


def test_seed_reports_inserted_books(tmp_path, capsys) -> None:
    assert run_cli(["--data", str(tmp_path / "books.json"), "seed"]) == 0
    out = capsys.readouterr().out
    assert "10 books were successfully inserted into the database" in out
    assert '1. "Dune" by Frank Herbert (1965), Price: $15.99' in out
    assert out.rstrip().endswith("Found 10 books")


def test_query_with_projection(data_file, capsys) -> None:
    argv = ["--data", data_file, "--json", "query", '{"genre": "Fantasy"}', "--projection", '{"_id": 0, "title": 1}']
    assert run_cli(argv) == 0
    assert _json_output(capsys) == [
        {"title": "The Name of the Wind"},
        {"title": "Good Omens"},
        {"title": "Circe"},
    ]


def test_query_second_page(data_file, capsys) -> None:
    argv = ["--data", data_file, "--json", "query", "--sort", '{"price": 1}', "--page", "2", "--page-size", "5"]
    assert run_cli(argv) == 0
    prices = [doc["price"] for doc in _json_output(capsys)]
    assert prices == [13.5, 14.25, 15.99, 16.5, 18.99]


def test_query_rejects_page_zero(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "query", "--page", "0"]) == 1
    assert "InvalidQueryError" in capsys.readouterr().err


def test_unknown_operator_exits_with_error(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "query", '{"title": {"$regex": "^D"}}']) == 1
    err = capsys.readouterr().err
    assert err.startswith("InvalidQueryError:")
    assert "$regex" in err


def test_invalid_json_argument(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "query", "{not json"]) == 2
    assert "Invalid JSON argument" in capsys.readouterr().err


def test_aggregate_preset(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "--json", "aggregate", "--preset", "books_by_decade"]) == 0
    decades = [row["decade"] for row in _json_output(capsys)]
    assert decades == ["1960s", "1980s", "1990s", "2000s", "2010s"]


def test_aggregate_inline_pipeline(data_file, capsys) -> None:
    pipeline = '[{"$match": {"genre": "Dystopian"}}, {"$project": {"title": 1, "_id": 0}}]'
    assert run_cli(["--data", data_file, "--json", "aggregate", pipeline]) == 0
    assert _json_output(capsys) == [{"title": "The Handmaid's Tale"}]


def test_aggregate_needs_a_pipeline(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "aggregate"]) == 1
    assert "InvalidQueryError" in capsys.readouterr().err


def test_update_and_delete_persist(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "update", '{"title": "Dune"}', '{"$set": {"price": 17.99}}']) == 0
    assert "Matched 1 document(s), modified 1 document(s)" in capsys.readouterr().out

    assert run_cli(["--data", data_file, "delete", '{"genre": "Fantasy"}', "--one"]) == 0
    assert "Deleted 1 document(s)" in capsys.readouterr().out

    assert run_cli(["--data", data_file, "--json", "query", '{"title": "Dune"}']) == 0
    assert _json_output(capsys)[0]["price"] == 17.99
    assert run_cli(["--data", data_file, "--json", "query", '{"genre": "Fantasy"}']) == 0
    assert len(_json_output(capsys)) == 2


def test_index_list_and_explain(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "index", "list"]) == 0
    out = capsys.readouterr().out
    assert '2. Name: title_1, Key: {"title": 1}' in out

    argv = [
        "--data", data_file, "--json", "index", "explain",
        '{"author": "Margaret Atwood", "published_year": {"$gt": 1980}}',
    ]
    assert run_cli(argv) == 0
    plan = _json_output(capsys)
    assert plan["access_path"] == "index-scan(author_1_published_year_1)"
    assert plan["docs_examined"] == 1
    assert plan["n_returned"] == 1


def test_index_explain_with_natural_hint(data_file, capsys) -> None:
    argv = ["--data", data_file, "index", "explain", '{"title": "Dune"}', "--hint", "$natural"]
    assert run_cli(argv) == 0
    out = capsys.readouterr().out
    assert "Access path: full-scan" in out
    assert "documents examined: 10" in out


def test_index_explain_unknown_hint(data_file, capsys) -> None:
    argv = ["--data", data_file, "index", "explain", "{}", "--hint", "price_1"]
    assert run_cli(argv) == 1
    assert capsys.readouterr().err.startswith("UnknownIndexError:")


def test_index_create_and_drop(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "index", "create", '{"genre": 1}', "--name", "by_genre"]) == 0
    assert "Index by_genre created" in capsys.readouterr().out
    assert run_cli(["--data", data_file, "index", "drop", "by_genre"]) == 0
    assert run_cli(["--data", data_file, "--json", "index", "drop", "--all"]) == 0
    capsys.readouterr()
    assert run_cli(["--data", data_file, "--json", "index", "list"]) == 0
    assert _json_output(capsys) == [{"name": "_id_", "key": {"_id": 1}}]


def test_index_drop_needs_a_name(data_file) -> None:
    with pytest.raises(SystemExit):
        run_cli(["--data", data_file, "index", "drop"])


def test_division_by_zero_exits_with_evaluation_error(data_file, capsys) -> None:
    pipeline = '[{"$project": {"ratio": {"$divide": ["$price", 0]}}}]'
    assert run_cli(["--data", data_file, "aggregate", pipeline]) == 1
    assert capsys.readouterr().err.startswith("EvaluationError:")


def test_round_with_many_digits_through_the_cli(data_file, capsys) -> None:
    pipeline = '[{"$match": {"title": "Dune"}}, {"$project": {"p": {"$round": ["$price", 30]}, "_id": 0}}]'
    assert run_cli(["--data", data_file, "--json", "aggregate", pipeline]) == 0
    assert _json_output(capsys) == [{"p": 15.99}]


def test_malformed_index_key_exits_with_invalid_query(data_file, capsys) -> None:
    assert run_cli(["--data", data_file, "index", "create", "5"]) == 1
    assert capsys.readouterr().err.startswith("InvalidQueryError:")


def test_malformed_hint_direction_exits_with_invalid_query(data_file, capsys) -> None:
    argv = ["--data", data_file, "index", "explain", "{}", "--hint", '{"title": "text"}']
    assert run_cli(argv) == 1
    assert capsys.readouterr().err.startswith("InvalidQueryError:")


def test_corrupt_data_file_is_not_reported_as_bad_argument(tmp_path, capsys) -> None:
    path = tmp_path / "books.json"
    path.write_text("{truncated", encoding="utf-8")
    assert run_cli(["--data", str(path), "query"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("DataFileError:")
    assert "Invalid JSON argument" not in err

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from .aggregate import run_pipeline
from .config import DEFAULT_PAGE_SIZE, LOG_FORMAT, resolve_data_path, resolve_log_level
from .errors import DocQueryError, InvalidQueryError
from .models import PageSpec
from .planner import QueryShape
from .reporting import (
    format_documents,
    format_indexes,
    format_plan,
    format_update,
    index_to_dict,
    plan_to_dict,
    to_json,
)
from .seed import default_indexes, default_pipelines, seed_store
from .store import JsonFileStore

logger = logging.getLogger(__name__)


def _parse_json(raw: Optional[str], default: Any = None) -> Any:
    if raw is None:
        return default
    return json.loads(raw)


def _parse_hint(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    if raw.lstrip().startswith("{"):
        return json.loads(raw)
    return raw


def _page_from_args(args: argparse.Namespace) -> Optional[PageSpec]:
    if args.page is not None:
        if args.page < 1:
            raise InvalidQueryError(f"page must be 1 or greater, got {args.page}", "page")
        return PageSpec(skip=(args.page - 1) * args.page_size, limit=args.page_size)
    if args.skip or args.limit is not None:
        return PageSpec(skip=args.skip, limit=args.limit)
    return None


def _cmd_seed(store: JsonFileStore, args: argparse.Namespace) -> None:
    inserted = seed_store(store)
    if args.with_indexes:
        for index in default_indexes():
            store.create_index(index.keys, name=index.name)
    if args.json:
        print(to_json({"inserted": inserted, "documents": store.fetch_all()}))
        return
    print(f"{inserted} books were successfully inserted into the database")
    print(format_documents(store.find(), label="books"))


def _cmd_query(store: JsonFileStore, args: argparse.Namespace) -> None:
    results = store.find(
        _parse_json(args.filter, {}),
        projection=_parse_json(args.projection),
        sort=_parse_json(args.sort),
        page=_page_from_args(args),
    )
    if args.json:
        print(to_json(results))
    else:
        print(format_documents(results))


def _cmd_aggregate(store: JsonFileStore, args: argparse.Namespace) -> None:
    if args.preset:
        pipeline = default_pipelines()[args.preset]
    elif args.pipeline:
        pipeline = _parse_json(args.pipeline)
    else:
        raise InvalidQueryError("aggregate needs a pipeline JSON or --preset", "pipeline")
    results = run_pipeline(store.fetch_all(), pipeline)
    if args.json:
        print(to_json(results))
    else:
        print(format_documents(results, label="results"))


def _cmd_update(store: JsonFileStore, args: argparse.Namespace) -> None:
    result = store.update_where(
        _parse_json(args.filter), _parse_json(args.setters), multi=not args.one
    )
    if args.json:
        print(to_json({"matched": result.matched, "modified": result.modified}))
    else:
        print(format_update(result))


def _cmd_delete(store: JsonFileStore, args: argparse.Namespace) -> None:
    deleted = store.delete_where(_parse_json(args.filter), multi=not args.one)
    if args.json:
        print(to_json({"deleted": deleted}))
    else:
        print(f"Deleted {deleted} document(s)")


def _cmd_index(store: JsonFileStore, args: argparse.Namespace) -> None:
    if args.index_command == "create":
        name = store.create_index(_parse_json(args.key), name=args.name)
        print(to_json({"created": name}) if args.json else f"Index {name} created")
    elif args.index_command == "list":
        indexes = store.fetch_indexes()
        if args.json:
            print(to_json([index_to_dict(index) for index in indexes]))
        else:
            print(format_indexes(indexes))
    elif args.index_command == "drop":
        if args.all:
            dropped = store.drop_indexes()
            print(to_json({"dropped": dropped}) if args.json else f"Dropped {dropped} index(es)")
        else:
            store.drop_index(args.name)
            print(to_json({"dropped": args.name}) if args.json else f"Index {args.name} dropped")
    elif args.index_command == "explain":
        query = QueryShape(
            predicate=_parse_json(args.filter, {}),
            sort=_parse_json(args.sort),
            hint=_parse_hint(args.hint),
        )
        plan = store.explain(query)
        print(to_json(plan_to_dict(plan)) if args.json else format_plan(plan))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doc-query",
        description="Query, aggregate and explain over a book document collection.",
    )
    parser.add_argument(
        "--data",
        default=None,
        help="JSON data file (default: $DOC_QUERY_DATA or books.json)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit JSON instead of a formatted text report.",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)
    commands = parser.add_subparsers(dest="command", required=True)

    seed = commands.add_parser("seed", help="Drop the collection and insert the seed books")
    seed.add_argument("--with-indexes", action="store_true", help="Also create the default indexes")

    query = commands.add_parser("query", help="Find documents matching a filter")
    query.add_argument("filter", nargs="?", default=None, help='Filter JSON, e.g. \'{"genre": "Fantasy"}\'')
    query.add_argument("--projection", default=None)
    query.add_argument("--sort", default=None, help='Sort JSON, e.g. \'{"price": -1}\'')
    query.add_argument("--skip", type=int, default=0)
    query.add_argument("--limit", type=int, default=None)
    query.add_argument("--page", type=int, default=None, help="1-based page number")
    query.add_argument("--page-size", type=int, default=DEFAULT_PAGE_SIZE)

    aggregate = commands.add_parser("aggregate", help="Run an aggregation pipeline")
    aggregate.add_argument("pipeline", nargs="?", default=None, help="Pipeline JSON (a list of stages)")
    aggregate.add_argument("--preset", choices=sorted(default_pipelines()), default=None)

    update = commands.add_parser("update", help="Set fields on matching documents")
    update.add_argument("filter")
    update.add_argument("setters", help='Setter JSON, e.g. \'{"$set": {"price": 17.99}}\'')
    update.add_argument("--one", action="store_true", help="Update only the first match")

    delete = commands.add_parser("delete", help="Delete matching documents")
    delete.add_argument("filter")
    delete.add_argument("--one", action="store_true", help="Delete only the first match")

    index = commands.add_parser("index", help="Manage and explain indexes")
    index_commands = index.add_subparsers(dest="index_command", required=True)
    create = index_commands.add_parser("create")
    create.add_argument("key", help='Key JSON, e.g. \'{"author": 1, "published_year": 1}\'')
    create.add_argument("--name", default=None)
    index_commands.add_parser("list")
    drop = index_commands.add_parser("drop")
    drop.add_argument("name", nargs="?", default=None)
    drop.add_argument("--all", action="store_true", help="Drop every index except _id_")
    explain = index_commands.add_parser("explain")
    explain.add_argument("filter", nargs="?", default=None)
    explain.add_argument("--sort", default=None)
    explain.add_argument("--hint", default=None, help="Index name, key JSON or $natural")
    return parser


_COMMANDS = {
    "seed": _cmd_seed,
    "query": _cmd_query,
    "aggregate": _cmd_aggregate,
    "update": _cmd_update,
    "delete": _cmd_delete,
    "index": _cmd_index,
}


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "index" and args.index_command == "drop" and not (args.all or args.name):
        parser.error("index drop: give an index name or --all")

    logging.basicConfig(level=resolve_log_level(args.verbose), format=LOG_FORMAT)
    data_path = resolve_data_path(args.data)
    logger.debug("using data file %s", data_path)

    try:
        store = JsonFileStore(data_path)
        _COMMANDS[args.command](store, args)
    except DocQueryError as exc:
        print(f"{exc.kind}: {exc}", file=sys.stderr)
        return 1
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON argument: {exc}", file=sys.stderr)
        return 2
    return 0


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()

"""
doc_query package.

In-memory evaluation of filter predicates, projections, sort/pagination and
aggregation pipelines over schema-less documents, plus an index advisor that
reports which access path a query would take.
"""

from .config import ID_FIELD, ID_INDEX_NAME, NATURAL_HINT, DEFAULT_PAGE_SIZE, ROUNDING_MODE
from .documents import MISSING, get_path, values_equal
from .errors import (
    DataFileError,
    DocQueryError,
    DuplicateKeyError,
    EvaluationError,
    InvalidQueryError,
    UnknownIndexError,
)
from .models import ExecutionPlan, IndexDefinition, PageSpec, Projection, SortKey, UpdateResult, parse_sort
from .predicates import And, Comparison, bound_fields, matches, parse_predicate
from .shaping import find, paginate, project, sort_documents
from .expressions import evaluate, parse_expression, round_value
from .aggregate import (
    Accumulator,
    AddFieldsStage,
    GroupStage,
    LimitStage,
    MatchStage,
    ProjectStage,
    SkipStage,
    SortStage,
    parse_pipeline,
    run_pipeline,
)
from .planner import QueryShape, choose_plan, explain, prefix_score
from .store import DocumentStore, InMemoryDocumentStore, JsonFileStore
from .seed import SEED_BOOKS, default_indexes, default_pipelines, seed_books, seed_store

__all__ = [
    "ID_FIELD",
    "ID_INDEX_NAME",
    "NATURAL_HINT",
    "DEFAULT_PAGE_SIZE",
    "ROUNDING_MODE",
    "MISSING",
    "get_path",
    "values_equal",
    "DataFileError",
    "DocQueryError",
    "DuplicateKeyError",
    "EvaluationError",
    "InvalidQueryError",
    "UnknownIndexError",
    "ExecutionPlan",
    "IndexDefinition",
    "PageSpec",
    "Projection",
    "SortKey",
    "UpdateResult",
    "parse_sort",
    "And",
    "Comparison",
    "bound_fields",
    "matches",
    "parse_predicate",
    "find",
    "paginate",
    "project",
    "sort_documents",
    "evaluate",
    "parse_expression",
    "round_value",
    "Accumulator",
    "AddFieldsStage",
    "GroupStage",
    "LimitStage",
    "MatchStage",
    "ProjectStage",
    "SkipStage",
    "SortStage",
    "parse_pipeline",
    "run_pipeline",
    "QueryShape",
    "choose_plan",
    "explain",
    "prefix_score",
    "DocumentStore",
    "InMemoryDocumentStore",
    "JsonFileStore",
    "SEED_BOOKS",
    "default_indexes",
    "default_pipelines",
    "seed_books",
    "seed_store",
]

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal as TypingLiteral, Mapping, Optional, Sequence, Tuple, Union

from .config import ID_FIELD
from .documents import MISSING, Document, freeze, is_number, set_path, sort_key, unset_path
from .errors import InvalidQueryError
from .expressions import (
    ArrayExpr,
    Expression,
    Literal,
    ObjectExpr,
    evaluate,
    parse_expression,
)
from .models import PageSpec, SortSpec, parse_sort
from .predicates import Predicate, matches, parse_predicate
from .shaping import paginate, sort_documents

logger = logging.getLogger(__name__)


AccumulatorOp = TypingLiteral["sum", "avg", "count", "push", "min", "max"]
_ACCUMULATORS = {"$sum", "$avg", "$count", "$push", "$min", "$max"}


@dataclass(frozen=True)
class Accumulator:
    op: AccumulatorOp
    expression: Optional[Expression] = None


@dataclass
class GroupStage:
    """Partition rows by ``key`` and reduce each partition.

    Output order follows first encounter of each key but is not a contract;
    add a SortStage when order matters.
    """

    key: Expression
    accumulators: List[Tuple[str, Accumulator]] = field(default_factory=list)
    # Emit one group for a constant key even when the input is empty.
    keep_empty: bool = False


@dataclass
class ProjectStage:
    computed: List[Tuple[str, Expression]] = field(default_factory=list)
    excluded: List[str] = field(default_factory=list)
    exclude_id: bool = False


@dataclass
class AddFieldsStage:
    fields: List[Tuple[str, Expression]]


@dataclass
class SortStage:
    spec: SortSpec


@dataclass
class LimitStage:
    n: int


@dataclass
class SkipStage:
    n: int


@dataclass
class MatchStage:
    predicate: Predicate


Stage = Union[GroupStage, ProjectStage, AddFieldsStage, SortStage, LimitStage, SkipStage, MatchStage]
_STAGE_TYPES = (GroupStage, ProjectStage, AddFieldsStage, SortStage, LimitStage, SkipStage, MatchStage)


# ---------------------------------------------------------------------------
# Parsing Mongo-style stage documents
# ---------------------------------------------------------------------------

def _check_output_name(stage: str, name: str) -> None:
    if not name or name.startswith("$"):
        raise InvalidQueryError(f"{stage}: invalid output field name {name!r}", name)


def _parse_accumulator(name: str, raw: Any) -> Accumulator:
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise InvalidQueryError(
            f"$group: field {name!r} must be a single accumulator such as {{'$sum': 1}}", name
        )
    op, argument = next(iter(raw.items()))
    if op not in _ACCUMULATORS:
        raise InvalidQueryError(f"$group: unknown accumulator {op!r} for field {name!r}", op)
    if op == "$count":
        if argument not in ({}, None):
            raise InvalidQueryError("$count accumulator takes no argument", op)
        return Accumulator("count")
    return Accumulator(op[1:], parse_expression(argument))  # type: ignore[arg-type]


def _parse_group(raw: Any) -> GroupStage:
    if not isinstance(raw, Mapping) or ID_FIELD not in raw:
        raise InvalidQueryError("$group requires an _id key expression", "$group")
    accumulators: List[Tuple[str, Accumulator]] = []
    for name, spec in raw.items():
        if name == ID_FIELD:
            continue
        _check_output_name("$group", name)
        if "." in name:
            raise InvalidQueryError(f"$group: output field {name!r} cannot contain '.'", name)
        accumulators.append((name, _parse_accumulator(name, spec)))
    return GroupStage(key=parse_expression(raw[ID_FIELD]), accumulators=accumulators)


def _projection_flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    return None


def _parse_project(raw: Any) -> ProjectStage:
    if not isinstance(raw, Mapping) or not raw:
        raise InvalidQueryError("$project requires a non-empty specification", "$project")
    stage = ProjectStage()
    for name, value in raw.items():
        _check_output_name("$project", name)
        flag = _projection_flag(value)
        if flag is False:
            if name == ID_FIELD:
                stage.exclude_id = True
            else:
                stage.excluded.append(name)
        elif flag is True:
            stage.computed.append((name, parse_expression(f"${name}")))
        else:
            stage.computed.append((name, parse_expression(value)))
    if stage.excluded and stage.computed:
        raise InvalidQueryError(
            f"$project cannot mix exclusion of {stage.excluded[0]!r} with included fields",
            stage.excluded[0],
        )
    return stage


def _parse_fields(stage: str, raw: Any) -> List[Tuple[str, Expression]]:
    if not isinstance(raw, Mapping) or not raw:
        raise InvalidQueryError(f"{stage} requires a non-empty specification", stage)
    fields: List[Tuple[str, Expression]] = []
    for name, value in raw.items():
        _check_output_name(stage, name)
        fields.append((name, parse_expression(value)))
    return fields


def _parse_count(stage: str, raw: Any, minimum: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < minimum:
        bound = "positive" if minimum > 0 else "non-negative"
        raise InvalidQueryError(f"{stage} requires a {bound} integer, got {raw!r}", stage)
    return raw


def _parse_stage(raw: Any) -> Stage:
    if isinstance(raw, _STAGE_TYPES):
        return raw
    if not isinstance(raw, Mapping) or len(raw) != 1:
        raise InvalidQueryError(f"A pipeline stage must hold exactly one operator: {raw!r}", raw)
    name, spec = next(iter(raw.items()))
    if name == "$group":
        return _parse_group(spec)
    if name == "$project":
        return _parse_project(spec)
    if name in ("$addFields", "$set"):
        return AddFieldsStage(_parse_fields(name, spec))
    if name == "$sort":
        if not spec:
            raise InvalidQueryError("$sort requires at least one key", name)
        return SortStage(parse_sort(spec))
    if name == "$limit":
        return LimitStage(_parse_count(name, spec, minimum=1))
    if name == "$skip":
        return SkipStage(_parse_count(name, spec, minimum=0))
    if name == "$match":
        return MatchStage(parse_predicate(spec))
    raise InvalidQueryError(f"Unknown pipeline stage {name!r}", name)


def parse_pipeline(raw: Iterable[Any]) -> List[Stage]:
    if isinstance(raw, (str, bytes, Mapping)):
        raise InvalidQueryError("A pipeline must be a list of stages", raw)
    return [_parse_stage(item) for item in raw]


# ---------------------------------------------------------------------------
# Stage execution
# ---------------------------------------------------------------------------

def _is_constant(expression: Expression) -> bool:
    if isinstance(expression, Literal):
        return True
    if isinstance(expression, ObjectExpr):
        return all(_is_constant(sub) for _, sub in expression.fields)
    if isinstance(expression, ArrayExpr):
        return all(_is_constant(item) for item in expression.items)
    return False


def _not_null(value: Any) -> bool:
    return value is not MISSING and value is not None


def reduce_accumulator(accumulator: Accumulator, values: Sequence[Any], row_count: int) -> Any:
    if accumulator.op == "count":
        return row_count
    if accumulator.op == "push":
        return [value for value in values if value is not MISSING]
    if accumulator.op in ("min", "max"):
        present = [value for value in values if _not_null(value)]
        if not present:
            return None
        pick = min if accumulator.op == "min" else max
        return pick(present, key=sort_key)

    numeric = [value for value in values if is_number(value)]
    if accumulator.op == "sum":
        return sum(numeric)
    if not numeric:
        return None
    return sum(numeric) / len(numeric)


@dataclass
class _Group:
    key: Any
    rows: int = 0
    values: Dict[str, List[Any]] = field(default_factory=dict)


def _run_group(stage: GroupStage, rows: List[Document]) -> List[Document]:
    groups: Dict[Any, _Group] = {}
    for row in rows:
        key_value = evaluate(stage.key, row)
        if key_value is MISSING:
            key_value = None
        frozen = freeze(key_value)
        bucket = groups.get(frozen)
        if bucket is None:
            bucket = _Group(key=key_value, values={name: [] for name, _ in stage.accumulators})
            groups[frozen] = bucket
        bucket.rows += 1
        for name, accumulator in stage.accumulators:
            if accumulator.expression is not None:
                bucket.values[name].append(evaluate(accumulator.expression, row))

    if not groups and stage.keep_empty and _is_constant(stage.key):
        key_value = evaluate(stage.key, {})
        groups[freeze(key_value)] = _Group(
            key=key_value, values={name: [] for name, _ in stage.accumulators}
        )

    output: List[Document] = []
    for bucket in groups.values():
        document: Document = {ID_FIELD: bucket.key}
        for name, accumulator in stage.accumulators:
            document[name] = reduce_accumulator(accumulator, bucket.values[name], bucket.rows)
        output.append(document)
    return output


def _run_project(stage: ProjectStage, row: Document) -> Document:
    if stage.excluded or (stage.exclude_id and not stage.computed):
        shaped = dict(row)
        for name in stage.excluded:
            unset_path(shaped, name)
        if stage.exclude_id:
            shaped.pop(ID_FIELD, None)
        return shaped

    shaped = {}
    computed_names = {name for name, _ in stage.computed}
    if not stage.exclude_id and ID_FIELD not in computed_names and ID_FIELD in row:
        shaped[ID_FIELD] = row[ID_FIELD]
    for name, expression in stage.computed:
        value = evaluate(expression, row)
        if value is not MISSING:
            set_path(shaped, name, value)
    return shaped


def _run_add_fields(stage: AddFieldsStage, row: Document) -> Document:
    computed = [(name, evaluate(expression, row)) for name, expression in stage.fields]
    shaped = copy.deepcopy(row)
    for name, value in computed:
        if value is MISSING:
            unset_path(shaped, name)
        else:
            set_path(shaped, name, value)
    return shaped


def _apply_stage(stage: Stage, rows: List[Document]) -> List[Document]:
    if isinstance(stage, GroupStage):
        return _run_group(stage, rows)
    if isinstance(stage, ProjectStage):
        return [_run_project(stage, row) for row in rows]
    if isinstance(stage, AddFieldsStage):
        return [_run_add_fields(stage, row) for row in rows]
    if isinstance(stage, SortStage):
        return sort_documents(rows, stage.spec)
    if isinstance(stage, LimitStage):
        return paginate(rows, PageSpec(limit=stage.n))
    if isinstance(stage, SkipStage):
        return paginate(rows, PageSpec(skip=stage.n))
    if isinstance(stage, MatchStage):
        return [row for row in rows if matches(row, stage.predicate)]
    raise TypeError(f"Not a pipeline stage: {stage!r}")


def run_pipeline(documents: Iterable[Document], stages: Iterable[Any]) -> List[Document]:
    """Run ``stages`` in order over a snapshot of ``documents``.

    Stages may be parsed ``Stage`` objects or Mongo-style stage documents.
    Any ``EvaluationError`` aborts the whole pipeline.
    """
    parsed = parse_pipeline(stages)
    rows = [copy.deepcopy(document) for document in documents]
    for position, stage in enumerate(parsed):
        before = len(rows)
        rows = _apply_stage(stage, rows)
        logger.debug(
            "stage %d (%s): %d -> %d rows", position, type(stage).__name__, before, len(rows)
        )
    return rows

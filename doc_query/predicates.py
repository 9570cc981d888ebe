"""
Filter predicates.

The nested literal form used by callers (``{"author": "X", "year": {"$gt": 1980}}``)
is parsed into a small AST of ``Comparison`` and ``And`` nodes, which
``matches`` evaluates against one document at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Literal, Mapping, Optional, Tuple, Union

from .documents import MISSING, Document, get_path, is_number, values_equal
from .errors import InvalidQueryError


CompareOp = Literal["eq", "gt", "gte", "lt", "lte"]

_OPERATORS: Dict[str, CompareOp] = {
    "$eq": "eq",
    "$gt": "gt",
    "$gte": "gte",
    "$lt": "lt",
    "$lte": "lte",
}
RANGE_OPS = frozenset({"gt", "gte", "lt", "lte"})


@dataclass(frozen=True)
class Comparison:
    path: str
    op: CompareOp
    value: Any

    @property
    def is_range(self) -> bool:
        return self.op in RANGE_OPS


@dataclass(frozen=True)
class And:
    clauses: Tuple["Predicate", ...] = ()


Predicate = Union[Comparison, And]
PredicateInput = Union[Predicate, Mapping[str, Any], None]


@dataclass
class FieldBounds:
    """How a single field is constrained by a predicate."""

    path: str
    equality: bool = False
    comparisons: List[Comparison] = field(default_factory=list)

    @property
    def range(self) -> bool:
        return any(comp.is_range for comp in self.comparisons)


def parse_predicate(raw: PredicateInput) -> Predicate:
    if isinstance(raw, (Comparison, And)):
        return raw
    if raw is None:
        return And()
    if not isinstance(raw, Mapping):
        raise InvalidQueryError(f"Filter must be a mapping, got {type(raw).__name__}", raw)

    clauses: List[Predicate] = []
    for key, condition in raw.items():
        if key == "$and":
            if not isinstance(condition, list) or not condition:
                raise InvalidQueryError("$and requires a non-empty list of filters", key)
            clauses.append(And(tuple(parse_predicate(item) for item in condition)))
        elif key.startswith("$"):
            raise InvalidQueryError(f"Unknown top-level operator: {key}", key)
        else:
            clauses.extend(_parse_field(key, condition))
    return And(tuple(clauses))


def _parse_field(path: str, condition: Any) -> List[Comparison]:
    if not isinstance(condition, Mapping) or not condition:
        return [Comparison(path, "eq", condition)]

    operator_keys = [key for key in condition if isinstance(key, str) and key.startswith("$")]
    if not operator_keys:
        # literal sub-document compared by equality
        return [Comparison(path, "eq", dict(condition))]
    if len(operator_keys) != len(condition):
        plain = next(key for key in condition if key not in operator_keys)
        raise InvalidQueryError(
            f"Cannot mix operators and plain fields in the condition on {path!r}: {plain!r}",
            plain,
        )

    comparisons: List[Comparison] = []
    for key, argument in condition.items():
        op = _OPERATORS.get(key)
        if op is None:
            raise InvalidQueryError(f"Unknown query operator {key!r} on field {path!r}", key)
        comparisons.append(Comparison(path, op, argument))
    return comparisons


def _compare(left: Any, right: Any) -> Optional[int]:
    """Three-way compare for same-kind values; None when the types do not order."""
    same_kind = (
        (is_number(left) and is_number(right))
        or (isinstance(left, str) and isinstance(right, str))
        or (isinstance(left, bool) and isinstance(right, bool))
    )
    if not same_kind:
        return None
    if left < right:
        return -1
    if left > right:
        return 1
    return 0


def _evaluate_comparison(document: Document, comparison: Comparison) -> bool:
    value = get_path(document, comparison.path)
    if comparison.op == "eq":
        if comparison.value is None:
            return value is None or value is MISSING
        return values_equal(value, comparison.value)

    if value is MISSING or value is None:
        return False
    order = _compare(value, comparison.value)
    if order is None:
        return False
    if comparison.op == "gt":
        return order > 0
    if comparison.op == "gte":
        return order >= 0
    if comparison.op == "lt":
        return order < 0
    return order <= 0


def _evaluate(document: Document, predicate: Predicate) -> bool:
    if isinstance(predicate, Comparison):
        return _evaluate_comparison(document, predicate)
    for clause in predicate.clauses:
        if not _evaluate(document, clause):
            return False
    return True


def matches(document: Document, predicate: PredicateInput) -> bool:
    """True when ``document`` satisfies every clause of ``predicate``."""
    return _evaluate(document, parse_predicate(predicate))


def iter_comparisons(predicate: Predicate) -> Iterator[Comparison]:
    if isinstance(predicate, Comparison):
        yield predicate
        return
    for clause in predicate.clauses:
        yield from iter_comparisons(clause)


def bound_fields(predicate: PredicateInput) -> Dict[str, FieldBounds]:
    """Per-field equality/range constraints, in first-seen order."""
    bounds: Dict[str, FieldBounds] = {}
    for comparison in iter_comparisons(parse_predicate(predicate)):
        entry = bounds.setdefault(comparison.path, FieldBounds(comparison.path))
        entry.comparisons.append(comparison)
        if comparison.op == "eq":
            entry.equality = True
    return bounds

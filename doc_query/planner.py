from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .config import NATURAL_HINT
from .documents import Document
from .errors import InvalidQueryError, UnknownIndexError
from .models import ExecutionPlan, IndexDefinition, KeySpecInput, SortSpec, parse_key_pairs, parse_sort
from .predicates import And, FieldBounds, PredicateInput, bound_fields, matches, parse_predicate

if TYPE_CHECKING:
    from .store import DocumentStore

logger = logging.getLogger(__name__)


HintInput = Union[str, Mapping[str, Any], None]


@dataclass
class QueryShape:
    """What the advisor needs to know about a find: filter, order and hint."""

    predicate: PredicateInput = None
    sort: Optional[KeySpecInput] = None
    hint: HintInput = None


def prefix_score(index: IndexDefinition, bounds: Dict[str, FieldBounds]) -> int:
    """Leading equality-bound fields, plus one if the next field is range-bound."""
    score = 0
    for name in index.fields:
        field_bounds = bounds.get(name)
        if field_bounds is None:
            break
        if field_bounds.equality:
            score += 1
            continue
        if field_bounds.range:
            score += 1
        break
    return score


def _equality_prefix(index: IndexDefinition, bounds: Dict[str, FieldBounds]) -> int:
    count = 0
    for name in index.fields:
        field_bounds = bounds.get(name)
        if field_bounds is None or not field_bounds.equality:
            break
        count += 1
    return count


def index_provides_sort(
    index: IndexDefinition,
    bounds: Dict[str, FieldBounds],
    sort: SortSpec,
) -> bool:
    """True when walking ``index`` yields rows already in ``sort`` order."""
    eq_prefix = _equality_prefix(index, bounds)
    remaining = list(index.keys[eq_prefix:])
    wanted = [
        key for key in sort
        if not (key.field in bounds and bounds[key.field].equality)
    ]
    if not wanted:
        return True
    if len(wanted) > len(remaining):
        return False
    same = all(
        key.field == name and key.direction == direction
        for key, (name, direction) in zip(wanted, remaining)
    )
    reversed_ = all(
        key.field == name and key.direction == -direction
        for key, (name, direction) in zip(wanted, remaining)
    )
    return same or reversed_


def _resolve_hint(hint: HintInput, indexes: Sequence[IndexDefinition]) -> Tuple[bool, Optional[IndexDefinition]]:
    """Returns (forced_collection_scan, forced_index)."""
    if hint is None:
        return False, None
    if isinstance(hint, Mapping):
        if list(hint) == [NATURAL_HINT]:
            return True, None
        wanted = tuple(parse_key_pairs(hint, "hint"))
        for index in indexes:
            if index.keys == wanted:
                return False, index
        raise UnknownIndexError(f"Hint does not correspond to an existing index: {dict(hint)}", dict(hint))
    if not isinstance(hint, str):
        raise InvalidQueryError(f"A hint must be an index name or a key spec, got {hint!r}", hint)
    if hint == NATURAL_HINT:
        return True, None
    for index in indexes:
        if index.name == hint:
            return False, index
    raise UnknownIndexError(f"Hint does not correspond to an existing index: {hint!r}", hint)


def choose_plan(
    query: QueryShape,
    available_indexes: Iterable[IndexDefinition],
    documents: Iterable[Document] = (),
) -> ExecutionPlan:
    """Pick an access path for ``query`` and simulate its execution statistics.

    ``docs_examined`` models what the store would read through the chosen
    path; ``n_returned`` is the number of documents matching the full filter.
    """
    indexes = list(available_indexes)
    predicate = parse_predicate(query.predicate)
    bounds = bound_fields(predicate)
    sort = parse_sort(query.sort)
    snapshot = list(documents)

    candidates = [(index.name, prefix_score(index, bounds)) for index in indexes]
    forced_scan, chosen = _resolve_hint(query.hint, indexes)
    notes: List[str] = []

    if forced_scan:
        notes.append(f"Collection scan forced by {NATURAL_HINT} hint")
    elif chosen is not None:
        notes.append(f"Index {chosen.name} forced by hint")
    else:
        best_score = 0
        for index, (_, score) in zip(indexes, candidates):
            if score > best_score:
                chosen, best_score = index, score

    returned = sum(1 for document in snapshot if matches(document, predicate))

    if chosen is None:
        plan = ExecutionPlan(
            access_path="full-scan",
            docs_examined=len(snapshot),
            n_returned=returned,
            candidates=candidates,
            requires_sort=bool(sort),
            notes=notes,
        )
        if not forced_scan:
            plan.add_note("No index matches a prefix of the filter")
        logger.debug("plan: full-scan over %d documents", len(snapshot))
        return plan

    score = prefix_score(chosen, bounds)
    used_fields = chosen.fields[:score]
    if score:
        index_bounds = And(tuple(comp for name in used_fields for comp in bounds[name].comparisons))
        examined = sum(1 for document in snapshot if matches(document, index_bounds))
    else:
        examined = len(snapshot)
        notes.append(f"Index {chosen.name} has no bounds for this filter; every key is scanned")

    plan = ExecutionPlan(
        access_path="index-scan",
        index_name=chosen.name,
        docs_examined=examined,
        keys_examined=examined,
        n_returned=returned,
        score=score,
        candidates=candidates,
        requires_sort=bool(sort) and not index_provides_sort(chosen, bounds, sort),
        notes=notes,
    )
    if used_fields:
        plan.add_note(f"Index bounds on: {', '.join(used_fields)}")
    logger.debug(
        "plan: index-scan(%s) score=%d examined=%d returned=%d",
        chosen.name, score, examined, returned,
    )
    return plan


def explain(query: QueryShape, store: "DocumentStore") -> ExecutionPlan:
    """Plan ``query`` against the current contents and indexes of ``store``."""
    return choose_plan(query, store.fetch_indexes(), store.fetch_all())

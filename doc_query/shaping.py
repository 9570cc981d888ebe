from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from .config import ID_FIELD
from .documents import MISSING, Document, get_path, set_path, sort_key, unset_path
from .models import KeySpecInput, PageSpec, Projection, SortKey, parse_sort
from .predicates import PredicateInput, matches, parse_predicate


ProjectionInput = Union[Projection, Mapping[str, Any], None]


def _as_projection(spec: ProjectionInput) -> Optional[Projection]:
    if spec is None or isinstance(spec, Projection):
        return spec
    if not spec:
        return None
    return Projection.from_mapping(spec)


def project(document: Document, spec: ProjectionInput) -> Document:
    """Return a new document shaped by ``spec``; the input is left untouched."""
    projection = _as_projection(spec)
    if projection is None:
        return copy.deepcopy(document)

    if projection.include:
        shaped: Document = {}
        if not projection.exclude_id and ID_FIELD in document:
            shaped[ID_FIELD] = copy.deepcopy(document[ID_FIELD])
        for path in projection.fields:
            value = get_path(document, path)
            if value is not MISSING:
                set_path(shaped, path, copy.deepcopy(value))
        return shaped

    shaped = copy.deepcopy(document)
    for path in projection.fields:
        unset_path(shaped, path)
    if projection.exclude_id:
        shaped.pop(ID_FIELD, None)
    return shaped


def _key_function(key: SortKey) -> Callable[[Document], Tuple[Any, ...]]:
    # Missing values lead in both directions; descending sorts run with
    # reverse=True, so they get the highest bucket there.
    missing_bucket = (2,) if key.descending else (0,)

    def extract(document: Document) -> Tuple[Any, ...]:
        value = get_path(document, key.field)
        if value is MISSING:
            return missing_bucket
        return (1, sort_key(value))

    return extract


def sort_documents(documents: Iterable[Document], spec: Optional[KeySpecInput]) -> List[Document]:
    """Stable multi-key sort."""
    ordered = list(documents)
    for key in reversed(parse_sort(spec)):
        ordered.sort(key=_key_function(key), reverse=key.descending)
    return ordered


def paginate(documents: Iterable[Document], page: Optional[PageSpec] = None) -> List[Document]:
    """Drop ``page.skip`` documents, then keep at most ``page.limit``."""
    items = list(documents)
    if page is None:
        return items
    window = items[page.skip:]
    if page.limit is None:
        return window
    return window[: page.limit]


def find(
    documents: Iterable[Document],
    predicate: PredicateInput = None,
    projection: ProjectionInput = None,
    sort: Optional[KeySpecInput] = None,
    page: Optional[PageSpec] = None,
) -> List[Document]:
    """Filter, sort, paginate and project, in that order."""
    parsed = parse_predicate(predicate)
    shape = _as_projection(projection)
    selected = [doc for doc in documents if matches(doc, parsed)]
    if sort:
        selected = sort_documents(selected, sort)
    selected = paginate(selected, page)
    return [project(doc, shape) for doc in selected]

"""
Document store boundary.

The query core only reads snapshots through ``fetch_all`` and
``fetch_indexes``. ``InMemoryDocumentStore`` is a reference implementation
that owns ``_id`` generation and natural (insertion) order;
``JsonFileStore`` persists the same state to a JSON file so a command line
session survives between processes.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from .config import ID_FIELD, ID_INDEX_NAME, OBJECT_ID_LENGTH
from .documents import Document, freeze, set_path, unset_path, values_equal
from .errors import DataFileError, DuplicateKeyError, InvalidQueryError, UnknownIndexError
from .models import ExecutionPlan, IndexDefinition, KeySpecInput, PageSpec, UpdateResult
from .planner import QueryShape, choose_plan
from .predicates import PredicateInput, matches, parse_predicate
from .shaping import ProjectionInput, find

logger = logging.getLogger(__name__)


ID_INDEX = IndexDefinition(name=ID_INDEX_NAME, keys=((ID_FIELD, 1),))


class DocumentStore(Protocol):
    def fetch_all(self) -> List[Document]:
        ...

    def fetch_indexes(self) -> List[IndexDefinition]:
        ...

    def insert(self, documents: Iterable[Mapping[str, Any]]) -> int:
        ...

    def delete_where(self, predicate: PredicateInput, multi: bool = True) -> int:
        ...

    def update_where(
        self, predicate: PredicateInput, setters: Mapping[str, Any], multi: bool = True
    ) -> UpdateResult:
        ...


def generate_object_id() -> str:
    """24 hex characters: a 4-byte timestamp followed by random bytes."""
    timestamp = int(time.time())
    return f"{timestamp:08x}{os.urandom(8).hex()}"[:OBJECT_ID_LENGTH]


def _normalize_setters(setters: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    if not isinstance(setters, Mapping) or not setters:
        raise InvalidQueryError("An update needs at least one field to set", setters)
    operator_keys = [key for key in setters if key.startswith("$")]
    if not operator_keys:
        return {"$set": dict(setters), "$unset": {}}
    if len(operator_keys) != len(setters):
        raise InvalidQueryError("Cannot mix update operators and plain fields", setters)
    normalized: Dict[str, Dict[str, Any]] = {"$set": {}, "$unset": {}}
    for key, fields in setters.items():
        if key not in normalized:
            raise InvalidQueryError(f"Unknown update operator {key!r}", key)
        if not isinstance(fields, Mapping):
            raise InvalidQueryError(f"{key} expects a mapping of fields", key)
        normalized[key].update(fields)
    return normalized


class InMemoryDocumentStore:
    def __init__(
        self,
        documents: Optional[Iterable[Mapping[str, Any]]] = None,
        indexes: Optional[Iterable[IndexDefinition]] = None,
    ) -> None:
        self._documents: List[Document] = []
        self._indexes: List[IndexDefinition] = [ID_INDEX]
        for index in indexes or ():
            self._add_index(index)
        if documents:
            self.insert(documents)

    # -- hooks -------------------------------------------------------------

    def _changed(self) -> None:
        """Called after every mutation; subclasses persist here."""

    # -- reads -------------------------------------------------------------

    def fetch_all(self) -> List[Document]:
        return copy.deepcopy(self._documents)

    def fetch_indexes(self) -> List[IndexDefinition]:
        return list(self._indexes)

    def __len__(self) -> int:
        return len(self._documents)

    def count(self, predicate: PredicateInput = None) -> int:
        parsed = parse_predicate(predicate)
        return sum(1 for document in self._documents if matches(document, parsed))

    def find(
        self,
        predicate: PredicateInput = None,
        projection: ProjectionInput = None,
        sort: Optional[KeySpecInput] = None,
        page: Optional[PageSpec] = None,
    ) -> List[Document]:
        return find(self._documents, predicate, projection=projection, sort=sort, page=page)

    def find_one(self, predicate: PredicateInput = None) -> Optional[Document]:
        found = self.find(predicate, page=PageSpec(limit=1))
        return found[0] if found else None

    def explain(self, query: QueryShape) -> ExecutionPlan:
        started = time.perf_counter()
        plan = choose_plan(query, self._indexes, self._documents)
        plan.execution_time_ms = round((time.perf_counter() - started) * 1000, 3)
        return plan

    # -- writes ------------------------------------------------------------

    def insert(self, documents: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]) -> int:
        batch = [documents] if isinstance(documents, Mapping) else list(documents)
        existing = {freeze(doc[ID_FIELD]) for doc in self._documents}
        prepared: List[Document] = []
        for raw in batch:
            if not isinstance(raw, Mapping):
                raise InvalidQueryError(f"Documents must be mappings, got {type(raw).__name__}", raw)
            document = copy.deepcopy(dict(raw))
            if ID_FIELD not in document:
                document = {ID_FIELD: generate_object_id(), **document}
            key = freeze(document[ID_FIELD])
            if key in existing:
                raise DuplicateKeyError(f"Duplicate _id: {document[ID_FIELD]!r}", document[ID_FIELD])
            existing.add(key)
            prepared.append(document)
        self._documents.extend(prepared)
        if prepared:
            logger.info("inserted %d document(s)", len(prepared))
            self._changed()
        return len(prepared)

    def delete_where(self, predicate: PredicateInput, multi: bool = True) -> int:
        parsed = parse_predicate(predicate)
        kept: List[Document] = []
        deleted = 0
        for document in self._documents:
            if matches(document, parsed) and (multi or deleted == 0):
                deleted += 1
            else:
                kept.append(document)
        self._documents = kept
        if deleted:
            logger.info("deleted %d document(s)", deleted)
            self._changed()
        return deleted

    def update_where(
        self, predicate: PredicateInput, setters: Mapping[str, Any], multi: bool = True
    ) -> UpdateResult:
        parsed = parse_predicate(predicate)
        changes = _normalize_setters(setters)
        touched = set(changes["$set"]) | set(changes["$unset"])
        if ID_FIELD in touched:
            raise InvalidQueryError("The _id field is immutable", ID_FIELD)

        matched = modified = 0
        for position, document in enumerate(self._documents):
            if not matches(document, parsed):
                continue
            matched += 1
            updated = copy.deepcopy(document)
            for path, value in changes["$set"].items():
                set_path(updated, path, copy.deepcopy(value))
            for path in changes["$unset"]:
                unset_path(updated, path)
            if not values_equal(updated, document):
                self._documents[position] = updated
                modified += 1
            if not multi:
                break
        if modified:
            logger.info("updated %d of %d matched document(s)", modified, matched)
            self._changed()
        return UpdateResult(matched=matched, modified=modified)

    def drop(self) -> None:
        """Remove every document and secondary index."""
        self._documents = []
        self._indexes = [ID_INDEX]
        logger.info("collection dropped")
        self._changed()

    # -- indexes -----------------------------------------------------------

    def _add_index(self, index: IndexDefinition) -> str:
        for existing in self._indexes:
            if existing.name == index.name:
                if existing.keys != index.keys:
                    raise InvalidQueryError(
                        f"Index {index.name!r} already exists with a different key", index.name
                    )
                return existing.name
        self._indexes.append(index)
        return index.name

    def create_index(self, keys: KeySpecInput, name: Optional[str] = None) -> str:
        index = IndexDefinition.from_key_spec(keys, name=name)
        created = self._add_index(index)
        logger.info("index %s ready on %s", created, index.key_spec())
        self._changed()
        return created

    def drop_index(self, name: str) -> None:
        if name == ID_INDEX_NAME:
            raise InvalidQueryError("Cannot drop the _id index", name)
        remaining = [index for index in self._indexes if index.name != name]
        if len(remaining) == len(self._indexes):
            raise UnknownIndexError(f"Index not found: {name!r}", name)
        self._indexes = remaining
        logger.info("index %s dropped", name)
        self._changed()

    def drop_indexes(self) -> int:
        dropped = len(self._indexes) - 1
        self._indexes = [ID_INDEX]
        if dropped:
            logger.info("dropped %d index(es)", dropped)
            self._changed()
        return dropped


class JsonFileStore(InMemoryDocumentStore):
    """In-memory store mirrored to a JSON file after every change."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._loading = True
        super().__init__()
        if self.path.exists():
            self._load()
        self._loading = False

    def _load(self) -> None:
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise DataFileError(f"{self.path} is not valid JSON: {exc}", str(self.path)) from exc
        if not isinstance(payload, dict):
            raise DataFileError(
                f"{self.path} must hold an object with \"documents\" and \"indexes\"", str(self.path)
            )
        for raw in payload.get("indexes", []):
            if not isinstance(raw, Mapping) or "key" not in raw or "name" not in raw:
                raise DataFileError(f"Malformed index entry in {self.path}: {raw!r}", raw)
            index = IndexDefinition.from_key_spec(raw["key"], name=raw["name"])
            if index.name != ID_INDEX_NAME:
                self._add_index(index)
        self.insert(payload.get("documents", []))
        logger.debug("loaded %d document(s) from %s", len(self), self.path)

    def _changed(self) -> None:
        if self._loading:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "documents": self._documents,
            "indexes": [
                {"name": index.name, "key": index.key_spec()} for index in self._indexes
            ],
        }
        self.path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

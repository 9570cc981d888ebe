from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Tuple, Union

from .config import ID_FIELD
from .errors import InvalidQueryError


Direction = Literal[1, -1]
AccessPath = Literal["index-scan", "full-scan"]

KeySpecInput = Union[Mapping[str, Any], Iterable[Tuple[str, Any]]]


def parse_key_pairs(raw: KeySpecInput, what: str) -> List[Tuple[str, Direction]]:
    """Ordered (field, direction) pairs from a mapping or a list of pairs."""
    if isinstance(raw, Mapping):
        items = list(raw.items())
    elif isinstance(raw, (list, tuple)):
        items = list(raw)
    else:
        raise InvalidQueryError(
            f"A {what} spec must be a mapping or a list of (field, direction) pairs, got {raw!r}", raw
        )
    pairs: List[Tuple[str, Direction]] = []
    for item in items:
        try:
            name, direction = item
        except (TypeError, ValueError):
            raise InvalidQueryError(f"Invalid {what} entry: {item!r}", item) from None
        if not isinstance(name, str) or not name:
            raise InvalidQueryError(f"Invalid {what} field: {name!r}", name)
        if isinstance(direction, bool) or direction not in (1, -1):
            raise InvalidQueryError(
                f"Invalid {what} direction for {name!r}: {direction!r} (expected 1 or -1)",
                name,
            )
        pairs.append((name, int(direction)))
    return pairs


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: Direction = 1

    @property
    def descending(self) -> bool:
        return self.direction == -1


SortSpec = List[SortKey]


def parse_sort(raw: Optional[KeySpecInput]) -> SortSpec:
    """Build a sort spec from ``{"price": 1}`` or ``[("price", -1), ...]``."""
    if raw is None:
        return []
    if isinstance(raw, list) and all(isinstance(item, SortKey) for item in raw):
        return list(raw)
    return [SortKey(name, direction) for name, direction in parse_key_pairs(raw, "sort")]


@dataclass(frozen=True)
class PageSpec:
    """skip/limit window; ``limit=None`` means unbounded."""

    skip: int = 0
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if isinstance(self.skip, bool) or not isinstance(self.skip, int) or self.skip < 0:
            raise InvalidQueryError(f"skip must be a non-negative integer, got {self.skip!r}", "skip")
        if self.limit is not None and (
            isinstance(self.limit, bool) or not isinstance(self.limit, int) or self.limit < 0
        ):
            raise InvalidQueryError(
                f"limit must be a non-negative integer or None, got {self.limit!r}", "limit"
            )


@dataclass(frozen=True)
class Projection:
    """Field selection for find results.

    ``include=True`` keeps only ``fields`` (plus ``_id`` unless excluded);
    ``include=False`` drops ``fields``.
    """

    fields: Tuple[str, ...] = ()
    include: bool = True
    exclude_id: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Projection":
        included: List[str] = []
        excluded: List[str] = []
        exclude_id = False
        for name, flag in raw.items():
            if flag in (1, True) and not isinstance(flag, float):
                if name != ID_FIELD:
                    included.append(name)
            elif flag in (0, False) and not isinstance(flag, float):
                if name == ID_FIELD:
                    exclude_id = True
                else:
                    excluded.append(name)
            else:
                raise InvalidQueryError(
                    f"Projection value for {name!r} must be 0 or 1, got {flag!r}", name
                )
        if included and excluded:
            raise InvalidQueryError(
                f"Cannot mix inclusion and exclusion in a projection: {excluded[0]!r}",
                excluded[0],
            )
        if excluded or (not included and exclude_id):
            return cls(fields=tuple(excluded), include=False, exclude_id=exclude_id)
        return cls(fields=tuple(included), include=True, exclude_id=exclude_id)


@dataclass(frozen=True)
class IndexDefinition:
    """Declared index: a name and an ordered compound key."""

    name: str
    keys: Tuple[Tuple[str, Direction], ...]

    @classmethod
    def from_key_spec(cls, raw: KeySpecInput, name: Optional[str] = None) -> "IndexDefinition":
        keys = tuple(parse_key_pairs(raw, "index key"))
        if not keys:
            raise InvalidQueryError("An index needs at least one key field", "keys")
        return cls(name=name or default_index_name(keys), keys=keys)

    @property
    def fields(self) -> List[str]:
        return [name for name, _ in self.keys]

    def key_spec(self) -> Dict[str, int]:
        return {name: direction for name, direction in self.keys}


def default_index_name(keys: Iterable[Tuple[str, int]]) -> str:
    return "_".join(f"{name}_{direction}" for name, direction in keys)


@dataclass
class ExecutionPlan:
    access_path: AccessPath
    index_name: Optional[str] = None
    docs_examined: int = 0
    keys_examined: int = 0
    n_returned: int = 0
    # Filled in by a store that measures execution; the core leaves it unset.
    execution_time_ms: Optional[float] = None
    score: int = 0
    candidates: List[Tuple[str, int]] = field(default_factory=list)
    requires_sort: bool = False
    notes: List[str] = field(default_factory=list)

    def add_note(self, message: str) -> None:
        self.notes.append(message)

    @property
    def stage(self) -> str:
        return "IXSCAN" if self.access_path == "index-scan" else "COLLSCAN"

    def describe(self) -> str:
        if self.access_path == "index-scan":
            return f"index-scan({self.index_name})"
        return "full-scan"


@dataclass
class UpdateResult:
    matched: int
    modified: int

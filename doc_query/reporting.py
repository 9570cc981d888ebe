from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List

from .models import ExecutionPlan, IndexDefinition, UpdateResult


def format_document(document: Dict[str, Any]) -> str:
    if "title" in document and "author" in document:
        line = f'"{document["title"]}" by {document["author"]}'
        if "published_year" in document:
            line += f" ({document['published_year']})"
        if "price" in document:
            line += f", Price: ${document['price']}"
        return line
    return json.dumps(document, default=str, ensure_ascii=False)


def format_documents(documents: Iterable[Dict[str, Any]], label: str = "documents") -> str:
    lines: List[str] = []
    count = 0
    for count, document in enumerate(documents, start=1):
        lines.append(f"{count}. {format_document(document)}")
    lines.append(f"Found {count} {label}")
    return "\n".join(lines)


def format_plan(plan: ExecutionPlan) -> str:
    elapsed = "n/a" if plan.execution_time_ms is None else f"{plan.execution_time_ms:.3f} ms"
    lines = [
        f"Access path: {plan.describe()}",
        f"  stage: {plan.stage}",
        f"  index used: {plan.index_name or 'None'}",
        f"  documents examined: {plan.docs_examined}",
        f"  keys examined: {plan.keys_examined}",
        f"  documents returned: {plan.n_returned}",
        f"  execution time: {elapsed}",
    ]
    if plan.requires_sort:
        lines.append("  in-memory sort: yes")
    if plan.candidates:
        scored = ", ".join(f"{name}={score}" for name, score in plan.candidates)
        lines.append(f"  candidate scores: {scored}")
    for note in plan.notes:
        lines.append(f"  note: {note}")
    return "\n".join(lines)


def format_indexes(indexes: Iterable[IndexDefinition]) -> str:
    lines = []
    for position, index in enumerate(indexes, start=1):
        lines.append(f"{position}. Name: {index.name}, Key: {json.dumps(index.key_spec())}")
    return "\n".join(lines)


def format_update(result: UpdateResult) -> str:
    return f"Matched {result.matched} document(s), modified {result.modified} document(s)"


def plan_to_dict(plan: ExecutionPlan) -> dict:
    return {
        "access_path": plan.describe(),
        "stage": plan.stage,
        "index_name": plan.index_name,
        "docs_examined": plan.docs_examined,
        "keys_examined": plan.keys_examined,
        "n_returned": plan.n_returned,
        "execution_time_ms": plan.execution_time_ms,
        "score": plan.score,
        "candidates": [{"name": name, "score": score} for name, score in plan.candidates],
        "requires_sort": plan.requires_sort,
        "notes": list(plan.notes),
    }


def index_to_dict(index: IndexDefinition) -> dict:
    return {"name": index.name, "key": index.key_spec()}


def to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str, ensure_ascii=False)

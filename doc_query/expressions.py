"""
Computed-field expressions used by $group, $project and $addFields.

Expressions arrive as nested literals (``{"$floor": {"$divide": ["$year", 10]}}``)
and are parsed into a tagged AST. ``evaluate`` interprets one node against
one row. Null or missing operands propagate as ``None``; type errors and
division by zero raise ``EvaluationError``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Context, Decimal
from typing import Any, Dict, List, Literal as TypingLiteral, Mapping, Tuple, Union

from .config import ROUNDING_MODE
from .documents import MISSING, Document, get_path, is_number, type_name
from .errors import EvaluationError, InvalidQueryError


ArithmeticOp = TypingLiteral["add", "subtract", "multiply", "divide"]


@dataclass(frozen=True)
class FieldRef:
    path: str


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Arithmetic:
    op: ArithmeticOp
    operands: Tuple["Expression", ...]


@dataclass(frozen=True)
class Floor:
    arg: "Expression"


@dataclass(frozen=True)
class Round:
    arg: "Expression"
    digits: int = 0


@dataclass(frozen=True)
class Concat:
    parts: Tuple["Expression", ...]


@dataclass(frozen=True)
class ToString:
    arg: "Expression"


@dataclass(frozen=True)
class ObjectExpr:
    fields: Tuple[Tuple[str, "Expression"], ...]


@dataclass(frozen=True)
class ArrayExpr:
    items: Tuple["Expression", ...]


Expression = Union[FieldRef, Literal, Arithmetic, Floor, Round, Concat, ToString, ObjectExpr, ArrayExpr]
_NODE_TYPES = (FieldRef, Literal, Arithmetic, Floor, Round, Concat, ToString, ObjectExpr, ArrayExpr)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _operand_list(op: str, raw: Any) -> List[Any]:
    if not isinstance(raw, list):
        raise InvalidQueryError(f"{op} expects a list of operands", op)
    return raw


def _single_operand(op: str, raw: Any) -> Any:
    if isinstance(raw, list):
        if len(raw) != 1:
            raise InvalidQueryError(f"{op} expects exactly one operand", op)
        return raw[0]
    return raw


def _parse_arithmetic(op: str, raw: Any) -> Arithmetic:
    operands = _operand_list(op, raw)
    name: ArithmeticOp = op[1:]  # type: ignore[assignment]
    if name in ("subtract", "divide") and len(operands) != 2:
        raise InvalidQueryError(f"{op} expects exactly two operands", op)
    if not operands:
        raise InvalidQueryError(f"{op} expects at least one operand", op)
    return Arithmetic(name, tuple(parse_expression(item) for item in operands))


def _parse_round(op: str, raw: Any) -> Round:
    operands = raw if isinstance(raw, list) else [raw]
    if not 1 <= len(operands) <= 2:
        raise InvalidQueryError(f"{op} expects [value] or [value, digits]", op)
    digits = operands[1] if len(operands) == 2 else 0
    if isinstance(digits, bool) or not isinstance(digits, int) or not -20 <= digits <= 100:
        raise InvalidQueryError(f"{op} digits must be an integer in [-20, 100], got {digits!r}", op)
    return Round(parse_expression(operands[0]), digits)


def _parse_operator(op: str, raw: Any) -> Expression:
    if op in ("$add", "$subtract", "$multiply", "$divide"):
        return _parse_arithmetic(op, raw)
    if op == "$floor":
        return Floor(parse_expression(_single_operand(op, raw)))
    if op == "$round":
        return _parse_round(op, raw)
    if op == "$concat":
        return Concat(tuple(parse_expression(item) for item in _operand_list(op, raw)))
    if op == "$toString":
        return ToString(parse_expression(_single_operand(op, raw)))
    if op == "$literal":
        return Literal(raw)
    raise InvalidQueryError(f"Unknown expression operator {op!r}", op)


def parse_expression(raw: Any) -> Expression:
    if isinstance(raw, _NODE_TYPES):
        return raw
    if isinstance(raw, str) and raw.startswith("$"):
        path = raw[1:]
        if not path or path.startswith("$"):
            raise InvalidQueryError(f"Invalid field reference {raw!r}", raw)
        return FieldRef(path)
    if isinstance(raw, Mapping):
        operator_keys = [key for key in raw if key.startswith("$")]
        if operator_keys:
            if len(raw) != 1:
                raise InvalidQueryError(
                    f"An expression object must hold exactly one operator, got {list(raw)}",
                    operator_keys[0],
                )
            return _parse_operator(operator_keys[0], raw[operator_keys[0]])
        return ObjectExpr(tuple((key, parse_expression(value)) for key, value in raw.items()))
    if isinstance(raw, list):
        return ArrayExpr(tuple(parse_expression(item) for item in raw))
    return Literal(raw)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def _is_null(value: Any) -> bool:
    return value is None or value is MISSING


def _require_number(op: str, value: Any) -> None:
    if not is_number(value):
        raise EvaluationError(
            f"{op} only supports numeric operands, got {type_name(value)} ({value!r})", value
        )


def _arithmetic(node: Arithmetic, document: Document) -> Any:
    values = [evaluate(operand, document) for operand in node.operands]
    if any(_is_null(value) for value in values):
        return None
    op = f"${node.op}"
    for value in values:
        _require_number(op, value)

    if node.op == "add":
        return sum(values)
    if node.op == "multiply":
        product = 1
        for value in values:
            product *= value
        return product
    left, right = values
    if node.op == "subtract":
        return left - right
    if right == 0:
        raise EvaluationError(f"$divide by zero ({left!r} / {right!r})", node)
    return left / right


def round_value(value: Any, digits: int = 0) -> Any:
    """Round half to even on the decimal representation of ``value``."""
    if isinstance(value, int) and digits >= 0:
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return value
    number = Decimal(repr(value))
    # Room for every digit left of the point, the requested fraction and a carry.
    context = Context(prec=max(number.adjusted(), 0) + max(digits, 0) + 2, rounding=ROUNDING_MODE)
    rounded = number.quantize(Decimal(1).scaleb(-digits), context=context)
    if isinstance(value, int):
        return int(rounded)
    return float(rounded)


def to_string(value: Any) -> Any:
    if _is_null(value):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    raise EvaluationError(f"$toString cannot convert {type_name(value)}", value)


def evaluate(expression: Expression, document: Document) -> Any:
    """Evaluate ``expression`` against one row; may return MISSING for field refs."""
    if isinstance(expression, FieldRef):
        return get_path(document, expression.path)
    if isinstance(expression, Literal):
        return expression.value
    if isinstance(expression, Arithmetic):
        return _arithmetic(expression, document)
    if isinstance(expression, Floor):
        value = evaluate(expression.arg, document)
        if _is_null(value):
            return None
        _require_number("$floor", value)
        if isinstance(value, float) and not math.isfinite(value):
            return value
        return math.floor(value)
    if isinstance(expression, Round):
        value = evaluate(expression.arg, document)
        if _is_null(value):
            return None
        _require_number("$round", value)
        return round_value(value, expression.digits)
    if isinstance(expression, ToString):
        return to_string(evaluate(expression.arg, document))
    if isinstance(expression, Concat):
        parts = [evaluate(part, document) for part in expression.parts]
        if any(_is_null(part) for part in parts):
            return None
        for part in parts:
            if not isinstance(part, str):
                raise EvaluationError(
                    f"$concat only supports strings, got {type_name(part)} ({part!r})", part
                )
        return "".join(parts)
    if isinstance(expression, ObjectExpr):
        built: Dict[str, Any] = {}
        for name, sub in expression.fields:
            value = evaluate(sub, document)
            if value is not MISSING:
                built[name] = value
        return built
    if isinstance(expression, ArrayExpr):
        return [
            None if value is MISSING else value
            for value in (evaluate(item, document) for item in expression.items)
        ]
    raise TypeError(f"Not an expression node: {expression!r}")

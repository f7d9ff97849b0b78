"""
String to native type coercion

Clients send plain JSON, so identifiers and dates arrive as strings in
filters, bodies and raw aggregation stages. coerce() walks such a value
alongside a table shape and rewrites those strings into ObjectId and
datetime according to the kind each field declares. Strings that do not
parse are left untouched; the store's own validation reports them.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId

from schemas import FieldKind, TableShape

DATE_OPERATORS = ("$gte", "$lte", "$gt", "$lt", "$eq", "$ne")
IDENTIFIER_OPERATORS = ("$eq", "$ne", "$in", "$nin")
IDENTIFIER_ARRAY_OPERATORS = ("$in", "$all", "$nin", "$or", "$and")


def parse_date(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime into naive UTC, or None."""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_object_id(value: Any) -> Any:
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def to_date(value: Any) -> Any:
    if isinstance(value, str):
        parsed = parse_date(value)
        if parsed is not None:
            return parsed
    return value


def _map_operators(value: dict, operators, convert) -> dict:
    out = dict(value)
    for op in operators:
        if op not in out:
            continue
        operand = out[op]
        if isinstance(operand, list):
            out[op] = [convert(v) for v in operand]
        else:
            out[op] = convert(operand)
    return out


def _coerce_identifier(value: Any) -> Any:
    if isinstance(value, list):
        return [to_object_id(v) for v in value]
    if isinstance(value, dict):
        return _map_operators(value, IDENTIFIER_OPERATORS, to_object_id)
    return to_object_id(value)


def _coerce_identifier_array(value: Any) -> Any:
    if isinstance(value, list):
        return [to_object_id(v) for v in value]
    if isinstance(value, dict):
        return _map_operators(value, IDENTIFIER_ARRAY_OPERATORS, to_object_id)
    return to_object_id(value)


def _coerce_date(value: Any) -> Any:
    if isinstance(value, dict):
        out = dict(value)
        for op in DATE_OPERATORS:
            if isinstance(out.get(op), str):
                out[op] = to_date(out[op])
        return out
    return to_date(value)


def coerce(value: Any, shape: TableShape) -> Any:
    """Return a copy of value with identifier and date strings made native.

    Keys are looked up in shape; objects and arrays under keys the shape
    does not type (operators such as $and, nested predicates, stage bodies)
    are walked with the same shape.
    """
    if isinstance(value, list):
        return [coerce(v, shape) for v in value]
    if not isinstance(value, dict):
        return value

    out = {}
    for key, item in value.items():
        kind = shape.kind_of(key)
        if kind is FieldKind.IDENTIFIER:
            out[key] = _coerce_identifier(item)
        elif kind is FieldKind.IDENTIFIER_ARRAY:
            out[key] = _coerce_identifier_array(item)
        elif kind is FieldKind.DATE:
            out[key] = _coerce_date(item)
        elif isinstance(item, (dict, list)):
            out[key] = coerce(item, shape)
        else:
            out[key] = item
    return out

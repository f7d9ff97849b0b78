from datetime import datetime

from bson import ObjectId

from coercion import coerce, parse_date
from schemas import TABLES, FieldKind, MenuItem, TableShape

SALES = TABLES["SaleRecords"]
HEX = "65f1c2a9b8e4d3f2a1b0c9d8"

TAGGED = TableShape(
    name="Tagged",
    model=MenuItem,
    fields={"_id": FieldKind.IDENTIFIER, "tagIds": FieldKind.IDENTIFIER_ARRAY},
)


def test_identifier_string_becomes_object_id() -> None:
    out = coerce({"userId": HEX}, SALES)
    assert out["userId"] == ObjectId(HEX)


def test_identifier_operators_and_lists() -> None:
    out = coerce({"_id": {"$in": [HEX, "not-an-id"]}, "userId": [HEX]}, SALES)
    assert out["_id"]["$in"] == [ObjectId(HEX), "not-an-id"]
    assert out["userId"] == [ObjectId(HEX)]


def test_identifier_array_operators() -> None:
    out = coerce({"tagIds": {"$all": [HEX], "$size": 1}}, TAGGED)
    assert out["tagIds"] == {"$all": [ObjectId(HEX)], "$size": 1}
    assert coerce({"tagIds": HEX}, TAGGED)["tagIds"] == ObjectId(HEX)


def test_date_string_and_range_operators() -> None:
    out = coerce({"timestamp": {"$gte": "2024-01-01", "$lt": "2024-02-01T00:00:00Z", "$exists": True}}, SALES)
    assert out["timestamp"]["$gte"] == datetime(2024, 1, 1)
    assert out["timestamp"]["$lt"] == datetime(2024, 2, 1)
    assert out["timestamp"]["$exists"] is True
    assert coerce({"createdAt": "2024-03-05T10:30:00+02:00"}, SALES)["createdAt"] == datetime(2024, 3, 5, 8, 30)


def test_nested_predicates_are_walked() -> None:
    out = coerce({"$or": [{"userId": HEX}, {"timestamp": {"$lte": "2024-01-31"}}]}, SALES)
    assert out["$or"][0]["userId"] == ObjectId(HEX)
    assert out["$or"][1]["timestamp"]["$lte"] == datetime(2024, 1, 31)


def test_malformed_and_unknown_values_pass_through() -> None:
    body = {"userId": "abc", "timestamp": "yesterday", "itemName": HEX, "extra": {"k": HEX}}
    out = coerce(body, SALES)
    assert out == body


def test_input_is_not_mutated() -> None:
    body = {"userId": HEX, "timestamp": {"$gte": "2024-01-01"}}
    coerce(body, SALES)
    assert body == {"userId": HEX, "timestamp": {"$gte": "2024-01-01"}}


def test_already_native_values_are_kept() -> None:
    oid = ObjectId()
    when = datetime(2024, 1, 1)
    out = coerce({"userId": oid, "timestamp": when, "quantity": 2}, SALES)
    assert out == {"userId": oid, "timestamp": when, "quantity": 2}


def test_parse_date() -> None:
    assert parse_date("2024-06-01") == datetime(2024, 6, 1)
    assert parse_date("not a date") is None

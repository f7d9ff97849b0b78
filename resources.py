"""
Point operations on single records: create, read, update, delete and
unsetting fields. Records are addressed either by their Mongo `_id`
(when the identifier is a valid ObjectId literal) or by their external
`id` field.
"""
from typing import Any, Dict, Iterable, Union

from bson import ObjectId
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from coercion import coerce
from database import TenantRegistry, serialize_doc
from errors import NotFoundError, RecordValidationError
from schemas import TableShape, shape_of, utcnow


def identifier_query(record_id: str) -> dict:
    if ObjectId.is_valid(record_id):
        return {"_id": ObjectId(record_id)}
    return {"id": record_id}


def validate_record(shape: TableShape, data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        record = shape.model.model_validate(data)
    except ValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise RecordValidationError("Validation failed", details)
    return record.model_dump(exclude_none=True)


def _duplicate_key(e: DuplicateKeyError) -> RecordValidationError:
    key_value = (e.details or {}).get("keyValue") or {}
    details = [{"field": name, "message": "Value must be unique"} for name in key_value]
    return RecordValidationError("Duplicate key", details or [{"field": None, "message": str(e)}])


def create_resource(registry: TenantRegistry, tenant: str, table: str, body: Dict[str, Any]) -> dict:
    shape = shape_of(table)
    collection = registry.collection(tenant, shape)

    doc = validate_record(shape, coerce(body, shape))
    now = utcnow()
    doc["_id"] = ObjectId()
    if not doc.get("id"):
        doc["id"] = str(doc["_id"])
    doc["createdAt"] = now
    doc["updatedAt"] = now
    try:
        collection.insert_one(doc)
    except DuplicateKeyError as e:
        raise _duplicate_key(e)
    return {"success": True, "data": serialize_doc(doc, shape)}


def get_resource(registry: TenantRegistry, tenant: str, table: str, record_id: str) -> dict:
    shape = shape_of(table)
    doc = registry.collection(tenant, shape).find_one(identifier_query(record_id))
    if doc is None:
        raise NotFoundError(f"Resource not found with id: {record_id}")
    return {"success": True, "data": serialize_doc(doc, shape)}


def update_resource(registry: TenantRegistry, tenant: str, table: str, record_id: str, body: Dict[str, Any]) -> dict:
    """Merge body onto the stored record, re-validate, and persist what changed."""
    shape = shape_of(table)
    collection = registry.collection(tenant, shape)

    existing = collection.find_one(identifier_query(record_id))
    if existing is None:
        raise NotFoundError(f"Resource not found with id: {record_id}")

    changes = coerce(body, shape)
    merged = validate_record(shape, {**existing, **changes})
    update = {
        name: value for name, value in merged.items()
        if name in changes or existing.get(name) != value
    }
    update["updatedAt"] = utcnow()
    # an explicit null clears an optional field
    cleared = {
        name: "" for name, value in changes.items()
        if value is None and name in shape.model.model_fields and name not in merged
    }
    operations: Dict[str, Any] = {"$set": update}
    if cleared:
        operations["$unset"] = cleared
    try:
        doc = collection.find_one_and_update(
            {"_id": existing["_id"]},
            operations,
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError as e:
        raise _duplicate_key(e)
    if doc is None:
        raise NotFoundError(f"Resource not found with id: {record_id}")
    return {"success": True, "data": serialize_doc(doc, shape)}


def delete_resource(registry: TenantRegistry, tenant: str, table: str, record_id: str) -> dict:
    shape = shape_of(table)
    doc = registry.collection(tenant, shape).find_one_and_delete(identifier_query(record_id))
    if doc is None:
        raise NotFoundError(f"Resource not found with id: {record_id}")
    return {"success": True, "data": serialize_doc(doc, shape)}


def remove_keys(
    registry: TenantRegistry,
    tenant: str,
    table: str,
    record_id: str,
    keys: Union[Dict[str, Any], Iterable[str]],
) -> dict:
    """Unset fields; the resulting record is not re-validated."""
    shape = shape_of(table)
    unset = {name: "" for name in keys}
    if not unset:
        raise RecordValidationError("No keys to remove", [{"field": None, "message": "Provide at least one field name"}])

    doc = registry.collection(tenant, shape).find_one_and_update(
        identifier_query(record_id),
        {"$unset": unset},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFoundError(f"Resource not found with id: {record_id}")
    return {"success": True, "data": serialize_doc(doc, shape)}


def get_menu_item(registry: TenantRegistry, tenant: str, menu_item_id: str) -> dict:
    shape = shape_of("MenuItems")
    doc = registry.collection(tenant, shape).find_one({"id": menu_item_id})
    if doc is None:
        raise NotFoundError(f"Menu item not found with id: {menu_item_id}")
    return {"success": True, "data": serialize_doc(doc, shape)}

"""
Database Helper Functions

Tenant-aware MongoDB access for the service layer. Every tenant is a
separate database on one shared MongoClient; TenantRegistry hands out
those database handles and is owned by the application (see main.py).
"""

import logging
import os
import threading
from typing import Any, Callable, Dict, Optional

from bson import ObjectId
from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.database import Database

from schemas import TABLES, TableShape

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

database_url = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
database_name = os.getenv("DATABASE_NAME", "business-sales-db")


class TenantRegistry:
    """Get-or-create cache of per-tenant database handles.

    The client is built on first use and shared by every tenant. Handles
    are cached for the life of the registry; creation of both the client
    and a handle happens under one lock so concurrent first requests for
    a tenant end up with the same handle.
    """

    def __init__(self, url: str, client_factory: Callable[..., Any] = MongoClient):
        self.url = url
        self._client_factory = client_factory
        self._client = None
        self._handles: Dict[str, Database] = {}
        self._lock = threading.Lock()

    @property
    def client(self):
        with self._lock:
            return self._ensure_client()

    def _ensure_client(self):
        if self._client is None:
            self._client = self._client_factory(self.url)
        return self._client

    def resolve(self, tenant: str) -> Database:
        handle = self._handles.get(tenant)
        if handle is not None:
            return handle
        with self._lock:
            handle = self._handles.get(tenant)
            if handle is None:
                handle = self._ensure_client()[tenant]
                ensure_indexes(handle)
                self._handles[tenant] = handle
                logger.info("Opened tenant database %s", tenant)
        return handle

    def collection(self, tenant: str, shape: TableShape):
        return self.resolve(tenant)[shape.collection]

    def ping(self) -> bool:
        try:
            self.client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            return False

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
            self._client = None
            self._handles.clear()


def ensure_indexes(db: Database) -> None:
    for shape in TABLES.values():
        for keys, options in shape.indexes:
            db[shape.collection].create_index(keys, **options)


# Utility

def to_json_value(value: Any) -> Any:
    """Recursively render ObjectIds as hex strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: to_json_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_json_value(v) for v in value]
    return value


HIDDEN_FIELDS = frozenset().union(*(shape.hidden for shape in TABLES.values()))


def strip_hidden(value: Any, hidden: frozenset = HIDDEN_FIELDS) -> Any:
    """Drop hidden fields at any depth, e.g. Users joined in by $lookup."""
    if isinstance(value, dict):
        return {k: strip_hidden(v, hidden) for k, v in value.items() if k not in hidden}
    if isinstance(value, list):
        return [strip_hidden(v, hidden) for v in value]
    return value


def serialize_row(doc: dict, shape: TableShape) -> dict:
    """Aggregation output row: keeps _id, drops hidden fields."""
    return to_json_value(strip_hidden(doc, shape.hidden | HIDDEN_FIELDS))


def serialize_doc(doc: Optional[dict], shape: TableShape) -> Optional[dict]:
    """Stored record as returned to clients: `id` instead of `_id`."""
    if not doc:
        return None
    d = dict(doc)
    _id = d.pop("_id", None)
    d.pop("__v", None)
    if not d.get("id") and _id is not None:
        d["id"] = str(_id)
    for name in shape.hidden:
        d.pop(name, None)
    return to_json_value(d)

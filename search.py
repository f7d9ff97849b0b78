"""
Generic search over any registered table.

A SearchQuery is turned into a single aggregation pipeline whose last
stage is a $facet computing the requested page and the total count from
the same upstream rows.
"""
import math
from typing import Any, Dict, List, Optional

from coercion import coerce
from database import TenantRegistry, serialize_row
from schemas import SearchQuery, TableShape, shape_of

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
DEFAULT_SORT = {"_id": -1}


def build_pipeline(shape: TableShape, query: SearchQuery, page: int, page_size: int) -> List[Dict[str, Any]]:
    # stage order matters, do not reorder
    pipeline: List[Dict[str, Any]] = []

    match = coerce(query.filter or {}, shape)
    if match:
        pipeline.append({"$match": match})

    if query.addFields:
        pipeline.append({"$addFields": query.addFields})

    for lookup in query.lookups or []:
        pipeline.append({"$lookup": lookup})

    if query.unwind:
        unwinds = query.unwind if isinstance(query.unwind, list) else [query.unwind]
        for unwind in unwinds:
            pipeline.append({"$unwind": unwind})

    pipeline.append({"$sort": query.sort or DEFAULT_SORT})

    if query.project:
        pipeline.append({"$project": query.project})

    pipeline.extend(query.customStages or [])

    pipeline.append({
        "$facet": {
            "data": [
                {"$skip": (page - 1) * page_size},
                {"$limit": page_size},
            ],
            "total": [
                {"$count": "count"},
            ],
        }
    })
    return pipeline


def pagination(page: int, page_size: int, total: int) -> dict:
    return {
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": math.ceil(total / page_size),
    }


def search_resource(
    registry: TenantRegistry,
    tenant: str,
    table: str,
    query: Optional[SearchQuery] = None,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
) -> dict:
    shape = shape_of(table)
    query = query or SearchQuery()
    page = page or query.page or DEFAULT_PAGE
    page_size = page_size or query.pageSize or DEFAULT_PAGE_SIZE

    pipeline = build_pipeline(shape, query, page, page_size)
    rows = list(registry.collection(tenant, shape).aggregate(pipeline))
    result = rows[0] if rows else {"data": [], "total": []}
    total = result["total"][0]["count"] if result["total"] else 0

    return {
        "success": True,
        "data": [serialize_row(row, shape) for row in result["data"]],
        "pagination": pagination(page, page_size, total),
    }


def direct_aggregation(registry: TenantRegistry, tenant: str, table: str, stages: List[Dict[str, Any]]) -> dict:
    """Run a caller-supplied pipeline as-is, after coercing every stage body."""
    shape = shape_of(table)
    pipeline = [{name: coerce(body, shape) for name, body in stage.items()} for stage in stages]
    rows = registry.collection(tenant, shape).aggregate(pipeline)
    return {"success": True, "data": [serialize_row(row, shape) for row in rows]}


def sales_by_menu_item(
    registry: TenantRegistry,
    tenant: str,
    menu_item_id: str,
    page: Optional[int] = None,
    page_size: Optional[int] = None,
) -> dict:
    query = SearchQuery(filter={"menuItemId": menu_item_id}, sort={"timestamp": -1})
    return search_resource(registry, tenant, "SaleRecords", query, page, page_size)

"""
Precomputed sales analytics over SaleRecords.
"""
from typing import Optional

from coercion import parse_date
from database import TenantRegistry, to_json_value
from errors import RecordValidationError
from schemas import shape_of

EMPTY_OVERALL_STATS = {
    "totalRevenue": 0,
    "totalSales": 0,
    "totalItems": 0,
    "avgSaleAmount": 0,
}


def business_analytics_pipeline(match: Optional[dict] = None) -> list:
    pipeline = [{"$match": match}] if match else []
    pipeline.append({
        "$facet": {
            "revenueByCategory": [
                {
                    "$group": {
                        "_id": "$category",
                        "totalRevenue": {"$sum": "$totalAmount"},
                        "salesCount": {"$sum": 1},
                        "itemsSold": {"$sum": "$quantity"},
                    }
                },
            ],
            "topSellingItems": [
                {
                    "$group": {
                        "_id": "$itemName",
                        "totalQuantity": {"$sum": "$quantity"},
                        "totalRevenue": {"$sum": "$totalAmount"},
                        "salesCount": {"$sum": 1},
                    }
                },
                {"$sort": {"totalQuantity": -1}},
                {"$limit": 10},
            ],
            "dailyTrends": [
                {
                    "$group": {
                        "_id": {
                            "year": {"$year": "$timestamp"},
                            "month": {"$month": "$timestamp"},
                            "day": {"$dayOfMonth": "$timestamp"},
                        },
                        "revenue": {"$sum": "$totalAmount"},
                        "sales": {"$sum": 1},
                        "items": {"$sum": "$quantity"},
                    }
                },
                {"$sort": {"_id.year": 1, "_id.month": 1, "_id.day": 1}},
            ],
            "overallStats": [
                {
                    "$group": {
                        "_id": None,
                        "totalRevenue": {"$sum": "$totalAmount"},
                        "totalSales": {"$sum": 1},
                        "totalItems": {"$sum": "$quantity"},
                        "avgSaleAmount": {"$avg": "$totalAmount"},
                    }
                },
            ],
        }
    })
    return pipeline


def business_analytics(
    registry: TenantRegistry,
    tenant: str,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> dict:
    """Revenue by category, top items, daily trends and overall totals.

    The date range only applies when both ends are given.
    """
    shape = shape_of("SaleRecords")
    match = None
    if start_date and end_date:
        start, end = parse_date(start_date), parse_date(end_date)
        if start is None or end is None:
            raise RecordValidationError(
                "Invalid date range",
                [{"field": "startDate" if start is None else "endDate", "message": "Expected an ISO-8601 date"}],
            )
        match = {"timestamp": {"$gte": start, "$lte": end}}

    rows = list(registry.collection(tenant, shape).aggregate(business_analytics_pipeline(match)))
    result = rows[0] if rows else {}

    overall = dict(EMPTY_OVERALL_STATS)
    if result.get("overallStats"):
        overall.update({k: v for k, v in result["overallStats"][0].items() if k != "_id"})

    return {
        "success": True,
        "data": to_json_value({
            "revenueByCategory": result.get("revenueByCategory", []),
            "topSellingItems": result.get("topSellingItems", []),
            "dailyTrends": result.get("dailyTrends", []),
            "overallStats": overall,
        }),
    }


def cross_collection_analysis(registry: TenantRegistry, tenant: str) -> dict:
    """Per (category, item) sales joined with the menu item's availability."""
    sales = shape_of("SaleRecords")
    menu_items = shape_of("MenuItems")
    pipeline = [
        {
            "$lookup": {
                "from": menu_items.collection,
                "localField": "menuItemId",
                "foreignField": "id",
                "as": "menuItemDetails",
            }
        },
        {"$unwind": {"path": "$menuItemDetails", "preserveNullAndEmptyArrays": True}},
        {
            "$group": {
                "_id": {"category": "$category", "itemName": "$itemName"},
                "totalRevenue": {"$sum": "$totalAmount"},
                "totalQuantity": {"$sum": "$quantity"},
                "salesCount": {"$sum": 1},
                "avgPrice": {"$avg": "$unitPrice"},
                "isAvailable": {"$first": "$menuItemDetails.isAvailable"},
            }
        },
        {"$sort": {"totalRevenue": -1}},
    ]
    rows = registry.collection(tenant, sales).aggregate(pipeline)
    return {"success": True, "data": to_json_value(list(rows))}

from bson import ObjectId

from schemas import TABLES, SearchQuery
from search import build_pipeline, pagination

SALES = TABLES["SaleRecords"]


def test_stages_follow_fixed_order() -> None:
    query = SearchQuery(
        filter={"category": "milkCakes"},
        addFields={"double": {"$multiply": ["$quantity", 2]}},
        lookups=[{"from": "MenuItems", "localField": "menuItemId", "foreignField": "id", "as": "menu"}],
        unwind=["$menu", {"path": "$tags", "preserveNullAndEmptyArrays": True}],
        sort={"timestamp": 1},
        project={"notes": 0},
        customStages=[{"$match": {"double": {"$gt": 2}}}],
    )
    stages = [next(iter(stage)) for stage in build_pipeline(SALES, query, 2, 10)]
    assert stages == [
        "$match", "$addFields", "$lookup", "$unwind", "$unwind",
        "$sort", "$project", "$match", "$facet",
    ]


def test_defaults_and_pagination_branches() -> None:
    pipeline = build_pipeline(SALES, SearchQuery(), 3, 5)
    assert pipeline[0] == {"$sort": {"_id": -1}}
    facet = pipeline[-1]["$facet"]
    assert facet["data"] == [{"$skip": 10}, {"$limit": 5}]
    assert facet["total"] == [{"$count": "count"}]


def test_match_receives_native_values() -> None:
    query = SearchQuery(filter={"userId": "65f1c2a9b8e4d3f2a1b0c9d8", "timestamp": {"$gte": "2024-01-01"}})
    match = build_pipeline(SALES, query, 1, 20)[0]["$match"]
    assert isinstance(match["userId"], ObjectId)
    assert match["timestamp"]["$gte"].year == 2024


def test_pagination_math() -> None:
    assert pagination(1, 20, 0)["totalPages"] == 0
    assert pagination(2, 2, 5) == {"page": 2, "pageSize": 2, "total": 5, "totalPages": 3}

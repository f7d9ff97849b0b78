import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
import resources
import search
from database import TenantRegistry, database_name, database_url
from errors import NotFoundError, RecordValidationError
from schemas import SearchQuery

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # close whichever registry served requests, overrides included
    app.dependency_overrides.get(get_registry, get_registry)().close()


app = FastAPI(
    title="Business Sales Tracker API",
    description="REST API for managing bakery menu items, sales, and analytics",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGIN", "*").split(",")],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

registry = TenantRegistry(database_url)


def get_registry() -> TenantRegistry:
    return registry


def _failure(status: int, error: str, details: Optional[list] = None, headers: Optional[dict] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status, content=content, headers=headers)


def _respond(operation: Callable[[], dict], fallback: str):
    """Run one service operation and map its failure onto the envelope."""
    try:
        return operation()
    except NotFoundError as e:
        return _failure(NotFoundError.status, str(e))
    except RecordValidationError as e:
        return _failure(RecordValidationError.status, e.message, e.details)
    except Exception as e:
        logger.exception(fallback)
        return _failure(500, str(e) or fallback)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _failure(422, "Invalid request", details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # unmatched routes and methods still answer with the envelope
    return _failure(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {
        "success": True,
        "message": "Business Sales Tracker API is running!",
        "version": app.version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoints": {
            "documentation": "/docs",
            "health": "/health",
            "search": "/{database}/searchresource/{tableName}",
            "businessAnalytics": "/{database}/getbusinessanalytics",
            "crossCollectionAnalysis": "/{database}/getcrosscollectionanalysis",
        },
    }


@app.get("/health")
def health(reg: TenantRegistry = Depends(get_registry)):
    connected = reg.ping()
    return {
        "success": True,
        "message": "Server is healthy",
        "database": "connected" if connected else "disconnected",
        "databaseName": database_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ===================== Generic Resources =====================
@app.post("/{database}/searchresource/{table}")
def search_resource(
    database: str,
    table: str,
    query: Optional[SearchQuery] = None,
    page: Optional[int] = Query(None, ge=1),
    pageSize: Optional[int] = Query(None, ge=1),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: search.search_resource(reg, database, table, query, page, pageSize),
        "Failed to search resource",
    )


@app.get("/{database}/searchresource/{table}/{record_id}")
def get_resource(database: str, table: str, record_id: str, reg: TenantRegistry = Depends(get_registry)):
    return _respond(
        lambda: resources.get_resource(reg, database, table, record_id),
        "Failed to get resource",
    )


@app.post("/{database}/createresource/{table}")
def create_resource(
    database: str,
    table: str,
    body: Dict[str, Any] = Body(...),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: resources.create_resource(reg, database, table, body),
        "Failed to create resource",
    )


@app.put("/{database}/updateresource/{table}/{record_id}")
def update_resource(
    database: str,
    table: str,
    record_id: str,
    body: Dict[str, Any] = Body(...),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: resources.update_resource(reg, database, table, record_id, body),
        "Failed to update resource",
    )


@app.delete("/{database}/deleteresource/{table}/{record_id}")
def delete_resource(database: str, table: str, record_id: str, reg: TenantRegistry = Depends(get_registry)):
    return _respond(
        lambda: resources.delete_resource(reg, database, table, record_id),
        "Failed to delete resource",
    )


@app.post("/{database}/aggregatetable/{table}")
def aggregate_table(
    database: str,
    table: str,
    stages: List[Dict[str, Any]] = Body(...),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: search.direct_aggregation(reg, database, table, stages),
        "Failed to execute direct aggregation",
    )


@app.patch("/{database}/removekeys/{table}/{record_id}")
def remove_keys(
    database: str,
    table: str,
    record_id: str,
    keys: Union[Dict[str, Any], List[str]] = Body(...),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: resources.remove_keys(reg, database, table, record_id, keys),
        "Failed to remove keys from body",
    )


# ===================== Menu & Sales =====================
@app.get("/{database}/getmenuitem/{menu_item_id}")
def get_menu_item(database: str, menu_item_id: str, reg: TenantRegistry = Depends(get_registry)):
    return _respond(
        lambda: resources.get_menu_item(reg, database, menu_item_id),
        "Failed to get menu item by id",
    )


@app.get("/{database}/getsalesbymenu/{menu_item_id}")
def get_sales_by_menu(
    database: str,
    menu_item_id: str,
    page: Optional[int] = Query(None, ge=1),
    pageSize: Optional[int] = Query(None, ge=1),
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: search.sales_by_menu_item(reg, database, menu_item_id, page, pageSize),
        "Failed to get sales by menu item id",
    )


# ===================== Analytics =====================
@app.get("/{database}/getbusinessanalytics")
def get_business_analytics(
    database: str,
    startDate: Optional[str] = None,
    endDate: Optional[str] = None,
    reg: TenantRegistry = Depends(get_registry),
):
    return _respond(
        lambda: analytics.business_analytics(reg, database, startDate, endDate),
        "Failed to get business analytics",
    )


@app.get("/{database}/getcrosscollectionanalysis")
def get_cross_collection_analysis(database: str, reg: TenantRegistry = Depends(get_registry)):
    return _respond(
        lambda: analytics.cross_collection_analysis(reg, database),
        "Failed to execute cross-collection analysis",
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)

"""
Database Schemas for the Bakery Sales Tracker

Each Pydantic model below corresponds to a MongoDB collection. The
collection name is the logical table name used in request paths
(e.g. MenuItems -> "MenuItems").

TABLES is the registry the service layer works from: per table it holds
the model used for validation, the kind of every field the coercion
engine needs to know about, the fields that must never be serialised,
and the indexes ensured for each tenant database.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, Union

from bson import ObjectId
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator
from pymongo import ASCENDING, DESCENDING, TEXT

from errors import NotFoundError

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Allowed drift between totalAmount and unitPrice * quantity
TOTAL_TOLERANCE = 0.01


def utcnow() -> datetime:
    # naive UTC, the form pymongo hands back
    return datetime.now(timezone.utc).replace(tzinfo=None)


MenuCategory = Literal["milkCakes", "cheeseCakes", "chocolateBrownie"]
ItemSize = Literal["small", "large", "regular"]
UserRole = Literal["owner", "manager", "employee"]


class RecordModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, str_strip_whitespace=True, extra="ignore")

    id: Optional[str] = Field(None, description="External identifier, defaults to the hex of _id")
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class MenuItem(RecordModel):
    name: str = Field(..., max_length=100, description="Item name")
    category: MenuCategory = Field(..., description="Menu category")
    prices: Dict[str, Annotated[float, Field(ge=0)]] = Field(..., description="Price per size variant")
    description: Optional[str] = Field(None, max_length=500)
    isAvailable: bool = Field(True, description="Whether the item can be sold")
    userId: Optional[ObjectId] = Field(None, description="Reference to Users._id")

    @field_validator("prices")
    @classmethod
    def require_one_price(cls, value: Dict[str, float]) -> Dict[str, float]:
        if len(value) == 0:
            raise ValueError("At least one price must be provided")
        return value


class SaleRecord(RecordModel):
    menuItemId: str = Field(..., description="External id of the sold MenuItem")
    itemName: str = Field(..., description="Item name snapshot")
    category: MenuCategory
    size: ItemSize
    unitPrice: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    totalAmount: Optional[float] = Field(None, ge=0, validate_default=True)
    timestamp: datetime = Field(default_factory=utcnow)
    notes: Optional[str] = Field(None, max_length=500)
    userId: Optional[ObjectId] = Field(None, description="Reference to Users._id")

    @field_validator("timestamp")
    @classmethod
    def naive_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @field_validator("totalAmount")
    @classmethod
    def check_total(cls, value: Optional[float], info: ValidationInfo) -> Optional[float]:
        unit_price = info.data.get("unitPrice")
        quantity = info.data.get("quantity")
        if unit_price is None or quantity is None:
            # already reported against those fields
            return value
        expected = unit_price * quantity
        if not value:
            return expected
        if abs(value - expected) > TOTAL_TOLERANCE:
            raise ValueError("Total amount must equal unit price x quantity")
        return value


class User(RecordModel):
    firstName: str = Field(..., max_length=50)
    lastName: str = Field(..., max_length=50)
    email: EmailStr = Field(..., description="Unique email address")
    phone: Optional[str] = Field(None, pattern=r"^\+?[1-9]\d{0,15}$")
    password: str = Field(..., min_length=6, description="Salted password hash")
    role: UserRole = "owner"
    businessName: Optional[str] = Field(None, max_length=100)
    businessType: str = Field("bakery", max_length=50)
    isActive: bool = True
    lastLoginAt: Optional[datetime] = None

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def hash_password(cls, value: str) -> str:
        if pwd_context.identify(value) is None:
            return pwd_context.hash(value)
        return value


class FieldKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    IDENTIFIER = "identifier"
    IDENTIFIER_ARRAY = "identifier-array"
    OBJECT = "object"
    MAP = "map"


IndexSpec = Tuple[List[Tuple[str, Union[int, str]]], Dict[str, Any]]


@dataclass(frozen=True)
class TableShape:
    name: str
    model: Type[RecordModel]
    fields: Mapping[str, FieldKind]
    hidden: frozenset = frozenset()
    indexes: Tuple[IndexSpec, ...] = ()
    collection: str = field(default="")

    def __post_init__(self):
        if not self.collection:
            object.__setattr__(self, "collection", self.name)

    def kind_of(self, name: str) -> Optional[FieldKind]:
        return self.fields.get(name)


_RECORD_FIELDS = {
    "_id": FieldKind.IDENTIFIER,
    "id": FieldKind.STRING,
    "createdAt": FieldKind.DATE,
    "updatedAt": FieldKind.DATE,
}

_UNIQUE_ID: IndexSpec = ([("id", ASCENDING)], {"unique": True})

TABLES: Dict[str, TableShape] = {
    "MenuItems": TableShape(
        name="MenuItems",
        model=MenuItem,
        fields={
            **_RECORD_FIELDS,
            "name": FieldKind.STRING,
            "category": FieldKind.STRING,
            "prices": FieldKind.MAP,
            "description": FieldKind.STRING,
            "isAvailable": FieldKind.BOOLEAN,
            "userId": FieldKind.IDENTIFIER,
        },
        indexes=(
            _UNIQUE_ID,
            ([("category", ASCENDING)], {}),
            ([("isAvailable", ASCENDING)], {}),
            ([("userId", ASCENDING)], {}),
            ([("name", TEXT), ("description", TEXT)], {}),
        ),
    ),
    "SaleRecords": TableShape(
        name="SaleRecords",
        model=SaleRecord,
        fields={
            **_RECORD_FIELDS,
            "menuItemId": FieldKind.STRING,
            "itemName": FieldKind.STRING,
            "category": FieldKind.STRING,
            "size": FieldKind.STRING,
            "unitPrice": FieldKind.NUMBER,
            "quantity": FieldKind.NUMBER,
            "totalAmount": FieldKind.NUMBER,
            "timestamp": FieldKind.DATE,
            "notes": FieldKind.STRING,
            "userId": FieldKind.IDENTIFIER,
        },
        indexes=(
            _UNIQUE_ID,
            ([("timestamp", DESCENDING)], {}),
            ([("menuItemId", ASCENDING)], {}),
            ([("category", ASCENDING)], {}),
            ([("timestamp", ASCENDING), ("category", ASCENDING)], {}),
            ([("userId", ASCENDING)], {}),
        ),
    ),
    "Users": TableShape(
        name="Users",
        model=User,
        fields={
            **_RECORD_FIELDS,
            "firstName": FieldKind.STRING,
            "lastName": FieldKind.STRING,
            "email": FieldKind.STRING,
            "phone": FieldKind.STRING,
            "password": FieldKind.STRING,
            "role": FieldKind.STRING,
            "businessName": FieldKind.STRING,
            "businessType": FieldKind.STRING,
            "isActive": FieldKind.BOOLEAN,
            "lastLoginAt": FieldKind.DATE,
        },
        hidden=frozenset({"password"}),
        indexes=(
            _UNIQUE_ID,
            ([("email", ASCENDING)], {"unique": True}),
            ([("role", ASCENDING)], {}),
            ([("isActive", ASCENDING)], {}),
            ([("businessName", TEXT), ("firstName", TEXT), ("lastName", TEXT)], {}),
        ),
    ),
}


def shape_of(table_name: str) -> TableShape:
    shape = TABLES.get(table_name)
    if shape is None:
        raise NotFoundError(f"No schema for table: {table_name}")
    return shape


class SearchQuery(BaseModel):
    """Declarative search body for POST /{tenant}/searchresource/{table}"""
    filter: Dict[str, Any] = Field(default_factory=dict)
    sort: Optional[Dict[str, Any]] = None
    project: Optional[Dict[str, Any]] = None
    lookups: Optional[List[Dict[str, Any]]] = None
    unwind: Optional[Union[str, Dict[str, Any], List[Union[str, Dict[str, Any]]]]] = None
    addFields: Optional[Dict[str, Any]] = None
    customStages: Optional[List[Dict[str, Any]]] = None
    page: Optional[int] = Field(None, ge=1)
    pageSize: Optional[int] = Field(None, ge=1)
"""
Notes:
- Add a table by declaring its model and registering a TableShape in TABLES.
- Fields missing from a shape's field table pass through coercion untouched.
"""

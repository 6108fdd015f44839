import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountType, TransactionType


class UserIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password_hash: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, max_length=200)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    institution: Optional[str] = Field(default=None, max_length=120)
    type: AccountType = AccountType.checking
    masked_number: Optional[str] = Field(default=None, max_length=32)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    balance: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, max_length=7)


class TransactionIn(BaseModel):
    date: dt.date
    amount: Decimal = Field(..., max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: Optional[str] = Field(default=None, max_length=500)
    account_id: Optional[uuid.UUID] = None
    category_id: Optional[int] = None
    is_transfer: bool = False
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class SpendBucketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    month: dt.date
    category_id: int
    category_name: Optional[str]
    currency: str
    spend: Decimal


class SpendReportOut(BaseModel):
    available: bool
    user_id: uuid.UUID
    start: dt.date
    end: dt.date
    snapshot_version: Optional[int] = None
    last_refreshed_at: Optional[dt.datetime] = None
    buckets: list[SpendBucketOut] = Field(default_factory=list)


class SnapshotStatusOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    available: bool
    version: Optional[int]
    last_refreshed_at: Optional[dt.datetime]
    invalidated_at: Optional[dt.datetime]
    bucket_count: int
    stale: bool


class RefreshOut(BaseModel):
    version: int
    last_refreshed_at: dt.datetime
    bucket_count: int
    source_rows: int

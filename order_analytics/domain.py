"""
Domain Models

Request, record and report types shared by the ingestion and analytics
components. A store identity (``seq``) that has not been attributed yet is
``None`` here; the ``UNMAPPED`` sentinel only exists in stored items.
"""

from dataclasses import dataclass, field
import datetime as dt
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from order_analytics.store.base import UNMAPPED, Item, decode_seq, encode_seq

DedupKey = Tuple[str, str, float]


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    Normalize a date or timestamp string to ``YYYY-MM-DD``.

    Accepts ``2024-01-05``, ``2024.1.5``, ``2024-01-05 10:00:00`` and
    ``2024-01-05T10:00:00Z``; anything without three date parts is returned
    as-is after separator cleanup.
    """
    if not value:
        return None
    date_part = value.strip().split("T")[0].split(" ")[0]
    normalized = date_part.replace(".", "-")
    parts = normalized.split("-")
    if len(parts) == 3:
        return f"{parts[0]}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"
    return normalized or None


# =============================================================================
# INGESTION
# =============================================================================

class OrderSubmission(BaseModel):
    """One raw order as submitted by the upload client"""

    model_config = ConfigDict(extra="ignore")

    order_id: str = Field(min_length=1)
    order_time: str = Field(min_length=1)
    payment_amount: Optional[float] = None
    seq: Optional[str] = None
    store_name_csv: Optional[str] = None
    payment_status: Optional[str] = None
    coupon_discount: Optional[float] = None
    payment_time: Optional[str] = None

    @field_validator("order_id", "seq", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("seq")
    @classmethod
    def drop_sentinel(cls, v: Optional[str]) -> Optional[str]:
        """Blank and sentinel identities both mean 'not attributed yet'"""
        if v is None:
            return None
        v = v.strip()
        return None if not v or v == UNMAPPED else v

    @property
    def amount(self) -> float:
        return self.payment_amount or 0

    @property
    def dedup_key(self) -> DedupKey:
        return (self.order_id, self.order_time, self.amount)

    @property
    def order_date(self) -> Optional[str]:
        return normalize_date(self.order_time)


class IngestRequest(BaseModel):
    orders: List[OrderSubmission] = Field(default_factory=list)


class Classification(str, Enum):
    """Outcome of checking one submission against stored orders"""
    NEW = "new"
    UPDATE = "update"
    DUPLICATE = "duplicate"


@dataclass
class OrderRecord:
    """Stored order, one per distinct dedup key"""
    item_id: str
    order_id: str
    order_time: str
    order_date: Optional[str]
    seq: Optional[str] = None
    store_name_csv: Optional[str] = None
    payment_status: Optional[str] = None
    coupon_discount: float = 0
    payment_amount: float = 0
    payment_time: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_submission(cls, item_id: str, order: OrderSubmission, created_at: str) -> "OrderRecord":
        return cls(
            item_id=item_id,
            order_id=order.order_id,
            order_time=order.order_time,
            order_date=order.order_date,
            seq=order.seq,
            store_name_csv=order.store_name_csv,
            payment_status=order.payment_status,
            coupon_discount=order.coupon_discount or 0,
            payment_amount=order.amount,
            payment_time=order.payment_time,
            created_at=created_at,
        )

    @classmethod
    def from_item(cls, item: Item) -> "OrderRecord":
        return cls(
            item_id=item["item_id"],
            order_id=item["order_id"],
            order_time=item["order_time"],
            order_date=item.get("order_date"),
            seq=decode_seq(item.get("seq")),
            store_name_csv=item.get("store_name_csv"),
            payment_status=item.get("payment_status"),
            coupon_discount=item.get("coupon_discount") or 0,
            payment_amount=item.get("payment_amount") or 0,
            payment_time=item.get("payment_time"),
            created_at=item.get("created_at"),
            updated_at=item.get("updated_at"),
        )

    def to_item(self) -> Item:
        item = {
            "item_id": self.item_id,
            "order_id": self.order_id,
            "seq": encode_seq(self.seq),
            "store_name_csv": self.store_name_csv,
            "order_time": self.order_time,
            "order_date": self.order_date,
            "payment_status": self.payment_status,
            "coupon_discount": self.coupon_discount,
            "payment_amount": self.payment_amount,
            "payment_time": self.payment_time,
            "created_at": self.created_at,
        }
        if self.updated_at is not None:
            item["updated_at"] = self.updated_at
        return item


@dataclass(frozen=True)
class SeqResolution:
    """Deferred store identity filled in on an already stored order"""
    item_id: str
    seq: str
    order_id: str
    order_date: Optional[str]


@dataclass(frozen=True)
class Contribution:
    """One attributed order feeding the aggregate families"""
    seq: str
    order_date: Optional[str]
    order_id: str


@dataclass
class IntakeOutcome:
    """Result of classifying and persisting one batch"""
    saved: int = 0
    updated: int = 0
    duplicates: int = 0
    contributions: List[Contribution] = field(default_factory=list)


class IngestionResult(BaseModel):
    """Response of an ingestion call"""
    success: bool = True
    message: str = ""
    saved: int = 0
    updated: int = 0
    duplicates: int = 0
    stats_updated: int = 0


# =============================================================================
# ANALYTICS
# =============================================================================

class Period(BaseModel):
    start_date: dt.date
    end_date: dt.date


class DailyUsage(BaseModel):
    """Active stores and lifecycle counters for one day"""
    date: dt.date
    active: int = 0
    order_count: int = 0
    new_installs: int = 0
    new_churns: int = 0
    cumulative_installed: int = 0
    cumulative_churned: int = 0


class UsageSummary(BaseModel):
    period: Period
    total_days: int
    avg_daily_active: float
    max_daily_active: int


class UsageReport(BaseModel):
    summary: UsageSummary
    daily_usage: List[DailyUsage]


class StoreHeatmapRow(BaseModel):
    seq: str
    orders: Dict[str, int]
    total: int


class StoreHeatmap(BaseModel):
    period: Period
    dates: List[str]
    stores: List[StoreHeatmapRow]


# =============================================================================
# TIME
# =============================================================================

def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def to_timestamp(moment: dt.datetime) -> str:
    """Render a moment as a UTC ISO-8601 string with millisecond precision"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    moment = moment.astimezone(dt.timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")

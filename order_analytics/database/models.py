"""
Database Models

Tables backing the SQL key-value store adapter:

- OrderRow: raw order submissions, one row per distinct dedup key
- OrderStatsRow: per-seq counters
- DailyOrderStatsRow: per-day counters plus externally owned lifecycle counters
- DailyStoreSeqRow: members of the per-day ``store_seqs`` set
- StoreDailyOrdersRow: per-(seq, day) counters

Dates are stored as ``YYYY-MM-DD`` strings so range filters compare lexically.
"""

from typing import Optional

from sqlalchemy import Float, ForeignKey, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


class OrderRow(Base):
    """Order submissions keyed by a generated item id"""
    __tablename__ = "orders"

    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    seq: Mapped[str] = mapped_column(String(64), nullable=False, default="UNMAPPED")
    store_name_csv: Mapped[Optional[str]] = mapped_column(String(255))
    order_time: Mapped[str] = mapped_column(String(32), nullable=False)
    order_date: Mapped[Optional[str]] = mapped_column(String(10))
    payment_status: Mapped[Optional[str]] = mapped_column(String(32))
    coupon_discount: Mapped[Optional[float]] = mapped_column(Float, default=0)
    payment_amount: Mapped[Optional[float]] = mapped_column(Float, default=0)
    payment_time: Mapped[Optional[str]] = mapped_column(String(32))
    created_at: Mapped[Optional[str]] = mapped_column(String(40))
    updated_at: Mapped[Optional[str]] = mapped_column(String(40))

    __table_args__ = (
        Index("ix_orders_order_id", "order_id"),
        Index("ix_orders_seq", "seq"),
    )


class OrderStatsRow(Base):
    """Per-seq aggregate"""
    __tablename__ = "order_stats"

    seq: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_count: Mapped[Optional[int]] = mapped_column(Integer)
    customer_count: Mapped[Optional[int]] = mapped_column(Integer)
    last_order_date: Mapped[Optional[str]] = mapped_column(String(10))
    updated_at: Mapped[Optional[str]] = mapped_column(String(40))


class DailyOrderStatsRow(Base):
    """
    Per-day aggregate.

    ``new_installs``, ``new_churns`` and the cumulative counters are written
    by the installation lifecycle jobs, not by order ingestion.
    """
    __tablename__ = "daily_order_stats"

    order_date: Mapped[str] = mapped_column(String(10), primary_key=True)
    order_count: Mapped[Optional[int]] = mapped_column(Integer)
    new_installs: Mapped[Optional[int]] = mapped_column(Integer)
    new_churns: Mapped[Optional[int]] = mapped_column(Integer)
    cumulative_installed: Mapped[Optional[int]] = mapped_column(Integer)
    cumulative_churned: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[str]] = mapped_column(String(40))


class DailyStoreSeqRow(Base):
    """Set members of ``daily_order_stats.store_seqs``"""
    __tablename__ = "daily_order_stats_store_seqs"

    order_date: Mapped[str] = mapped_column(
        String(10),
        ForeignKey("daily_order_stats.order_date", ondelete="CASCADE"),
        primary_key=True,
    )
    seq: Mapped[str] = mapped_column(String(64), primary_key=True)


class StoreDailyOrdersRow(Base):
    """Per-(seq, day) aggregate, the source of active-store sets"""
    __tablename__ = "store_daily_orders"

    seq: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_date: Mapped[str] = mapped_column(String(10), primary_key=True)
    order_count: Mapped[Optional[int]] = mapped_column(Integer)
    updated_at: Mapped[Optional[str]] = mapped_column(String(40))

    __table_args__ = (
        Index("ix_store_daily_orders_date", "order_date"),
    )

"""
Unit Tests - Usage & Heatmap Readers
"""
from datetime import date

import pytest

from order_analytics.analytics import StoreHeatmapReader, UsageAggregationReader, active_counts, summarize
from order_analytics.exceptions import StoreError
from order_analytics.store import DAILY_ORDER_STATS, STORE_DAILY_ORDERS, MemoryKeyValueStore, StringSet


async def seed_store_day(store, seq, order_date, count=1):
    await store.update(STORE_DAILY_ORDERS, {"seq": seq, "order_date": order_date}, increments={"order_count": count})


class FailingScanStore(MemoryKeyValueStore):
    """Memory store whose scans always fail"""

    async def scan(self, table, condition=None, cursor=None, limit=None):
        raise StoreError(f"scan on {table} failed")


class TestActiveCounts:
    """Tests for the trailing-window distinct store count"""

    def test_window_covers_seven_days(self):
        """Test one store-day stays active for seven days"""
        dates = [date(2024, 1, d) for d in range(9, 19)]

        counts = active_counts({"2024-01-10": {"X"}}, dates)

        assert counts == [0, 1, 1, 1, 1, 1, 1, 1, 0, 0]

    def test_stores_are_distinct(self):
        """Test a store active on several days of the window counts once"""
        dates = [date(2024, 1, 12)]

        counts = active_counts({"2024-01-10": {"X", "Y"}, "2024-01-11": {"X"}}, dates)

        assert counts == [2]


class TestSummarize:
    """Tests for the usage summary"""

    def test_summary_over_days_with_data(self):
        """Test average and day count ignore inactive days"""
        summary = summarize([0, 3, 3, 5, 0, 2], date(2024, 1, 1), date(2024, 1, 6))

        assert summary.total_days == 4
        assert summary.avg_daily_active == 3.3
        assert summary.max_daily_active == 5

    def test_average_rounds_half_up(self):
        """Test one-decimal rounding of .x5 goes up"""
        summary = summarize([1, 2, 2, 2], date(2024, 1, 1), date(2024, 1, 4))

        assert summary.avg_daily_active == 1.8

    def test_all_inactive(self):
        """Test a range without active stores summarizes to zeros"""
        summary = summarize([0, 0, 0], date(2024, 1, 1), date(2024, 1, 3))

        assert (summary.total_days, summary.avg_daily_active, summary.max_daily_active) == (0, 0.0, 0)


class TestUsageAggregationReader:
    """Tests for UsageAggregationReader.read over every store backend"""

    async def test_one_entry_per_day(self, store):
        """Test the series covers the range inclusively"""
        report = await UsageAggregationReader(store).read(date(2024, 1, 1), date(2024, 1, 31))

        assert len(report.daily_usage) == 31
        assert report.daily_usage[0].date == date(2024, 1, 1)
        assert report.daily_usage[-1].date == date(2024, 1, 31)
        assert all(day.active == 0 for day in report.daily_usage)

    async def test_window_boundary(self, store):
        """Test a single order keeps its store active for exactly seven days"""
        await seed_store_day(store, "X", "2024-01-10")

        report = await UsageAggregationReader(store).read(date(2024, 1, 1), date(2024, 1, 25))

        active = {day.date.day for day in report.daily_usage if day.active == 1}
        assert active == set(range(10, 17))
        assert report.summary.total_days == 7
        assert report.summary.max_daily_active == 1

    async def test_orders_before_range_count(self, store):
        """Test store-days up to six days before the start contribute"""
        await seed_store_day(store, "X", "2024-01-05")
        await seed_store_day(store, "Y", "2024-01-01")

        report = await UsageAggregationReader(store).read(date(2024, 1, 8), date(2024, 1, 14))

        assert [day.active for day in report.daily_usage] == [1, 1, 1, 1, 0, 0, 0]

    async def test_zero_count_rows_ignored(self, store):
        """Test store-days with no orders do not make a store active"""
        await seed_store_day(store, "X", "2024-01-10", count=0)

        report = await UsageAggregationReader(store).read(date(2024, 1, 10), date(2024, 1, 12))

        assert [day.active for day in report.daily_usage] == [0, 0, 0]

    async def test_active_comes_from_store_days_only(self, store):
        """Test the per-day store set does not feed the active count"""
        await store.update(
            DAILY_ORDER_STATS,
            {"order_date": "2024-01-10"},
            increments={"order_count": 5},
            add_to_sets={"store_seqs": StringSet.of(["X", "Y"])},
        )

        report = await UsageAggregationReader(store).read(date(2024, 1, 10), date(2024, 1, 10))

        assert report.daily_usage[0].active == 0
        assert report.daily_usage[0].order_count == 5

    async def test_daily_counters_default_to_zero(self, store):
        """Test days without a stats row report zero counters"""
        await store.put(DAILY_ORDER_STATS, {"order_date": "2024-01-11", "order_count": 4, "new_installs": 2, "new_churns": 1})

        report = await UsageAggregationReader(store).read(date(2024, 1, 10), date(2024, 1, 11))

        first, second = report.daily_usage
        assert (first.order_count, first.new_installs, first.new_churns) == (0, 0, 0)
        assert (second.order_count, second.new_installs, second.new_churns) == (4, 2, 1)

    async def test_cumulative_forward_fill(self, store):
        """Test cumulative counters carry over days without a value"""
        await store.put(DAILY_ORDER_STATS, {"order_date": "2024-01-02", "cumulative_installed": 5, "cumulative_churned": 1})
        await store.update(DAILY_ORDER_STATS, {"order_date": "2024-01-03"}, increments={"order_count": 2})
        await store.put(DAILY_ORDER_STATS, {"order_date": "2024-01-05", "cumulative_installed": 7, "cumulative_churned": 0})

        report = await UsageAggregationReader(store).read(date(2024, 1, 1), date(2024, 1, 6))

        assert [day.cumulative_installed for day in report.daily_usage] == [0, 5, 5, 5, 7, 7]
        assert [day.cumulative_churned for day in report.daily_usage] == [0, 1, 1, 1, 0, 0]

    async def test_many_pages_drained(self, store):
        """Test results spanning many scan pages are all read"""
        for n in range(12):
            await seed_store_day(store, f"S{n:02d}", "2024-01-10")

        report = await UsageAggregationReader(store).read(date(2024, 1, 10), date(2024, 1, 10))

        assert report.daily_usage[0].active == 12

    async def test_reversed_range_swapped(self, store):
        """Test a start after the end reads the swapped range"""
        report = await UsageAggregationReader(store).read(date(2024, 1, 31), date(2024, 1, 1))

        assert report.summary.period.start_date == date(2024, 1, 1)
        assert report.summary.period.end_date == date(2024, 1, 31)
        assert len(report.daily_usage) == 31

    async def test_scan_failure_propagates(self):
        """Test a failing scan fails the whole read"""
        with pytest.raises(StoreError):
            await UsageAggregationReader(FailingScanStore()).read(date(2024, 1, 1), date(2024, 1, 7))

    async def test_end_to_end_after_ingestion(self, service, store, now, sample_orders):
        """Test usage reflects ingested orders"""
        await service.ingest(sample_orders, now=now)

        report = await UsageAggregationReader(store).read(date(2024, 1, 10), date(2024, 1, 17))

        assert [day.active for day in report.daily_usage] == [1, 1, 1, 1, 1, 1, 1, 0]
        assert report.daily_usage[0].order_count == 3
        assert report.summary.total_days == 7
        assert report.summary.avg_daily_active == 1.0


class TestStoreHeatmapReader:
    """Tests for the per-store order heatmap"""

    async def test_rows_zero_filled_and_sorted(self, store):
        """Test busiest stores first, missing days as zero"""
        await seed_store_day(store, "S1", "2024-01-10", 2)
        await seed_store_day(store, "S2", "2024-01-10", 3)
        await seed_store_day(store, "S2", "2024-01-12", 4)
        await seed_store_day(store, "S3", "2024-01-11", 2)
        await seed_store_day(store, "S4", "2024-01-20", 9)

        heatmap = await StoreHeatmapReader(store).read(date(2024, 1, 10), date(2024, 1, 12))

        assert heatmap.dates == ["2024-01-10", "2024-01-11", "2024-01-12"]
        assert [row.seq for row in heatmap.stores] == ["S2", "S1", "S3"]
        assert heatmap.stores[0].orders == {"2024-01-10": 3, "2024-01-11": 0, "2024-01-12": 4}
        assert heatmap.stores[0].total == 7

    async def test_empty_range(self, store):
        """Test a range without orders has no rows"""
        heatmap = await StoreHeatmapReader(store).read(date(2024, 1, 10), date(2024, 1, 11))

        assert heatmap.stores == []
        assert len(heatmap.dates) == 2

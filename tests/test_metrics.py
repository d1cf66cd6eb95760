"""Tests for earnings, penalty, and week-over-week figures."""

from datetime import datetime, timedelta, timezone

from saathi.metrics import (
    Earnings,
    Growth,
    Penalty,
    compute_earnings,
    compute_growth,
    compute_penalty,
    earnings_reply,
    growth_reply,
    penalty_reply,
    start_of_week,
)

from conftest import FIXED_NOW


def add(store, tracking_id, **fields):
    data = {"tracking_id": tracking_id, "item": "parcel"}
    data.update(fields)
    return store.create(data)


class TestWeekBoundaries:
    def test_week_starts_on_sunday(self):
        assert start_of_week(FIXED_NOW) == datetime(2024, 5, 12, tzinfo=timezone.utc)

    def test_sunday_is_its_own_week_start(self):
        sunday = datetime(2024, 5, 12, 18, 30, tzinfo=timezone.utc)
        assert start_of_week(sunday) == datetime(2024, 5, 12, tzinfo=timezone.utc)

    def test_saturday_belongs_to_previous_sunday(self):
        saturday = datetime(2024, 5, 18, 23, 0, tzinfo=timezone.utc)
        assert start_of_week(saturday) == datetime(2024, 5, 12, tzinfo=timezone.utc)


class TestEarnings:
    def test_sums_todays_billable_orders(self, order_store, clock):
        clock.now = FIXED_NOW - timedelta(days=1)
        add(order_store, "ORD-yesterday")
        clock.now = FIXED_NOW
        add(order_store, "ORD-1")
        add(order_store, "ORD-2", amount=300, expenses=80)
        add(order_store, "ORD-3", status="cancelled")
        earnings = compute_earnings(order_store, FIXED_NOW)
        assert earnings == Earnings(orders=2, gross=500, expenses=130)
        assert earnings.net == 370

    def test_reply_mentions_take_home(self):
        reply = earnings_reply(Earnings(orders=2, gross=400, expenses=100))
        assert "₹300" in reply
        assert "kharcha kaat ke ₹300" in earnings_reply(Earnings(orders=2, gross=400, expenses=100), "hi")

    def test_no_orders_today(self):
        assert "₹0" in earnings_reply(Earnings(orders=0, gross=0, expenses=0))


class TestPenalty:
    def test_counts_late_orders_this_week(self, order_store, clock):
        clock.now = FIXED_NOW - timedelta(days=7)
        add(order_store, "ORD-old-late", status="late")
        clock.now = FIXED_NOW
        add(order_store, "ORD-late-1", status="late")
        add(order_store, "ORD-late-2", status="late")
        add(order_store, "ORD-ok")
        assert compute_penalty(order_store, FIXED_NOW, per_late_order=50) == Penalty(late_orders=2, total=100)

    def test_reply(self):
        assert "₹100" in penalty_reply(Penalty(late_orders=2, total=100))
        assert "No penalties" in penalty_reply(Penalty(late_orders=0, total=0))


class TestGrowth:
    def test_compares_with_previous_week(self, order_store, clock):
        clock.now = FIXED_NOW - timedelta(days=7)
        add(order_store, "ORD-last-1")
        add(order_store, "ORD-last-2")
        clock.now = FIXED_NOW
        for index in range(3):
            add(order_store, f"ORD-this-{index}")
        growth = compute_growth(order_store, FIXED_NOW)
        assert growth == Growth(this_week=3, last_week=2)
        assert growth.change_pct == 50.0
        assert "up 50%" in growth_reply(growth)
        assert "50% behtar" in growth_reply(growth, "hi")

    def test_no_previous_week(self):
        growth = Growth(this_week=4, last_week=0)
        assert growth.change_pct is None
        assert "no data for last week" in growth_reply(growth)

    def test_decline(self):
        assert "down 50%" in growth_reply(Growth(this_week=1, last_week=2))

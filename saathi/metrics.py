"""Business figures computed from the order store for the metric intents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol, Sequence

from .models import Order


class OrderWindowSource(Protocol):
    def find_created_between(self, start: datetime, end: datetime) -> Sequence[Order]:
        ...


@dataclass(frozen=True)
class Earnings:
    orders: int
    gross: float
    expenses: float

    @property
    def net(self) -> float:
        return self.gross - self.expenses


@dataclass(frozen=True)
class Penalty:
    late_orders: int
    total: float


@dataclass(frozen=True)
class Growth:
    this_week: int
    last_week: int

    @property
    def change_pct(self) -> Optional[float]:
        if self.last_week == 0:
            return None
        return (self.this_week - self.last_week) * 100.0 / self.last_week


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Weeks start on Sunday at midnight, in the timezone of ``now``."""
    days_since_sunday = (now.weekday() + 1) % 7
    return start_of_day(now) - timedelta(days=days_since_sunday)


def billable(orders: Sequence[Order]) -> list:
    return [order for order in orders if order.status != "cancelled"]


def compute_earnings(store: OrderWindowSource, now: datetime) -> Earnings:
    """Today's non-cancelled orders with their per-order amount and expense summed."""
    day = start_of_day(now)
    orders = billable(store.find_created_between(day, day + timedelta(days=1)))
    return Earnings(
        orders=len(orders),
        gross=sum(order.amount for order in orders),
        expenses=sum(order.expenses for order in orders),
    )


def compute_penalty(store: OrderWindowSource, now: datetime, per_late_order: float) -> Penalty:
    week = start_of_week(now)
    orders = store.find_created_between(week, week + timedelta(days=7))
    late = [order for order in orders if order.status == "late"]
    return Penalty(late_orders=len(late), total=len(late) * per_late_order)


def compute_growth(store: OrderWindowSource, now: datetime) -> Growth:
    """Order counts for this calendar week so far against the whole of last week."""
    week = start_of_week(now)
    this_week = billable(store.find_created_between(week, week + timedelta(days=7)))
    last_week = billable(store.find_created_between(week - timedelta(days=7), week))
    return Growth(this_week=len(this_week), last_week=len(last_week))


def _money(value: float) -> str:
    return f"₹{value:,.0f}"


def earnings_reply(earnings: Earnings, lang: str = "en") -> str:
    if lang == "hi":
        if not earnings.orders:
            return "Aaj abhi tak koi order complete nahi hua, isliye kamai ₹0 hai."
        return (
            f"Aaj aapne {earnings.orders} order kiye. Kamai {_money(earnings.gross)}, "
            f"kharcha {_money(earnings.expenses)}, kharcha kaat ke {_money(earnings.net)} bache."
        )
    if not earnings.orders:
        return "You have no orders today yet, so your earnings are ₹0."
    return (
        f"Today you did {earnings.orders} orders. You earned {_money(earnings.gross)}, "
        f"spent {_money(earnings.expenses)}, so you take home {_money(earnings.net)}."
    )


def penalty_reply(penalty: Penalty, lang: str = "en") -> str:
    if lang == "hi":
        if not penalty.late_orders:
            return "Is hafte koi penalty nahi lagi. Badhiya kaam!"
        return (
            f"Is hafte {penalty.late_orders} order late hue, penalty {_money(penalty.total)} hai. "
            "Time par pickup karke ise kam kar sakte hain."
        )
    if not penalty.late_orders:
        return "No penalties this week. Great work!"
    return (
        f"This week {penalty.late_orders} orders were late, for a penalty of {_money(penalty.total)}. "
        "Picking up on time keeps penalties down."
    )


def growth_reply(growth: Growth, lang: str = "en") -> str:
    change = growth.change_pct
    if lang == "hi":
        if change is None:
            return f"Is hafte {growth.this_week} order hue. Pichle hafte ka data nahi hai, tulna nahi ho sakti."
        if change > 0:
            trend = f"{change:.0f}% behtar"
        elif change < 0:
            trend = f"{abs(change):.0f}% kam"
        else:
            trend = "barabar"
        return f"Is hafte {growth.this_week} order, pichle hafte {growth.last_week}. Business {trend} hai."
    if change is None:
        return f"You have {growth.this_week} orders this week. There is no data for last week to compare."
    if change > 0:
        trend = f"up {change:.0f}%"
    elif change < 0:
        trend = f"down {abs(change):.0f}%"
    else:
        trend = "the same as last week"
    return f"You have {growth.this_week} orders this week against {growth.last_week} last week, {trend}."

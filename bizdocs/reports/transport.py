"""
Transport P&L: trip revenue against driver fees and other expenses.

Every function takes an optional inclusive ``[start, end]`` window on the
trip date; without both bounds all trips count.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from ..items import coerce_date
from ..models import TransportTrip
from .dates import filter_window, last_months, month_key, month_name

UNKNOWN_VEHICLE = "unknown"


@dataclass(frozen=True)
class TransportPLMetrics:
    period_start: Optional[date]
    period_end: Optional[date]
    revenue: float
    driver_fees: float
    other_expenses: float
    total_expenses: float
    operating_profit: float
    operating_margin_percentage: float
    trip_count: int
    average_revenue_per_trip: float
    average_expense_per_trip: float
    profit_per_trip: float


@dataclass
class VehiclePerformance:
    vehicle_id: str
    trip_count: int = 0
    revenue: float = 0.0
    driver_fees: float = 0.0
    other_expenses: float = 0.0

    @property
    def vehicle_name(self) -> str:
        return self.vehicle_id if self.vehicle_id != UNKNOWN_VEHICLE else f"Vehicle {UNKNOWN_VEHICLE}"

    @property
    def total_expenses(self) -> float:
        return self.driver_fees + self.other_expenses

    @property
    def operating_profit(self) -> float:
        return self.revenue - self.total_expenses

    @property
    def profit_margin_percentage(self) -> float:
        return (self.operating_profit / self.revenue) * 100 if self.revenue > 0 else 0.0

    @property
    def average_revenue_per_trip(self) -> float:
        return self.revenue / self.trip_count if self.trip_count else 0.0


@dataclass
class MonthlyTransport:
    month: str
    month_name: str
    revenue: float = 0.0
    driver_fees: float = 0.0
    other_expenses: float = 0.0
    trip_count: int = 0

    @property
    def total_expenses(self) -> float:
        return self.driver_fees + self.other_expenses

    @property
    def operating_profit(self) -> float:
        return self.revenue - self.total_expenses


def _window(trips: Iterable[TransportTrip], start: Any, end: Any) -> list[TransportTrip]:
    return filter_window(trips, start, end, lambda t: t.date)


def calculate_transport_revenue(trips, start=None, end=None) -> float:
    return sum(t.selling_price for t in _window(trips, start, end))


def calculate_driver_fees(trips, start=None, end=None) -> float:
    return sum(t.driver_fees for t in _window(trips, start, end))


def calculate_other_expenses(trips, start=None, end=None) -> float:
    return sum(t.other_expenses for t in _window(trips, start, end))


def calculate_total_expenses(trips, start=None, end=None) -> float:
    trips = list(trips)
    return calculate_driver_fees(trips, start, end) + calculate_other_expenses(trips, start, end)


def calculate_operating_profit(revenue: float, expenses: float) -> float:
    return revenue - expenses


def calculate_operating_margin_percentage(revenue: float, expenses: float) -> float:
    if revenue == 0:
        return 0.0
    return ((revenue - expenses) / revenue) * 100


def get_trip_count(trips, start=None, end=None) -> int:
    return len(_window(trips, start, end))


def calculate_average_revenue_per_trip(trips, start=None, end=None) -> float:
    filtered = _window(trips, start, end)
    if not filtered:
        return 0.0
    return sum(t.selling_price for t in filtered) / len(filtered)


def calculate_average_expense_per_trip(trips, start=None, end=None) -> float:
    filtered = _window(trips, start, end)
    if not filtered:
        return 0.0
    return sum(t.driver_fees + t.other_expenses for t in filtered) / len(filtered)


def calculate_profit_per_trip(average_revenue: float, average_expense: float) -> float:
    return average_revenue - average_expense


def calculate_transport_pl_metrics(trips, start, end) -> TransportPLMetrics:
    trips = list(trips)
    revenue = calculate_transport_revenue(trips, start, end)
    driver_fees = calculate_driver_fees(trips, start, end)
    other_expenses = calculate_other_expenses(trips, start, end)
    total_expenses = driver_fees + other_expenses
    average_revenue = calculate_average_revenue_per_trip(trips, start, end)
    average_expense = calculate_average_expense_per_trip(trips, start, end)
    return TransportPLMetrics(
        period_start=coerce_date(start),
        period_end=coerce_date(end),
        revenue=revenue,
        driver_fees=driver_fees,
        other_expenses=other_expenses,
        total_expenses=total_expenses,
        operating_profit=calculate_operating_profit(revenue, total_expenses),
        operating_margin_percentage=calculate_operating_margin_percentage(revenue, total_expenses),
        trip_count=get_trip_count(trips, start, end),
        average_revenue_per_trip=average_revenue,
        average_expense_per_trip=average_expense,
        profit_per_trip=calculate_profit_per_trip(average_revenue, average_expense),
    )


def calculate_vehicle_performance(trips, start=None, end=None) -> list[VehiclePerformance]:
    """Per-vehicle totals, highest revenue first. Trips without a vehicle group under ``unknown``."""
    vehicles: dict[str, VehiclePerformance] = {}
    for t in _window(trips, start, end):
        vehicle_id = t.vehicle_id or UNKNOWN_VEHICLE
        perf = vehicles.setdefault(vehicle_id, VehiclePerformance(vehicle_id=vehicle_id))
        perf.trip_count += 1
        perf.revenue += t.selling_price
        perf.driver_fees += t.driver_fees
        perf.other_expenses += t.other_expenses
    return sorted(vehicles.values(), key=lambda v: v.revenue, reverse=True)


def calculate_monthly_transport_data(
    trips,
    months: int = 6,
    today: Optional[date] = None,
) -> list[MonthlyTransport]:
    buckets = {
        month_key(first): MonthlyTransport(month=month_key(first), month_name=month_name(first))
        for first in last_months(months, today)
    }
    for t in trips:
        bucket = buckets.get(month_key(t.date)) if t.date else None
        if bucket is None:
            continue
        bucket.revenue += t.selling_price
        bucket.driver_fees += t.driver_fees
        bucket.other_expenses += t.other_expenses
        bucket.trip_count += 1
    return list(buckets.values())

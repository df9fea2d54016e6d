"""
Daily aggregate layer: store in → typed values and dicts out.
Typed accessors over the string-valued settings table, daily totals and
the coarse health status shown on widgets and complications.
"""
import logging
import math
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel

from src.models.consumption import CALORIE_TARGET_KEY, DEFAULT_SETTINGS, WATER_TARGET_KEY
from src.store.consumption_store import ConsumptionStore, calendar_day

logger = logging.getLogger("foodie.daily")

DEFAULT_WATER_TARGET = float(DEFAULT_SETTINGS[WATER_TARGET_KEY])
DEFAULT_CALORIE_TARGET = int(DEFAULT_SETTINGS[CALORIE_TARGET_KEY])


class Targets(BaseModel):
    water_liters: float
    calories: int


class DailyTotals(BaseModel):
    water_liters: float = 0.0
    calories: int = 0
    entry_count: int = 0


class HealthStatus(str, Enum):
    EXCELLENT = "excellent"
    NEEDS_WATER = "needs_water"
    NEEDS_CALORIES = "needs_calories"
    NORMAL = "normal"


# ── Typed settings ───────────────────────────────────────────────────────────

def get_float_setting(store: ConsumptionStore, key: str, default: float) -> float:
    value = store.get_setting(key)
    if value is None:
        return default
    try:
        number = float(value.strip())
    except ValueError:
        number = math.nan
    if not math.isfinite(number):
        logger.warning("Setting %s=%r is not a number, using %s", key, value, default)
        return default
    return number


def get_int_setting(store: ConsumptionStore, key: str, default: int) -> int:
    value = store.get_setting(key)
    if value is None:
        return default
    text = value.strip()
    if text.isdecimal():
        return int(text)
    # "2000.0" written by a float-typed caller still counts as an integer target.
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        logger.warning("Setting %s=%r is not an integer, using %s", key, value, default)
        return default


def get_targets(store: ConsumptionStore) -> Targets:
    return Targets(
        water_liters=get_float_setting(store, WATER_TARGET_KEY, DEFAULT_WATER_TARGET),
        calories=get_int_setting(store, CALORIE_TARGET_KEY, DEFAULT_CALORIE_TARGET),
    )


def set_water_target(store: ConsumptionStore, liters: float) -> bool:
    if not math.isfinite(liters) or liters < 0:
        raise ValueError(f"Water target must be a non-negative number, got {liters}")
    return store.set_setting(WATER_TARGET_KEY, str(float(liters)))


def set_calorie_target(store: ConsumptionStore, calories: int) -> bool:
    if not math.isfinite(calories) or calories < 0:
        raise ValueError(f"Calorie target must be a non-negative number, got {calories}")
    return store.set_setting(CALORIE_TARGET_KEY, str(int(calories)))


# ── Daily totals ─────────────────────────────────────────────────────────────

def get_daily_totals(store: ConsumptionStore, day: date | datetime) -> DailyTotals:
    """Sum of water and calories over the events of one calendar day."""
    events = store.get_consumption_events(day)
    return DailyTotals(
        water_liters=sum(e.water_amount or 0.0 for e in events),
        calories=sum(e.calories for e in events),
        entry_count=len(events),
    )


def _progress(amount: float, target: float) -> float:
    """Fraction of the target reached, capped at 1.0. A zero target counts as met."""
    if target <= 0:
        return 1.0
    return min(amount / target, 1.0)


def health_status(totals: DailyTotals, targets: Targets) -> HealthStatus:
    """
    Both targets met → excellent. Otherwise the target with less progress is
    the one the user needs; equal partial progress is normal.
    """
    water = _progress(totals.water_liters, targets.water_liters)
    calories = _progress(totals.calories, targets.calories)
    if water >= 1.0 and calories >= 1.0:
        return HealthStatus.EXCELLENT
    if water < calories:
        return HealthStatus.NEEDS_WATER
    if calories < water:
        return HealthStatus.NEEDS_CALORIES
    return HealthStatus.NORMAL


def get_daily_overview(store: ConsumptionStore, day: date | datetime) -> dict:
    """
    Everything a widget needs for one day: totals, targets, capped
    progress and the health status.
    """
    totals = get_daily_totals(store, day)
    targets = get_targets(store)
    return {
        "date": str(calendar_day(day, store.tz)),
        "water_liters": round(totals.water_liters, 3),
        "water_target": targets.water_liters,
        "water_progress": round(_progress(totals.water_liters, targets.water_liters), 3),
        "calories": totals.calories,
        "calorie_target": targets.calories,
        "calorie_progress": round(_progress(totals.calories, targets.calories), 3),
        "entry_count": totals.entry_count,
        "health_status": health_status(totals, targets).value,
    }

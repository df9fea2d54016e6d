"""
SQLite schema and domain records for the Foodie store.
Tracks food and water intake events plus the user's daily targets.
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import REAL, Column, Index, Integer, Text

from src.db.database import Base

WATER_TARGET_KEY = "WaterTarget"
CALORIE_TARGET_KEY = "CalorieTarget"

DEFAULT_SETTINGS = {
    WATER_TARGET_KEY: "2.0",     # liters
    CALORIE_TARGET_KEY: "2000",  # kcal
}


class Setting(Base):
    """Untyped key/value pair; callers parse the value."""
    __tablename__ = "settings"

    key = Column(Text, primary_key=True)
    value = Column(Text, nullable=False)


class ConsumptionRow(Base):
    """One stored intake event. Timestamps are seconds since the epoch."""
    __tablename__ = "consumption"
    __table_args__ = (
        Index("idx_consumption_timestamp", "timestamp"),
    )

    id = Column(Text, primary_key=True)
    category = Column(Text, nullable=False)
    calories = Column(Integer, nullable=False)
    timestamp = Column(REAL, nullable=False)
    water_amount = Column(REAL)  # liters, only for water intake


class MealCategory(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"
    DRINK = "drink"


class ConsumptionEvent(BaseModel):
    """An immutable intake event. Updating one means saving a copy with the same id."""
    model_config = ConfigDict(frozen=True)

    id: UUID
    category: MealCategory
    calories: int = Field(ge=0)
    timestamp: datetime
    water_amount: float | None = Field(default=None, ge=0)

    @field_validator("timestamp")
    @classmethod
    def _utc_seconds(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(microsecond=0)

    @classmethod
    def new(
        cls,
        category: MealCategory | str,
        calories: int = 0,
        water_amount: float | None = None,
        timestamp: datetime | None = None,
    ) -> "ConsumptionEvent":
        return cls(
            id=uuid4(),
            category=category,
            calories=calories,
            timestamp=timestamp or datetime.now(timezone.utc),
            water_amount=water_amount,
        )

    @property
    def epoch_seconds(self) -> float:
        return self.timestamp.timestamp()

    @property
    def is_water(self) -> bool:
        return self.water_amount is not None

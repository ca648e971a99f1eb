"""Habit and completion models"""
from enum import Enum
from typing import Optional
from datetime import date, datetime, timezone
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HabitFrequency(str, Enum):
    """How often a habit is expected to be done"""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    WEEKDAYS = "WEEKDAYS"  # Mon-Fri, weekends never break the chain


class Habit(BaseModel):
    """A recurring user-defined action"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[str] = None  # matched against Challenge.target_habit_type
    frequency: HabitFrequency = HabitFrequency.DAILY
    timezone: str = "UTC"
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @property
    def local_zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def local_date(self, moment: datetime) -> date:
        """Calendar day of an aware datetime in this habit's timezone"""
        return moment.astimezone(self.local_zone).date()


class Completion(BaseModel):
    """A habit done on a calendar day"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    habit_id: str
    user_id: str
    completed_date: date
    created_at: datetime = Field(default_factory=utcnow)


class StreakState(BaseModel):
    """Derived streak for one habit, never stored as-is"""
    current: int = 0
    longest: int = 0
    last_completed_date: Optional[date] = None

"""Pydantic models for API request/response validation"""
from typing import Optional, List
from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime

from habitflow.models import (
    ActivePowerup,
    Completion,
    HabitFrequency,
    InventoryItem,
)


class HabitCreateRequest(BaseModel):
    """Request to create a habit"""
    title: str = Field(..., description="Habit title")
    description: Optional[str] = None
    category: Optional[str] = Field(default=None, description="Habit type, matched by challenges")
    frequency: HabitFrequency = HabitFrequency.DAILY
    timezone: str = Field(default="UTC", description="IANA timezone used to decide 'today'")


class HabitUpdateRequest(BaseModel):
    """Partial habit update; omitted fields are left unchanged"""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    frequency: Optional[HabitFrequency] = None
    timezone: Optional[str] = None
    is_active: Optional[bool] = None


class CompletionRequest(BaseModel):
    """Log or unlog a habit for a calendar day"""
    habit_id: str = Field(..., description="Habit UUID")
    completed_date: date = Field(..., description="Day in the habit's timezone (YYYY-MM-DD)")


class CompletionListResponse(BaseModel):
    completions: List[Completion]


class StreakResponse(BaseModel):
    """Streak of one habit"""
    habit_id: str
    streak: int
    longest_streak: int
    last_completed_date: Optional[date] = None


class StreakFreezeRequest(BaseModel):
    """Spend a streak freeze on a missed day"""
    model_config = ConfigDict(populate_by_name=True)

    frozen_date: date = Field(..., alias="date", description="Missed day to protect")


class PowerupRequest(BaseModel):
    """Buy or activate a powerup"""
    model_config = ConfigDict(populate_by_name=True)

    powerup_key: str = Field(..., alias="powerupKey")


class PowerupPurchaseResponse(BaseModel):
    success: bool = True
    powerup_key: str
    quantity: int
    coins: int


class PowerupInventoryResponse(BaseModel):
    inventory: List[InventoryItem]
    active: List[ActivePowerup]


class GroupCreateRequest(BaseModel):
    name: str = Field(..., description="Group name")


class ChallengeCreateRequest(BaseModel):
    """Request to create a challenge in a group the caller owns"""
    group_id: str
    title: str
    description: Optional[str] = None
    start_date: date
    end_date: date
    target_habit_type: Optional[str] = Field(default=None, description="Habit category; empty matches any")
    goal_count: int = Field(..., description="Qualifying completions needed")
    xp_reward: int = 0
    coin_reward: int = 0


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str
    timestamp: datetime
    store: str
    version: str

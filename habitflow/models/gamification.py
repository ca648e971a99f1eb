"""Gamification models: profile, ledger, achievements, powerups"""
from enum import Enum
from typing import Optional
from datetime import datetime
from uuid import uuid4
from pydantic import BaseModel, Field

from habitflow.models.habit import Completion, utcnow


class GamificationProfile(BaseModel):
    """Per-user XP, level and coin balance"""
    user_id: str
    xp: int = 0
    level: int = 1
    coins: int = 0
    longest_streak: int = 0
    updated_at: datetime = Field(default_factory=utcnow)


class AchievementCategory(str, Enum):
    """Achievement categories"""
    STREAK = "STREAK"
    COMPLETION = "COMPLETION"
    MILESTONE = "MILESTONE"
    CATEGORY = "CATEGORY"
    SPECIAL = "SPECIAL"


class AchievementUnlock(BaseModel):
    """User's unlocked achievement, unique per (user, key)"""
    user_id: str
    achievement_key: str
    unlocked_at: datetime = Field(default_factory=utcnow)


class UnlockedAchievement(BaseModel):
    """Achievement as reported back to the user"""
    key: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    xp_reward: int
    coin_reward: int
    unlocked_at: datetime


class RewardSource(str, Enum):
    """What a reward ledger event was granted for"""
    COMPLETION = "completion"
    COMPLETION_REVERSAL = "completion_reversal"
    ACHIEVEMENT = "achievement"
    CHALLENGE = "challenge"
    POWERUP_PURCHASE = "powerup_purchase"


class RewardEvent(BaseModel):
    """Reward ledger entry, unique per (user_id, source_type, source_id)"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    source_type: RewardSource
    source_id: str
    xp: int = 0
    coins: int = 0
    reason: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class RewardResult(BaseModel):
    """Outcome of applying (or reversing) a completion's rewards"""
    xp_gained: int = 0
    coins_gained: int = 0
    leveled_up: bool = False
    old_level: int = 1
    new_level: int = 1
    new_achievements: list[UnlockedAchievement] = Field(default_factory=list)
    streak: int = 0
    streak_milestone: Optional[int] = None
    challenges_completed: list[str] = Field(default_factory=list)


class XPProgress(BaseModel):
    """Progress through the current level"""
    current_level: int
    current_level_xp: int
    next_level_xp: int  # 0 at max level
    progress: float  # 0-100


class GamificationStats(BaseModel):
    """Read-side projection of a profile"""
    user_id: str
    level: int
    xp: int
    coins: int
    xp_progress: XPProgress
    achievement_count: int
    longest_streak: int


class PublicProfile(BaseModel):
    """What other users may see of a profile"""
    user_id: str
    level: int
    xp: int


class PowerupEffectKind(str, Enum):
    XP_MULTIPLIER = "xp_multiplier"
    STREAK_FREEZE = "streak_freeze"


class PowerupEffect(BaseModel):
    kind: PowerupEffectKind
    value: float = 1.0
    duration_hours: int = 0


class Powerup(BaseModel):
    """Shop item bought with coins"""
    key: str
    name: str
    description: str
    icon: str = ""
    cost_coins: int = Field(..., ge=0)
    effect: PowerupEffect


class ActivePowerup(BaseModel):
    """A consumed XP multiplier running until expires_at"""
    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    powerup_key: str
    multiplier: float
    activated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime


class InventoryItem(Powerup):
    """Owned powerup with the quantity still unused"""
    quantity: int = Field(..., ge=0)


class AchievementStatus(BaseModel):
    """Catalog entry with the user's unlock state"""
    key: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    xp_reward: int
    coin_reward: int
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    level: int
    xp: int


class CompletionOutcome(BaseModel):
    """What recording a completion produced"""
    completion: Completion
    rewards: RewardResult

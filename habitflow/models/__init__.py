"""Pydantic models for HabitFlow records"""
from habitflow.models.habit import Habit, HabitFrequency, Completion, StreakState
from habitflow.models.gamification import (
    GamificationProfile,
    AchievementCategory,
    AchievementUnlock,
    UnlockedAchievement,
    RewardEvent,
    RewardSource,
    RewardResult,
    XPProgress,
    GamificationStats,
    PublicProfile,
    PowerupEffectKind,
    PowerupEffect,
    Powerup,
    ActivePowerup,
    InventoryItem,
    AchievementStatus,
    LeaderboardEntry,
    CompletionOutcome,
)
from habitflow.models.social import (
    Group,
    GroupRole,
    Challenge,
    ChallengeParticipant,
    ChallengeDetails,
    UserChallenge,
    UserChallenges,
)

__all__ = [
    "Habit",
    "HabitFrequency",
    "Completion",
    "StreakState",
    "GamificationProfile",
    "AchievementCategory",
    "AchievementUnlock",
    "UnlockedAchievement",
    "RewardEvent",
    "RewardSource",
    "RewardResult",
    "XPProgress",
    "GamificationStats",
    "PublicProfile",
    "PowerupEffectKind",
    "PowerupEffect",
    "Powerup",
    "ActivePowerup",
    "InventoryItem",
    "AchievementStatus",
    "LeaderboardEntry",
    "CompletionOutcome",
    "Group",
    "GroupRole",
    "Challenge",
    "ChallengeParticipant",
    "ChallengeDetails",
    "UserChallenge",
    "UserChallenges",
]

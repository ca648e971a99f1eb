"""
Gamification: streaks, levels, achievements, rewards, challenges, powerups
"""
from habitflow.gamification.levels import LevelCurve, DEFAULT_LEVEL_CURVE, xp_for_level
from habitflow.gamification.streaks import compute_streak, streak_multiplier, milestone_reached
from habitflow.gamification.achievements import ACHIEVEMENTS, AchievementContext, AchievementRule
from habitflow.gamification.rewards import RewardConfig, RewardEngine
from habitflow.gamification.challenges import ChallengeTracker, slugify
from habitflow.gamification.powerups import DEFAULT_POWERUPS, PowerupShop, seed_powerups
from habitflow.gamification.stats import StatsProjector

__all__ = [
    "LevelCurve",
    "DEFAULT_LEVEL_CURVE",
    "xp_for_level",
    "compute_streak",
    "streak_multiplier",
    "milestone_reached",
    "ACHIEVEMENTS",
    "AchievementContext",
    "AchievementRule",
    "RewardConfig",
    "RewardEngine",
    "ChallengeTracker",
    "slugify",
    "DEFAULT_POWERUPS",
    "PowerupShop",
    "seed_powerups",
    "StatsProjector",
]

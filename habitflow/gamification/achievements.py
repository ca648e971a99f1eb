"""
Achievement System

Rule set evaluated after every completion:
- Streak (7, 30, 100, 365 consecutive periods on one habit)
- Completion counts (1, 10, 50, 100, 500, 1000 total completions)
- Levels (5, 10, 25, 50)
- Category focus (25 completions in a single habit category)
- Special (check-in logged before 6 AM or after 10 PM local time)

Evaluation is pure: given an AchievementContext and the keys already
unlocked, it returns the rules that newly hold. Unlocks are one-way; a rule
whose condition later becomes false is never revoked.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional
from datetime import datetime
import logging

from habitflow.models import AchievementCategory, UnlockedAchievement

logger = logging.getLogger(__name__)


@dataclass
class AchievementContext:
    """State an achievement rule can look at"""
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    total_completions: int = 0
    level: int = 1
    category_completions: dict[str, int] = field(default_factory=dict)
    completed_at_local: Optional[datetime] = None  # None when logged for a past day


@dataclass(frozen=True)
class AchievementRule:
    """Achievement definition"""
    key: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    xp_reward: int
    coin_reward: int
    check: Callable[[AchievementContext], bool]

    def to_unlocked(self, unlocked_at: datetime) -> UnlockedAchievement:
        return UnlockedAchievement(
            key=self.key,
            name=self.name,
            description=self.description,
            icon=self.icon,
            category=self.category,
            xp_reward=self.xp_reward,
            coin_reward=self.coin_reward,
            unlocked_at=unlocked_at,
        )


def _streak(days: int) -> Callable[[AchievementContext], bool]:
    return lambda ctx: max(ctx.current_streak, ctx.longest_streak) >= days


def _completions(count: int) -> Callable[[AchievementContext], bool]:
    return lambda ctx: ctx.total_completions >= count


def _level(level: int) -> Callable[[AchievementContext], bool]:
    return lambda ctx: ctx.level >= level


def _early_bird(ctx: AchievementContext) -> bool:
    return ctx.completed_at_local is not None and ctx.completed_at_local.hour < 6


def _night_owl(ctx: AchievementContext) -> bool:
    return ctx.completed_at_local is not None and ctx.completed_at_local.hour >= 22


def _category_focus(ctx: AchievementContext) -> bool:
    return any(count >= 25 for count in ctx.category_completions.values())


ACHIEVEMENTS: tuple[AchievementRule, ...] = (
    # Streak achievements
    AchievementRule("7_day_warrior", "7-Day Warrior", "Complete a habit 7 periods in a row",
                    "Flame", AchievementCategory.STREAK, 100, 50, _streak(7)),
    AchievementRule("30_day_champion", "30-Day Champion", "Complete a habit 30 periods in a row",
                    "Dumbbell", AchievementCategory.STREAK, 500, 250, _streak(30)),
    AchievementRule("100_day_legend", "100-Day Legend", "Complete a habit 100 periods in a row",
                    "Crown", AchievementCategory.STREAK, 2000, 1000, _streak(100)),
    AchievementRule("365_day_master", "365-Day Master", "Complete a habit for an entire year",
                    "Trophy", AchievementCategory.STREAK, 10000, 5000, _streak(365)),

    # Completion achievements
    AchievementRule("first_completion", "Getting Started", "Complete your first habit",
                    "Lightbulb", AchievementCategory.COMPLETION, 50, 25, _completions(1)),
    AchievementRule("10_completions", "Building Momentum", "Complete 10 habits",
                    "Zap", AchievementCategory.COMPLETION, 100, 50, _completions(10)),
    AchievementRule("50_completions", "Habit Builder", "Complete 50 habits",
                    "Target", AchievementCategory.COMPLETION, 300, 150, _completions(50)),
    AchievementRule("100_completions", "Century Club", "Complete 100 habits",
                    "Award", AchievementCategory.COMPLETION, 750, 375, _completions(100)),
    AchievementRule("500_completions", "Unstoppable", "Complete 500 habits",
                    "Rocket", AchievementCategory.COMPLETION, 2500, 1250, _completions(500)),
    AchievementRule("1000_completions", "Legendary", "Complete 1000 habits",
                    "Star", AchievementCategory.COMPLETION, 5000, 2500, _completions(1000)),

    # Level milestones
    AchievementRule("level_5", "Rising Star", "Reach level 5",
                    "TrendingUp", AchievementCategory.MILESTONE, 250, 125, _level(5)),
    AchievementRule("level_10", "Experienced", "Reach level 10",
                    "Medal", AchievementCategory.MILESTONE, 500, 250, _level(10)),
    AchievementRule("level_25", "Elite", "Reach level 25",
                    "Gem", AchievementCategory.MILESTONE, 1500, 750, _level(25)),
    AchievementRule("level_50", "Master", "Reach level 50",
                    "Crown", AchievementCategory.MILESTONE, 5000, 2500, _level(50)),

    # Category
    AchievementRule("category_specialist", "Specialist", "Complete 25 habits in one category",
                    "Layers", AchievementCategory.CATEGORY, 200, 100, _category_focus),

    # Special
    AchievementRule("early_bird", "Early Bird", "Complete a habit before 6 AM",
                    "Sunrise", AchievementCategory.SPECIAL, 150, 75, _early_bird),
    AchievementRule("night_owl", "Night Owl", "Complete a habit after 10 PM",
                    "Moon", AchievementCategory.SPECIAL, 150, 75, _night_owl),
)


def get_achievement_rule(key: str, rules: Iterable[AchievementRule] = ACHIEVEMENTS) -> Optional[AchievementRule]:
    """Get achievement by key"""
    for rule in rules:
        if rule.key == key:
            return rule
    return None


def evaluate_achievements(
    context: AchievementContext,
    unlocked_keys: Iterable[str],
    rules: Iterable[AchievementRule] = ACHIEVEMENTS
) -> list[AchievementRule]:
    """
    Rules that hold for `context` and are not unlocked yet

    Args:
        context: Current user state
        unlocked_keys: Keys the user already has
        rules: Rule set to evaluate

    Returns:
        Newly satisfied rules, in rule-set order
    """
    already = set(unlocked_keys)
    newly = []
    for rule in rules:
        if rule.key in already:
            continue
        if rule.check(context):
            newly.append(rule)
    return newly

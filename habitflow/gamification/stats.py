"""
Gamification Stats Projector

Read side of the reward ledger. Level and XP progress are recomputed from
cumulative XP on every read, so a change to the level curve shows up
immediately without migrating stored profiles.
"""

import logging
from typing import Optional

from habitflow.gamification.achievements import AchievementRule
from habitflow.gamification.rewards import RewardConfig
from habitflow.models import (
    AchievementStatus,
    GamificationStats,
    LeaderboardEntry,
    PublicProfile,
    RewardEvent,
    UnlockedAchievement,
)

logger = logging.getLogger(__name__)


class StatsProjector:
    """Builds stats, achievement lists and leaderboards from stored state"""

    def __init__(self, store, config: Optional[RewardConfig] = None):
        self.store = store
        self.config = config or RewardConfig()

    def _rule(self, key: str) -> Optional[AchievementRule]:
        for rule in self.config.achievements:
            if rule.key == key:
                return rule
        return None

    async def get_stats(self, user_id: str) -> GamificationStats:
        profile = await self.store.get_profile(user_id)
        unlocks = await self.store.list_achievement_unlocks(user_id)
        curve = self.config.level_curve

        return GamificationStats(
            user_id=user_id,
            level=curve.level_for(profile.xp),
            xp=profile.xp,
            coins=profile.coins,
            xp_progress=curve.progress(profile.xp),
            achievement_count=len(unlocks),
            longest_streak=profile.longest_streak,
        )

    async def get_public_profile(self, user_id: str) -> PublicProfile:
        """Leaderboard-level view of someone else's profile"""
        profile = await self.store.get_profile(user_id)
        return PublicProfile(
            user_id=user_id,
            level=self.config.level_curve.level_for(profile.xp),
            xp=profile.xp,
        )

    async def list_achievements(self, user_id: str) -> list[AchievementStatus]:
        """Every achievement in the rule set, flagged with the user's unlock state"""
        unlocked_at = {
            u.achievement_key: u.unlocked_at
            for u in await self.store.list_achievement_unlocks(user_id)
        }
        return [
            AchievementStatus(
                key=rule.key,
                name=rule.name,
                description=rule.description,
                icon=rule.icon,
                category=rule.category,
                xp_reward=rule.xp_reward,
                coin_reward=rule.coin_reward,
                unlocked=rule.key in unlocked_at,
                unlocked_at=unlocked_at.get(rule.key),
            )
            for rule in self.config.achievements
        ]

    async def list_unlocked(self, user_id: str) -> list[UnlockedAchievement]:
        """Unlocked achievements, newest first"""
        unlocked = []
        for unlock in await self.store.list_achievement_unlocks(user_id):
            rule = self._rule(unlock.achievement_key)
            if rule is None:
                logger.warning(f"Unknown achievement key in store: {unlock.achievement_key}")
                continue
            unlocked.append(rule.to_unlocked(unlock.unlocked_at))
        return unlocked

    async def get_leaderboard(self, limit: int = 10) -> list[LeaderboardEntry]:
        profiles = await self.store.list_top_profiles(limit)
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=profile.user_id,
                level=self.config.level_curve.level_for(profile.xp),
                xp=profile.xp,
            )
            for rank, profile in enumerate(profiles, start=1)
        ]

    async def get_reward_history(self, user_id: str, limit: int = 50) -> list[RewardEvent]:
        return await self.store.list_reward_events(user_id, limit)

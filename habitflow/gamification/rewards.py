"""
Reward Engine

Turns completions into XP, coins, levels and achievements.

Reward Rules:
- Completion: BASE_XP (50) and BASE_COINS (10), scaled by the streak multiplier
  (1x, 1.5x from 7, 2x from 30, 3x from 100 consecutive periods)
- Active XP multiplier powerups scale XP only
- Challenge completion: the challenge's xp_reward / coin_reward
- Achievement unlocks: the rule's xp_reward / coin_reward

Every grant goes through the reward ledger. A ledger event is unique per
(user_id, source_type, source_id), so a retried or duplicated request can
never pay out twice. Reversing a completion subtracts exactly what its
ledger event recorded, so the coin balance can go negative after coins were
spent; purchases stay blocked until it is earned back. Achievements are
never revoked.

All public methods that write must run inside store.transaction(user_id).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Optional
import math
import logging

from habitflow.config import BASE_XP, BASE_COINS
from habitflow.gamification.achievements import (
    ACHIEVEMENTS,
    AchievementContext,
    AchievementRule,
    evaluate_achievements,
)
from habitflow.gamification.levels import DEFAULT_LEVEL_CURVE, LevelCurve
from habitflow.gamification.streaks import compute_streak, milestone_reached, streak_multiplier
from habitflow.models import (
    AchievementUnlock,
    Completion,
    GamificationProfile,
    Habit,
    RewardEvent,
    RewardResult,
    RewardSource,
    StreakState,
    UnlockedAchievement,
)
from habitflow.models.habit import utcnow
from habitflow.observability.metrics import (
    achievements_unlocked_total,
    challenge_rewards_total,
    level_ups_total,
    record_reward,
)

logger = logging.getLogger(__name__)


@dataclass
class RewardConfig:
    """Tunable reward amounts, level curve and achievement rules"""
    base_xp: int = BASE_XP
    base_coins: int = BASE_COINS
    level_curve: LevelCurve = field(default_factory=lambda: DEFAULT_LEVEL_CURVE)
    achievements: tuple[AchievementRule, ...] = ACHIEVEMENTS


class RewardEngine:
    """Applies and reverses rewards through the ledger"""

    def __init__(
        self,
        store,
        config: Optional[RewardConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        challenges=None
    ):
        self.store = store
        self.config = config or RewardConfig()
        self.clock = clock
        self.challenges = challenges  # ChallengeTracker, optional

    # ==========================================
    # Streaks
    # ==========================================

    def today_for(self, habit: Habit) -> date:
        """Current calendar day in the habit's timezone"""
        return habit.local_date(self.clock())

    async def habit_streak(self, habit: Habit, exclude: Optional[date] = None) -> StreakState:
        """Derive the habit's streak from stored completions and freezes"""
        completions = await self.store.list_completions(habit.id, habit.user_id)
        dates = [c.completed_date for c in completions if c.completed_date != exclude]
        frozen = await self.store.list_streak_freezes(habit.user_id, habit.id)
        return compute_streak(habit.frequency, dates, self.today_for(habit), frozen)

    async def record_best_streak(self, habit: Habit, state: StreakState) -> int:
        """Ratchet the stored best streak; returns the best ever seen"""
        return await self.store.save_best_streak(habit.user_id, habit.id, state.longest)

    # ==========================================
    # Completion rewards
    # ==========================================

    async def apply_completion_reward(
        self,
        user_id: str,
        habit: Habit,
        completion: Completion
    ) -> RewardResult:
        """
        Grant the rewards for a freshly recorded completion

        Args:
            user_id: Owner of the completion
            habit: Completed habit
            completion: The stored completion

        Returns:
            RewardResult with everything gained (completion, challenges and
            achievements), level change and streak info. Zero gains if the
            completion was already rewarded.
        """
        profile = await self.store.get_profile(user_id)
        old_level = profile.level

        state = await self.habit_streak(habit)
        previous = await self.habit_streak(habit, exclude=completion.completed_date)
        best = await self.record_best_streak(habit, state)
        profile.longest_streak = max(profile.longest_streak, best)

        multiplier = streak_multiplier(state.current)
        xp_multiplier = await self._active_xp_multiplier(user_id)
        xp = math.floor(self.config.base_xp * multiplier * xp_multiplier)
        coins = math.floor(self.config.base_coins * multiplier)

        paid = await self._grant_to(
            profile,
            xp,
            coins,
            RewardSource.COMPLETION,
            completion.id,
            f"Completed {habit.title} on {completion.completed_date.isoformat()}"
        )
        if not paid:
            logger.info(f"Completion {completion.id} already rewarded for user {user_id}")
            return RewardResult(
                old_level=old_level,
                new_level=profile.level,
                streak=state.current,
            )

        xp_gained, coins_gained = xp, coins

        challenges_completed = []
        if self.challenges is not None:
            for challenge in await self.challenges.record_progress(user_id, habit, completion):
                granted = await self._grant_to(
                    profile,
                    challenge.xp_reward,
                    challenge.coin_reward,
                    RewardSource.CHALLENGE,
                    challenge.id,
                    f"Challenge completed: {challenge.title}"
                )
                if granted:
                    challenge_rewards_total.inc()
                    challenges_completed.append(challenge.id)
                    xp_gained += challenge.xp_reward
                    coins_gained += challenge.coin_reward

        new_achievements = await self._unlock_achievements(
            profile,
            current_streak=state.current,
            completed_at_local=self._completed_at_local(habit, completion),
        )
        xp_gained += sum(a.xp_reward for a in new_achievements)
        coins_gained += sum(a.coin_reward for a in new_achievements)

        await self._save(profile)

        leveled_up = profile.level > old_level
        if leveled_up:
            level_ups_total.inc()
            logger.info(f"User {user_id} leveled up: {old_level} -> {profile.level}")

        return RewardResult(
            xp_gained=xp_gained,
            coins_gained=coins_gained,
            leveled_up=leveled_up,
            old_level=old_level,
            new_level=profile.level,
            new_achievements=new_achievements,
            streak=state.current,
            streak_milestone=milestone_reached(previous.current, state.current),
            challenges_completed=challenges_completed,
        )

    async def reverse_completion_reward(
        self,
        user_id: str,
        habit: Habit,
        completion: Completion
    ) -> RewardResult:
        """
        Undo the XP and coins a removed completion earned

        Subtracts the amounts recorded in the completion's ledger event,
        even if the coins were already spent. Achievements and challenge
        progress stay.
        """
        profile = await self.store.get_profile(user_id)
        old_level = profile.level
        state = await self.habit_streak(habit)

        original = await self.store.get_reward_event(user_id, RewardSource.COMPLETION, completion.id)
        if original is None:
            return RewardResult(old_level=old_level, new_level=old_level, streak=state.current)

        reversal = RewardEvent(
            user_id=user_id,
            source_type=RewardSource.COMPLETION_REVERSAL,
            source_id=completion.id,
            xp=-original.xp,
            coins=-original.coins,
            reason=f"Removed {habit.title} on {completion.completed_date.isoformat()}",
            created_at=self.clock(),
        )
        if not await self.store.insert_reward_event(reversal):
            return RewardResult(old_level=old_level, new_level=old_level, streak=state.current)

        self._apply(profile, reversal.xp, reversal.coins)
        await self._save(profile)

        if profile.level < old_level:
            logger.info(f"User {user_id} dropped to level {profile.level} after removing a completion")

        return RewardResult(
            xp_gained=reversal.xp,
            coins_gained=reversal.coins,
            old_level=old_level,
            new_level=profile.level,
            streak=state.current,
        )

    # ==========================================
    # Generic grants
    # ==========================================

    async def grant(
        self,
        user_id: str,
        xp: int,
        coins: int,
        source_type: RewardSource,
        source_id: str,
        reason: str = ""
    ) -> bool:
        """
        Grant a reward at most once per (user, source_type, source_id)

        Returns:
            True if the reward was paid now, False if it had been paid before
        """
        profile = await self.store.get_profile(user_id)
        if not await self._grant_to(profile, xp, coins, source_type, source_id, reason):
            return False
        await self._save(profile)
        return True

    async def _grant_to(
        self,
        profile: GamificationProfile,
        xp: int,
        coins: int,
        source_type: RewardSource,
        source_id: str,
        reason: str
    ) -> bool:
        event = RewardEvent(
            user_id=profile.user_id,
            source_type=source_type,
            source_id=source_id,
            xp=xp,
            coins=coins,
            reason=reason,
            created_at=self.clock(),
        )
        if not await self.store.insert_reward_event(event):
            return False

        self._apply(profile, xp, coins)
        record_reward(source_type.value, xp, coins)
        logger.info(
            f"Granted {xp} XP / {coins} coins to user {profile.user_id} "
            f"({source_type.value}:{source_id})"
        )
        return True

    def _apply(self, profile: GamificationProfile, xp: int, coins: int) -> None:
        # XP cannot go negative: a reversal only takes back an earlier grant
        profile.xp += xp
        profile.coins += coins
        profile.level = self.config.level_curve.level_for(profile.xp)

    async def _save(self, profile: GamificationProfile) -> None:
        profile.updated_at = self.clock()
        await self.store.save_profile(profile)

    # ==========================================
    # Achievements
    # ==========================================

    async def _unlock_achievements(
        self,
        profile: GamificationProfile,
        current_streak: int = 0,
        completed_at_local: Optional[datetime] = None
    ) -> list[UnlockedAchievement]:
        """
        Unlock every rule that holds, repeating until nothing new fires

        Achievement XP can raise the level, which can satisfy a level rule.
        """
        user_id = profile.user_id
        unlocked_keys = {u.achievement_key for u in await self.store.list_achievement_unlocks(user_id)}
        context = AchievementContext(
            user_id=user_id,
            current_streak=current_streak,
            longest_streak=profile.longest_streak,
            total_completions=await self.store.count_completions(user_id),
            level=profile.level,
            category_completions=await self.store.count_completions_by_category(user_id),
            completed_at_local=completed_at_local,
        )

        newly_unlocked = []
        while True:
            rules = evaluate_achievements(context, unlocked_keys, self.config.achievements)
            if not rules:
                break

            for rule in rules:
                unlocked_keys.add(rule.key)
                now = self.clock()
                if not await self.store.insert_achievement_unlock(
                    AchievementUnlock(user_id=user_id, achievement_key=rule.key, unlocked_at=now)
                ):
                    continue

                await self._grant_to(
                    profile,
                    rule.xp_reward,
                    rule.coin_reward,
                    RewardSource.ACHIEVEMENT,
                    rule.key,
                    f"Achievement unlocked: {rule.name}"
                )
                achievements_unlocked_total.labels(achievement=rule.key).inc()
                logger.info(f"User {user_id} unlocked achievement: {rule.key}")
                newly_unlocked.append(rule.to_unlocked(now))

            context.level = profile.level

        return newly_unlocked

    def _completed_at_local(self, habit: Habit, completion: Completion) -> Optional[datetime]:
        """Local time of the check-in, only for completions logged for today"""
        if completion.completed_date != self.today_for(habit):
            return None
        return completion.created_at.astimezone(habit.local_zone)

    async def _active_xp_multiplier(self, user_id: str) -> float:
        active = await self.store.list_active_powerups(user_id, self.clock())
        return max((a.multiplier for a in active), default=1.0)

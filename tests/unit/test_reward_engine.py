"""Unit tests for the reward engine (habitflow/gamification/rewards.py)"""
import pytest
from datetime import timedelta

from conftest import TODAY, days_ago, make_habit
from habitflow.exceptions import InsufficientFundsError
from habitflow.gamification.achievements import AchievementRule
from habitflow.gamification.levels import LevelCurve
from habitflow.gamification.powerups import STREAK_FREEZE, seed_powerups
from habitflow.gamification.rewards import RewardConfig
from habitflow.models import AchievementCategory, ActivePowerup, RewardSource
from habitflow.services.container import ServiceContainer


def quiet_services(store, clock, **config):
    """Container without achievements so only completion rewards are paid"""
    config.setdefault("achievements", ())
    return ServiceContainer(store=store, config=RewardConfig(**config), clock=clock)


# ============================================================================
# Completion rewards
# ============================================================================

@pytest.mark.asyncio
async def test_first_completion_rewards(services, store):
    """Base 50 XP / 10 coins plus the first_completion achievement"""
    habit = await make_habit(services)
    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    rewards = outcome.rewards

    assert rewards.xp_gained == 100  # 50 completion + 50 achievement
    assert rewards.coins_gained == 35  # 10 completion + 25 achievement
    assert [a.key for a in rewards.new_achievements] == ["first_completion"]
    assert rewards.old_level == 1
    assert rewards.new_level == 2
    assert rewards.leveled_up is True
    assert rewards.streak == 1

    profile = await store.get_profile("user-1")
    assert profile.xp == 100
    assert profile.coins == 35
    assert profile.level == 2


@pytest.mark.asyncio
async def test_completion_ledger_event_records_completion_share(services, store):
    habit = await make_habit(services)
    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    event = await store.get_reward_event("user-1", RewardSource.COMPLETION, outcome.completion.id)
    assert event.xp == 50
    assert event.coins == 10


@pytest.mark.asyncio
async def test_apply_is_idempotent_per_completion(services, store):
    """A completion is rewarded at most once"""
    habit = await make_habit(services)
    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    profile_before = await store.get_profile("user-1")

    async with store.transaction("user-1"):
        again = await services.rewards.apply_completion_reward("user-1", habit, outcome.completion)

    assert again.xp_gained == 0
    assert again.coins_gained == 0
    assert again.new_achievements == []
    profile_after = await store.get_profile("user-1")
    assert profile_after.xp == profile_before.xp
    assert profile_after.coins == profile_before.coins


@pytest.mark.asyncio
async def test_seven_day_streak_multiplier_and_milestone(services, store):
    habit = await make_habit(services)
    for n in range(6, 0, -1):
        await services.completion_service.record_completion(habit.id, "user-1", days_ago(n))

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    rewards = outcome.rewards

    assert rewards.streak == 7
    assert rewards.streak_milestone == 7
    assert "7_day_warrior" in [a.key for a in rewards.new_achievements]

    event = await store.get_reward_event("user-1", RewardSource.COMPLETION, outcome.completion.id)
    assert event.xp == 75  # 50 * 1.5
    assert event.coins == 15

    profile = await store.get_profile("user-1")
    assert profile.longest_streak == 7


@pytest.mark.asyncio
async def test_xp_is_monotonic_without_reversals(services, store):
    habit = await make_habit(services)
    previous = 0
    for n in range(10, -1, -1):
        await services.completion_service.record_completion(habit.id, "user-1", days_ago(n))
        profile = await store.get_profile("user-1")
        assert profile.xp >= previous
        assert profile.level == services.rewards.config.level_curve.level_for(profile.xp)
        previous = profile.xp


@pytest.mark.asyncio
async def test_custom_curve_level_and_progress(store, clock):
    """0 XP + 50 XP with thresholds [0, 100, 250] -> level 1 at 50%"""
    services = quiet_services(store, clock, level_curve=LevelCurve([0, 100, 250]))
    habit = await make_habit(services)

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    stats = await services.stats.get_stats("user-1")

    assert outcome.rewards.xp_gained == 50
    assert outcome.rewards.leveled_up is False
    assert stats.level == 1
    assert stats.xp_progress.progress == 50.0


@pytest.mark.asyncio
async def test_active_xp_multiplier_doubles_xp_only(store, clock):
    services = quiet_services(store, clock)
    habit = await make_habit(services)
    await store.insert_active_powerup(ActivePowerup(
        user_id="user-1",
        powerup_key="double_xp",
        multiplier=2.0,
        activated_at=clock() - timedelta(hours=1),
        expires_at=clock() + timedelta(hours=1),
    ))

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    assert outcome.rewards.xp_gained == 100
    assert outcome.rewards.coins_gained == 10


@pytest.mark.asyncio
async def test_expired_multiplier_is_ignored(store, clock):
    services = quiet_services(store, clock)
    habit = await make_habit(services)
    await store.insert_active_powerup(ActivePowerup(
        user_id="user-1",
        powerup_key="double_xp",
        multiplier=2.0,
        activated_at=clock() - timedelta(days=2),
        expires_at=clock() - timedelta(days=1),
    ))

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    assert outcome.rewards.xp_gained == 50


@pytest.mark.asyncio
async def test_achievement_xp_can_unlock_level_achievement(store, clock):
    """Evaluation repeats until no new rule fires"""
    rules = (
        AchievementRule("big_start", "Big Start", "First completion", "", AchievementCategory.SPECIAL,
                        500, 0, lambda ctx: ctx.total_completions >= 1),
        AchievementRule("level_three", "Level Three", "Reach level 3", "", AchievementCategory.MILESTONE,
                        0, 5, lambda ctx: ctx.level >= 3),
    )
    services = quiet_services(store, clock, level_curve=LevelCurve([0, 100, 250]), achievements=rules)
    habit = await make_habit(services)

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    assert [a.key for a in outcome.rewards.new_achievements] == ["big_start", "level_three"]
    assert outcome.rewards.new_level == 3
    assert outcome.rewards.coins_gained == 15


@pytest.mark.asyncio
async def test_early_bird_uses_habit_timezone(store, clock):
    """12:00 UTC on 2024-03-15 is 05:00 PDT in Los Angeles"""
    services = ServiceContainer(store=store, clock=clock)
    habit = await make_habit(services, timezone="America/Los_Angeles")
    local_today = habit.local_date(clock())

    outcome = await services.completion_service.record_completion(habit.id, "user-1", local_today)

    assert "early_bird" in [a.key for a in outcome.rewards.new_achievements]


@pytest.mark.asyncio
async def test_backfilled_completion_never_counts_as_early_bird(store, clock):
    services = ServiceContainer(store=store, clock=clock)
    habit = await make_habit(services, timezone="America/Los_Angeles")
    yesterday = habit.local_date(clock()) - timedelta(days=1)

    outcome = await services.completion_service.record_completion(habit.id, "user-1", yesterday)

    assert "early_bird" not in [a.key for a in outcome.rewards.new_achievements]


# ============================================================================
# Reversal
# ============================================================================

@pytest.mark.asyncio
async def test_reversal_subtracts_recorded_amounts(services, store):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    result = await services.completion_service.remove_completion(habit.id, "user-1", TODAY)

    assert result.xp_gained == -50
    assert result.coins_gained == -10
    profile = await store.get_profile("user-1")
    assert profile.xp == 50  # achievement XP stays
    assert profile.coins == 25
    assert profile.level == 1
    assert result.new_level == 1


@pytest.mark.asyncio
async def test_reversal_keeps_achievements(services, store):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    await services.completion_service.remove_completion(habit.id, "user-1", TODAY)

    unlocks = await store.list_achievement_unlocks("user-1")
    assert [u.achievement_key for u in unlocks] == ["first_completion"]


@pytest.mark.asyncio
async def test_reversal_takes_back_spent_coins(store, clock):
    """Coins spent before a reversal leave the balance negative"""
    await seed_powerups(store)
    services = quiet_services(store, clock, base_coins=100)
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    await services.powerups.purchase_powerup("user-1", STREAK_FREEZE)

    result = await services.completion_service.remove_completion(habit.id, "user-1", TODAY)

    assert result.coins_gained == -100
    profile = await store.get_profile("user-1")
    assert profile.coins == -100
    assert profile.xp == 0

    # Re-logging only repays the debt
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    with pytest.raises(InsufficientFundsError):
        await services.powerups.purchase_powerup("user-1", STREAK_FREEZE)
    assert (await store.get_profile("user-1")).coins == 0


@pytest.mark.asyncio
async def test_relog_cycles_do_not_mint_powerups(store, clock):
    await seed_powerups(store)
    services = quiet_services(store, clock)
    habits = [await make_habit(services, title=f"Habit {i}") for i in range(10)]
    for habit in habits:
        await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    bought = 0
    for _ in range(3):
        try:
            await services.powerups.purchase_powerup("user-1", STREAK_FREEZE)
            bought += 1
        except InsufficientFundsError:
            pass
        for habit in habits:
            await services.completion_service.remove_completion(habit.id, "user-1", TODAY)
        for habit in habits:
            await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    assert bought == 1
    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}
    assert (await store.get_profile("user-1")).coins == 0


@pytest.mark.asyncio
async def test_relogging_after_reversal_pays_again(services, store):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    await services.completion_service.remove_completion(habit.id, "user-1", TODAY)

    outcome = await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    assert outcome.rewards.xp_gained == 50
    assert outcome.rewards.new_achievements == []
    profile = await store.get_profile("user-1")
    assert profile.xp == 100


# ============================================================================
# Generic grants
# ============================================================================

@pytest.mark.asyncio
async def test_grant_is_at_most_once(services, store):
    async with store.transaction("user-1"):
        first = await services.rewards.grant("user-1", 10, 5, RewardSource.CHALLENGE, "yoga", "Yoga")
        second = await services.rewards.grant("user-1", 10, 5, RewardSource.CHALLENGE, "yoga", "Yoga")

    assert first is True
    assert second is False
    profile = await store.get_profile("user-1")
    assert profile.xp == 10
    assert profile.coins == 5
    assert len(await store.list_reward_events("user-1")) == 1

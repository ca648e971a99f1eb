"""Unit tests for the stats projector (habitflow/gamification/stats.py)"""
import pytest

from conftest import TODAY, days_ago, make_habit
from habitflow.gamification.achievements import ACHIEVEMENTS
from habitflow.models import GamificationProfile


@pytest.mark.asyncio
async def test_stats_for_new_user(services):
    stats = await services.stats.get_stats("user-1")

    assert stats.level == 1
    assert stats.xp == 0
    assert stats.coins == 0
    assert stats.achievement_count == 0
    assert stats.xp_progress.progress == 0.0
    assert stats.xp_progress.next_level_xp == 100


@pytest.mark.asyncio
async def test_stats_after_first_completion(services):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    stats = await services.stats.get_stats("user-1")

    assert stats.xp == 100
    assert stats.coins == 35
    assert stats.level == 2
    assert stats.achievement_count == 1
    assert stats.longest_streak == 1
    # Level 2 spans 100..382
    assert stats.xp_progress.current_level_xp == 0
    assert stats.xp_progress.next_level_xp == 282


@pytest.mark.asyncio
async def test_level_is_recomputed_from_xp(services, store):
    """A stale stored level never leaks into stats"""
    await store.save_profile(GamificationProfile(user_id="user-1", xp=400, level=1))

    stats = await services.stats.get_stats("user-1")

    assert stats.level == 3


@pytest.mark.asyncio
async def test_list_achievements_flags_unlocked(services):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    achievements = await services.stats.list_achievements("user-1")

    assert len(achievements) == len(ACHIEVEMENTS)
    unlocked = [a.key for a in achievements if a.unlocked]
    assert unlocked == ["first_completion"]
    first = next(a for a in achievements if a.key == "first_completion")
    assert first.unlocked_at is not None


@pytest.mark.asyncio
async def test_list_unlocked(services):
    habit = await make_habit(services)
    for n in range(6, -1, -1):
        await services.completion_service.record_completion(habit.id, "user-1", days_ago(n))

    unlocked = await services.stats.list_unlocked("user-1")

    assert {a.key for a in unlocked} == {"first_completion", "7_day_warrior"}


@pytest.mark.asyncio
async def test_leaderboard_ranks_by_xp(services, store):
    await store.save_profile(GamificationProfile(user_id="alice", xp=1000))
    await store.save_profile(GamificationProfile(user_id="bob", xp=50))
    await store.save_profile(GamificationProfile(user_id="carol", xp=400))

    leaderboard = await services.stats.get_leaderboard(limit=2)

    assert [(e.rank, e.user_id) for e in leaderboard] == [(1, "alice"), (2, "carol")]
    assert leaderboard[0].level == 4


@pytest.mark.asyncio
async def test_reward_history(services):
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", TODAY)

    events = await services.stats.get_reward_history("user-1")

    assert {e.source_type.value for e in events} == {"completion", "achievement"}


@pytest.mark.asyncio
async def test_public_profile_omits_coins(services):
    habit = await make_habit(services, user_id="user-2")
    await services.completion_service.record_completion(habit.id, "user-2", TODAY)

    profile = await services.stats.get_public_profile("user-2")

    assert profile.model_dump() == {"user_id": "user-2", "level": 2, "xp": 100}

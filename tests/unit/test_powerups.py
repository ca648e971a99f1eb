"""Unit tests for the powerup shop (habitflow/gamification/powerups.py)"""
import pytest
from datetime import date, timedelta

from conftest import TODAY, days_ago, make_habit
from habitflow.exceptions import (
    ConflictError,
    InsufficientFundsError,
    RecordNotFoundError,
    ValidationError,
)
from habitflow.gamification.powerups import DEFAULT_POWERUPS, DOUBLE_XP, STREAK_FREEZE, seed_powerups
from habitflow.models import (
    HabitFrequency,
    Powerup,
    PowerupEffect,
    PowerupEffectKind,
    RewardSource,
)


async def give_coins(store, user_id, coins):
    profile = await store.get_profile(user_id)
    profile.coins = coins
    await store.save_profile(profile)


@pytest.fixture
def shop(services):
    return services.powerups


# ============================================================================
# Catalog
# ============================================================================

@pytest.mark.asyncio
async def test_seed_powerups_is_idempotent(store):
    assert await seed_powerups(store) == len(DEFAULT_POWERUPS)
    assert await seed_powerups(store) == 0


@pytest.mark.asyncio
async def test_catalog_lists_seeded_powerups(store, shop):
    await seed_powerups(store)

    catalog = await shop.list_catalog()

    assert [p.key for p in catalog] == [STREAK_FREEZE, DOUBLE_XP]
    assert catalog[0].cost_coins == 100
    assert catalog[1].effect.value == 2.0


# ============================================================================
# Purchases
# ============================================================================

@pytest.mark.asyncio
async def test_purchase_with_insufficient_funds_leaves_balance(store, shop):
    await store.create_powerup_if_absent(Powerup(
        key="mega_boost",
        name="Mega Boost",
        description="Expensive",
        cost_coins=300,
        effect=PowerupEffect(kind=PowerupEffectKind.XP_MULTIPLIER, value=3.0, duration_hours=1),
    ))
    await give_coins(store, "user-1", 250)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await shop.purchase_powerup("user-1", "mega_boost")

    assert exc_info.value.status_code == 400
    profile = await store.get_profile("user-1")
    assert profile.coins == 250
    assert await store.get_inventory("user-1") == {}
    assert await store.list_reward_events("user-1") == []


@pytest.mark.asyncio
async def test_purchase_deducts_coins_and_adds_inventory(store, shop):
    await seed_powerups(store)
    await give_coins(store, "user-1", 250)

    result = await shop.purchase_powerup("user-1", STREAK_FREEZE)

    assert result == {"powerup_key": STREAK_FREEZE, "quantity": 1, "coins": 150}
    inventory = await shop.list_inventory("user-1")
    assert [(i.key, i.quantity) for i in inventory] == [(STREAK_FREEZE, 1)]

    events = await store.list_reward_events("user-1")
    assert len(events) == 1
    assert events[0].source_type == RewardSource.POWERUP_PURCHASE
    assert events[0].coins == -100


@pytest.mark.asyncio
async def test_repeat_purchases_stack(store, shop):
    await seed_powerups(store)
    await give_coins(store, "user-1", 250)

    await shop.purchase_powerup("user-1", STREAK_FREEZE)
    result = await shop.purchase_powerup("user-1", STREAK_FREEZE)

    assert result["quantity"] == 2
    assert result["coins"] == 50


@pytest.mark.asyncio
async def test_purchase_unknown_powerup(store, shop):
    await seed_powerups(store)

    with pytest.raises(RecordNotFoundError):
        await shop.purchase_powerup("user-1", "time_machine")


# ============================================================================
# Activation
# ============================================================================

@pytest.mark.asyncio
async def test_activate_without_inventory(store, shop):
    await seed_powerups(store)

    with pytest.raises(ValidationError):
        await shop.activate_powerup("user-1", DOUBLE_XP)


@pytest.mark.asyncio
async def test_streak_freeze_cannot_be_activated(store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)

    with pytest.raises(ValidationError):
        await shop.activate_powerup("user-1", STREAK_FREEZE)

    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}


@pytest.mark.asyncio
async def test_double_xp_runs_for_24_hours(services, store, shop, clock):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", DOUBLE_XP, 1)
    habit = await make_habit(services)

    active = await shop.activate_powerup("user-1", DOUBLE_XP)

    assert active.multiplier == 2.0
    assert active.expires_at == clock() + timedelta(hours=24)
    assert await store.get_inventory("user-1") == {}
    assert [a.powerup_key for a in await shop.list_active("user-1")] == [DOUBLE_XP]

    doubled = await services.completion_service.record_completion(habit.id, "user-1", days_ago(1))
    event = await store.get_reward_event("user-1", RewardSource.COMPLETION, doubled.completion.id)
    assert event.xp == 100
    assert event.coins == 10

    clock.advance(hours=25)
    assert await shop.list_active("user-1") == []
    normal = await services.completion_service.record_completion(habit.id, "user-1", TODAY)
    event = await store.get_reward_event("user-1", RewardSource.COMPLETION, normal.completion.id)
    assert event.xp == 50


# ============================================================================
# Streak freezes
# ============================================================================

@pytest.mark.asyncio
async def test_freeze_bridges_missed_day(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services)
    for day in (days_ago(3), days_ago(2), TODAY):
        await services.completion_service.record_completion(habit.id, "user-1", day)

    state = await shop.use_streak_freeze("user-1", habit.id, days_ago(1))

    # Frozen days keep the chain alive but do not count themselves
    assert state.current == 3
    assert state.longest == 3
    assert await store.get_inventory("user-1") == {}
    streak = await services.completion_service.get_streak(habit.id, "user-1")
    assert streak.current == 3


@pytest.mark.asyncio
async def test_freeze_same_day_twice_conflicts(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 2)
    habit = await make_habit(services)
    await shop.use_streak_freeze("user-1", habit.id, days_ago(1))

    with pytest.raises(ConflictError):
        await shop.use_streak_freeze("user-1", habit.id, days_ago(1))

    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}


@pytest.mark.asyncio
async def test_freeze_rejects_today(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services)

    with pytest.raises(ValidationError):
        await shop.use_streak_freeze("user-1", habit.id, TODAY)


@pytest.mark.asyncio
async def test_freeze_rejects_completed_day(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services)
    await services.completion_service.record_completion(habit.id, "user-1", days_ago(1))

    with pytest.raises(ValidationError):
        await shop.use_streak_freeze("user-1", habit.id, days_ago(1))


@pytest.mark.asyncio
async def test_freeze_rejects_weekend_for_weekdays_habit(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services, frequency=HabitFrequency.WEEKDAYS)
    saturday = date(2024, 3, 9)

    with pytest.raises(ValidationError):
        await shop.use_streak_freeze("user-1", habit.id, saturday)

    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}
    assert await store.list_streak_freezes("user-1", habit.id) == []


@pytest.mark.asyncio
async def test_freeze_rejects_completed_week_for_weekly_habit(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services, frequency=HabitFrequency.WEEKLY)
    await services.completion_service.record_completion(habit.id, "user-1", date(2024, 3, 4))

    # Wednesday of the same ISO week
    with pytest.raises(ValidationError):
        await shop.use_streak_freeze("user-1", habit.id, date(2024, 3, 6))

    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}


@pytest.mark.asyncio
async def test_freeze_one_per_week_for_weekly_habit(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 2)
    habit = await make_habit(services, frequency=HabitFrequency.WEEKLY)
    await shop.use_streak_freeze("user-1", habit.id, date(2024, 3, 4))

    with pytest.raises(ConflictError):
        await shop.use_streak_freeze("user-1", habit.id, date(2024, 3, 7))

    assert await store.get_inventory("user-1") == {STREAK_FREEZE: 1}


@pytest.mark.asyncio
async def test_freeze_requires_inventory(services, store, shop):
    await seed_powerups(store)
    habit = await make_habit(services)

    with pytest.raises(ValidationError):
        await shop.use_streak_freeze("user-1", habit.id, days_ago(1))

    assert await store.list_streak_freezes("user-1", habit.id) == []


@pytest.mark.asyncio
async def test_freeze_on_foreign_habit_not_found(services, store, shop):
    await seed_powerups(store)
    await store.adjust_inventory("user-1", STREAK_FREEZE, 1)
    habit = await make_habit(services, user_id="user-2")

    with pytest.raises(RecordNotFoundError):
        await shop.use_streak_freeze("user-1", habit.id, days_ago(1))

"""
Powerup Shop

Coins buy powerups, which land in the user's inventory:
- streak_freeze (100 coins): protects one missed day of one habit
- double_xp (200 coins): 2x XP on completions for 24 hours once activated

A purchase either goes through completely (coins deducted, inventory
incremented, ledger event written) or raises InsufficientFundsError with
the balance untouched.
"""

import logging
from datetime import date, timedelta
from uuid import uuid4

from habitflow.exceptions import (
    ConflictError,
    InsufficientFundsError,
    RecordNotFoundError,
    ValidationError,
)
from habitflow.models import (
    ActivePowerup,
    InventoryItem,
    Powerup,
    PowerupEffect,
    PowerupEffectKind,
    RewardEvent,
    RewardSource,
    StreakState,
)
from habitflow.gamification.streaks import period_index
from habitflow.observability.metrics import powerup_purchases_total

logger = logging.getLogger(__name__)

STREAK_FREEZE = "streak_freeze"
DOUBLE_XP = "double_xp"

DEFAULT_POWERUPS: tuple[Powerup, ...] = (
    Powerup(
        key=STREAK_FREEZE,
        name="Streak Freeze",
        description="Protect your streak for one day",
        icon="❄️",
        cost_coins=100,
        effect=PowerupEffect(kind=PowerupEffectKind.STREAK_FREEZE),
    ),
    Powerup(
        key=DOUBLE_XP,
        name="Double XP",
        description="Earn 2x XP for 24 hours",
        icon="⚡",
        cost_coins=200,
        effect=PowerupEffect(kind=PowerupEffectKind.XP_MULTIPLIER, value=2.0, duration_hours=24),
    ),
)


async def seed_powerups(store, powerups=DEFAULT_POWERUPS) -> int:
    """Create missing catalog entries; returns how many were created"""
    created = 0
    for powerup in powerups:
        if await store.create_powerup_if_absent(powerup):
            created += 1
    if created:
        logger.info(f"Seeded {created} powerups")
    return created


class PowerupShop:
    """Catalog, purchases and activation"""

    def __init__(self, store, rewards):
        self.store = store
        self.rewards = rewards  # RewardEngine, for clock and streak helpers

    async def _get_powerup(self, key: str) -> Powerup:
        powerup = await self.store.get_powerup(key)
        if powerup is None:
            raise RecordNotFoundError(
                f"Powerup {key} not found",
                record_type="Powerup",
                record_id=key
            )
        return powerup

    async def list_catalog(self) -> list[Powerup]:
        return await self.store.list_powerups()

    async def list_inventory(self, user_id: str) -> list[InventoryItem]:
        inventory = await self.store.get_inventory(user_id)
        items = []
        for powerup in await self.store.list_powerups():
            quantity = inventory.get(powerup.key, 0)
            if quantity > 0:
                items.append(InventoryItem(**powerup.model_dump(), quantity=quantity))
        return items

    async def list_active(self, user_id: str) -> list[ActivePowerup]:
        return await self.store.list_active_powerups(user_id, self.rewards.clock())

    async def purchase_powerup(self, user_id: str, key: str) -> dict:
        """
        Buy one powerup with coins

        Returns:
            {'powerup_key': str, 'quantity': int, 'coins': int}

        Raises:
            RecordNotFoundError: Unknown powerup key
            InsufficientFundsError: Balance below cost (balance unchanged)
        """
        async with self.store.transaction(user_id):
            powerup = await self._get_powerup(key)
            profile = await self.store.get_profile(user_id)

            if profile.coins < powerup.cost_coins:
                powerup_purchases_total.labels(powerup=key, status="insufficient_funds").inc()
                raise InsufficientFundsError(
                    balance=profile.coins,
                    cost=powerup.cost_coins,
                    user_id=user_id,
                    operation="purchase_powerup"
                )

            now = self.rewards.clock()
            await self.store.insert_reward_event(
                RewardEvent(
                    user_id=user_id,
                    source_type=RewardSource.POWERUP_PURCHASE,
                    source_id=str(uuid4()),
                    coins=-powerup.cost_coins,
                    reason=f"Bought {powerup.name}",
                    created_at=now,
                )
            )
            profile.coins -= powerup.cost_coins
            profile.updated_at = now
            await self.store.save_profile(profile)
            quantity = await self.store.adjust_inventory(user_id, key, 1)

        powerup_purchases_total.labels(powerup=key, status="success").inc()
        logger.info(f"User {user_id} bought {key} for {powerup.cost_coins} coins")
        return {"powerup_key": key, "quantity": quantity, "coins": profile.coins}

    async def activate_powerup(self, user_id: str, key: str) -> ActivePowerup:
        """
        Consume one XP multiplier from inventory and start its timer

        Raises:
            RecordNotFoundError: Unknown powerup key
            ValidationError: Not an XP multiplier, or none owned
        """
        async with self.store.transaction(user_id):
            powerup = await self._get_powerup(key)
            if powerup.effect.kind != PowerupEffectKind.XP_MULTIPLIER:
                raise ValidationError(
                    f"{powerup.name} cannot be activated directly",
                    field="powerupKey",
                    value=key,
                    user_id=user_id
                )

            await self._consume(user_id, powerup)
            now = self.rewards.clock()
            active = ActivePowerup(
                user_id=user_id,
                powerup_key=key,
                multiplier=powerup.effect.value,
                activated_at=now,
                expires_at=now + timedelta(hours=powerup.effect.duration_hours),
            )
            await self.store.insert_active_powerup(active)

        logger.info(f"User {user_id} activated {key} until {active.expires_at.isoformat()}")
        return active

    async def use_streak_freeze(self, user_id: str, habit_id: str, frozen_date: date) -> StreakState:
        """
        Spend a streak freeze on a missed day of a habit

        Returns:
            The habit's streak with the freeze applied

        Raises:
            RecordNotFoundError: Unknown habit or not the user's
            ValidationError: Day is not in the past or not scheduled, its period
                was completed, or no freeze owned
            ConflictError: Period already frozen
        """
        async with self.store.transaction(user_id):
            habit = await self.store.get_habit(habit_id)
            if habit is None or habit.user_id != user_id:
                raise RecordNotFoundError(
                    f"Habit {habit_id} not found",
                    record_type="Habit",
                    record_id=habit_id,
                    user_id=user_id
                )

            if frozen_date >= self.rewards.today_for(habit):
                raise ValidationError(
                    "Only past days can be frozen",
                    field="date",
                    value=frozen_date.isoformat(),
                    user_id=user_id
                )
            period = period_index(habit.frequency, frozen_date)
            if period is None:
                raise ValidationError(
                    f"Day is not part of a {habit.frequency.value} habit's schedule",
                    field="date",
                    value=frozen_date.isoformat(),
                    user_id=user_id
                )

            completions = await self.store.list_completions(habit_id, user_id)
            if any(period_index(habit.frequency, c.completed_date) == period for c in completions):
                raise ValidationError(
                    "Day is already completed",
                    field="date",
                    value=frozen_date.isoformat(),
                    user_id=user_id
                )

            # One freeze covers the whole period
            frozen = await self.store.list_streak_freezes(user_id, habit_id)
            if any(period_index(habit.frequency, d) == period for d in frozen):
                raise ConflictError("Day is already frozen", user_id=user_id)

            powerup = await self._get_powerup(STREAK_FREEZE)
            await self._consume(user_id, powerup)
            await self.store.insert_streak_freeze(user_id, habit_id, frozen_date)

            state = await self.rewards.habit_streak(habit)
            best = await self.rewards.record_best_streak(habit, state)

        logger.info(f"User {user_id} froze {frozen_date.isoformat()} for habit {habit_id}")
        return state.model_copy(update={"longest": max(state.longest, best)})

    async def _consume(self, user_id: str, powerup: Powerup) -> None:
        inventory = await self.store.get_inventory(user_id)
        if inventory.get(powerup.key, 0) < 1:
            raise ValidationError(
                f"You don't have any {powerup.name}",
                field="powerupKey",
                value=powerup.key,
                user_id=user_id
            )
        await self.store.adjust_inventory(user_id, powerup.key, -1)

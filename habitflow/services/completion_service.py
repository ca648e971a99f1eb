"""
CompletionService - Completion Ledger

Records and removes habit completions and runs the reward pipeline for
each one inside a single per-user transaction:

    ledger insert -> streak recompute -> rewards (XP, coins, level,
    challenges, achievements) -> response

Transient database failures re-run the whole transaction; the ledger's
unique keys make the re-run safe.
"""

import logging
from datetime import date, datetime
from typing import Callable

import psycopg

from habitflow.exceptions import (
    DuplicateCompletionError,
    RecordNotFoundError,
    ValidationError,
    wrap_external_exception,
)
from habitflow.models import Completion, CompletionOutcome, Habit, RewardResult, StreakState
from habitflow.models.habit import utcnow
from habitflow.observability.metrics import completions_total
from habitflow.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class CompletionService:
    """
    Service for the completion ledger.

    Responsibilities:
    - One completion per (habit, user, date)
    - Reward and reversal through the RewardEngine
    - Streak lookups
    """

    def __init__(self, store, rewards, clock: Callable[[], datetime] = utcnow):
        """
        Initialize CompletionService.

        Args:
            store: PostgresStore or MemoryStore
            rewards: RewardEngine sharing the same store
            clock: Source of the current time
        """
        self.store = store
        self.rewards = rewards
        self.clock = clock
        logger.debug("CompletionService initialized")

    async def _owned_habit(self, habit_id: str, user_id: str) -> Habit:
        habit = await self.store.get_habit(habit_id)
        if habit is None or habit.user_id != user_id:
            raise RecordNotFoundError(
                f"Habit {habit_id} not found",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return habit

    async def record_completion(self, habit_id: str, user_id: str, completed_date: date) -> CompletionOutcome:
        """
        Log a habit as done on a calendar day and grant its rewards.

        Args:
            habit_id: Habit UUID
            user_id: Acting user
            completed_date: Day in the habit's timezone

        Returns:
            CompletionOutcome(completion, rewards)

        Raises:
            RecordNotFoundError: Unknown habit or owned by someone else
            ValidationError: Inactive habit or a future date
            DuplicateCompletionError: Already logged for that day
        """
        try:
            outcome = await retry_with_backoff(self._record, habit_id, user_id, completed_date)
        except DuplicateCompletionError:
            completions_total.labels(action="duplicate").inc()
            raise
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="record_completion",
                user_id=user_id,
                context={"habit_id": habit_id, "completed_date": completed_date.isoformat()}
            )

        completions_total.labels(action="recorded").inc()
        logger.info(
            f"User {user_id} completed habit {habit_id} on {completed_date.isoformat()}: "
            f"+{outcome.rewards.xp_gained} XP, +{outcome.rewards.coins_gained} coins"
        )
        return outcome

    async def _record(self, habit_id: str, user_id: str, completed_date: date) -> CompletionOutcome:
        async with self.store.transaction(user_id):
            habit = await self._owned_habit(habit_id, user_id)

            if not habit.is_active:
                raise ValidationError(
                    "Habit is archived",
                    field="habit_id",
                    value=habit_id,
                    user_id=user_id
                )

            if completed_date > habit.local_date(self.clock()):
                raise ValidationError(
                    "Date cannot be in the future",
                    field="completed_date",
                    value=completed_date.isoformat(),
                    user_id=user_id
                )

            completion = await self.store.insert_completion(
                Completion(
                    habit_id=habit_id,
                    user_id=user_id,
                    completed_date=completed_date,
                    created_at=self.clock(),
                )
            )
            rewards = await self.rewards.apply_completion_reward(user_id, habit, completion)

        return CompletionOutcome(completion=completion, rewards=rewards)

    async def remove_completion(self, habit_id: str, user_id: str, completed_date: date) -> RewardResult:
        """
        Delete a completion and reverse the XP and coins it earned.

        Raises:
            RecordNotFoundError: Unknown habit, or nothing logged for that day
        """
        try:
            result = await retry_with_backoff(self._remove, habit_id, user_id, completed_date)
        except psycopg.Error as e:
            raise wrap_external_exception(
                e,
                operation="remove_completion",
                user_id=user_id,
                context={"habit_id": habit_id, "completed_date": completed_date.isoformat()}
            )

        completions_total.labels(action="removed").inc()
        logger.info(f"User {user_id} removed completion of habit {habit_id} on {completed_date.isoformat()}")
        return result

    async def _remove(self, habit_id: str, user_id: str, completed_date: date) -> RewardResult:
        async with self.store.transaction(user_id):
            habit = await self._owned_habit(habit_id, user_id)
            completion = await self.store.get_completion(habit_id, user_id, completed_date)
            if completion is None:
                raise RecordNotFoundError(
                    f"No completion for habit {habit_id} on {completed_date.isoformat()}",
                    record_type="Completion",
                    record_id=f"{habit_id}:{completed_date.isoformat()}",
                    user_id=user_id
                )

            await self.store.delete_completion(completion.id)
            return await self.rewards.reverse_completion_reward(user_id, habit, completion)

    async def list_completions(self, habit_id: str, user_id: str) -> list[Completion]:
        """Completions of a habit, newest first"""
        await self._owned_habit(habit_id, user_id)
        return await self.store.list_completions(habit_id, user_id)

    async def get_streak(self, habit_id: str, user_id: str) -> StreakState:
        """Current streak; longest never drops below the best ever recorded"""
        habit = await self._owned_habit(habit_id, user_id)
        state = await self.rewards.habit_streak(habit)
        best = await self.store.get_best_streak(user_id, habit_id)
        return state.model_copy(update={"longest": max(state.longest, best)})

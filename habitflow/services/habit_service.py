"""
HabitService - Habit CRUD

Habits are never hard-deleted: completions and reward events keep pointing
at them, so deletion only clears is_active.
"""

import logging
from typing import Any, Optional

import pydantic

from habitflow.exceptions import RecordNotFoundError, ValidationError
from habitflow.models import Habit, HabitFrequency

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "category", "frequency", "timezone", "is_active")


def _validation_error(error: pydantic.ValidationError, user_id: str) -> ValidationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(
        first.get("msg", "Invalid habit"),
        field=field,
        value=first.get("input"),
        user_id=user_id
    )


class HabitService:
    """Service for habit management"""

    def __init__(self, store):
        self.store = store
        logger.debug("HabitService initialized")

    async def create_habit(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        frequency: HabitFrequency = HabitFrequency.DAILY,
        timezone: str = "UTC"
    ) -> Habit:
        try:
            habit = Habit(
                user_id=user_id,
                title=title,
                description=description,
                category=category,
                frequency=frequency,
                timezone=timezone,
            )
        except pydantic.ValidationError as e:
            raise _validation_error(e, user_id)

        habit = await self.store.create_habit(habit)
        logger.info(f"User {user_id} created habit {habit.id} ({habit.frequency.value})")
        return habit

    async def get_habit(self, habit_id: str, user_id: str) -> Habit:
        """Fetch a habit the user owns"""
        habit = await self.store.get_habit(habit_id)
        if habit is None or habit.user_id != user_id:
            raise RecordNotFoundError(
                f"Habit {habit_id} not found",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return habit

    async def list_habits(self, user_id: str, include_inactive: bool = False) -> list[Habit]:
        return await self.store.list_habits(user_id, include_inactive)

    async def update_habit(self, habit_id: str, user_id: str, changes: dict[str, Any]) -> Habit:
        """
        Apply a partial update

        Only UPDATABLE_FIELDS are honoured; ids, owner and created_at are fixed.
        """
        habit = await self.get_habit(habit_id, user_id)
        updates = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not updates:
            return habit

        try:
            updated = Habit.model_validate({**habit.model_dump(), **updates})
        except pydantic.ValidationError as e:
            raise _validation_error(e, user_id)

        updated = await self.store.update_habit(updated)
        logger.info(f"User {user_id} updated habit {habit_id}: {sorted(updates)}")
        return updated

    async def deactivate_habit(self, habit_id: str, user_id: str) -> Habit:
        return await self.update_habit(habit_id, user_id, {"is_active": False})

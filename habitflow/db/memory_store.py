"""
In-memory Store

Same interface as PostgresStore, kept in process memory. Used by the test
suite and for local runs with STORE_BACKEND=memory. Nothing is persisted
and transactions only serialize; they do not roll back.

Records are copied on the way in and out so callers cannot mutate stored
state without going through a save method.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Iterable, Optional

from habitflow.exceptions import DuplicateCompletionError
from habitflow.models import (
    ActivePowerup,
    AchievementUnlock,
    Challenge,
    ChallengeParticipant,
    Completion,
    GamificationProfile,
    Group,
    GroupRole,
    Habit,
    Powerup,
    RewardEvent,
    RewardSource,
)

logger = logging.getLogger(__name__)


def _copy(record):
    return record.model_copy(deep=True) if record is not None else None


class MemoryStore:
    """In-process store with per-user locks"""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._habits: dict[str, Habit] = {}
        self._completions: dict[str, Completion] = {}
        self._best_streaks: dict[tuple[str, str], int] = {}
        self._freezes: set[tuple[str, str, date]] = set()
        self._profiles: dict[str, GamificationProfile] = {}
        self._events: dict[tuple[str, str, str], RewardEvent] = {}
        self._unlocks: dict[tuple[str, str], AchievementUnlock] = {}
        self._powerups: dict[str, Powerup] = {}
        self._inventory: dict[str, dict[str, int]] = defaultdict(dict)
        self._active_powerups: list[ActivePowerup] = []
        self._groups: dict[str, Group] = {}
        self._members: dict[tuple[str, str], GroupRole] = {}
        self._challenges: dict[str, Challenge] = {}
        self._participants: dict[tuple[str, str], ChallengeParticipant] = {}
        logger.debug("MemoryStore initialized")

    async def close(self) -> None:
        """Nothing to release"""

    async def ping(self) -> bool:
        return True

    # ==========================================
    # Transactions
    # ==========================================

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[None]:
        """Serialize reward writes for one user"""
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            yield

    # ==========================================
    # Habits
    # ==========================================

    async def create_habit(self, habit: Habit) -> Habit:
        self._habits[habit.id] = _copy(habit)
        return _copy(habit)

    async def get_habit(self, habit_id: str) -> Optional[Habit]:
        return _copy(self._habits.get(habit_id))

    async def list_habits(self, user_id: str, include_inactive: bool = False) -> list[Habit]:
        habits = [
            h for h in self._habits.values()
            if h.user_id == user_id and (include_inactive or h.is_active)
        ]
        habits.sort(key=lambda h: h.created_at)
        return [_copy(h) for h in habits]

    async def update_habit(self, habit: Habit) -> Habit:
        self._habits[habit.id] = _copy(habit)
        return _copy(habit)

    # ==========================================
    # Completions
    # ==========================================

    async def insert_completion(self, completion: Completion) -> Completion:
        existing = await self.get_completion(completion.habit_id, completion.user_id, completion.completed_date)
        if existing is not None:
            raise DuplicateCompletionError(
                habit_id=completion.habit_id,
                completed_date=completion.completed_date,
                user_id=completion.user_id,
                operation="insert_completion"
            )
        self._completions[completion.id] = _copy(completion)
        return _copy(completion)

    async def get_completion(self, habit_id: str, user_id: str, completed_date: date) -> Optional[Completion]:
        for c in self._completions.values():
            if c.habit_id == habit_id and c.user_id == user_id and c.completed_date == completed_date:
                return _copy(c)
        return None

    async def delete_completion(self, completion_id: str) -> bool:
        return self._completions.pop(completion_id, None) is not None

    async def list_completions(self, habit_id: str, user_id: str) -> list[Completion]:
        rows = [c for c in self._completions.values() if c.habit_id == habit_id and c.user_id == user_id]
        rows.sort(key=lambda c: c.completed_date, reverse=True)
        return [_copy(c) for c in rows]

    async def count_completions(self, user_id: str) -> int:
        return sum(1 for c in self._completions.values() if c.user_id == user_id)

    async def count_completions_by_category(self, user_id: str) -> dict[str, int]:
        counts: dict[str, int] = defaultdict(int)
        for c in self._completions.values():
            if c.user_id != user_id:
                continue
            habit = self._habits.get(c.habit_id)
            if habit and habit.category:
                counts[habit.category] += 1
        return dict(counts)

    # ==========================================
    # Streak records & freezes
    # ==========================================

    async def get_best_streak(self, user_id: str, habit_id: str) -> int:
        return self._best_streaks.get((user_id, habit_id), 0)

    async def save_best_streak(self, user_id: str, habit_id: str, best: int) -> int:
        key = (user_id, habit_id)
        self._best_streaks[key] = max(self._best_streaks.get(key, 0), best)
        return self._best_streaks[key]

    async def insert_streak_freeze(self, user_id: str, habit_id: str, frozen_date: date) -> bool:
        key = (user_id, habit_id, frozen_date)
        if key in self._freezes:
            return False
        self._freezes.add(key)
        return True

    async def list_streak_freezes(self, user_id: str, habit_id: str) -> list[date]:
        return sorted(d for (u, h, d) in self._freezes if u == user_id and h == habit_id)

    # ==========================================
    # Profiles
    # ==========================================

    async def get_profile(self, user_id: str) -> GamificationProfile:
        if user_id not in self._profiles:
            self._profiles[user_id] = GamificationProfile(user_id=user_id)
            logger.info(f"Created new gamification profile for user {user_id}")
        return _copy(self._profiles[user_id])

    async def save_profile(self, profile: GamificationProfile) -> None:
        self._profiles[profile.user_id] = _copy(profile)

    async def list_top_profiles(self, limit: int = 10) -> list[GamificationProfile]:
        ranked = sorted(self._profiles.values(), key=lambda p: (-p.xp, p.user_id))
        return [_copy(p) for p in ranked[:limit]]

    # ==========================================
    # Reward ledger
    # ==========================================

    async def insert_reward_event(self, event: RewardEvent) -> bool:
        key = (event.user_id, event.source_type.value, event.source_id)
        if key in self._events:
            return False
        self._events[key] = _copy(event)
        return True

    async def get_reward_event(self, user_id: str, source_type: RewardSource, source_id: str) -> Optional[RewardEvent]:
        return _copy(self._events.get((user_id, source_type.value, source_id)))

    async def list_reward_events(self, user_id: str, limit: int = 50) -> list[RewardEvent]:
        rows = [e for e in self._events.values() if e.user_id == user_id]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return [_copy(e) for e in rows[:limit]]

    # ==========================================
    # Achievements
    # ==========================================

    async def insert_achievement_unlock(self, unlock: AchievementUnlock) -> bool:
        key = (unlock.user_id, unlock.achievement_key)
        if key in self._unlocks:
            return False
        self._unlocks[key] = _copy(unlock)
        return True

    async def list_achievement_unlocks(self, user_id: str) -> list[AchievementUnlock]:
        rows = [u for (uid, _), u in self._unlocks.items() if uid == user_id]
        rows.sort(key=lambda u: u.unlocked_at, reverse=True)
        return [_copy(u) for u in rows]

    # ==========================================
    # Powerups
    # ==========================================

    async def create_powerup_if_absent(self, powerup: Powerup) -> bool:
        if powerup.key in self._powerups:
            return False
        self._powerups[powerup.key] = _copy(powerup)
        return True

    async def get_powerup(self, key: str) -> Optional[Powerup]:
        return _copy(self._powerups.get(key))

    async def list_powerups(self) -> list[Powerup]:
        return [_copy(p) for p in sorted(self._powerups.values(), key=lambda p: p.cost_coins)]

    async def get_inventory(self, user_id: str) -> dict[str, int]:
        return {k: q for k, q in self._inventory[user_id].items() if q > 0}

    async def adjust_inventory(self, user_id: str, key: str, delta: int) -> int:
        quantity = self._inventory[user_id].get(key, 0) + delta
        if quantity < 0:
            raise ValueError(f"Inventory for {key} would become negative")
        self._inventory[user_id][key] = quantity
        return quantity

    async def insert_active_powerup(self, active: ActivePowerup) -> None:
        self._active_powerups.append(_copy(active))

    async def list_active_powerups(self, user_id: str, at: datetime) -> list[ActivePowerup]:
        return [
            _copy(a) for a in self._active_powerups
            if a.user_id == user_id and a.activated_at <= at < a.expires_at
        ]

    # ==========================================
    # Groups
    # ==========================================

    async def create_group(self, group: Group) -> Group:
        self._groups[group.id] = _copy(group)
        return _copy(group)

    async def get_group(self, group_id: str) -> Optional[Group]:
        return _copy(self._groups.get(group_id))

    async def add_group_member(self, group_id: str, user_id: str, role: GroupRole) -> bool:
        key = (group_id, user_id)
        if key in self._members:
            return False
        self._members[key] = role
        return True

    async def get_group_role(self, group_id: str, user_id: str) -> Optional[GroupRole]:
        return self._members.get((group_id, user_id))

    async def list_user_group_ids(self, user_id: str) -> list[str]:
        return sorted(g for (g, u) in self._members if u == user_id)

    # ==========================================
    # Challenges
    # ==========================================

    async def create_challenge_if_absent(self, challenge: Challenge) -> tuple[Challenge, bool]:
        existing = self._challenges.get(challenge.id)
        if existing is not None:
            return _copy(existing), False
        self._challenges[challenge.id] = _copy(challenge)
        return _copy(challenge), True

    async def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        return _copy(self._challenges.get(challenge_id))

    async def list_group_challenges(self, group_ids: Iterable[str]) -> list[Challenge]:
        wanted = set(group_ids)
        rows = [c for c in self._challenges.values() if c.group_id in wanted]
        rows.sort(key=lambda c: (c.start_date, c.id))
        return [_copy(c) for c in rows]

    async def insert_participant(self, participant: ChallengeParticipant) -> bool:
        key = (participant.challenge_id, participant.user_id)
        if key in self._participants:
            return False
        self._participants[key] = _copy(participant)
        return True

    async def get_participant(self, challenge_id: str, user_id: str) -> Optional[ChallengeParticipant]:
        return _copy(self._participants.get((challenge_id, user_id)))

    async def save_participant(self, participant: ChallengeParticipant) -> None:
        self._participants[(participant.challenge_id, participant.user_id)] = _copy(participant)

    async def list_participants(self, challenge_id: str) -> list[ChallengeParticipant]:
        rows = [p for (cid, _), p in self._participants.items() if cid == challenge_id]
        rows.sort(key=lambda p: (-p.progress_count, p.joined_at))
        return [_copy(p) for p in rows]

    async def list_user_participations(self, user_id: str) -> list[ChallengeParticipant]:
        rows = [p for (_, uid), p in self._participants.items() if uid == user_id]
        rows.sort(key=lambda p: p.joined_at)
        return [_copy(p) for p in rows]
